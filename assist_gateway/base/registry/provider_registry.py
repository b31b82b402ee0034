"""Provider registry with copy-on-write replacement.

The registry exclusively owns :class:`Provider` records. Reads never take a
lock: every mutation builds a new mapping and swaps the reference, so a
concurrent ``lookup`` sees either the old or the new set of records, never a
mix. The registry knows nothing about limits or breakers; it only returns a
stable ordering for the dispatcher to filter.
"""

from __future__ import annotations

from threading import Lock
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..errors import DuplicateProviderError, InvalidProviderError
from ..logging import get_logger, log_event
from ..models import Provider, Service, coerce_service

_Key = Tuple[Service, str]

FailureCounter = Callable[[str], int]


def _no_failures(_name: str) -> int:
    return 0


class ProviderRegistry:
    """Typed provider records keyed by ``(service, name)``.

    Example:
        registry = ProviderRegistry()
        registry.register(provider)
        for candidate in registry.lookup("weather", failures=breakers.consecutive_failures):
            ...
    """

    def __init__(self, providers: Iterable[Provider] = ()) -> None:
        self._write_lock = Lock()
        self._records: Dict[_Key, Provider] = {}
        self._logger = get_logger("assist_gateway.registry")
        providers = list(providers)
        if providers:
            self.replace_all(providers)

    @staticmethod
    def _validate(provider: Provider) -> None:
        errors = provider.validation_errors()
        if errors:
            raise InvalidProviderError(f"{provider.service.value}/{provider.name}: " + "; ".join(errors))

    def register(self, provider: Provider, *, replace: bool = False) -> None:
        """Add ``provider``, or replace an existing record when ``replace`` is set.

        Raises:
            InvalidProviderError: The record fails validation.
            DuplicateProviderError: A record with the same key exists and
                ``replace`` is false.
        """
        self._validate(provider)
        with self._write_lock:
            if provider.key in self._records and not replace:
                raise DuplicateProviderError(
                    f"provider {provider.service.value}/{provider.name} is already registered"
                )
            records = dict(self._records)
            records[provider.key] = provider
            self._records = records
        log_event(self._logger, "registry.register", replace=replace, **provider.describe())

    def replace_all(self, providers: Iterable[Provider]) -> None:
        """Atomically swap the whole record set (configuration reload)."""
        records: Dict[_Key, Provider] = {}
        for provider in providers:
            self._validate(provider)
            if provider.key in records:
                raise DuplicateProviderError(
                    f"provider {provider.service.value}/{provider.name} appears twice"
                )
            records[provider.key] = provider
        with self._write_lock:
            self._records = records
        log_event(self._logger, "registry.replace_all", count=len(records))

    def remove(self, service: "Service | str", name: str) -> bool:
        key = (coerce_service(service), name)
        with self._write_lock:
            if key not in self._records:
                return False
            records = dict(self._records)
            del records[key]
            self._records = records
        return True

    def set_enabled(self, name: str, enabled: bool) -> int:
        """Enable or disable every record called ``name``; returns how many changed."""
        with self._write_lock:
            changed = {
                key: record.with_enabled(enabled)
                for key, record in self._records.items()
                if record.name == name and record.enabled != enabled
            }
            if changed:
                records = dict(self._records)
                records.update(changed)
                self._records = records
        if changed:
            log_event(self._logger, "registry.set_enabled", provider=name, enabled=enabled)
        return len(changed)

    def get(self, service: "Service | str", name: str) -> Optional[Provider]:
        return self._records.get((coerce_service(service), name))

    def all(self) -> List[Provider]:
        records = self._records
        return sorted(records.values(), key=lambda p: (p.service.value, p.name))

    def services(self) -> List[Service]:
        return sorted({key[0] for key in self._records}, key=lambda s: s.value)

    def lookup(
        self,
        service: "Service | str",
        *,
        operation: Optional[str] = None,
        failures: Optional[FailureCounter] = None,
    ) -> List[Provider]:
        """Return enabled providers for ``service`` in dispatch order.

        Ordering is ``(priority desc, consecutive failures asc, name asc)``.
        When ``operation`` is given, providers lacking that capability are
        dropped.
        """
        svc = coerce_service(service)
        failures = failures or _no_failures
        records = self._records
        candidates = [
            p
            for p in records.values()
            if p.service is svc and p.enabled and (operation is None or p.supports(operation))
        ]
        return sorted(candidates, key=lambda p: (-p.priority, failures(p.name), p.name))

    def __len__(self) -> int:
        return len(self._records)


__all__ = ["ProviderRegistry", "FailureCounter"]
