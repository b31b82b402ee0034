"""Provider-specific to canonical result mapping.

The :class:`Normalizer` picks a mapper by ``(service, operation, dialect)``
and turns a parsed upstream body into a canonical result. Failures are
explicit: a body that cannot be mapped raises
:class:`MalformedResponseError`; nothing is ever papered over with
placeholder values that would then poison the cache.

Normalization is a projection. Feeding a canonical result (or its JSON
payload) back in returns an equal result, which is how cached payloads are
re-validated on the way out.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

from ..clock import Clock, to_datetime
from ..errors import MalformedResponseError
from ..models import (
    MAX_FORECAST_DAYS,
    ChatResult,
    CurrentWeather,
    Forecast,
    OperationDescriptor,
    Provider,
    RatesResult,
    Service,
    parse_result,
)
from .chat import CHAT_MAPPERS
from .rates import RATES_MAPPERS
from .weather import CURRENT_MAPPERS, FORECAST_MAPPERS

_EXPECTED: Dict[Tuple[Service, str], Type[BaseModel]] = {
    (Service.CHAT, "completion"): ChatResult,
    (Service.WEATHER, "current"): CurrentWeather,
    (Service.WEATHER, "forecast"): Forecast,
    (Service.RATES, "pair"): RatesResult,
    (Service.RATES, "latest"): RatesResult,
}


def expected_type(descriptor: OperationDescriptor) -> Type[BaseModel]:
    return _EXPECTED[(descriptor.service, descriptor.operation)]


class Normalizer:
    """Maps raw upstream bodies to canonical results.

    Parameters
    ----------
    clock:
        Supplies ``observed_at`` / ``as_of`` when the upstream omits them.
    """

    def __init__(self, clock: Clock) -> None:
        self._clock = clock

    def dialects(self, service: Service, operation: str) -> list[str]:
        return sorted(self._mappers(service, operation))

    @staticmethod
    def _mappers(service: Service, operation: str) -> Dict[str, Callable[..., Any]]:
        if service is Service.CHAT:
            return CHAT_MAPPERS
        if service is Service.WEATHER:
            return CURRENT_MAPPERS if operation == "current" else FORECAST_MAPPERS
        return RATES_MAPPERS

    def normalize(
        self,
        descriptor: OperationDescriptor,
        dialect: str,
        raw: Any,
        *,
        provider: Optional[Provider] = None,
    ) -> BaseModel:
        """Return the canonical result for ``raw``.

        Raises:
            MalformedResponseError: ``raw`` cannot be mapped.
            CallerError: The upstream answered but the request asked for
                something it does not support (e.g. an unknown currency).
        """
        expected = expected_type(descriptor)
        try:
            canonical = self._canonical(raw, expected)
            if canonical is None:
                canonical = self._map(descriptor, dialect, raw, provider)
        except ValidationError as exc:
            raise MalformedResponseError(f"{dialect}: {exc.error_count()} validation error(s)") from exc
        except (TypeError, AttributeError, ValueError, OverflowError, KeyError) as exc:
            raise MalformedResponseError(f"{dialect}: {type(exc).__name__}: {exc}") from exc
        if isinstance(canonical, Forecast):
            canonical = self._truncate(canonical, descriptor)
        return canonical

    @staticmethod
    def _canonical(raw: Any, expected: Type[BaseModel]) -> Optional[BaseModel]:
        if isinstance(raw, expected):
            return raw
        if isinstance(raw, BaseModel):
            raise MalformedResponseError(f"expected {expected.__name__}, got {type(raw).__name__}")
        if isinstance(raw, dict) and raw.get("kind") == expected.model_fields["kind"].default:
            return parse_result(raw)
        return None

    def _map(self, descriptor: OperationDescriptor, dialect: str, raw: Any, provider: Optional[Provider]) -> BaseModel:
        if not isinstance(raw, dict):
            raise MalformedResponseError(f"{dialect}: expected a JSON object, got {type(raw).__name__}")
        mapper = self._mappers(descriptor.service, descriptor.operation).get(dialect)
        if mapper is None:
            raise MalformedResponseError(f"no normalizer for dialect '{dialect}' on {descriptor.name}")
        if descriptor.service is Service.CHAT:
            return mapper(raw, provider, descriptor)
        if descriptor.operation == "forecast":
            location, days = mapper(raw, descriptor)
            return Forecast(location=location, days=days[:MAX_FORECAST_DAYS])
        return mapper(raw, descriptor, to_datetime(self._clock.now_ms()))

    @staticmethod
    def _truncate(forecast: Forecast, descriptor: OperationDescriptor) -> Forecast:
        wanted = min(int(descriptor.args.get("days", MAX_FORECAST_DAYS)), MAX_FORECAST_DAYS)
        if len(forecast.days) <= wanted:
            return forecast
        return forecast.model_copy(update={"days": list(forecast.days[:wanted])})


__all__ = ["Normalizer", "expected_type"]
