"""Provider registry package."""

from .provider_registry import FailureCounter, ProviderRegistry

__all__ = ["ProviderRegistry", "FailureCounter"]
