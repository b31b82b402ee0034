"""Wire dialects understood by the HTTP executor.

``default_dialects()`` returns a registry populated with every built-in
dialect; providers select one through their ``dialect`` field.
"""

from .base import DialectRegistry, RequestSpec, WireDialect, join_url
from .chat import CHAT_DIALECTS
from .rates import RATES_DIALECTS
from .weather import WEATHER_DIALECTS


def default_dialects() -> DialectRegistry:
    registry = DialectRegistry()
    for dialect in (*CHAT_DIALECTS, *WEATHER_DIALECTS, *RATES_DIALECTS):
        registry.add(dialect)
    return registry


__all__ = ["DialectRegistry", "RequestSpec", "WireDialect", "join_url", "default_dialects"]
