"""Gateway configuration: defaults, credential environment mapping and file loading.

Public API
----------
* load_settings(path=None) -> GatewaySettings
* settings_from_mapping(data) -> GatewaySettings
* GatewaySettings and its section models
"""

from .env import ENV_MAP, interpolate, is_placeholder, resolve_credential
from .loader import CONFIG_ENV, load_settings, settings_from_mapping
from .schema import (
    CacheSettings,
    ConnectivitySettings,
    DefaultsSettings,
    FallbackSettings,
    GatewaySettings,
    LimitSettings,
    ProviderSettings,
)

__all__ = [
    "ENV_MAP",
    "interpolate",
    "is_placeholder",
    "resolve_credential",
    "CONFIG_ENV",
    "load_settings",
    "settings_from_mapping",
    "CacheSettings",
    "ConnectivitySettings",
    "DefaultsSettings",
    "FallbackSettings",
    "GatewaySettings",
    "LimitSettings",
    "ProviderSettings",
]
