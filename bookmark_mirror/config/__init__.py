from __future__ import annotations

from ._validators import _parse_tag_aliases, load_tag_aliases_file
from .database import DatabaseConfig
from .integrations import SyncSettings, TagAliasConfig, UpstreamConfig
from .settings import AppConfig, RuntimeConfig, Settings, load_config

__all__ = [
    "AppConfig",
    "DatabaseConfig",
    "RuntimeConfig",
    "Settings",
    "SyncSettings",
    "TagAliasConfig",
    "UpstreamConfig",
    "_parse_tag_aliases",
    "load_config",
    "load_tag_aliases_file",
]
