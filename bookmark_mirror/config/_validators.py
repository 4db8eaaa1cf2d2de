from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import Any

from bookmark_mirror.domain.exceptions import ConfigError


def _ensure_session_cookie(value: str, *, name: str) -> str:
    if not value:
        msg = f"{name} is required"
        raise ValueError(msg)
    value = value.strip()
    if not value:
        msg = f"{name} is required"
        raise ValueError(msg)
    if len(value) > 500:
        msg = f"{name} appears to be too long"
        raise ValueError(msg)
    if any(char in value for char in [" ", "\n", "\t", ";"]):
        msg = f"{name} contains invalid characters"
        raise ValueError(msg)
    return value


def _parse_tag_aliases(value: Any) -> dict[str, tuple[str, ...]]:
    """Normalise an alias mapping into ``{term: (tag, ...)}`` with lower-cased strings.

    Accepts a mapping, a list of ``[term, [tags...]]`` pairs, or either of those
    encoded as a JSON string.
    """
    if value in (None, ""):
        return {}
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as exc:
            msg = f"Tag aliases must be valid JSON: {exc}"
            raise ValueError(msg) from exc

    if isinstance(value, dict):
        pairs = list(value.items())
    elif isinstance(value, list | tuple):
        pairs = []
        for entry in value:
            if not isinstance(entry, list | tuple) or len(entry) != 2:
                msg = "Tag alias entries must be [term, [tags...]] pairs"
                raise ValueError(msg)
            pairs.append((entry[0], entry[1]))
    else:
        msg = "Tag aliases must be a mapping or a list of pairs"
        raise ValueError(msg)

    aliases: dict[str, tuple[str, ...]] = {}
    for term, tags in pairs:
        if not isinstance(term, str) or not term.strip():
            msg = "Tag alias terms must be non-empty strings"
            raise ValueError(msg)
        if isinstance(tags, str) or not isinstance(tags, list | tuple):
            msg = f"Tag alias '{term}' must map to a list of tags"
            raise ValueError(msg)
        if not tags:
            msg = f"Tag alias '{term}' must map to at least one tag"
            raise ValueError(msg)
        if not all(isinstance(tag, str) and tag.strip() for tag in tags):
            msg = f"Tag alias '{term}' contains an empty or non-string tag"
            raise ValueError(msg)
        if any(ch.isspace() for ch in term.strip()):
            msg = f"Tag alias term '{term}' cannot contain whitespace"
            raise ValueError(msg)
        aliases[term.strip().lower()] = tuple(tag.strip().lower() for tag in tags)
    return aliases


def load_tag_aliases_file(path: str) -> dict[str, tuple[str, ...]]:
    """Read the ``tag_aliases`` entry of a TOML file.

    Raises:
        ConfigError: If the file is unreadable or the mapping is malformed.
    """
    try:
        with Path(path).open("rb") as fh:
            data = tomllib.load(fh)
    except OSError as exc:
        msg = f"Cannot read tag alias file {path}: {exc}"
        raise ConfigError(msg, {"path": path}) from exc
    except tomllib.TOMLDecodeError as exc:
        msg = f"Tag alias file {path} is not valid TOML: {exc}"
        raise ConfigError(msg, {"path": path}) from exc

    try:
        return _parse_tag_aliases(data.get("tag_aliases"))
    except ValueError as exc:
        raise ConfigError(f"Tag alias file {path}: {exc}", {"path": path}) from exc
