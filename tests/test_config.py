from __future__ import annotations

import pytest

from bookmark_mirror.config import _parse_tag_aliases, load_config, load_tag_aliases_file
from bookmark_mirror.domain.exceptions import ConfigError

ENV_KEYS = (
    "UPSTREAM_USER_ID",
    "UPSTREAM_SESSION_ID",
    "UPSTREAM_BASE_URL",
    "UPSTREAM_TIMEOUT_SEC",
    "SYNC_COOLDOWN_SEC",
    "BACKFILL_PAGE_DELAY_SEC",
    "TAG_ENRICHMENT_ENABLED",
    "TAG_ALIASES",
    "TAG_ALIASES_FILE",
    "TAG_ALIAS_POLICY",
    "DB_PATH",
    "DB_OPERATION_TIMEOUT",
    "DB_MAX_RETRIES",
    "DB_BUSY_TIMEOUT_MS",
    "LOG_LEVEL",
    "API_PORT",
    "PORT",
)


@pytest.fixture
def env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("UPSTREAM_USER_ID", "12345")
    monkeypatch.setenv("UPSTREAM_SESSION_ID", "12345_abcdef")
    return monkeypatch


def test_load_config_reads_environment(env) -> None:
    env.setenv("SYNC_COOLDOWN_SEC", "30")
    env.setenv("TAG_ENRICHMENT_ENABLED", "false")
    env.setenv("DB_PATH", "/tmp/mirror.db")
    env.setenv("LOG_LEVEL", "debug")
    env.setenv("PORT", "8080")

    cfg = load_config()

    assert cfg.upstream.user_id == 12345
    assert cfg.upstream.session_id.get_secret_value() == "12345_abcdef"
    assert cfg.upstream.base_url == "https://www.pixiv.net"
    assert cfg.sync.cooldown_sec == 30.0
    assert cfg.sync.backfill_page_delay_sec == 0.5
    assert cfg.sync.tag_enrichment_enabled is False
    assert cfg.database.path == "/tmp/mirror.db"
    assert cfg.runtime.log_level == "DEBUG"
    assert cfg.runtime.api_port == 8080
    assert cfg.tag_aliases.policy == "exclusive"


def test_session_id_is_not_leaked_in_repr(env) -> None:
    cfg = load_config()
    assert "12345_abcdef" not in repr(cfg.upstream)


def test_missing_user_id_is_a_config_error(env) -> None:
    env.delenv("UPSTREAM_USER_ID")

    with pytest.raises(ConfigError, match="Configuration validation failed"):
        load_config()


@pytest.mark.parametrize(
    ("key", "value"),
    [
        ("UPSTREAM_USER_ID", "not-a-number"),
        ("UPSTREAM_SESSION_ID", "bad cookie;"),
        ("UPSTREAM_BASE_URL", "ftp://example.com"),
        ("SYNC_COOLDOWN_SEC", "-1"),
        ("TAG_ALIASES", "{not json"),
        ("TAG_ALIASES", '{"nsfw": []}'),
        ("TAG_ALIAS_POLICY", "merge"),
        ("LOG_LEVEL", "loud"),
        ("DB_PATH", ":memory:"),
        ("DB_MAX_RETRIES", "-1"),
    ],
)
def test_invalid_values_are_rejected(env, key: str, value: str) -> None:
    env.setenv(key, value)

    with pytest.raises(ConfigError):
        load_config()


def test_inline_aliases(env) -> None:
    env.setenv("TAG_ALIASES", '{"NSFW": ["R-18", "R-18G"]}')
    env.setenv("TAG_ALIAS_POLICY", "Union")

    cfg = load_config()

    assert cfg.tag_aliases.aliases == {"nsfw": ("r-18", "r-18g")}
    assert cfg.tag_aliases.policy == "union"


def test_alias_file_is_merged_under_inline_aliases(env, tmp_path) -> None:
    alias_file = tmp_path / "aliases.toml"
    alias_file.write_text(
        '[tag_aliases]\nnsfw = ["R-18"]\nanimal = ["cat", "dog"]\n', encoding="utf-8"
    )
    env.setenv("TAG_ALIASES_FILE", str(alias_file))
    env.setenv("TAG_ALIASES", '[["nsfw", ["R-18", "R-18G"]]]')

    cfg = load_config()

    assert cfg.tag_aliases.aliases == {
        "nsfw": ("r-18", "r-18g"),
        "animal": ("cat", "dog"),
    }


def test_unreadable_alias_file(env, tmp_path) -> None:
    env.setenv("TAG_ALIASES_FILE", str(tmp_path / "missing.toml"))

    with pytest.raises(ConfigError, match="Cannot read tag alias file"):
        load_config()


def test_alias_file_with_bad_toml(tmp_path) -> None:
    alias_file = tmp_path / "aliases.toml"
    alias_file.write_text("[tag_aliases\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="not valid TOML"):
        load_tag_aliases_file(str(alias_file))


@pytest.mark.parametrize(
    "value",
    [
        {"nsfw": "R-18"},
        {"two words": ["x"]},
        [["nsfw"]],
        {"nsfw": ["R-18", ""]},
        {"nsfw": []},
        [["nsfw", []]],
        42,
    ],
)
def test_malformed_alias_mappings(value) -> None:
    with pytest.raises(ValueError):
        _parse_tag_aliases(value)
