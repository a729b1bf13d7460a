import json

import pytest

from rapport.config import (
    Config,
    ConfigError,
    FallbackProvider,
    PrimaryProvider,
    UserIdentity,
    config_from_dict,
    load_config,
    save_config,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("apple", PrimaryProvider.ON_DEVICE),
        ("local", PrimaryProvider.ON_DEVICE),
        ("Ollama", PrimaryProvider.ON_DEVICE),
        ("openrouter", PrimaryProvider.CLOUD),
        ("claude", PrimaryProvider.CLOUD),
        ("something-else", PrimaryProvider.ON_DEVICE),
    ],
)
def test_legacy_primary_values(raw, expected):
    assert config_from_dict({"ai": {"primary": raw}}).ai.primary is expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("openai", FallbackProvider.CLOUD),
        ("none", FallbackProvider.NONE),
        ("apple", FallbackProvider.NONE),
    ],
)
def test_legacy_fallback_values(raw, expected):
    assert config_from_dict({"ai": {"fallback": raw}}).ai.fallback is expected


def test_missing_file_yields_defaults(tmp_path):
    config = load_config(str(tmp_path / "config.json"))
    assert config == Config()
    assert config.pipeline.chunk_threshold == 150_000
    assert config.cache.brief_ttl_seconds == 3600


def test_invalid_json_raises(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(str(path))


def test_unknown_option_raises():
    with pytest.raises(ConfigError):
        config_from_dict({"pipeline": {"chunk_size": 10}})


def test_overlap_must_be_smaller_than_threshold():
    with pytest.raises(ConfigError):
        config_from_dict({"pipeline": {"chunk_threshold": 100, "chunk_overlap": 100}})


def test_save_and_reload_normalizes_legacy_values(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"ai": {"primary": "apple", "fallback": "claude"}}), encoding="utf-8")
    config = load_config(str(path))
    save_config(str(path), config)
    stored = json.loads(path.read_text(encoding="utf-8"))
    assert stored["ai"]["primary"] == "on_device"
    assert stored["ai"]["fallback"] == "cloud"
    assert not (tmp_path / "config.json.tmp").exists()


def test_cloud_api_key_comes_from_environment(monkeypatch):
    monkeypatch.setenv("RAPPORT_CLOUD_API_KEY", " sk-test ")
    assert Config().ai.cloud_api_key == "sk-test"


def test_current_user_matching():
    user = UserIdentity(name="Alice Johnson", email="alice@example.com")
    assert user.is_current_user("alice johnson")
    assert user.is_current_user("Alice Q. Johnson")
    assert user.is_current_user("ALICE@example.com")
    assert not user.is_current_user("Alice")
    assert not UserIdentity().is_current_user("Anyone")


def test_logging_section_is_validated():
    assert config_from_dict({"logging": {"level": "debug"}}).logging.level == "debug"
    with pytest.raises(ConfigError):
        config_from_dict({"logging": {"level": "chatty"}})
    with pytest.raises(ConfigError):
        config_from_dict({"logging": {"file_max_bytes": 0}})
