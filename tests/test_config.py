"""Test configuration loading from config.yaml and the environment."""
import pytest

import config
from errors import ConfigurationMissing

ENV_NAMES = [
    "PROJECT_URL", "SUPABASE_URL", "SB_URL",
    "SERVICE_ROLE_KEY", "SUPABASE_SERVICE_ROLE_KEY", "SB_SERVICE_ROLE_KEY",
    "OPENAI_API_KEY", "ANTHROPIC_API_KEY", "GEMINI_API_KEY",
    "OPENAI_MODEL", "ANTHROPIC_MODEL", "GEMINI_MODEL",
]


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    path = tmp_path / "config.yaml"
    path.write_text(
        "storage:\n"
        "  bucket: papers-test\n"
        "  conditional_upload: true\n"
        "providers:\n"
        "  priority: [gemini, openai, bogus]\n"
        "  openai:\n"
        "    model: gpt-4o\n"
        "indexing:\n"
        "  deadline_seconds: 90\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("INDEXER_CONFIG", str(path))
    return path


def test_storage_requires_credentials(config_file):
    with pytest.raises(ConfigurationMissing, match="SERVICE_ROLE_KEY"):
        config._get_storage_config()


def test_storage_accepts_alternate_env_names(config_file, monkeypatch):
    monkeypatch.setenv("SB_URL", "https://project.supabase.co/")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service-key")

    storage = config._get_storage_config()

    assert storage == {
        "base_url": "https://project.supabase.co",
        "service_key": "service-key",
        "bucket": "papers-test",
        "conditional_upload": True,
    }


def test_provider_priority_drops_unknown_names(config_file):
    assert config._get_provider_config()["priority"] == ["gemini", "openai"]


def test_model_precedence(config_file, monkeypatch):
    monkeypatch.setenv("GEMINI_MODEL", "gemini-2.0-flash")
    monkeypatch.setenv("OPENAI_MODEL", "gpt-4.1")

    providers = config._get_provider_config({"openai": "o3-mini", "anthropic": None})

    assert providers["openai"]["model"] == "o3-mini"
    assert providers["gemini"]["model"] == "gemini-2.0-flash"
    assert providers["anthropic"]["model"] == "claude-3-7-sonnet-20250219"


def test_yaml_model_used_without_env(config_file):
    assert config._get_provider_config()["openai"]["model"] == "gpt-4o"


def test_api_keys_come_from_environment(config_file, monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
    providers = config._get_provider_config()
    assert providers["anthropic"]["api_key"] == "sk-ant"
    assert providers["openai"]["api_key"] == ""


def test_indexing_defaults(config_file):
    indexing = config._get_indexing_config()
    assert indexing["deadline_seconds"] == 90.0
    assert indexing["request_timeout_seconds"] == 120.0
    assert indexing["arxiv_pdf_base_url"] == "https://arxiv.org/pdf"


def test_missing_config_file_falls_back_to_defaults(tmp_path, monkeypatch):
    monkeypatch.setenv("INDEXER_CONFIG", str(tmp_path / "absent.yaml"))
    assert config._get_indexing_config()["deadline_seconds"] == 300.0
    assert config._get_provider_config()["priority"] == ["anthropic", "openai", "gemini"]


def test_unknown_prompt_raises():
    with pytest.raises(ConfigurationMissing, match="Prompt not found"):
        config.get_prompt("does_not_exist")
