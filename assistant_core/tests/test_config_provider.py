import pytest

from assistant_core.config.provider import SettingsConfigurationProvider
from assistant_core.config.settings import AssistantSettings
from assistant_core.domain.exceptions import InvalidInput


def _provider(tmp_path=None, **kw):
    env_path = tmp_path / ".env" if tmp_path is not None else None
    return SettingsConfigurationProvider(AssistantSettings(_env_file=None, **kw), env_path=env_path)


def test_get_accepts_public_and_field_names():
    config = _provider(api_key="sk-primary-1234567890", model="gpt-4o")
    assert config.get("apiKey") == "sk-primary-1234567890"
    assert config.get("api_key") == "sk-primary-1234567890"
    assert config.get("model") == "gpt-4o"
    assert config.get("selectedAssistantId", "none") == "none"


def test_unknown_key_is_rejected():
    config = _provider()
    with pytest.raises(InvalidInput) as exc:
        config.get("nope")
    assert exc.value.code == "UNKNOWN_CONFIG_KEY"


def test_listeners_only_fire_on_real_change():
    config = _provider(model="gpt-4o")
    changes = []
    unsubscribe = config.on_change(changes.append)

    config.update("model", "gpt-4o")
    config.update("alternate_api_key", "alt-key-1234567890")
    unsubscribe()
    config.update("model", "gpt-4o-mini")

    assert len(changes) == 1
    assert changes[0].key == "alternateApiKey"
    assert changes[0].old_value is None
    assert changes[0].affects_backend is True


def test_invalid_value_keeps_old_setting():
    config = _provider(api_key="sk-primary-1234567890")
    with pytest.raises(InvalidInput) as exc:
        config.update("apiKey", "short")
    assert exc.value.code == "INVALID_CONFIG"
    assert config.get("apiKey") == "sk-primary-1234567890"
    with pytest.raises(InvalidInput):
        config.update("provider", "somewhere-else")


def test_persist_writes_env_file(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("# local overrides\nASSISTANT_MODEL=gpt-4o\n", encoding="utf-8")
    config = _provider(tmp_path)
    config.update("selectedAssistantId", "asst_1", persist=True)
    config.update("sendCodeContext", True, persist=True)
    config.update("selectedAssistantId", "asst_2", persist=True)
    assert env_file.read_text(encoding="utf-8").splitlines() == [
        "# local overrides",
        "ASSISTANT_MODEL=gpt-4o",
        "ASSISTANT_SELECTED_ASSISTANT_ID=asst_2",
        "ASSISTANT_SEND_CODE_CONTEXT=true",
    ]

    config.update("selectedAssistantId", None, persist=True)
    assert "ASSISTANT_SELECTED_ASSISTANT_ID" not in env_file.read_text(encoding="utf-8")


def test_settings_load_from_env_file(tmp_path, monkeypatch):
    monkeypatch.delenv("ASSISTANT_ALTERNATE_API_KEY", raising=False)
    monkeypatch.delenv("ASSISTANT_PROVIDER", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text(
        "ASSISTANT_ALTERNATE_API_KEY=alt-key-1234567890\nASSISTANT_ALTERNATE_ENDPOINT=https://alt.test/\n",
        encoding="utf-8",
    )
    loaded = AssistantSettings(_env_file=env_file)
    assert loaded.alternate_endpoint == "https://alt.test"
    assert loaded.resolved_provider() == "alternate"


def test_settings_load_from_yaml(tmp_path, monkeypatch):
    monkeypatch.delenv("ASSISTANT_MODEL", raising=False)
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        "model: gpt-4o\nalternate_assistants:\n  - id: asst-a\n    name: Local\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("ASSISTANT_CONFIG_FILE", str(config_file))
    loaded = AssistantSettings(_env_file=None)
    assert loaded.model == "gpt-4o"
    assert loaded.alternate_assistants == [{"id": "asst-a", "name": "Local"}]
