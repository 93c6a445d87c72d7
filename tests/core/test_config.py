import pytest
from pydantic import ValidationError

from natsreq.core.config import Settings, get_settings, load_env_if_present


def test_defaults():
    settings = get_settings(reload=True)

    assert settings.nats_url is None
    assert settings.storage_root == "./storage"
    assert settings.request_timeout_ms == 5000
    assert settings.connect_timeout == 2.0
    assert settings.log_json is False


def test_environment_values(monkeypatch):
    monkeypatch.setenv("NATS_URL", " nats://env-host:4222 ")
    monkeypatch.setenv("NATS_TOKEN", "   ")
    monkeypatch.setenv("NATSREQ_REQUEST_TIMEOUT_MS", "1500")
    monkeypatch.setenv("NATSREQ_CONNECT_TIMEOUT", "0.5")
    monkeypatch.setenv("NATSREQ_LOG_JSON", "yes")

    settings = get_settings(reload=True)

    assert settings.nats_url == "nats://env-host:4222"
    assert settings.nats_token is None
    assert settings.request_timeout_ms == 1500
    assert settings.connect_timeout == 0.5
    assert settings.log_json is True


def test_settings_are_cached():
    assert get_settings() is get_settings()


@pytest.mark.parametrize(
    "field, value",
    [
        ("NATSREQ_REQUEST_TIMEOUT_MS", "0"),
        ("NATSREQ_REQUEST_TIMEOUT_MS", "soon"),
        ("NATSREQ_CONNECT_TIMEOUT", "-1"),
        ("NATSREQ_LOG_JSON", "maybe"),
    ],
)
def test_invalid_values(field, value):
    with pytest.raises(ValidationError):
        Settings(**{field: value})


def test_env_file(tmp_path, monkeypatch):
    env_file = tmp_path / "nats.env"
    env_file.write_text(
        "# local NATS\n"
        "export NATS_URL='nats://file-host:4222'\n"
        "NATSREQ_REQUEST_TIMEOUT_MS=\"1200\"\n"
        "not a pair\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("NATSREQ_ENV_FILE", str(env_file))
    monkeypatch.setenv("NATSREQ_REQUEST_TIMEOUT_MS", "900")
    # registered so monkeypatch removes the value loaded from the file
    monkeypatch.setenv("NATS_URL", "placeholder")
    monkeypatch.delenv("NATS_URL")

    load_env_if_present(force_reload=True)
    settings = get_settings(reload=True)

    assert settings.nats_url == "nats://file-host:4222"
    assert settings.request_timeout_ms == 900
