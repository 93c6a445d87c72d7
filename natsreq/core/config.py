import os
import sys
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator


_ENV_LOADED = False

def _load_env_file(path: str, allow_override: bool = False) -> None:
    """
    Minimal .env loader: loads KEY=VALUE pairs into os.environ.
    - Ignores empty lines and lines starting with '#'
    - Supports values wrapped in single or double quotes
    - By default, does not override existing environment variables
    """
    if not path or not os.path.exists(path):
        return
    try:
        with open(path, "r", encoding="utf-8") as f:
            for raw_line in f:
                line = raw_line.strip()
                if not line or line.startswith("#"):
                    continue
                if line.startswith("export "):
                    line = line[len("export "):].strip()
                if "=" not in line:
                    continue
                key, value = line.split("=", 1)
                key = key.strip()
                value = value.strip()
                if (value.startswith('"') and value.endswith('"')) or (value.startswith("'") and value.endswith("'")):
                    value = value[1:-1]
                if allow_override or key not in os.environ:
                    os.environ[key] = value
    except PermissionError as e:
        print(f"FATAL: Permission denied reading environment file {path}: {e}", file=sys.stderr)
        raise

def load_env_if_present(force_reload: bool = False) -> None:
    """
    Load environment variables from .env files in order of precedence:
    1. .env.local (highest priority, not committed)
    2. .env.{ENVIRONMENT} (environment-specific)
    3. .env (default)
    NATSREQ_ENV_FILE replaces the default list with a single file.
    """
    global _ENV_LOADED
    if _ENV_LOADED and not force_reload:
        return

    custom = os.environ.get("NATSREQ_ENV_FILE")
    if custom:
        _load_env_file(custom, allow_override=False)
    else:
        env_files = ['.env.local', '.env']
        environment = os.environ.get('ENVIRONMENT', '').strip()
        if environment:
            env_files.insert(1, f'.env.{environment}')

        for env_file in env_files:
            _load_env_file(env_file, allow_override=False)

    _ENV_LOADED = True


class Settings(BaseModel):
    """
    Process-wide defaults for the NATS request tool, read from environment variables.
    Task-level connection fields always take precedence over these.
    """
    model_config = ConfigDict(validate_assignment=True, populate_by_name=True)

    # NATS connection fallbacks
    nats_url: Optional[str] = Field(default=None, alias="NATS_URL")
    nats_user: Optional[str] = Field(default=None, alias="NATS_USER")
    nats_password: Optional[str] = Field(default=None, alias="NATS_PASSWORD")
    nats_token: Optional[str] = Field(default=None, alias="NATS_TOKEN")

    # Internal storage root for kestra:// references
    storage_root: str = Field(default="./storage", alias="NATSREQ_STORAGE_ROOT")

    # Timeouts
    request_timeout_ms: int = Field(default=5000, alias="NATSREQ_REQUEST_TIMEOUT_MS")
    connect_timeout: float = Field(default=2.0, alias="NATSREQ_CONNECT_TIMEOUT")

    log_json: bool = Field(default=False, alias="NATSREQ_LOG_JSON")

    @field_validator('nats_url', 'nats_user', 'nats_password', 'nats_token', mode='before')
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v.strip() if isinstance(v, str) else v

    @field_validator('log_json', mode='before')
    def coerce_bool(cls, v):
        if isinstance(v, bool):
            return v
        if not isinstance(v, str):
            raise ValueError("Expected string for boolean field")
        val = v.strip().lower()
        if val in ("true", "1", "yes", "y", "on"):
            return True
        if val in ("false", "0", "no", "n", "off", ""):
            return False
        raise ValueError(f"Invalid boolean value: {v}")

    @field_validator('request_timeout_ms', mode='before')
    def coerce_int(cls, v):
        if isinstance(v, int):
            value = v
        elif isinstance(v, str):
            value = int(v.strip())
        else:
            raise ValueError("Expected integer-compatible value")
        if value <= 0:
            raise ValueError("Timeout must be positive")
        return value

    @field_validator('connect_timeout', mode='before')
    def coerce_float(cls, v):
        if isinstance(v, (int, float)):
            value = float(v)
        elif isinstance(v, str):
            value = float(v.strip())
        else:
            raise ValueError("Expected float-compatible value")
        if value <= 0:
            raise ValueError("Timeout must be positive")
        return value


_settings: Optional[Settings] = None


def get_settings(reload: bool = False) -> Settings:
    """
    Get tool settings. Environment files are loaded on first call.
    Set reload=True to force reloading from current environment.
    """
    global _settings
    if _settings is None or reload:
        load_env_if_present(force_reload=reload)
        env = os.environ
        keys = (
            'NATS_URL', 'NATS_USER', 'NATS_PASSWORD', 'NATS_TOKEN',
            'NATSREQ_STORAGE_ROOT', 'NATSREQ_REQUEST_TIMEOUT_MS',
            'NATSREQ_CONNECT_TIMEOUT', 'NATSREQ_LOG_JSON',
        )
        _settings = Settings(
            **{key: env[key] for key in keys if key in env},
        )
    return _settings
