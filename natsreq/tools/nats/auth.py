"""
NATS authentication and connection parameter resolution.

This module handles:
- Mapping of the accepted field aliases onto connection parameters
- 'auth' resolution (inline map or a named entry of context['credentials'])
- Fallback to process settings (NATS_URL, NATS_USER, ...)
"""

from typing import Any, Dict, Optional

from jinja2 import Environment

from natsreq.core.config import Settings, get_settings
from natsreq.core.dsl.render import render_template
from natsreq.core.errors import InvalidInputError
from natsreq.core.logger import setup_logger, mask_mapping, mask_value
from .models import NatsConnectionParams

logger = setup_logger(__name__, include_location=True)

# Accepted field names -> connection parameter
FIELD_MAPPING = {
    'url': 'url',
    'nats_url': 'url',
    'server': 'url',
    'servers': 'url',
    'username': 'user',
    'user': 'user',
    'nats_user': 'user',
    'password': 'password',
    'nats_password': 'password',
    'token': 'token',
    'nats_token': 'token',
    'creds': 'creds',
    'credentials_file': 'credentials_file',
    'credentialsFile': 'credentials_file',
    'tls_cert': 'tls_cert',
    'tls_key': 'tls_key',
    'tls_ca': 'tls_ca',
    'connect_timeout': 'connect_timeout',
    'connectTimeout': 'connect_timeout',
}


def _collect(source: Dict[str, Any], resolved: Dict[str, Any], origin: str) -> None:
    """Copy recognized fields that are not resolved yet."""
    for src, dst in FIELD_MAPPING.items():
        value = source.get(src)
        if value is None or dst in resolved:
            continue
        if dst == 'url' and isinstance(value, (list, tuple)):
            value = ",".join(str(v) for v in value)
        elif dst != 'connect_timeout':
            value = str(value)
        resolved[dst] = value
        logger.debug(f"NATS: Mapped {src}={mask_value(src, value)} -> {dst} ({origin})")


def _auth_payload(auth: Any, context: Dict[str, Any]) -> Dict[str, Any]:
    if auth is None:
        return {}
    if isinstance(auth, dict):
        return auth
    if isinstance(auth, str):
        credentials = context.get('credentials') or {}
        payload = credentials.get(auth)
        if not isinstance(payload, dict):
            raise InvalidInputError(f"NATS credential '{auth}' not found in execution context", auth=auth)
        logger.debug(f"NATS: Using credential '{auth}' from context")
        return payload
    raise InvalidInputError(f"Unsupported 'auth' value of type {type(auth).__name__}")


def resolve_nats_auth(
    task_config: Dict[str, Any],
    task_with: Dict[str, Any],
    jinja_env: Environment,
    context: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Collect connection fields from the task.

    Precedence: rendered 'with' parameters, then the task configuration,
    then the resolved 'auth' payload.

    Args:
        task_config: The task configuration
        task_with: The rendered 'with' parameters dictionary
        jinja_env: The Jinja2 environment for template rendering
        context: The context for rendering templates

    Returns:
        Dictionary of connection fields found on the task
    """
    resolved: Dict[str, Any] = {}
    _collect(task_with, resolved, 'with')
    _collect(render_template(jinja_env, {k: task_config.get(k) for k in FIELD_MAPPING if k in task_config}, context),
             resolved, 'task')

    auth = task_with.get('auth') or task_config.get('auth')
    if auth is not None:
        payload = render_template(jinja_env, _auth_payload(auth, context), context)
        _collect(payload, resolved, 'auth')
    logger.debug(f"NATS: Resolved connection fields: {mask_mapping(resolved)}")
    return resolved


def get_nats_connection_params(resolved: Dict[str, Any], settings: Optional[Settings] = None) -> NatsConnectionParams:
    """
    Build validated connection parameters, filling gaps from settings.

    Raises:
        InvalidInputError: If no NATS URL is configured
    """
    settings = settings or get_settings()
    fallbacks = {
        'url': settings.nats_url,
        'user': settings.nats_user,
        'password': settings.nats_password,
        'token': settings.nats_token,
        'connect_timeout': settings.connect_timeout,
    }
    params = dict(resolved)
    for key, value in fallbacks.items():
        if params.get(key) is None and value is not None:
            params[key] = value

    if not params.get('url'):
        raise InvalidInputError(
            "NATS URL is not configured. Use `auth: <credential_key>`, provide `url` "
            "in the task configuration or set NATS_URL."
        )
    try:
        return NatsConnectionParams(**{k: v for k, v in params.items() if v is not None})
    except ValueError as e:
        raise InvalidInputError(f"Invalid NATS connection parameters: {e}") from e
