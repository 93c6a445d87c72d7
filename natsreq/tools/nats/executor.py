"""
NATS request/reply tool executor.

Sends one request message to a subject and waits for a single reply:

    - step: request
      tool:
        kind: nats_request
        url: nats://localhost:4222
        username: nats_user
        password: nats_password
        subject: "greet.{{ workload.name }}"
        from:
          headers:
            someHeaderKey: someHeaderValue
          data: "Hello from a playbook!"
        requestTimeout: 2000

The result data is {"response": "<reply body>"}; response is None when
the request timed out or no responder was subscribed. Neither case is an
error.
"""

import asyncio
import datetime
import uuid
from typing import Any, Callable, Dict, Optional

import nats.errors
from jinja2 import Environment
from pydantic import ValidationError

from natsreq.core.config import get_settings
from natsreq.core.dsl.render import create_environment, render_string
from natsreq.core.errors import InvalidInputError, NatsTransportError, classify_nats_error
from natsreq.core.logger import LoggingContext, setup_logger
from natsreq.core.storage import StorageBackend, get_default_storage
from .auth import get_nats_connection_params, resolve_nats_auth
from .connection import nats_connection
from .message import build_request_message
from .models import NatsConnectionParams, NatsRequestConfig, OutboundMessage, RequestOutput
from .payload import resolve_payload

logger = setup_logger(__name__, include_location=True)

TOOL_KIND = 'nats_request'


def load_request_config(task_config: Dict[str, Any], task_with: Dict[str, Any]) -> NatsRequestConfig:
    """Validate subject/from/requestTimeout; 'with' parameters override the task configuration."""
    raw = {**task_config, **task_with}
    if raw.get('requestTimeout') is None and raw.get('request_timeout') is None:
        raw['requestTimeout'] = get_settings().request_timeout_ms
    try:
        return NatsRequestConfig.model_validate(raw)
    except ValidationError as e:
        raise InvalidInputError(f"Invalid NATS request task configuration: {e}") from e


async def send_request(nc, message: OutboundMessage, timeout: datetime.timedelta) -> Optional[str]:
    """
    Issue the request and wait at most `timeout` for the reply.

    Returns:
        The UTF-8 decoded reply body, or None on timeout / no responders

    Raises:
        NatsTransportError: If the client rejects the request
    """
    try:
        reply = await nc.request(
            message.subject,
            message.payload,
            timeout=timeout.total_seconds(),
            headers=message.nats_headers(),
        )
    except nats.errors.NoRespondersError:
        logger.info(f"NATS: No responders on subject {message.subject}")
        return None
    except (nats.errors.TimeoutError, asyncio.TimeoutError):
        logger.info(f"NATS: No reply on subject {message.subject} within {timeout.total_seconds()}s")
        return None
    except nats.errors.Error as e:
        raise NatsTransportError(
            f"NATS request on subject '{message.subject}' failed: {e}",
            subject=message.subject,
        ) from e

    if reply is None or reply.data is None:
        return None
    return reply.data.decode('utf-8', errors='replace')


async def request_reply(
    config: NatsRequestConfig,
    conn_params: NatsConnectionParams,
    jinja_env: Environment,
    context: Dict[str, Any],
    storage: StorageBackend,
) -> RequestOutput:
    """
    One request/reply cycle:
    Idle -> Connected -> SubjectRendered -> MessageBuilt -> AwaitingReply -> RepliedOK | TimedOut -> Closed
    """
    async with nats_connection(conn_params) as nc:
        logger.debug("NATS: state=Connected")
        subject = render_string(jinja_env, config.subject, context)
        logger.debug(f"NATS: state=SubjectRendered subject={subject}")
        descriptor = resolve_payload(config.source, jinja_env, context, storage)
        message = build_request_message(subject, descriptor)
        logger.debug("NATS: state=MessageBuilt")
        logger.debug(f"NATS: state=AwaitingReply timeout={config.timeout_seconds}s")
        response = await send_request(nc, message, config.request_timeout)
        logger.debug(f"NATS: state={'RepliedOK' if response is not None else 'TimedOut'}")
    logger.debug("NATS: state=Closed")
    return RequestOutput(response=response)


async def execute_nats_request_task_async(
    task_config: Dict[str, Any],
    context: Dict[str, Any],
    jinja_env: Optional[Environment] = None,
    task_with: Optional[Dict[str, Any]] = None,
    log_event_callback: Optional[Callable] = None,
    storage: Optional[StorageBackend] = None,
) -> Dict[str, Any]:
    """
    Execute a NATS request/reply task.

    Args:
        task_config: Task configuration from DSL
        context: Execution context
        jinja_env: Jinja2 environment (a strict default is created when omitted)
        task_with: Rendered 'with' parameters
        log_event_callback: Optional callback for task events
        storage: Internal storage accessor for kestra:// payloads

    Returns:
        {'id': ..., 'status': 'success', 'data': {'response': ...}}

    Raises:
        InvalidInputError: Bad task configuration or 'from' value
        NatsConnectionError: The connection could not be established
        NatsTransportError: The request was rejected
    """
    task_with = task_with or {}
    jinja_env = jinja_env or create_environment()
    storage = storage or get_default_storage()

    task_id = str(uuid.uuid4())
    task_name = task_config.get('task') or task_config.get('name') or 'nats_request_task'
    start_time = datetime.datetime.now()
    meta: Dict[str, Any] = {}
    event_id = None

    with LoggingContext(logger, execution_id=context.get('execution_id'), task_id=task_id):
        try:
            config = load_request_config(task_config, task_with)
            conn_params = get_nats_connection_params(
                resolve_nats_auth(task_config, task_with, jinja_env, context)
            )
            meta = {'connection': conn_params.masked(), 'timeout_ms': config.timeout_seconds * 1000}
            logger.info(f"NATS: Request task '{task_name}' to {conn_params.display_url}")

            if log_event_callback:
                event_id = log_event_callback(
                    'task_start', task_id, task_name, TOOL_KIND,
                    'in_progress', 0, context, None,
                    meta, None
                )

            output = await request_reply(config, conn_params, jinja_env, context, storage)
        except Exception as e:
            duration = (datetime.datetime.now() - start_time).total_seconds()
            error_info = classify_nats_error(e)
            logger.error(f"NATS request task '{task_name}' failed: {e}", exc_info=True)
            if log_event_callback:
                log_event_callback(
                    'task_error', task_id, task_name, TOOL_KIND,
                    'error', duration, context, None,
                    {**meta, 'error': error_info.to_dict()}, event_id
                )
            raise

        duration = (datetime.datetime.now() - start_time).total_seconds()
        result = output.to_dict()
        if log_event_callback:
            log_event_callback(
                'task_complete', task_id, task_name, TOOL_KIND,
                'success', duration, context, result,
                meta, event_id
            )
        if output.response is None:
            logger.info(f"NATS: Request task '{task_name}' finished without a reply in {duration:.3f}s")
        else:
            logger.success(f"NATS: Request task '{task_name}' received a reply in {duration:.3f}s")

    return {
        'id': task_id,
        'status': 'success',
        'data': result,
    }


def execute_nats_request_task(
    task_config: Dict[str, Any],
    context: Dict[str, Any],
    jinja_env: Optional[Environment] = None,
    task_with: Optional[Dict[str, Any]] = None,
    log_event_callback: Optional[Callable] = None,
    storage: Optional[StorageBackend] = None,
) -> Dict[str, Any]:
    """Synchronous entry point for workers without a running event loop."""
    return asyncio.run(execute_nats_request_task_async(
        task_config, context, jinja_env, task_with, log_event_callback, storage
    ))
