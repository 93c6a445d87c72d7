"""
Task-scoped NATS connections.

A connection is opened right before the request and closed on every exit
path, including failures after connect. It is never shared or reused.
"""

import os
import ssl
import tempfile
from contextlib import ExitStack, asynccontextmanager
from typing import Any, AsyncIterator, Dict

import nats
from nats.aio.client import Client as NATSClient

from natsreq.core.errors import InvalidInputError, NatsConnectionError
from natsreq.core.logger import setup_logger
from .models import NatsConnectionParams

logger = setup_logger(__name__, include_location=True)

CLIENT_NAME = "natsreq"


async def _log_client_error(e: Exception) -> None:
    logger.warning(f"NATS: client error: {e}")


def _ssl_context(params: NatsConnectionParams) -> ssl.SSLContext:
    try:
        context = ssl.create_default_context(cafile=params.tls_ca)
        if params.tls_cert:
            context.load_cert_chain(params.tls_cert, params.tls_key)
    except (OSError, ssl.SSLError) as e:
        raise InvalidInputError(f"Invalid NATS TLS configuration: {e}") from e
    return context


def _credentials_path(params: NatsConnectionParams, stack: ExitStack) -> str:
    """Path of a .creds file; inline creds are written to a temporary file removed on exit."""
    if params.credentials_file:
        return params.credentials_file
    handle = tempfile.NamedTemporaryFile(mode="w", suffix=".creds", delete=False, encoding="utf-8")
    stack.callback(os.unlink, handle.name)
    with handle:
        handle.write(params.creds)
    return handle.name


def build_connect_options(params: NatsConnectionParams, stack: ExitStack) -> Dict[str, Any]:
    """Keyword arguments for nats.connect()."""
    options: Dict[str, Any] = {
        'servers': params.servers,
        'name': CLIENT_NAME,
        'connect_timeout': params.connect_timeout,
        'allow_reconnect': False,
        'error_cb': _log_client_error,
    }
    if params.user and params.password:
        options['user'] = params.user
        options['password'] = params.password
    elif params.token:
        options['token'] = params.token
    if params.creds or params.credentials_file:
        options['user_credentials'] = _credentials_path(params, stack)
    if params.uses_tls:
        options['tls'] = _ssl_context(params)
    return options


async def _close_after_error(nc: NATSClient, params: NatsConnectionParams) -> None:
    """Close while another error is propagating; a close failure must not replace it."""
    try:
        await nc.close()
    except Exception as e:
        logger.warning(f"NATS: Failed to close connection to {params.display_url}: {e}")
        return
    logger.debug(f"NATS: Connection to {params.display_url} closed")


@asynccontextmanager
async def nats_connection(params: NatsConnectionParams) -> AsyncIterator[NATSClient]:
    """
    Connect, yield the client, and close it whatever happens inside the block.

    Raises:
        NatsConnectionError: If the connection cannot be established
    """
    with ExitStack() as stack:
        options = build_connect_options(params, stack)
        try:
            nc = await nats.connect(**options)
        except Exception as e:
            logger.error(f"NATS: Failed to connect to {params.display_url}: {e}")
            raise NatsConnectionError(f"Failed to connect to NATS at {params.display_url}: {e}", url=params.display_url) from e
        logger.debug(f"NATS: Connected to {params.display_url}")
        try:
            yield nc
        except BaseException:
            await _close_after_error(nc, params)
            raise
        await nc.close()
        logger.debug(f"NATS: Connection to {params.display_url} closed")
