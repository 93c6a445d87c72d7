"""
Resolution of the task's 'from' value into one message descriptor.

'from' may be:
- a plain string: the rendered string is the message data
- a kestra:// URI string: the referenced internal storage file is the data
- a list with exactly one item: that item must be a map (see below)
- a map: optional 'headers' and optional 'data' keys
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict, Union

from jinja2 import Environment

from natsreq.core.dsl.render import render_string, render_template
from natsreq.core.errors import InvalidInputError
from natsreq.core.logger import setup_logger
from natsreq.core.storage import INTERNAL_PREFIX, StorageBackend, internal_key
from .message import build_headers, stringify
from .models import MessageDescriptor

logger = setup_logger(__name__, include_location=True)


@dataclass(frozen=True)
class TextSource:
    text: str


@dataclass(frozen=True)
class StorageSource:
    uri: str


@dataclass(frozen=True)
class MapSource:
    message: Mapping


PayloadSource = Union[TextSource, StorageSource, MapSource]


def classify_source(value: Any, jinja_env: Environment, context: Dict[str, Any]) -> PayloadSource:
    """Reduce the raw 'from' value to one of the supported source shapes."""
    match value:
        case str():
            rendered = render_string(jinja_env, value, context)
            if rendered.startswith(INTERNAL_PREFIX):
                return StorageSource(rendered)
            return TextSource(rendered)
        case list() | tuple():
            if len(value) != 1:
                raise InvalidInputError(
                    "Invalid 'from': list must contain exactly one item for request-reply.",
                    size=len(value),
                )
            item = value[0]
            if not isinstance(item, Mapping):
                raise InvalidInputError(
                    "Invalid 'from': the list's single item must be a map.",
                    item_type=type(item).__name__,
                )
            return MapSource(item)
        case Mapping():
            return MapSource(value)
        case _:
            raise InvalidInputError(
                "Unsupported 'from' type; must be String, Map, or single-item List<Map>.",
                type=type(value).__name__,
            )


def read_internal_file(uri: str, storage: StorageBackend) -> str:
    """Full UTF-8 content of an internal storage file."""
    # The prefix matched; the parsed URI must still carry the internal scheme.
    internal_key(uri)
    with storage.open(uri) as stream:
        content = stream.read()
    try:
        text = content.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidInputError(f"Internal storage file is not valid UTF-8: {uri}", uri=uri) from e
    logger.debug(f"NATS: Loaded {len(content)} bytes from {uri}")
    return text


def descriptor_from_mapping(message: Mapping) -> MessageDescriptor:
    headers = message.get("headers") or {}
    if not isinstance(headers, Mapping):
        logger.warning(f"NATS: Ignoring 'headers' of type {type(headers).__name__}; expected a map")
        headers = {}
    extra_keys = [k for k in message.keys() if k not in ("headers", "data")]
    if extra_keys:
        logger.debug(f"NATS: Ignoring unknown message keys: {extra_keys}")
    return MessageDescriptor(
        headers=build_headers(headers),
        data=stringify(message.get("data", "")),
    )


def resolve_payload(
    value: Any,
    jinja_env: Environment,
    context: Dict[str, Any],
    storage: StorageBackend,
) -> MessageDescriptor:
    """
    Resolve the 'from' value into exactly one MessageDescriptor.

    Args:
        value: The raw 'from' value of the task
        jinja_env: The Jinja2 environment for template rendering
        context: The context for rendering templates
        storage: Accessor for kestra:// references

    Returns:
        The canonical {headers, data} descriptor

    Raises:
        InvalidInputError: On unsupported shapes, bad list length, bad URIs
    """
    source = classify_source(value, jinja_env, context)
    match source:
        case TextSource(text=text):
            logger.debug("NATS: Using rendered string as message data")
            return MessageDescriptor(data=text)
        case StorageSource(uri=uri):
            logger.debug(f"NATS: Reading message data from internal storage {uri}")
            return MessageDescriptor(data=read_internal_file(uri, storage))
        case MapSource(message=message):
            return descriptor_from_mapping(render_template(jinja_env, dict(message), context))
        case _:
            raise InvalidInputError(f"Unsupported payload source: {source!r}")
