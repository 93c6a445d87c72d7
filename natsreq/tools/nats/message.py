"""
Request message construction.

Turns the rendered subject and the canonical descriptor into the message
handed to the NATS client. Subject syntax is not validated here: the
client or server rejects bad subjects at request time.
"""

import json
from typing import Any, Dict, List, Mapping

from natsreq.core.errors import InvalidInputError
from natsreq.core.logger import setup_logger
from .models import MessageDescriptor, OutboundMessage

logger = setup_logger(__name__, include_location=True)

MULTI_VALUE_TYPES = (list, tuple, set, frozenset)


def stringify(value: Any) -> str:
    """String form of a header or data value."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, bytes):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidInputError("Message header or data value is not valid UTF-8") from e
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def header_values(value: Any) -> List[str]:
    """All values for one header key: collections keep every item, anything else is one value."""
    if isinstance(value, MULTI_VALUE_TYPES):
        return [stringify(item) for item in value]
    return [stringify(value)]


def build_headers(headers: Mapping[Any, Any]) -> Dict[str, List[str]]:
    return {str(key): header_values(value) for key, value in headers.items()}


def build_request_message(subject: str, descriptor: MessageDescriptor) -> OutboundMessage:
    """
    Build the outbound request.

    Args:
        subject: The rendered subject
        descriptor: The resolved {headers, data} descriptor

    Returns:
        OutboundMessage with UTF-8 encoded payload
    """
    message = OutboundMessage(
        subject=subject,
        headers=build_headers(descriptor.headers),
        payload=descriptor.data.encode("utf-8"),
    )
    logger.debug(
        f"NATS: Built request message subject={subject} "
        f"headers={list(message.headers.keys())} payload_bytes={len(message.payload)}"
    )
    return message
