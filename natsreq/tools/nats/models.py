from __future__ import annotations

import re
from datetime import timedelta
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

DEFAULT_REQUEST_TIMEOUT_MS = 5000


def _milliseconds(value: float) -> timedelta:
    try:
        return timedelta(milliseconds=value)
    except (OverflowError, ValueError) as e:
        raise ValueError("'requestTimeout' is out of range") from e


class NatsRequestConfig(BaseModel):
    """Validated request/reply settings of one task invocation."""

    subject: str
    source: Any = Field(validation_alias=AliasChoices("from", "source"))
    request_timeout: timedelta = Field(
        default=timedelta(milliseconds=DEFAULT_REQUEST_TIMEOUT_MS),
        validation_alias=AliasChoices("requestTimeout", "request_timeout"),
    )

    model_config = ConfigDict(frozen=True, extra="ignore")

    @field_validator("subject", mode="before")
    @classmethod
    def _validate_subject(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("'subject' must be a non-blank string")
        return value

    @field_validator("source", mode="before")
    @classmethod
    def _validate_source(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("'from' is required")
        return value

    @field_validator("request_timeout", mode="before")
    @classmethod
    def _parse_timeout(cls, value: Any) -> Any:
        """Bare numbers are milliseconds; strings may also be ISO-8601 durations (PT2S)."""
        if value is None:
            return timedelta(milliseconds=DEFAULT_REQUEST_TIMEOUT_MS)
        if isinstance(value, bool):
            raise ValueError("'requestTimeout' must be a duration")
        if isinstance(value, (int, float)):
            return _milliseconds(value)
        if isinstance(value, str):
            try:
                millis = float(value.strip())
            except ValueError:
                return value
            return _milliseconds(millis)
        return value

    @field_validator("request_timeout")
    @classmethod
    def _positive_timeout(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            raise ValueError("'requestTimeout' must be positive")
        return value

    @property
    def timeout_seconds(self) -> float:
        return self.request_timeout.total_seconds()


class NatsConnectionParams(BaseModel):
    """Resolved connection parameters handed to the NATS client."""

    url: str
    user: Optional[str] = None
    password: Optional[str] = None
    token: Optional[str] = None
    creds: Optional[str] = None
    credentials_file: Optional[str] = None
    tls_cert: Optional[str] = None
    tls_key: Optional[str] = None
    tls_ca: Optional[str] = None
    connect_timeout: float = 2.0

    model_config = ConfigDict(frozen=True)

    @property
    def servers(self) -> List[str]:
        return [server.strip() for server in self.url.split(",") if server.strip()]

    @property
    def display_url(self) -> str:
        """URL with any embedded user:password removed."""
        return ",".join(re.sub(r"//[^/@]*@", "//", server) for server in self.servers)

    @property
    def uses_tls(self) -> bool:
        return bool(self.tls_ca or self.tls_cert) or any(s.startswith("tls://") for s in self.servers)

    def masked(self) -> Dict[str, Any]:
        """Connection metadata safe for logs and events."""
        return {
            "url": self.display_url,
            "user": self.user,
            "password": "***" if self.password else None,
            "token": "***" if self.token else None,
            "creds": "***" if self.creds else None,
            "credentials_file": self.credentials_file,
            "tls": self.uses_tls,
        }


class MessageDescriptor(BaseModel):
    """Canonical {headers, data} form every 'from' shape is reduced to."""

    headers: Dict[str, List[str]] = Field(default_factory=dict)
    data: str = ""

    model_config = ConfigDict(frozen=True)


class OutboundMessage(BaseModel):
    """Transport-ready request: subject, multi-value headers and UTF-8 payload."""

    subject: str
    headers: Dict[str, List[str]] = Field(default_factory=dict)
    payload: bytes = b""

    model_config = ConfigDict(frozen=True)

    def nats_headers(self) -> Optional[Dict[str, str]]:
        """
        Headers in the shape the nats-py client accepts.

        The client takes one value per key, so multi-value headers are
        combined with ", ".
        """
        if not self.headers:
            return None
        return {key: ", ".join(values) for key, values in self.headers.items()}


class RequestOutput(BaseModel):
    """Task output; response is None when the request timed out or nobody answered."""

    response: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    def to_dict(self) -> Dict[str, Any]:
        return {"response": self.response}
