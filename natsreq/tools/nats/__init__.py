"""
NATS request/reply tool.

Sends one message to a subject and waits for a single reply within
`requestTimeout` (default 5000 ms).

Auth pattern:
  auth: nats_credential_name   # entry of context['credentials']
  # or inline fields on the task

Connection fields:
  - url: NATS server URL (e.g., nats://host:4222), comma-separated for a cluster
  - username / password: (optional) user credentials
  - token: (optional) auth token
  - creds / credentials_file: (optional) NATS .creds content or path
  - tls_cert / tls_key / tls_ca: (optional) TLS files
"""

from .executor import execute_nats_request_task, execute_nats_request_task_async

__all__ = ["execute_nats_request_task", "execute_nats_request_task_async"]
