"""
Tool implementations for workflow execution.

- nats_request: NATS request/reply
"""

from typing import Any, Callable, Dict, Optional

from jinja2 import Environment

from natsreq.core.errors import InvalidInputError
from natsreq.tools.nats import execute_nats_request_task, execute_nats_request_task_async

# Async executors by tool kind
EXECUTORS = {
    "nats_request": execute_nats_request_task_async,
}


async def execute_tool(
    kind: str,
    task_config: Dict[str, Any],
    context: Dict[str, Any],
    jinja_env: Optional[Environment] = None,
    task_with: Optional[Dict[str, Any]] = None,
    log_event_callback: Optional[Callable] = None,
    **kwargs: Any,
) -> Dict[str, Any]:
    """Dispatch a task to the executor registered for its tool kind."""
    executor = EXECUTORS.get((kind or "").strip().lower())
    if executor is None:
        raise InvalidInputError(
            f"Unknown tool kind: {kind}. Valid kinds: {', '.join(EXECUTORS.keys())}"
        )
    return await executor(task_config, context, jinja_env, task_with, log_event_callback, **kwargs)


__all__ = [
    "execute_nats_request_task",
    "execute_nats_request_task_async",
    "execute_tool",
    "EXECUTORS",
]
