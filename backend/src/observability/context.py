"""Per-request log context.

The request id and the acting user travel in context variables so every log
line written while serving a request can be correlated without threading
them through service calls. Celery tasks run outside a request and log the
defaults.
"""

import uuid
from contextvars import ContextVar
from typing import Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
actor_id_var: ContextVar[Optional[str]] = ContextVar("actor_id", default=None)


def generate_request_id() -> str:
    return str(uuid.uuid4())


def get_request_id() -> str:
    return request_id_var.get() or "no-request-id"


def current_actor_id() -> Optional[str]:
    """Acting user of the current request, if it sent X-Actor-Id."""
    return actor_id_var.get()


def bind_request(request_id: str, actor_id: Optional[str] = None) -> None:
    request_id_var.set(request_id)
    actor_id_var.set((actor_id or "").strip() or None)
