"""Request id plumbing shared by logging, tracing and API responses.

Every calendar build, schedule expansion and store write runs under one
request id. It is taken from the `X-Request-Id` header when the caller sends a
usable one, stamped on log records and Opik trace metadata, and returned in the
`request_id` field of route responses.
"""
from __future__ import annotations

import re
from contextvars import ContextVar
from uuid import uuid4

REQUEST_ID_HEADER = "X-Request-Id"

# Caller-supplied ids end up in log lines and trace metadata verbatim.
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._:\-]{1,64}$")

request_id_ctx_var: ContextVar[str | None] = ContextVar("habitmap_request_id", default=None)


def resolve_request_id(candidate: str | None) -> str:
    """Return `candidate` when it is a usable id, otherwise a fresh one."""
    if candidate:
        candidate = candidate.strip()
        if _REQUEST_ID_RE.match(candidate):
            return candidate
    return uuid4().hex


def get_request_id() -> str | None:
    return request_id_ctx_var.get()
