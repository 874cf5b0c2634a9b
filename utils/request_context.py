from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

# HTTP request id (API and worker middleware) and background run id (scheduled jobs).
_request_id_var: ContextVar[str] = ContextVar("request_id", default="")
_run_id_var: ContextVar[str] = ContextVar("run_id", default="")


def set_request_id(rid: str) -> None:
    _request_id_var.set(rid or "")


def get_request_id() -> str:
    return _request_id_var.get() or ""


def clear_request_id() -> None:
    _request_id_var.set("")


def get_run_id() -> str:
    return _run_id_var.get() or ""


@contextmanager
def bind_run_id(run_id: str) -> Iterator[str]:
    token = _run_id_var.set(run_id or "")
    try:
        yield run_id
    finally:
        _run_id_var.reset(token)
