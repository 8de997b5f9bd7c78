"""
Request-scoped, nested timing of pipeline operations.

A run opens one root :class:`TracingScope`; every sub-operation runs inside a child scope
obtained from :meth:`TracingScope.child`.  Each scope logs an enter marker, then an exit marker
with its duration, indented by nesting depth and prefixed with the run's request id::

    [3f9a1c2e] > Agent.run for gpt-4o...
    [3f9a1c2e] ==> Validate input schema...
    [3f9a1c2e] ==< Validate input schema ✓ 0.21ms

Failures are logged with their traceback and re-raised unchanged.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import contextmanager
from typing import (
    Any,
    Callable,
    Iterator,
    List,
    Optional,
    TypeVar,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def new_request_id() -> str:
    """Short opaque token identifying one run."""
    return uuid.uuid4().hex[:8]


class TracingScope:
    """One timed operation and its nested children."""

    def __init__(
        self,
        action: str,
        request_id: Optional[str] = None,
        depth: int = 0,
    ):
        self.action = action
        self.request_id = request_id
        self.depth = depth
        self.children: List[TracingScope] = []
        self.started_at: Optional[float] = None
        self.finished_at: Optional[float] = None
        self.status = "pending"

    def __repr__(self) -> str:
        return f"TracingScope({self.action!r}, depth={self.depth}, status={self.status})"

    @classmethod
    def root(cls, action: str, request_id: Optional[str] = None) -> "TracingScope":
        """Create the top-level scope of a run."""
        return cls(action, request_id=request_id or new_request_id())

    @property
    def duration_ms(self) -> Optional[float]:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at) * 1000

    def _prefix(self, marker: str) -> str:
        indent = "=" * (self.depth + 1 if self.depth > 0 else 0)
        if self.request_id:
            return f"[{self.request_id}] {indent}{marker}"
        return f"{indent}{marker}"

    def _extra(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "depth": self.depth,
            "action": self.action,
            "duration_ms": self.duration_ms,
        }

    @contextmanager
    def activate(self) -> Iterator["TracingScope"]:
        """Time this scope for the duration of the ``with`` block."""
        self.started_at = time.perf_counter()
        self.status = "running"
        logger.info("%s %s...", self._prefix(">"), self.action, extra=self._extra())
        try:
            yield self
        except Exception:
            self.finished_at = time.perf_counter()
            self.status = "error"
            logger.error(
                "%s %s ✗ %.2fms",
                self._prefix("<"),
                self.action,
                self.duration_ms,
                exc_info=True,
                extra=self._extra(),
            )
            raise
        self.finished_at = time.perf_counter()
        self.status = "ok"
        logger.info(
            "%s %s ✓ %.2fms",
            self._prefix("<"),
            self.action,
            self.duration_ms,
            extra=self._extra(),
        )

    @contextmanager
    def child(self, action: str) -> Iterator["TracingScope"]:
        """Open and time a nested scope."""
        scope = TracingScope(action, request_id=self.request_id, depth=self.depth + 1)
        self.children.append(scope)
        with scope.activate():
            yield scope

    def measure(self, fn: Callable[["TracingScope"], T], action: str) -> T:
        """Run ``fn(child_scope)`` inside a nested scope and return its result."""
        with self.child(action) as scope:
            return fn(scope)

    def walk(self) -> Iterator["TracingScope"]:
        """This scope and all descendants, depth first."""
        yield self
        for scope in self.children:
            yield from scope.walk()
