"""Runs store and billing writes without blocking the caller.

In TESTING (unless ASYNC_WRITES_IN_TESTS is set) or with ASYNC_WRITES off
every write runs inline so control flow stays deterministic; otherwise it
runs as a Socket.IO background task inside an app context. Failed writes are
logged and handed to ``on_error``; anything that is not a ``KniffelError`` is
wrapped as ``PersistenceError`` first. Nothing is retried.
"""

import logging
import threading
from typing import Callable, Optional

from kniffel import socketio
from kniffel.errors import KniffelError, PersistenceError

log = logging.getLogger(__name__)


class PendingWrite:
    def __init__(self, description: str):
        self.description = description
        self.error: Optional[BaseException] = None
        self.result = None
        self._done = threading.Event()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def failed(self) -> bool:
        return self.done and self.error is not None

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the write settles or ``timeout`` passes. True if settled."""
        return self._done.wait(timeout)

    def _finish(self, error: Optional[BaseException] = None) -> None:
        self.error = error
        self._done.set()


class WriteDispatcher:
    def __init__(self, app=None, background: bool = False,
                 on_error: Optional[Callable[[PendingWrite, KniffelError], None]] = None):
        if background and app is None:
            raise ValueError('background writes need an app for their context')
        self.app = app
        self.background = background
        self.on_error = on_error

    @classmethod
    def for_app(cls, app, on_error=None) -> 'WriteDispatcher':
        background = bool(app.config.get('ASYNC_WRITES'))
        if app.config.get('TESTING') and not app.config.get('ASYNC_WRITES_IN_TESTS'):
            background = False
        return cls(app=app, background=background, on_error=on_error)

    @property
    def inline(self) -> bool:
        return not self.background

    def submit(self, description: str, fn: Callable, *args, sheet_id: Optional[str] = None, **kwargs) -> PendingWrite:
        """Run ``fn(*args, **kwargs)`` now or in the background.

        ``sheet_id`` tags failures that are not already a ``KniffelError`` so
        they can be reported to that sheet's watchers.
        """
        pending = PendingWrite(description)
        if self.background:
            socketio.start_background_task(self._run_in_context, pending, sheet_id, fn, args, kwargs)
        else:
            self._run(pending, sheet_id, fn, args, kwargs)
        return pending

    def _run_in_context(self, pending, sheet_id, fn, args, kwargs):
        with self.app.app_context():
            self._run(pending, sheet_id, fn, args, kwargs)

    def _run(self, pending: PendingWrite, sheet_id: Optional[str], fn, args, kwargs) -> None:
        error = None
        try:
            pending.result = fn(*args, **kwargs)
        except KniffelError as exc:
            error = exc
            log.warning(f"[write-failed] {pending.description} error={exc}")
        except Exception as exc:
            error = PersistenceError(f'{pending.description} failed: {exc}', sheet_id)
            error.__cause__ = exc
            log.error(f"[write-failed] {pending.description} unexpected error={exc!r}", exc_info=exc)
        except BaseException as exc:
            pending._finish(exc)
            raise
        pending._finish(error)
        if error is not None and self.on_error is not None:
            self.on_error(pending, error)
