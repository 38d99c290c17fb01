from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable, Optional
from .state import ResponseState


@dataclass
class RequestTimer:
    """
    Per-request lifecycle record.

    The first terminal event (finish, error or close) moves the timer out of
    PENDING; any later terminal event is ignored. cleanup() runs the detach
    hook at most once, whatever state the timer is in.
    """
    started_at: float
    state: ResponseState = ResponseState.PENDING
    on_cleanup: Optional[Callable[[], None]] = field(default=None, repr=False)

    @property
    def active(self) -> bool:
        return self.state == ResponseState.PENDING

    def _terminate(self, target: ResponseState) -> bool:
        if self.state != ResponseState.PENDING:
            return False
        self.state = target
        return True

    def finish(self) -> bool:
        return self._terminate(ResponseState.FINISHED)

    def error(self) -> bool:
        return self._terminate(ResponseState.ERRORED)

    def close(self) -> bool:
        return self._terminate(ResponseState.CLOSED)

    def elapsed_ms(self, now: float) -> int:
        return int(round((now - self.started_at) * 1000))

    def cleanup(self) -> None:
        hook, self.on_cleanup = self.on_cleanup, None
        self.state = ResponseState.CLEANED
        if hook is not None:
            hook()
