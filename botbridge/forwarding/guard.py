"""Per-conversation recursion guard for mention forwarding."""

from __future__ import annotations

from loguru import logger

MAX_FORWARD_DEPTH = 1


class ForwardPermit:
    """
    Admission for one forward invocation.

    Use as a context manager (or call :meth:`release`) once dispatch is
    finished.  Releasing twice is a no-op.
    """

    def __init__(self, guard: "RecursionGuard", conversation_id: str) -> None:
        self.guard = guard
        self.conversation_id = conversation_id
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self.guard._leave(self.conversation_id)

    def __enter__(self) -> "ForwardPermit":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()


class RecursionGuard:
    """
    Bounded in-flight counter per conversation.

    With ``max_depth=1`` a bot may redirect a message once (A mentions B),
    but B's reply that mentions A back is not forwarded while A's forward is
    still in flight.  Entries are removed when their count returns to zero.

    Acquire and release never suspend, so each read-modify-write is atomic
    with respect to the event loop.
    """

    def __init__(self, max_depth: int = MAX_FORWARD_DEPTH) -> None:
        self.max_depth = max_depth
        self._depths: dict[str, int] = {}

    def depth(self, conversation_id: str) -> int:
        return self._depths.get(conversation_id, 0)

    def acquire(self, conversation_id: str) -> ForwardPermit | None:
        """Enter a forward for ``conversation_id``; ``None`` if at the bound."""
        depth = self._depths.get(conversation_id, 0)
        if depth >= self.max_depth:
            logger.trace(
                f"Forward guard: rejecting {conversation_id} at depth {depth}/{self.max_depth}"
            )
            return None
        self._depths[conversation_id] = depth + 1
        return ForwardPermit(self, conversation_id)

    def _leave(self, conversation_id: str) -> None:
        depth = self._depths.get(conversation_id, 0) - 1
        if depth > 0:
            self._depths[conversation_id] = depth
        else:
            self._depths.pop(conversation_id, None)

    def active(self) -> dict[str, int]:
        """Snapshot of conversations with a forward in flight."""
        return dict(self._depths)

    def clear(self) -> None:
        self._depths.clear()
