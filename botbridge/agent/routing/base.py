"""Base classes for inbound message gating.

See :mod:`botbridge.agent.routing` package docstring for the overall
architecture.
"""

from __future__ import annotations

import abc

from botbridge.bus.events import InboundMessage


# -----------------------------------------------------------------------
# ResponseFilter
# -----------------------------------------------------------------------

class ResponseFilter(abc.ABC):
    """Base class for inbound message filters.

    Subclasses implement :meth:`should_respond` and return a gate decision
    (respond / skip / defer).
    """

    @abc.abstractmethod
    async def should_respond(self, msg: InboundMessage) -> bool | None:
        """Decide whether the agent should respond.

        Returns
        -------
        bool | None
            * ``True``  – the agent **should** respond.
            * ``False`` – the agent should **skip** this message.
            * ``None``  – this filter has no opinion; defer to the next one.
        """
        ...


# -----------------------------------------------------------------------
# MessageRouter
# -----------------------------------------------------------------------

class MessageRouter:
    """Ordered chain of :class:`ResponseFilter` gates for one bot account.

    The first non-``None`` answer decides.  A message that no filter objects
    to is accepted.
    """

    def __init__(self, filters: list[ResponseFilter] | None = None) -> None:
        self._filters: list[ResponseFilter] = list(filters or [])

    def add_filter(self, f: ResponseFilter) -> None:
        """Append a filter to the chain."""
        self._filters.append(f)

    @property
    def filters(self) -> list[ResponseFilter]:
        return list(self._filters)

    async def should_respond(self, msg: InboundMessage) -> bool:
        for f in self._filters:
            result = await f.should_respond(msg)
            if result is not None:
                return result
        return True  # default: respond
