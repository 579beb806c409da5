"""Reply pipeline: hands routed inbound messages to agents and delivers replies."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

from loguru import logger

from botbridge.bus.events import InboundMessage, OutboundMessage

# An agent turns one inbound message into zero or more reply texts
AgentHandler = Callable[[InboundMessage], Awaitable["str | list[str] | None"]]
DeliverFn = Callable[[OutboundMessage], Awaitable[None]]


class UnknownAgentError(LookupError):
    """No handler is registered for the routed agent."""


@dataclass
class DispatchSummary:
    queued: int = 0
    sent: int = 0


class ReplyDispatcher(Protocol):
    async def dispatch(self, msg: InboundMessage) -> DispatchSummary: ...


class ReplyPipeline:
    """
    Dispatches routed messages to per-agent handlers.

    Platform messages reach this pipeline after the channel's inbound filter
    chain; forwarded envelopes are submitted directly.  ``dispatch`` waits for
    the agent's replies to be delivered before returning.
    """

    def __init__(self, deliver: DeliverFn | None = None) -> None:
        self._handlers: dict[str, AgentHandler] = {}
        self._deliver = deliver

    def register_agent(self, agent_id: str, handler: AgentHandler) -> None:
        self._handlers[agent_id] = handler

    def unregister_agent(self, agent_id: str) -> None:
        self._handlers.pop(agent_id, None)

    def set_deliver(self, deliver: DeliverFn) -> None:
        self._deliver = deliver

    async def dispatch(self, msg: InboundMessage) -> DispatchSummary:
        agent_id = msg.agent_id or ""
        handler = self._handlers.get(agent_id)
        if handler is None:
            raise UnknownAgentError(f"No agent handler registered for '{agent_id}'")

        preview = msg.content[:80] + "..." if len(msg.content) > 80 else msg.content
        logger.info(
            f"Processing message for agent {agent_id} "
            f"from {msg.channel}:{msg.sender_id}: {preview}"
        )

        result = await handler(msg)
        if result is None:
            replies: list[str] = []
        elif isinstance(result, str):
            replies = [result]
        else:
            replies = list(result)
        replies = [r for r in replies if r and r.strip()]

        summary = DispatchSummary(queued=len(replies))
        for text in replies:
            reply = OutboundMessage(
                channel=msg.channel,
                chat_id=msg.chat_id,
                content=text,
                account_id=msg.account_id,
                reply_to=msg.message_id or None,
                metadata={"session_key": msg.session_key, "chat_type": msg.chat_type},
            )
            if self._deliver is None:
                logger.warning(f"No delivery target; dropping reply for {msg.session_key}")
                continue
            await self._deliver(reply)
            summary.sent += 1
        return summary
