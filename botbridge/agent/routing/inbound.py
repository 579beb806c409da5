"""Inbound filters applied to platform-delivered messages.

These make up the normal acceptance stage of a channel: duplicate-id
suppression, self-message skipping, the sender allow-list, and group
"must mention me" gating.  Envelopes built by mention forwarding are
already authorized and never pass through this chain.
"""

from __future__ import annotations

from collections import OrderedDict

from loguru import logger

from botbridge.bus.events import InboundMessage
from botbridge.forwarding.registry import IdentityRegistry

from botbridge.agent.routing.base import MessageRouter, ResponseFilter


class DuplicateMessageFilter(ResponseFilter):
    """Skip message ids that were already accepted (bounded, oldest evicted)."""

    def __init__(self, max_size: int = 1000) -> None:
        self._seen: OrderedDict[str, None] = OrderedDict()
        self._max_size = max_size

    async def should_respond(self, msg: InboundMessage) -> bool | None:
        if not msg.message_id:
            return None
        if msg.message_id in self._seen:
            logger.debug(f"Skipping duplicate message {msg.message_id}")
            return False
        self._seen[msg.message_id] = None
        while len(self._seen) > self._max_size:
            self._seen.popitem(last=False)
        return None


class SelfMessageFilter(ResponseFilter):
    """Skip messages sent by the receiving bot itself."""

    def __init__(self, registry: IdentityRegistry) -> None:
        self.registry = registry

    async def should_respond(self, msg: InboundMessage) -> bool | None:
        if msg.sender_id in self.registry.list_identifiers(msg.account_id):
            logger.debug(f"Skipping self-sent message {msg.message_id}")
            return False
        return None


class AllowListFilter(ResponseFilter):
    """Only accept senders on the account's allow-list (empty list = everyone)."""

    def __init__(self, allow_from: list[str] | None = None) -> None:
        self.allow_from = set(allow_from or [])

    async def should_respond(self, msg: InboundMessage) -> bool | None:
        if self.allow_from and msg.sender_id not in self.allow_from:
            logger.debug(f"Skipping message from {msg.sender_id}: not in allow list")
            return False
        return None


class MentionGateFilter(ResponseFilter):
    """In ``mention`` policy, group messages must @mention this bot."""

    def __init__(self, group_policy: str = "mention") -> None:
        self.group_policy = group_policy

    async def should_respond(self, msg: InboundMessage) -> bool | None:
        meta = msg.metadata or {}
        if msg.chat_type != "group":
            return None  # not our concern – defer
        if self.group_policy == "mention" and not meta.get("is_mentioned", False):
            logger.debug(
                f"Skipping non-mentioned group message {msg.message_id} (policy=mention)"
            )
            return False
        return None


def build_inbound_router(
    registry: IdentityRegistry,
    *,
    allow_from: list[str] | None = None,
    group_policy: str = "mention",
) -> MessageRouter:
    """The standard inbound chain for one bot account."""
    return MessageRouter([
        DuplicateMessageFilter(),
        SelfMessageFilter(registry),
        AllowListFilter(allow_from),
        MentionGateFilter(group_policy),
    ])
