"""Event types passed between channels, forwarding and agents."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

DEFAULT_ACCOUNT_ID = "default"


@dataclass
class InboundMessage:
    """A message received on a channel (or synthesized by forwarding)."""

    channel: str  # feishu
    sender_id: str  # open_id of the sender
    chat_id: str  # conversation id (oc_xxx for groups)
    content: str  # body handed to the agent
    account_id: str = DEFAULT_ACCOUNT_ID  # bot account that received the message
    message_id: str = ""
    raw_content: str | None = None  # body before sender attribution
    agent_id: str | None = None  # set once the message has been routed
    session: str | None = None  # routed session key
    timestamp: datetime = field(default_factory=datetime.now)
    media: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def session_key(self) -> str:
        """Routed session key, or ``channel:chat_id`` before routing."""
        return self.session or f"{self.channel}:{self.chat_id}"

    @property
    def chat_type(self) -> str:
        return (self.metadata or {}).get("chat_type", "p2p")

    @property
    def is_synthetic(self) -> bool:
        """True for envelopes built by mention forwarding."""
        return bool((self.metadata or {}).get("forwarded", False))


@dataclass
class OutboundMessage:
    """A message to send through a channel account."""

    channel: str
    chat_id: str
    content: str
    account_id: str = DEFAULT_ACCOUNT_ID
    reply_to: str | None = None
    media: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
