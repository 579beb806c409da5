"""Message event types shared by channels, forwarding and the reply pipeline."""

from botbridge.bus.events import InboundMessage, OutboundMessage

__all__ = ["InboundMessage", "OutboundMessage"]
