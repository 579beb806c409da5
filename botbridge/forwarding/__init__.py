"""Bot-to-bot mention forwarding."""

from botbridge.forwarding.registry import BotAccount, IdentityRegistry
from botbridge.forwarding.mention import (
    MentionCandidate,
    MentionExtractor,
    MentionSource,
    MentionTarget,
)
from botbridge.forwarding.decision import ForwardDecision, decide_forward
from botbridge.forwarding.guard import MAX_FORWARD_DEPTH, ForwardPermit, RecursionGuard
from botbridge.forwarding.forwarder import MentionForwarder

__all__ = [
    "BotAccount",
    "IdentityRegistry",
    "MentionCandidate",
    "MentionExtractor",
    "MentionSource",
    "MentionTarget",
    "ForwardDecision",
    "decide_forward",
    "MAX_FORWARD_DEPTH",
    "ForwardPermit",
    "RecursionGuard",
    "MentionForwarder",
]
