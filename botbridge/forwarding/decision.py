"""Eligibility check for mention forwarding."""

from __future__ import annotations

from dataclasses import dataclass, field

from botbridge.forwarding.mention import MentionExtractor, MentionTarget

GROUP_CHAT = "group"


@dataclass(frozen=True)
class ForwardDecision:
    eligible: bool
    reason: str
    targets: dict[str, MentionTarget] = field(default_factory=dict)


def decide_forward(
    extractor: MentionExtractor,
    text: str,
    chat_type: str,
    sender_account_id: str,
) -> ForwardDecision:
    """
    Decide whether an outgoing message should be forwarded to other bots.

    Only group conversations forward: the point is letting bots observe a
    shared room, not redirecting private traffic.
    """
    if chat_type != GROUP_CHAT:
        return ForwardDecision(False, f"chat_type={chat_type}")
    if not text or not text.strip():
        return ForwardDecision(False, "empty text")
    targets = extractor.resolve(text, sender_account_id)
    if not targets:
        return ForwardDecision(False, "no bot mentioned")
    return ForwardDecision(True, "mentioned", targets)
