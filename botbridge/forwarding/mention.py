"""@mention extraction and formatting.

Generated replies address other bots in two ways: plain ``@Name`` text (the
common case for LLM output) and platform mention markup such as
``<at id=ou_xxx></at>`` or ``<at user_id="ou_xxx">Name</at>``.  Extraction
runs as two explicit stages that each yield tagged candidates:

1. **name** – ``@<display name>`` for every other registered bot
   (case-insensitive, whole word).
2. **markup** – identifiers pulled out of mention tags, then resolved
   through the :class:`IdentityRegistry` reverse index (case-sensitive).

Candidates that resolve to the sender, to a disabled account, or to nothing
at all are dropped.  When both stages hit the same account the name stage
wins, so the target keeps its display label.

The markup stage also accepts JSON-like ``"id": "..."`` fragments, which can
over-extract from ordinary message bodies.  Unresolved values are discarded,
so the only effect is a wasted lookup.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import Any, Iterable

from botbridge.forwarding.registry import IdentityRegistry


@dataclass(frozen=True)
class MentionTarget:
    """A bot addressed by a message."""

    open_id: str
    name: str
    key: str  # Placeholder in the original message, e.g. @_user_1


class MentionSource(enum.StrEnum):
    NAME = "name"
    MARKUP = "markup"


@dataclass(frozen=True)
class MentionCandidate:
    """A possible mention found by one extraction stage."""

    identifier: str
    source: MentionSource
    token: str
    account_id: str | None = None  # Known up front for name-stage hits


# Ordered: tag forms first, JSON-like fragments last
_MARKUP_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"""<at\s+id\s*=\s*["']?([^"'\s>]+)["']?\s*[>\s]""", re.IGNORECASE),
    re.compile(r"""<at\s+user_id\s*=\s*["']?([^"'\s>]+)["']?\s*[>\s]""", re.IGNORECASE),
    re.compile(r"""["']?(?:id|user_id)["']?\s*:\s*["']?([^"',\s}]+)["']?""", re.IGNORECASE),
)


def name_pattern(display_name: str) -> re.Pattern[str]:
    """Case-insensitive whole-word ``@<display name>`` matcher."""
    # "@Review" must not match inside "@Reviewer"
    return re.compile(rf"@{re.escape(display_name)}(?!\w)", re.IGNORECASE)


class MentionExtractor:
    """Find the registered bots a message addresses."""

    def __init__(self, registry: IdentityRegistry) -> None:
        self.registry = registry

    # -- stage 1 ---------------------------------------------------------

    def scan_names(self, text: str, sender_account_id: str) -> list[MentionCandidate]:
        candidates: list[MentionCandidate] = []
        if not text:
            return candidates
        for account in self.registry.accounts():
            if account.account_id == sender_account_id or not account.display_name:
                continue
            if name_pattern(account.display_name).search(text):
                ids = account.identifiers
                candidates.append(
                    MentionCandidate(
                        identifier=ids[0] if ids else "",
                        source=MentionSource.NAME,
                        token=f"@{account.display_name}",
                        account_id=account.account_id,
                    )
                )
        return candidates

    # -- stage 2 ---------------------------------------------------------

    @staticmethod
    def scan_markup(text: str) -> list[MentionCandidate]:
        candidates: list[MentionCandidate] = []
        if not text:
            return candidates
        seen: set[str] = set()
        for pattern in _MARKUP_PATTERNS:
            for match in pattern.finditer(text):
                ident = (match.group(1) or "").strip()
                if not ident or ident in seen:
                    continue
                seen.add(ident)
                candidates.append(
                    MentionCandidate(
                        identifier=ident,
                        source=MentionSource.MARKUP,
                        token=match.group(0).strip(),
                    )
                )
        return candidates

    # -- pipeline --------------------------------------------------------

    def candidates(self, text: str, sender_account_id: str) -> list[MentionCandidate]:
        """All candidates, name stage first."""
        return self.scan_names(text, sender_account_id) + self.scan_markup(text)

    def resolve(self, text: str, sender_account_id: str) -> dict[str, MentionTarget]:
        """
        Map each addressed account to its mention target.

        Returns:
            Ordered ``{account_id: MentionTarget}``; never contains the sender.
        """
        targets: dict[str, MentionTarget] = {}
        for candidate in self.candidates(text, sender_account_id):
            account_id = candidate.account_id or self.registry.resolve_account(
                candidate.identifier
            )
            if not account_id or account_id == sender_account_id or account_id in targets:
                continue
            account = self.registry.get(account_id)
            if account is None or not account.enabled:
                continue
            targets[account_id] = MentionTarget(
                open_id=candidate.identifier or account_id,
                name=account.display_name or candidate.identifier,
                key=candidate.token,
            )
        return targets

    def extract(self, text: str, sender_account_id: str) -> set[str]:
        """Account ids addressed by ``text``, excluding the sender."""
        return set(self.resolve(text, sender_account_id))


# ---------------------------------------------------------------------------
# Platform mention metadata
# ---------------------------------------------------------------------------


def _field(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def resolve_mention_id(mention: Any) -> str:
    """Identifier of a platform mention entry (open_id, then user_id, then union_id)."""
    mention_id = _field(mention, "id")
    if isinstance(mention_id, str):
        return mention_id.strip()
    for key in ("open_id", "user_id", "union_id"):
        value = _field(mention_id, key)
        if value:
            return str(value).strip()
    return ""


def extract_mention_targets(mentions: Iterable[Any] | None) -> list[MentionTarget]:
    """Mention targets from platform mention metadata (entries without an id are dropped)."""
    targets: list[MentionTarget] = []
    for m in mentions or []:
        mention_id = resolve_mention_id(m)
        if not mention_id:
            continue
        targets.append(
            MentionTarget(
                open_id=mention_id,
                name=_field(m, "name") or "",
                key=_field(m, "key") or "",
            )
        )
    return targets


def extract_message_body(text: str, mention_keys: Iterable[str]) -> str:
    """Remove @ placeholders from ``text`` and collapse whitespace."""
    result = text
    for key in mention_keys:
        if key:
            result = result.replace(key, "")
    return re.sub(r"\s+", " ", result).strip()


def format_mention_for_card(target: MentionTarget) -> str:
    """Card (lark_md) mention markup, e.g. ``<at id=ou_xxx></at>``."""
    return f"<at id={target.open_id}></at>"
