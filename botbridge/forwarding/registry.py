"""Identity registry for the bot accounts running in this process.

Each account registers the identifiers the platform may use to address it
(open_id, user_id, union_id) together with its display name.  The reverse
index lets mention extraction map an identifier found in message markup back
to the account that owns it.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from loguru import logger


@dataclass
class BotAccount:
    """A bot account known to the registry."""

    account_id: str
    display_name: str = ""
    primary_id: str = ""
    alternate_ids: list[str] = field(default_factory=list)
    enabled: bool = True

    @property
    def identifiers(self) -> list[str]:
        """Primary identifier first, then alternates; blanks and repeats dropped."""
        result: list[str] = []
        for raw in [self.primary_id, *self.alternate_ids]:
            ident = _normalize(raw)
            if ident and ident not in result:
                result.append(ident)
        return result


def _normalize(identifier: str | None) -> str:
    return str(identifier or "").strip()


class IdentityRegistry:
    """
    Per-account identifiers and display names, with a reverse index.

    Registration is an upsert: re-registering an account (e.g. after a
    reconnect) replaces its previous identifiers and takes ownership of any
    identifier already claimed by another account.
    """

    def __init__(self) -> None:
        self._accounts: dict[str, BotAccount] = {}
        self._owner: dict[str, str] = {}  # identifier -> account_id
        self._owned: dict[str, set[str]] = {}  # account_id -> identifiers
        self._lock = threading.RLock()

    def register(
        self,
        account_id: str,
        primary: str | None,
        alternates: list[str] | None = None,
        display_name: str = "",
        enabled: bool = True,
    ) -> BotAccount:
        account = BotAccount(
            account_id=account_id,
            display_name=(display_name or "").strip(),
            primary_id=_normalize(primary),
            alternate_ids=[_normalize(a) for a in alternates or []],
            enabled=enabled,
        )
        with self._lock:
            self._drop_identifiers(account_id)
            self._accounts[account_id] = account
            owned: set[str] = set()
            for ident in account.identifiers:
                previous = self._owner.get(ident)
                if previous and previous != account_id:
                    logger.debug(
                        f"Identifier {ident} moved from account {previous} to {account_id}"
                    )
                    self._owned.get(previous, set()).discard(ident)
                self._owner[ident] = account_id
                owned.add(ident)
            self._owned[account_id] = owned
        logger.debug(
            f"Registered bot account {account_id} "
            f"(name={account.display_name or '-'}, ids={account.identifiers})"
        )
        return account

    def unregister(self, account_id: str) -> BotAccount | None:
        with self._lock:
            self._drop_identifiers(account_id)
            self._owned.pop(account_id, None)
            return self._accounts.pop(account_id, None)

    def _drop_identifiers(self, account_id: str) -> None:
        for ident in self._owned.get(account_id, set()):
            if self._owner.get(ident) == account_id:
                del self._owner[ident]

    def resolve_account(self, identifier: str | None) -> str | None:
        """Return the account owning ``identifier`` (exact, case-sensitive)."""
        ident = _normalize(identifier)
        if not ident:
            return None
        return self._owner.get(ident)

    def list_identifiers(self, account_id: str) -> list[str]:
        account = self._accounts.get(account_id)
        return account.identifiers if account else []

    def get(self, account_id: str) -> BotAccount | None:
        return self._accounts.get(account_id)

    def display_name(self, account_id: str) -> str:
        """Display name of an account, falling back to its id."""
        account = self._accounts.get(account_id)
        return (account.display_name if account else "") or account_id

    def accounts(self) -> list[BotAccount]:
        with self._lock:
            return list(self._accounts.values())

    def clear(self) -> None:
        with self._lock:
            self._accounts.clear()
            self._owner.clear()
            self._owned.clear()

    def __contains__(self, account_id: object) -> bool:
        return account_id in self._accounts

    def __len__(self) -> int:
        return len(self._accounts)
