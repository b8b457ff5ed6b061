"""
Quota query surface.

Answers "where is this account against its quota", optionally consuming
one unit. Banned accounts short-circuit before the ledger is consulted.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .ban_list import BanList
from .ledger import BASE_LIMIT, QuotaLedger


@dataclass(frozen=True)
class QuotaStatus:
    """Caller-facing view of an account's quota."""
    account_id: str
    start: int
    count: int
    extended_quota: Optional[int] = 0
    banned: bool = False
    ok: bool = True

    @property
    def limit(self) -> int:
        return BASE_LIMIT + (self.extended_quota or 0)

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)

    def to_payload(self) -> Dict[str, Any]:
        """Response body; banned accounts carry no extendedQuota."""
        payload: Dict[str, Any] = {
            "ok": self.ok,
            "id": self.account_id,
            "start": self.start,
            "count": self.count,
        }
        if not self.banned:
            payload["extendedQuota"] = self.extended_quota or 0
        return payload


class QuotaQuery:
    """Ban-aware front for the quota ledger."""

    def __init__(self, ledger: QuotaLedger, ban_list: Optional[BanList] = None):
        self.ledger = ledger
        self.ban_list = ban_list if ban_list is not None else BanList()

    def lookup(
        self,
        account_id: str,
        consume: bool = False,
        now: Optional[int] = None
    ) -> QuotaStatus:
        """Report an account's quota, consuming one unit when asked.

        Banned accounts always report ``count == BASE_LIMIT`` with
        ``start == now`` and cause no store access at all.

        Args:
            account_id: Account to look up
            consume: Consume one unit before reporting
            now: Override for the current time in ms

        Returns:
            QuotaStatus for the account
        """
        account_id = str(account_id or "")
        now = self.ledger.clock() if now is None else now

        if self.ban_list.is_banned(account_id):
            return QuotaStatus(
                account_id=account_id,
                start=now,
                count=BASE_LIMIT,
                extended_quota=None,
                banned=True
            )

        if consume:
            record = self.ledger.consume(account_id, now=now)
        else:
            record = self.ledger.peek(account_id, now=now)
        return QuotaStatus(
            account_id=account_id,
            start=record.start,
            count=record.count,
            extended_quota=record.extended_quota
        )
