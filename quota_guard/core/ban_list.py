"""
Static ban list.

Banned accounts are always reported as sitting at the base limit; the
quota ledger is never consulted for them.
"""

from typing import FrozenSet, Iterable, Optional


DEFAULT_BANNED_IDS = (
    'u1k7diqj', 'u7yv2va', 'u1elu7v6', 'u1gz618', 'u22ttj6',
    'un5banw', 'u1w7q9al', 'ufmneff', 'u1va3pb8', 'u2x2q06',
    'uy32xo3', 'u16fw92s', 'u4q0n0', 'uavwnu1', 'uin2d05',
    'u14dcqpo', 'u1xv0p5t', 'uqrc25s', 'u3w1n2j', 'u1qp3mzh',
    'u1afzcwi', 'udzwaar', 'ud3e8ef', 'u1a4a432', 'u16p0ltw',
    'u69knuc', 'uhrclt9', 'u1ixg65v', 'ufahxah', 'uvpszko',
    'u1dq5bz0', 'udtexci', 'uhodc46', 'u1u0pi62', 'uvz37v5',
    'u1m6xims', 'uztsfwz', 'u1e1k32m',
)


class BanList:
    """Read-only set of banned account identifiers."""

    def __init__(self, ids: Optional[Iterable[str]] = None):
        self._ids: FrozenSet[str] = frozenset(
            DEFAULT_BANNED_IDS if ids is None else (str(i) for i in ids)
        )

    def is_banned(self, account_id: str) -> bool:
        return str(account_id) in self._ids

    def __contains__(self, account_id) -> bool:
        return self.is_banned(account_id)

    def __len__(self) -> int:
        return len(self._ids)
