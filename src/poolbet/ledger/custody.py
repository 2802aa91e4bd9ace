"""Custody collaborator - moves value in and out of the pool. Fail-fast, never retried."""

from __future__ import annotations

from collections import defaultdict
from threading import Lock
from typing import Protocol


class Custody(Protocol):
    """Raising from either method rolls back the ledger mutation that triggered it."""

    def collect(self, participant: str, amount: int) -> None: ...

    def pay(self, participant: str, amount: int) -> None: ...


class InMemoryCustody:
    """Tracks balances in memory. Default custody for embedded use and tests."""

    def __init__(self) -> None:
        self.collected: dict[str, int] = defaultdict(int)
        self.paid: dict[str, int] = defaultdict(int)
        self._lock = Lock()

    def collect(self, participant: str, amount: int) -> None:
        with self._lock:
            self.collected[participant] += amount

    def pay(self, participant: str, amount: int) -> None:
        with self._lock:
            self.paid[participant] += amount

    @property
    def balance(self) -> int:
        with self._lock:
            return sum(self.collected.values()) - sum(self.paid.values())
