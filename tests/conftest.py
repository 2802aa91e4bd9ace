"""Shared fixtures: a ledger on a controllable clock."""

import pytest

from poolbet.ledger import LedgerConfig, SettlementLedger
from poolbet.ledger.custody import InMemoryCustody
from poolbet.ledger.notifications import Notifier

START = 1_700_000_000
GRACE = 6300
META = {"home_team": "Arsenal", "away_team": "Chelsea", "competition": "Premier League"}


class FakeClock:
    def __init__(self, now: int) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def clock():
    return FakeClock(START - 3600)


@pytest.fixture
def custody():
    return InMemoryCustody()


@pytest.fixture
def ledger(clock, custody):
    cfg = LedgerConfig(min_stake=1, max_stake=1_000_000, fee_bps=100, max_batch_size=10)
    return SettlementLedger(cfg, custody=custody, clock=clock, notifier=Notifier(keep_history=True))


def new_event(ledger, start=START):
    return ledger.create_event(META, start)


def after_grace(clock, start=START):
    clock.now = start + GRACE
