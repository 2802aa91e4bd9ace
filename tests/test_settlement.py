"""Settlement policy and payout formula tests."""

import pytest

from conftest import after_grace, new_event
from poolbet.ledger import SettlementKind
from poolbet.ledger.errors import NotAWinner
from poolbet.models import NotificationKind, Outcome, PayoutKind


def test_no_winner_refunds_everyone(ledger, clock):
    eid = new_event(ledger)
    ledger.record_stake(eid, "alice", Outcome.HOME, 100)
    ledger.record_stake(eid, "bob", Outcome.DRAW, 200)
    after_grace(clock)
    basis = ledger.resolve(eid, Outcome.AWAY)
    assert basis.kind == SettlementKind.NO_WINNER
    assert ledger.get_event(eid).fee_amount == 0
    assert ledger.claim(eid, "alice") == 100
    assert ledger.claim(eid, "bob") == 200
    assert ledger.global_stats().total_fees_collected == 0
    assert ledger.verify_conservation() == []


def test_all_same_outcome_refunds(ledger, clock):
    eid = new_event(ledger)
    ledger.record_stake(eid, "alice", Outcome.HOME, 100)
    ledger.record_stake(eid, "bob", Outcome.HOME, 50)
    after_grace(clock)
    basis = ledger.resolve(eid, Outcome.HOME)
    assert basis.kind == SettlementKind.ALL_WINNERS
    assert ledger.get_event(eid).fee_amount == 0
    assert ledger.claim(eid, "alice") == 100
    assert ledger.claim(eid, "bob") == 50
    claims = ledger.notifier.of_kind(NotificationKind.CLAIM_PAID)
    assert [c.payload["profit"] for c in claims] == [0, 0]
    assert {c.payload["payout_kind"] for c in claims} == {PayoutKind.REFUND.value}


def test_mixed_pool_payout(ledger, clock):
    eid = new_event(ledger)
    ledger.record_stake(eid, "alice", Outcome.HOME, 100)
    ledger.record_stake(eid, "bob", Outcome.HOME, 300)
    ledger.record_stake(eid, "carol", Outcome.DRAW, 600)
    after_grace(clock)
    basis = ledger.resolve(eid, Outcome.HOME)
    assert basis.kind == SettlementKind.MIXED
    assert basis.fee == 10
    assert basis.distributable == 990
    ev = ledger.get_event(eid)
    assert ev.fee_amount == 10
    assert ev.dust_amount == 1

    assert ledger.get_claimable(eid, "alice").amount == 247
    assert ledger.claim(eid, "alice") == 247
    assert ledger.claim(eid, "bob") == 742
    with pytest.raises(NotAWinner):
        ledger.claim(eid, "carol")
    assert 247 + 742 <= basis.distributable
    ev = ledger.get_event(eid)
    assert ev.total_pool == ev.fee_amount + ev.dust_amount + ev.total_claimed
    assert ledger.verify_conservation() == []

    paid = ledger.notifier.of_kind(NotificationKind.CLAIM_PAID)
    assert paid[0].payload["profit"] == 147
    assert paid[0].payload["payout_kind"] == PayoutKind.WINNINGS.value


def test_small_mixed_pool_truncates_fee_to_zero(ledger, clock):
    eid = new_event(ledger)
    ledger.record_stake(eid, "a", Outcome.HOME, 10)
    ledger.record_stake(eid, "b", Outcome.HOME, 20)
    ledger.record_stake(eid, "c", Outcome.DRAW, 20)
    after_grace(clock)
    basis = ledger.resolve(eid, Outcome.HOME)
    assert basis.fee == 0
    # 10 * 50 / 30 = 16.67, 20 * 50 / 30 = 33.33
    assert ledger.claim(eid, "a") == 16
    assert ledger.claim(eid, "b") == 33
    assert ledger.get_event(eid).dust_amount == 1


def test_fee_change_after_resolution_does_not_move_payouts(ledger, clock):
    eid = new_event(ledger)
    ledger.record_stake(eid, "alice", Outcome.AWAY, 400)
    ledger.record_stake(eid, "bob", Outcome.HOME, 600)
    after_grace(clock)
    ledger.resolve(eid, Outcome.AWAY)
    before = ledger.get_claimable(eid, "alice").amount
    ledger.update_fee_rate(500)
    assert ledger.get_claimable(eid, "alice").amount == before == 990
    assert ledger.claim(eid, "alice") == 990


def test_odds(ledger, clock):
    eid = new_event(ledger)
    ledger.record_stake(eid, "alice", Outcome.HOME, 400)
    ledger.record_stake(eid, "bob", Outcome.DRAW, 600)
    odds = ledger.get_odds(eid)
    # HOME wins: 990 distributable over 400 -> 2.475x
    assert odds.home_bps == 24750
    assert odds.draw_bps == 16500
    assert odds.away_bps == 0


def test_odds_single_outcome_is_even(ledger):
    eid = new_event(ledger)
    ledger.record_stake(eid, "alice", Outcome.HOME, 400)
    odds = ledger.get_odds(eid)
    assert odds.home_bps == 10_000


def test_conservation_check_recomputes_fee_and_dust(ledger, clock):
    eid = new_event(ledger)
    ledger.record_stake(eid, "alice", Outcome.HOME, 100)
    ledger.record_stake(eid, "bob", Outcome.HOME, 300)
    ledger.record_stake(eid, "carol", Outcome.DRAW, 600)
    after_grace(clock)
    ledger.resolve(eid, Outcome.HOME)
    ledger.claim(eid, "alice")
    assert ledger.get_event(eid).fee_bps == 100
    ledger.update_fee_rate(300)
    assert ledger.verify_conservation() == []

    # the stored record is what a persisted snapshot would carry
    event = ledger.pool.get_event(eid)
    event.fee_amount += 5
    assert any("fee_amount 15 != 10" in p for p in ledger.verify_conservation())
    event.fee_amount -= 5

    event.dust_amount += 1
    assert any("dust_amount 2 != 1" in p for p in ledger.verify_conservation())
    event.dust_amount -= 1

    event.fee_bps = 200
    assert any("at 200 bps" in p for p in ledger.verify_conservation())
    event.fee_bps = 100
    assert ledger.verify_conservation() == []


def test_refund_settlements_record_rate_but_charge_nothing(ledger, clock):
    eid = new_event(ledger)
    ledger.record_stake(eid, "alice", Outcome.HOME, 100)
    after_grace(clock)
    ledger.resolve(eid, Outcome.HOME)
    ev = ledger.get_event(eid)
    assert (ev.fee_bps, ev.fee_amount, ev.dust_amount) == (100, 0, 0)
    ledger.pool.get_event(eid).fee_amount = 1
    assert any("fee_amount 1 != 0" in p for p in ledger.verify_conservation())
