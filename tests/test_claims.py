"""Claim, batch claim, quotes, refunds, and fee withdrawal."""

import pytest

from conftest import after_grace, new_event
from poolbet.ledger.errors import (
    AlreadyClaimed,
    BatchTooLarge,
    EmptyBatch,
    InsufficientFeeBalance,
    NoStake,
    NotAWinner,
    NothingToClaim,
    NotResolved,
    TransferError,
)
from poolbet.models import ClaimStatus, NotificationKind, Outcome, PayoutKind


@pytest.fixture
def settled(ledger, clock):
    """won: alice HOME wins; lost: alice HOME loses; claimed: alice already claimed; refund: cancelled."""
    won, lost, claimed, refund = (new_event(ledger) for _ in range(4))
    for eid in (won, lost, claimed, refund):
        ledger.record_stake(eid, "alice", Outcome.HOME, 100)
        ledger.record_stake(eid, "bob", Outcome.AWAY, 300)
    ledger.cancel(refund, "abandoned")
    after_grace(clock)
    ledger.resolve_many([won, lost, claimed], [Outcome.HOME, Outcome.AWAY, Outcome.HOME])
    ledger.claim(claimed, "alice")
    return {"won": won, "lost": lost, "claimed": claimed, "refund": refund}


def test_claim_failures(ledger, clock, settled):
    open_event = new_event(ledger, start=clock.now + 100)
    with pytest.raises(NotResolved):
        ledger.claim(open_event, "alice")
    with pytest.raises(NoStake):
        ledger.claim(settled["won"], "zed")
    with pytest.raises(AlreadyClaimed):
        ledger.claim(settled["claimed"], "alice")
    with pytest.raises(NotAWinner):
        ledger.claim(settled["lost"], "alice")


def test_claim_pays_and_marks(ledger, custody, settled):
    # total 400, fee 4, distributable 396, alice holds the whole winner pool
    amount = ledger.claim(settled["won"], "alice")
    assert amount == 396
    stake = ledger.get_stake(settled["won"], "alice")
    assert stake.claimed is True
    assert stake.payout == 396
    assert custody.paid["alice"] == 396 * 2
    assert ledger.get_event(settled["won"]).total_claimed == 396


def test_cancelled_event_refunds_full_stake(ledger, settled):
    assert ledger.claim(settled["refund"], "bob") == 300
    quote = ledger.get_claimable(settled["refund"], "alice")
    assert quote.kind == PayoutKind.REFUND
    assert quote.amount == 100
    assert quote.profit == 0


def test_batch_claim_skips_non_claimable(ledger, custody, settled):
    paid_before = custody.paid["alice"]
    total = ledger.claim_batch([settled["won"], settled["lost"], settled["claimed"]], "alice")
    assert total == 396
    assert custody.paid["alice"] - paid_before == 396
    assert ledger.get_stake(settled["won"], "alice").claimed is True
    assert ledger.get_stake(settled["lost"], "alice").claimed is False
    with pytest.raises(NothingToClaim):
        ledger.claim_batch([settled["won"], settled["lost"], settled["claimed"]], "alice")

    batch = ledger.notifier.of_kind(NotificationKind.BATCH_CLAIM_PAID)[-1]
    assert batch.payload["total"] == 396
    assert batch.payload["event_ids"] == [settled["won"]]
    assert batch.payload["skipped_count"] == 2
    per_entry = [n for n in ledger.notifier.of_kind(NotificationKind.CLAIM_PAID) if n.payload["batch"]]
    assert [n.event_id for n in per_entry] == [settled["won"]]


def test_batch_claim_mixes_winnings_and_refunds(ledger, settled):
    total = ledger.claim_batch([settled["refund"], settled["won"], settled["won"]], "alice")
    assert total == 100 + 396
    batch = ledger.notifier.of_kind(NotificationKind.BATCH_CLAIM_PAID)[-1]
    assert batch.payload["winnings"] == 396
    assert batch.payload["refunds"] == 100


def test_batch_claim_bounds(ledger, settled):
    with pytest.raises(EmptyBatch):
        ledger.claim_batch([], "alice")
    with pytest.raises(BatchTooLarge):
        ledger.claim_batch([settled["won"]] * 11, "alice")


def test_quotes_match_paid_amounts(ledger, settled):
    ids = [settled["won"], settled["lost"], settled["claimed"], settled["refund"], 99]
    quotes = ledger.get_claimable_batch(ids, "alice")
    assert [(q.event_id, q.amount) for q in quotes] == [(settled["won"], 396), (settled["refund"], 100)]
    assert ledger.get_claimable(settled["lost"], "alice").status == ClaimStatus.NOT_A_WINNER
    assert ledger.get_claimable(settled["claimed"], "alice").status == ClaimStatus.ALREADY_CLAIMED
    assert ledger.get_claimable(99, "alice").status == ClaimStatus.EVENT_NOT_FOUND
    assert ledger.claim_batch(ids, "alice") == sum(q.amount for q in quotes)
    assert ledger.get_claimable_batch(ids, "alice") == []


def test_failed_payout_leaves_stake_unclaimed(ledger, custody, settled):
    real_pay = custody.pay

    def broken_pay(participant, amount):
        raise RuntimeError("bank down")

    custody.pay = broken_pay
    with pytest.raises(TransferError):
        ledger.claim(settled["won"], "alice")
    with pytest.raises(TransferError):
        ledger.claim_batch([settled["won"], settled["refund"]], "alice")
    assert ledger.get_stake(settled["won"], "alice").claimed is False
    assert ledger.get_stake(settled["refund"], "alice").claimed is False
    assert ledger.get_event(settled["won"]).total_claimed == 0

    custody.pay = real_pay
    assert ledger.claim(settled["won"], "alice") == 396


def test_participant_stats(ledger, settled):
    ledger.claim(settled["won"], "alice")
    ledger.claim(settled["refund"], "alice")
    stats = ledger.participant_stats("alice")
    assert stats.total_stakes == 4
    assert stats.total_wagered == 400
    assert stats.total_claimed == 396 * 2 + 100
    assert stats.total_won == 396 * 2
    assert stats.total_profit == 296 * 2
    assert stats.win_count == 2
    assert stats.refund_count == 1
    assert ledger.global_stats().unique_participants == 2


def test_conservation_through_lifecycle(ledger, settled):
    assert ledger.verify_conservation() == []
    ledger.claim(settled["won"], "alice")
    ledger.claim(settled["lost"], "bob")
    ledger.claim(settled["refund"], "bob")
    assert ledger.verify_conservation() == []


def test_withdraw_fees(ledger, custody, settled):
    stats = ledger.global_stats()
    # three resolved events of 400 at 1%
    assert stats.total_fees_collected == 12
    assert stats.fee_balance == 12 + stats.dust_retained
    with pytest.raises(InsufficientFeeBalance):
        ledger.withdraw_fees(stats.fee_balance + 1)
    assert ledger.withdraw_fees(5) == 5
    remaining = ledger.withdraw_fees()
    assert remaining == stats.fee_balance - 5
    assert custody.paid["treasury"] == stats.fee_balance
    assert ledger.global_stats().fee_balance == 0


def test_withdraw_fees_rolls_back_on_transfer_failure(ledger, custody, settled):
    balance = ledger.global_stats().fee_balance

    def broken_pay(participant, amount):
        raise RuntimeError("treasury unreachable")

    custody.pay = broken_pay
    with pytest.raises(TransferError):
        ledger.withdraw_fees()
    assert ledger.global_stats().fee_balance == balance
