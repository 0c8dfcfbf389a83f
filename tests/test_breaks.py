from datetime import datetime, timedelta, timezone

import pytest

from breaks import (
    DEFAULT_BREAKS, BreakAlreadyActive, BreakNotFound, InsufficientFunds,
    end_break, purchase_break, remaining_seconds,
)
from models import UserStats

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


def _funded_user(ledger, currency):
    u = ledger.create_user("dana", "pw")
    ledger.create_stats(u.id, currency=currency)
    ledger.commit()
    return u


def _option_costing(ledger, cost):
    return next(b for b in ledger.list_breaks() if b.cost == cost)


def test_catalog_matches_defaults(ledger):
    catalog = [(b.name, b.duration, b.cost) for b in ledger.list_breaks()]
    assert catalog == [(b["name"], b["duration"], b["cost"]) for b in DEFAULT_BREAKS]


def test_purchase_rejected_when_short(ledger):
    u = _funded_user(ledger, 200)
    option = _option_costing(ledger, 250)
    with pytest.raises(InsufficientFunds):
        purchase_break(ledger, u.id, option.id, NOW)
    stats = ledger.get_stats(u.id)
    assert stats.currency == 200
    assert stats.breaks_taken == 0
    assert stats.active_break_id is None


def test_purchase_debits_and_counts(ledger):
    u = _funded_user(ledger, 300)
    option = _option_costing(ledger, 250)
    stats, bought = purchase_break(ledger, u.id, option.id, NOW)
    ledger.commit()
    assert bought.id == option.id
    assert stats.currency == 50
    assert stats.breaks_taken == 1
    assert stats.active_break_id == option.id
    assert remaining_seconds(stats, NOW) == 5 * 60


def test_second_break_while_active_rejected(ledger):
    u = _funded_user(ledger, 1000)
    option = _option_costing(ledger, 250)
    purchase_break(ledger, u.id, option.id, NOW)
    ledger.commit()
    with pytest.raises(BreakAlreadyActive):
        purchase_break(ledger, u.id, option.id, NOW + timedelta(minutes=1))
    assert ledger.get_stats(u.id).currency == 750


def test_expired_break_allows_next_purchase(ledger):
    u = _funded_user(ledger, 1000)
    option = _option_costing(ledger, 250)
    purchase_break(ledger, u.id, option.id, NOW)
    ledger.commit()
    stats, _ = purchase_break(ledger, u.id, option.id, NOW + timedelta(minutes=6))
    assert stats.currency == 500
    assert stats.breaks_taken == 2


def test_end_break_clears_active_only(ledger):
    u = _funded_user(ledger, 300)
    option = _option_costing(ledger, 250)
    purchase_break(ledger, u.id, option.id, NOW)
    ledger.commit()
    stats = end_break(ledger, u.id)
    assert stats.active_break_id is None
    assert stats.break_ends_at is None
    assert stats.currency == 50
    assert stats.breaks_taken == 1


def test_unknown_break(ledger):
    u = _funded_user(ledger, 300)
    with pytest.raises(BreakNotFound):
        purchase_break(ledger, u.id, 999, NOW)


def test_active_break_enforced_by_the_update(ledger, monkeypatch):
    u = _funded_user(ledger, 1000)
    option = _option_costing(ledger, 250)
    purchase_break(ledger, u.id, option.id, NOW)
    ledger.commit()

    # the first check reads stale state and misses the running break
    real = UserStats.has_active_break
    calls = []

    def stale_once(self, now):
        calls.append(now)
        return False if len(calls) == 1 else real(self, now)

    monkeypatch.setattr(UserStats, "has_active_break", stale_once)
    with pytest.raises(BreakAlreadyActive):
        purchase_break(ledger, u.id, option.id, NOW + timedelta(minutes=1))
    assert len(calls) == 2

    stats = ledger.get_stats(u.id)
    assert stats.currency == 750
    assert stats.breaks_taken == 1
