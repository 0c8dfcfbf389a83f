from datetime import timedelta

from sqlalchemy import or_

from logging_setup import get_logger
from models import UserStats, as_utc

log = get_logger("breaks")

# Roughly 25-60 minutes of study at 10 coins/minute buys each break.
DEFAULT_BREAKS = [
    {"name": "5 Minute Break",  "description": "A quick refresher",   "duration": 5,  "cost": 250},
    {"name": "10 Minute Break", "description": "Time for a snack",    "duration": 10, "cost": 300},
    {"name": "20 Minute Break", "description": "Proper rest time",    "duration": 20, "cost": 450},
    {"name": "30 Minute Break", "description": "Extended relaxation", "duration": 30, "cost": 600},
]


class BreakError(Exception):
    status_code = 400


class BreakNotFound(BreakError):
    status_code = 404


class BreakAlreadyActive(BreakError):
    status_code = 409


class InsufficientFunds(BreakError):
    status_code = 400


def no_active_break(now):
    """SQL condition: the user has no break running at ``now``."""
    return or_(UserStats.active_break_id.is_(None), UserStats.break_ends_at <= now)


def is_seeded(ledger) -> bool:
    return len(ledger.list_breaks()) > 0


def seed_breaks(ledger, options=None):
    """Insert the default catalog. Does nothing if any break exists."""
    if is_seeded(ledger):
        return []
    created = [ledger.create_break(**opt) for opt in (options or DEFAULT_BREAKS)]
    ledger.commit()
    log.info("seeded %d break options", len(created))
    return created


def purchase_break(ledger, user_id, break_id, now, starting_currency=0):
    """Buy break ``break_id`` for ``user_id``.

    Raises BreakNotFound, BreakAlreadyActive or InsufficientFunds and leaves
    the stats untouched in those cases. On success returns
    ``(stats, option)`` with the debit applied; the caller commits.
    """
    option = ledger.get_break(break_id)
    if option is None:
        raise BreakNotFound(f"break {break_id} not found")

    stats = ledger.get_or_create_stats(user_id, starting_currency)
    if stats.has_active_break(now):
        raise BreakAlreadyActive("a break is already active")
    if stats.currency < option.cost:
        raise InsufficientFunds(f"break costs {option.cost}, balance is {stats.currency}")

    ok = ledger.debit(
        user_id,
        option.cost,
        conditions=(no_active_break(now),),
        breaks_taken=UserStats.breaks_taken + 1,
        active_break_id=option.id,
        break_ends_at=now + timedelta(minutes=option.duration),
    )
    if not ok:
        # the row changed between the read and the conditional update
        stats = ledger.reload_stats(user_id)
        if stats.has_active_break(now):
            raise BreakAlreadyActive("a break is already active")
        raise InsufficientFunds(f"break costs {option.cost}, balance is {stats.currency}")

    log.info("user %s bought %s for %d coins", user_id, option.name, option.cost)
    return ledger.get_stats(user_id), option


def end_break(ledger, user_id):
    """Clear the active break. Returns the stats row (None if the user has none)."""
    stats = ledger.get_stats(user_id)
    if stats is None:
        return None
    if stats.active_break_id is not None:
        log.info("user %s ended break %s", user_id, stats.active_break_id)
    return ledger.update_stats(user_id, active_break_id=None, break_ends_at=None)


def remaining_seconds(stats, now) -> int:
    if not stats.has_active_break(now):
        return 0
    return max(0, int((as_utc(stats.break_ends_at) - now).total_seconds()))
