"""Reward arithmetic: coins, experience/levels and streaks.

Everything here is pure. Callers pass the current time in so the
functions stay deterministic.
"""
from dataclasses import dataclass
from datetime import date, datetime, timezone

from settings import EARN_RATE, EXP_PER_LEVEL

SECONDS_PER_MINUTE = 60


class AccrualError(ValueError):
    """Raised for out-of-range input (negative durations, levels below 1)."""


@dataclass
class StreakResult:
    streak_days: int
    streak_updated: bool
    last_study_date: datetime | None


def utc_day(moment) -> date | None:
    """Calendar day of ``moment`` in UTC. Naive datetimes are taken as UTC."""
    if moment is None:
        return None
    if moment.tzinfo is None:
        return moment.date()
    return moment.astimezone(timezone.utc).date()


def coins_earned(duration: int, earn_rate: int = EARN_RATE) -> int:
    """Coins for ``duration`` seconds: one ``earn_rate`` per completed minute."""
    if duration < 0:
        raise AccrualError("duration must be >= 0")
    if earn_rate < 0:
        raise AccrualError("earn_rate must be >= 0")
    return (int(duration) // SECONDS_PER_MINUTE) * earn_rate


def experience_for(duration: int) -> int:
    # 1 exp per second studied
    return int(duration)


def level_up(level: int, experience: int, gained: int) -> tuple[int, int]:
    """Apply ``gained`` experience and roll over levels.

    Level N needs ``N * EXP_PER_LEVEL`` experience to reach N + 1; the
    leftover carries into the next level.
    """
    if level < 1:
        raise AccrualError("level must be >= 1")
    if experience < 0 or gained < 0:
        raise AccrualError("experience must be >= 0")
    total = experience + gained
    while total >= level * EXP_PER_LEVEL:
        total -= level * EXP_PER_LEVEL
        level += 1
    return level, total


def update_streak(streak_days: int, last_study_date, now: datetime) -> StreakResult:
    """Compare UTC calendar days of ``now`` and ``last_study_date``.

    Same day: unchanged. Next day: +1. Two or more days later: back to 1.
    A user with no recorded study day starts a streak of 1.
    """
    today = utc_day(now)
    last_day = utc_day(last_study_date)

    if last_day is None:
        return StreakResult(1, True, now)

    gap = (today - last_day).days
    if gap == 1:
        return StreakResult(streak_days + 1, True, now)
    if gap > 1:
        return StreakResult(1, True, now)
    # same day, or clock behind the stored date
    return StreakResult(streak_days, False, last_study_date)


def fold_session(stats, duration: int, coins: int, now: datetime) -> dict:
    """Partial stats update that credits one finished session.

    ``stats`` is anything with the UserStats attributes. todayStudyTime
    restarts when the session lands on a different UTC day.
    """
    if duration < 0:
        raise AccrualError("duration must be >= 0")
    if coins < 0:
        raise AccrualError("coinsEarned must be >= 0")

    today = utc_day(now)
    today_time = stats.today_study_time or 0
    if stats.today_date != today:
        today_time = 0

    level, experience = level_up(stats.level or 1, stats.experience or 0,
                                 experience_for(duration))
    return {
        "total_study_time": (stats.total_study_time or 0) + duration,
        "today_study_time": today_time + duration,
        "today_date": today,
        "total_sessions": (stats.total_sessions or 0) + 1,
        "currency": (stats.currency or 0) + coins,
        "level": level,
        "experience": experience,
    }
