from settings import CONSISTENCY_DAYS, FIRST_HOUR_SECONDS, SAVER_GOAL


def _pct(value, goal):
    return min(100, (max(0, value) * 100) // goal)


def achievement_progress(stats):
    """Progress toward each achievement for a UserStats row."""
    return [
        {
            "key": "first_hour",
            "title": "First Hour",
            "description": "Complete 1 hour of total study time",
            "progress": _pct(stats.total_study_time, FIRST_HOUR_SECONDS),
            "unlocked": stats.total_study_time >= FIRST_HOUR_SECONDS,
        },
        {
            "key": "consistency",
            "title": "Consistency",
            "description": f"Study for {CONSISTENCY_DAYS} days in a row",
            "progress": _pct(stats.streak_days, CONSISTENCY_DAYS),
            "unlocked": stats.streak_days >= CONSISTENCY_DAYS,
        },
        {
            "key": "saver",
            "title": "Saver",
            "description": f"Save up {SAVER_GOAL} coins",
            "progress": _pct(stats.currency, SAVER_GOAL),
            "unlocked": stats.currency >= SAVER_GOAL,
        },
    ]
