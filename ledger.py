"""Persistence of users, study sessions, stats and the break catalog.

The ledger never applies reward rules on its own. Whoever appends a
session is responsible for folding it into the stats row (see
``record_session`` in app.py).
"""
from sqlalchemy import update

from logging_setup import get_logger
from models import BreakOption, StudySession, User, UserStats, utcnow

log = get_logger("ledger")

STATS_DEFAULTS = {
    "currency": 0,
    "total_study_time": 0,
    "today_study_time": 0,
    "total_sessions": 0,
    "breaks_taken": 0,
    "streak_days": 0,
    "level": 1,
    "experience": 0,
}


class StatsExistError(Exception):
    """A stats row already exists for this user."""


class RewardLedger:
    def __init__(self, db):
        self.db = db

    @property
    def session(self):
        return self.db.session

    def commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()

    # ── Users ─────────────────────────────────────────────────────────────

    def get_user(self, user_id):
        return self.session.get(User, user_id)

    def get_user_by_username(self, username):
        return User.query.filter_by(username=username).first()

    def create_user(self, username, password):
        u = User(username=username)
        u.set_password(password)
        self.session.add(u)
        self.session.flush()
        log.info("created user %s (id=%s)", username, u.id)
        return u

    # ── Stats ─────────────────────────────────────────────────────────────

    def get_stats(self, user_id):
        return UserStats.query.filter_by(user_id=user_id).first()

    def create_stats(self, user_id, **initial):
        """Insert the stats row for ``user_id``. Refuses to overwrite."""
        if self.get_stats(user_id) is not None:
            raise StatsExistError(f"stats for user {user_id} already exist")
        values = dict(STATS_DEFAULTS)
        values.update(initial)
        stats = UserStats(user_id=user_id, **values)
        self.session.add(stats)
        self.session.flush()
        return stats

    def get_or_create_stats(self, user_id, starting_currency=0):
        stats = self.get_stats(user_id)
        if stats is None:
            stats = self.create_stats(user_id, currency=starting_currency)
            log.info("created default stats for user %s", user_id)
        return stats

    def update_stats(self, user_id, **partial):
        """Merge ``partial`` into the user's row, creating a zeroed row first if needed."""
        stats = self.get_stats(user_id)
        if stats is None:
            stats = self.create_stats(user_id)
        for attr, value in partial.items():
            if not hasattr(UserStats, attr):
                raise AttributeError(f"unknown stats field {attr!r}")
            setattr(stats, attr, value)
        self.session.flush()
        return stats

    def reload_stats(self, user_id):
        """Fetch the stats row and re-read it from the database."""
        stats = self.get_stats(user_id)
        if stats is not None:
            self.session.refresh(stats)
        return stats

    def debit(self, user_id, cost, conditions=(), **changes):
        """Subtract ``cost`` only while the balance covers it.

        ``conditions`` are extra WHERE clauses that must also hold. Returns
        False (and changes nothing) when any check fails. Runs as a single
        conditional UPDATE so overlapping purchases cannot overdraw.
        """
        values = {"currency": UserStats.currency - cost}
        values.update(changes)
        result = self.session.execute(
            update(UserStats)
            .where(UserStats.user_id == user_id, UserStats.currency >= cost, *conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        self.reload_stats(user_id)
        return True

    # ── Sessions ──────────────────────────────────────────────────────────

    def list_sessions(self, user_id):
        return (StudySession.query
                .filter_by(user_id=user_id)
                .order_by(StudySession.timestamp.desc(), StudySession.id.desc())
                .all())

    def find_session_by_key(self, user_id, idempotency_key):
        if not idempotency_key:
            return None
        return StudySession.query.filter_by(user_id=user_id,
                                            idempotency_key=idempotency_key).first()

    def create_session(self, user_id, duration, coins_earned, idempotency_key=None, timestamp=None):
        s = StudySession(user_id=user_id, duration=duration, coins_earned=coins_earned,
                         idempotency_key=idempotency_key or None,
                         timestamp=timestamp or utcnow())
        self.session.add(s)
        self.session.flush()  # assigns PK without full commit
        return s

    # ── Break catalog ─────────────────────────────────────────────────────

    def list_breaks(self):
        return BreakOption.query.order_by(BreakOption.id.asc()).all()

    def get_break(self, break_id):
        return self.session.get(BreakOption, break_id)

    def create_break(self, name, description, duration, cost):
        b = BreakOption(name=name, description=description, duration=duration, cost=cost)
        self.session.add(b)
        self.session.flush()
        return b
