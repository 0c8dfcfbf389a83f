from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy
from werkzeug.security import check_password_hash, generate_password_hash

db = SQLAlchemy()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value):
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _iso(value):
    value = as_utc(value)
    return value.isoformat().replace("+00:00", "Z") if value else None


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    sessions = db.relationship("StudySession", backref="user", lazy=True,
                               cascade="all, delete-orphan")
    stats = db.relationship("UserStats", backref="user", uselist=False,
                            cascade="all, delete-orphan")

    def set_password(self, plaintext: str):
        self.password_hash = generate_password_hash(plaintext)

    def check_password(self, plaintext: str) -> bool:
        return check_password_hash(self.password_hash, plaintext)

    def to_dict(self):
        # never include the password hash
        return {
            "id": self.id,
            "username": self.username,
            "createdAt": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<User {self.username}>"


class StudySession(db.Model):
    __tablename__ = "study_sessions"
    __table_args__ = (
        db.UniqueConstraint("user_id", "idempotency_key", name="uq_session_user_key"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
                        nullable=False, index=True)
    duration = db.Column(db.Integer, nullable=False)  # seconds
    coins_earned = db.Column(db.Integer, nullable=False, default=0)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    idempotency_key = db.Column(db.String(64), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "duration": self.duration,
            "coinsEarned": self.coins_earned,
            "timestamp": _iso(self.timestamp),
        }

    def __repr__(self):
        return f"<StudySession {self.timestamp} {self.duration}s +{self.coins_earned}>"


class UserStats(db.Model):
    __tablename__ = "user_stats"
    __table_args__ = (
        db.CheckConstraint("currency >= 0", name="ck_stats_currency"),
        db.CheckConstraint("level >= 1", name="ck_stats_level"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
                        unique=True, nullable=False)
    currency = db.Column(db.Integer, default=0, nullable=False)
    total_study_time = db.Column(db.Integer, default=0, nullable=False)  # seconds
    today_study_time = db.Column(db.Integer, default=0, nullable=False)  # seconds
    today_date = db.Column(db.Date, nullable=True)  # UTC day today_study_time refers to
    total_sessions = db.Column(db.Integer, default=0, nullable=False)
    breaks_taken = db.Column(db.Integer, default=0, nullable=False)
    streak_days = db.Column(db.Integer, default=0, nullable=False)
    last_study_date = db.Column(db.DateTime(timezone=True), nullable=True)
    level = db.Column(db.Integer, default=1, nullable=False)
    experience = db.Column(db.Integer, default=0, nullable=False)

    active_break_id = db.Column(db.Integer, db.ForeignKey("breaks.id", ondelete="SET NULL"),
                                nullable=True)
    break_ends_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # camelCase API name -> column attribute
    FIELDS = {
        "currency": "currency",
        "totalStudyTime": "total_study_time",
        "todayStudyTime": "today_study_time",
        "totalSessions": "total_sessions",
        "breaksTaken": "breaks_taken",
        "streakDays": "streak_days",
        "lastStudyDate": "last_study_date",
        "level": "level",
        "experience": "experience",
    }

    def has_active_break(self, now) -> bool:
        return self.active_break_id is not None and as_utc(self.break_ends_at) > now

    def to_dict(self):
        data = {"id": self.id, "userId": self.user_id}
        for key, attr in self.FIELDS.items():
            data[key] = getattr(self, attr)
        data["lastStudyDate"] = _iso(self.last_study_date)
        data["activeBreakId"] = self.active_break_id
        data["breakEndsAt"] = _iso(self.break_ends_at)
        return data

    def __repr__(self):
        return f"<UserStats user={self.user_id} coins={self.currency} streak={self.streak_days}>"


class BreakOption(db.Model):
    __tablename__ = "breaks"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(80), nullable=False)
    description = db.Column(db.String(255), nullable=False)
    duration = db.Column(db.Integer, nullable=False)  # minutes
    cost = db.Column(db.Integer, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "duration": self.duration,
            "cost": self.cost,
        }

    def __repr__(self):
        return f"<BreakOption {self.name} {self.cost}>"
