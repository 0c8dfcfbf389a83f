from functools import wraps

from flask import Blueprint, Flask, current_app, jsonify, request, session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from accrual import AccrualError, coins_earned, fold_session, update_streak
from achievements import achievement_progress
from breaks import BreakError, InsufficientFunds, end_break, purchase_break, remaining_seconds, seed_breaks
from ledger import RewardLedger
from logging_setup import get_logger, setup_logger
from models import UserStats, db, utcnow
from settings import EXP_PER_LEVEL, flask_config
from validation import ValidationError, parse_credentials, parse_session, parse_stats_patch, parse_user_id

log = get_logger("app")

api = Blueprint("api", __name__, url_prefix="/api")


def create_app(config=None, ledger=None):
    """Build the Flask app.

    ``config`` overrides the defaults from settings.py. ``ledger`` replaces
    the SQLAlchemy-backed RewardLedger (handlers only talk to the ledger).
    """
    app = Flask(__name__)
    app.config.update(flask_config())
    app.config["CLOCK"] = utcnow
    if config:
        app.config.update(config)

    if not app.testing:
        setup_logger(app.config["LOG_FILE"], app.config["LOG_LEVEL"])

    db.init_app(app)
    app.extensions["reward_ledger"] = ledger or RewardLedger(db)
    app.register_blueprint(api)
    _register_error_handlers(app)

    with app.app_context():
        db.create_all()
        seed_breaks(app.extensions["reward_ledger"])

    return app


# ── Helpers ───────────────────────────────────────────────────────────────────

def current_ledger() -> RewardLedger:
    return current_app.extensions["reward_ledger"]


def now():
    return current_app.config["CLOCK"]()


def current_user():
    """Return the logged-in User object, or None."""
    uid = session.get("user_id")
    if uid is None:
        return None
    return current_ledger().get_user(uid)


def login_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        if current_user() is None:
            return jsonify({"message": "Authentication required"}), 401
        return f(*args, **kwargs)
    return decorated


class Forbidden(Exception):
    pass


class NotFound(Exception):
    pass


def owned_user_id(raw):
    """Parse a path userId and make sure it is the caller's own."""
    user_id = parse_user_id(raw)
    if current_ledger().get_user(user_id) is None:
        raise NotFound(f"User {user_id} not found")
    if user_id != current_user().id:
        raise Forbidden("You can only access your own data")
    return user_id


def get_or_create_stats(user_id):
    return current_ledger().get_or_create_stats(
        user_id, current_app.config["STARTING_CURRENCY"])


def _register_error_handlers(app):
    @app.errorhandler(ValidationError)
    def handle_validation(e):
        return jsonify(e.to_dict()), 400

    @app.errorhandler(AccrualError)
    def handle_accrual(e):
        return jsonify({"message": str(e), "errors": {}}), 400

    @app.errorhandler(BreakError)
    def handle_break(e):
        body = {"message": str(e)}
        if isinstance(e, InsufficientFunds):
            body["errors"] = {"currency": "insufficient"}
        return jsonify(body), e.status_code

    @app.errorhandler(NotFound)
    def handle_not_found(e):
        return jsonify({"message": str(e)}), 404

    @app.errorhandler(Forbidden)
    def handle_forbidden(e):
        return jsonify({"message": str(e)}), 403

    @app.errorhandler(SQLAlchemyError)
    def handle_db_error(e):
        db.session.rollback()
        log.exception("persistence failure on %s %s", request.method, request.path)
        return jsonify({"message": "Storage unavailable, please try again"}), 500


# ── Auth routes ───────────────────────────────────────────────────────────────

@api.route("/register", methods=["POST"])
def register():
    ledger = current_ledger()
    username, password = parse_credentials(request.get_json(silent=True))
    if ledger.get_user_by_username(username):
        raise ValidationError("That username is already taken.",
                              {"username": "already taken"})
    u = ledger.create_user(username, password)
    ledger.create_stats(u.id, currency=current_app.config["STARTING_CURRENCY"])
    ledger.commit()
    session.permanent = True
    session["user_id"] = u.id
    return jsonify(u.to_dict()), 201


@api.route("/login", methods=["POST"])
def login():
    username, password = parse_credentials(request.get_json(silent=True))
    user = current_ledger().get_user_by_username(username)
    if user and user.check_password(password):
        session.permanent = True
        session["user_id"] = user.id
        log.info("user %s logged in", user.id)
        return jsonify(user.to_dict())
    log.info("failed login for %r", username)
    return jsonify({"message": "Invalid username or password."}), 401


@api.route("/logout", methods=["POST"])
def logout():
    session.pop("user_id", None)
    return jsonify({"success": True})


@api.route("/user")
def me():
    user = current_user()
    if user is None:
        return jsonify({"message": "Not authenticated"}), 401
    return jsonify(user.to_dict())


# ── Breaks ────────────────────────────────────────────────────────────────────

@api.route("/breaks")
def list_breaks():
    return jsonify([b.to_dict() for b in current_ledger().list_breaks()])


@api.route("/breaks/<int:break_id>/purchase", methods=["POST"])
@login_required
def buy_break(break_id):
    ledger = current_ledger()
    user = current_user()
    moment = now()
    stats, option = purchase_break(ledger, user.id, break_id, moment,
                                   current_app.config["STARTING_CURRENCY"])
    ledger.commit()
    return jsonify({
        "stats": stats.to_dict(),
        "break": option.to_dict(),
        "remainingSeconds": remaining_seconds(stats, moment),
    })


@api.route("/breaks/end", methods=["POST"])
@login_required
def finish_break():
    ledger = current_ledger()
    user = current_user()
    get_or_create_stats(user.id)
    stats = end_break(ledger, user.id)
    ledger.commit()
    return jsonify(stats.to_dict())


# ── Stats ─────────────────────────────────────────────────────────────────────

@api.route("/stats/<user_id>")
@login_required
def get_stats(user_id):
    user_id = owned_user_id(user_id)
    stats = get_or_create_stats(user_id)
    current_ledger().commit()
    return jsonify(stats.to_dict())


@api.route("/stats/<user_id>", methods=["PATCH"])
@login_required
def patch_stats(user_id):
    ledger = current_ledger()
    user_id = owned_user_id(user_id)
    existing = ledger.get_stats(user_id)
    changes = parse_stats_patch(
        request.get_json(silent=True),
        UserStats.FIELDS,
        EXP_PER_LEVEL,
        current_level=existing.level if existing else 1,
        current_exp=existing.experience if existing else 0,
    )
    stats = ledger.update_stats(user_id, **changes)
    ledger.commit()
    return jsonify(stats.to_dict())


@api.route("/update-streak", methods=["POST"])
@login_required
def streak():
    ledger = current_ledger()
    user = current_user()
    stats = get_or_create_stats(user.id)
    result = update_streak(stats.streak_days, stats.last_study_date, now())
    if result.streak_updated:
        stats = ledger.update_stats(user.id, streak_days=result.streak_days,
                                    last_study_date=result.last_study_date)
        log.info("user %s streak now %d", user.id, result.streak_days)
    ledger.commit()
    return jsonify({"streakDays": stats.streak_days, "streakUpdated": result.streak_updated})


@api.route("/achievements/<user_id>")
@login_required
def achievements(user_id):
    user_id = owned_user_id(user_id)
    stats = get_or_create_stats(user_id)
    current_ledger().commit()
    return jsonify(achievement_progress(stats))


# ── Sessions ──────────────────────────────────────────────────────────────────

@api.route("/sessions/<user_id>")
@login_required
def list_sessions(user_id):
    user_id = owned_user_id(user_id)
    return jsonify([s.to_dict() for s in current_ledger().list_sessions(user_id)])


@api.route("/sessions", methods=["POST"])
@login_required
def create_session():
    ledger = current_ledger()
    data = parse_session(request.get_json(silent=True))
    if data["user_id"] != current_user().id:
        raise Forbidden("You can only record your own sessions")

    allowed = coins_earned(data["duration"], current_app.config["EARN_RATE"])
    if data["coins_earned"] > allowed:
        raise ValidationError("Invalid session data",
                              {"coinsEarned": f"must be <= {allowed} for this duration"})

    existing = ledger.find_session_by_key(data["user_id"], data["idempotency_key"])
    if existing is not None:
        return jsonify(existing.to_dict()), 200

    try:
        s = record_session(ledger, now(), data["user_id"], data["duration"],
                           data["coins_earned"], data["idempotency_key"])
    except IntegrityError:
        # same idempotency key committed by a concurrent request
        ledger.rollback()
        existing = ledger.find_session_by_key(data["user_id"], data["idempotency_key"])
        if existing is None:
            raise
        return jsonify(existing.to_dict()), 200
    return jsonify(s.to_dict()), 201


def record_session(ledger, moment, user_id, duration, coins, idempotency_key=None):
    """Append a session and fold it into the user's stats in one transaction."""
    s = ledger.create_session(user_id, duration, coins, idempotency_key, timestamp=moment)
    stats = ledger.get_or_create_stats(user_id, current_app.config["STARTING_CURRENCY"])
    ledger.update_stats(user_id, **fold_session(stats, duration, coins, moment))
    ledger.commit()
    log.info("user %s studied %ds, +%d coins (session %s)",
             user_id, duration, coins, s.id)
    return s


if __name__ == "__main__":
    create_app().run(debug=True)
