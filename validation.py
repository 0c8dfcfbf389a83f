"""Request payload checks that report every bad field at once."""

# signed 32-bit column range
MAX_INT = 2**31 - 1
MAX_SESSION_SECONDS = 24 * 60 * 60


class ValidationError(Exception):
    def __init__(self, message, errors=None):
        super().__init__(message)
        self.message = message
        self.errors = errors or {}

    def to_dict(self):
        return {"message": self.message, "errors": self.errors}


def _int_field(data, key, errors, required=True, minimum=0, maximum=MAX_INT):
    if key not in data or data[key] is None:
        if required:
            errors[key] = "required"
        return None
    value = data[key]
    # bool is an int subclass; "true" is not a duration
    if isinstance(value, bool) or not isinstance(value, int):
        errors[key] = "must be an integer"
        return None
    if minimum is not None and value < minimum:
        errors[key] = f"must be >= {minimum}"
        return None
    if maximum is not None and value > maximum:
        errors[key] = f"must be <= {maximum}"
        return None
    return value


def parse_user_id(raw):
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError("Invalid user ID", {"userId": "must be an integer"})


def require_json(payload):
    if not isinstance(payload, dict):
        raise ValidationError("Expected a JSON object", {"body": "must be a JSON object"})
    return payload


def parse_session(payload):
    """Validate a POST /sessions body -> dict(user_id, duration, coins_earned, idempotency_key)."""
    data = require_json(payload)
    errors = {}
    user_id = _int_field(data, "userId", errors, minimum=1)
    duration = _int_field(data, "duration", errors, maximum=MAX_SESSION_SECONDS)
    coins = _int_field(data, "coinsEarned", errors)

    key = data.get("idempotencyKey")
    if key is not None and (not isinstance(key, str) or not key or len(key) > 64):
        errors["idempotencyKey"] = "must be a string of 1-64 characters"

    if errors:
        raise ValidationError("Invalid session data", errors)
    return {"user_id": user_id, "duration": duration, "coins_earned": coins,
            "idempotency_key": key}


_INT_STATS = ("currency", "totalStudyTime", "todayStudyTime", "totalSessions",
              "breaksTaken", "streakDays", "level", "experience")


def parse_stats_patch(payload, fields, exp_per_level, current_level=1, current_exp=0):
    """Validate a partial stats body. ``fields`` maps API names to column names.

    Returns ``{column: value}``. Unknown keys are rejected, as is any
    level/experience pair that breaks ``0 <= experience < level * exp_per_level``.
    """
    data = require_json(payload)
    errors = {}
    out = {}
    for key in data:
        if key not in fields:
            errors[key] = "unknown field"

    for key in _INT_STATS:
        if key in data:
            minimum = 1 if key == "level" else 0
            value = _int_field(data, key, errors, minimum=minimum)
            if value is not None:
                out[fields[key]] = value

    if "lastStudyDate" in data:
        errors["lastStudyDate"] = "read-only; use update-streak"

    if not errors:
        level = out.get("level", current_level)
        exp = out.get("experience", current_exp)
        if exp >= level * exp_per_level:
            errors["experience"] = f"must be < {level * exp_per_level} at level {level}"

    if errors:
        raise ValidationError("Invalid stats data", errors)
    return out


def parse_credentials(payload):
    data = require_json(payload)
    errors = {}
    username = data.get("username")
    password = data.get("password")
    if not isinstance(username, str) or not username.strip():
        errors["username"] = "required"
    elif len(username.strip()) > 80:
        errors["username"] = "must be at most 80 characters"
    if not isinstance(password, str) or not password:
        errors["password"] = "required"
    if errors:
        raise ValidationError("Username and password are required.", errors)
    return username.strip(), password
