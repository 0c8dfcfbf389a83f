import os
from datetime import timedelta

basedir = os.path.abspath(os.path.dirname(__file__))

APP_TITLE = "Study Rewards"

SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-in-production")
DATABASE_URL = os.environ.get(
    "DATABASE_URL",
    "sqlite:///" + os.path.join(basedir, "study_rewards.db"),
)

LOG_DIR = os.environ.get("LOG_DIR", os.path.join(basedir, "logs"))
LOG_FILE = os.path.join(LOG_DIR, "study_rewards.log")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

# Game economy
EARN_RATE = int(os.environ.get("EARN_RATE", 10))  # coins per completed minute
STARTING_CURRENCY = int(os.environ.get("STARTING_CURRENCY", 100))
EXP_PER_LEVEL = 1000  # level N needs N * EXP_PER_LEVEL experience

# Achievements
FIRST_HOUR_SECONDS = 3600
CONSISTENCY_DAYS = 5
SAVER_GOAL = 500

# Client side
API_BASE_URL = os.environ.get("API_BASE_URL", "http://127.0.0.1:5000")
API_TIMEOUT_SEC = float(os.environ.get("API_TIMEOUT_SEC", 10))
TICK_INTERVAL_SEC = 0.1

SESSION_LIFETIME = timedelta(days=30)


def flask_config() -> dict:
    """Default Flask config mapping built from the module constants."""
    return {
        "SECRET_KEY": SECRET_KEY,
        "SQLALCHEMY_DATABASE_URI": DATABASE_URL,
        "SQLALCHEMY_TRACK_MODIFICATIONS": False,
        "PERMANENT_SESSION_LIFETIME": SESSION_LIFETIME,
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": os.environ.get("FLASK_ENV") == "production",
        "EARN_RATE": EARN_RATE,
        "STARTING_CURRENCY": STARTING_CURRENCY,
        "LOG_FILE": LOG_FILE,
        "LOG_LEVEL": LOG_LEVEL,
    }
