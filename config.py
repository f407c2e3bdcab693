import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to this file as futsalslot.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "futsalslot.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Signed tokens (session bearer tokens + email verification links)
    JWT_ALGORITHM = "HS256"
    SESSION_TOKEN_TTL_SECONDS = int(os.getenv("SESSION_TOKEN_TTL_SECONDS", "3600"))   # 1 hour
    VERIFY_TOKEN_TTL_SECONDS = int(os.getenv("VERIFY_TOKEN_TTL_SECONDS", "3600"))     # 1 hour

    # Progressive lockout: 3 failures -> 5 minute lock -> 3 more failures -> permanent
    MAX_LOGIN_ATTEMPTS = int(os.getenv("MAX_LOGIN_ATTEMPTS", "3"))
    LOCKOUT_MINUTES = int(os.getenv("LOCKOUT_MINUTES", "5"))

    # Email MFA
    MFA_CODE_LENGTH = 6
    MFA_CODE_TTL_HOURS = int(os.getenv("MFA_CODE_TTL_HOURS", "72"))
    MFA_TRUST_WINDOW_HOURS = int(os.getenv("MFA_TRUST_WINDOW_HOURS", "72"))

    # Password reset
    RESET_TOKEN_TTL_MINUTES = int(os.getenv("RESET_TOKEN_TTL_MINUTES", "15"))

    # Password hashing + policy
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
    PASSWORD_MIN_LEN = int(os.getenv("PASSWORD_MIN_LEN", "8"))
    PASSWORD_MAX_LEN = 128
    PASSWORD_REQUIRE_UPPER = _env_bool("PASSWORD_REQUIRE_UPPER", "false")
    PASSWORD_REQUIRE_LOWER = _env_bool("PASSWORD_REQUIRE_LOWER", "false")
    PASSWORD_REQUIRE_DIGIT = _env_bool("PASSWORD_REQUIRE_DIGIT", "true")
    PASSWORD_REQUIRE_SYMBOL = _env_bool("PASSWORD_REQUIRE_SYMBOL", "false")

    # Lost optimistic-concurrency races are re-run this many times
    STORE_MAX_RETRIES = int(os.getenv("STORE_MAX_RETRIES", "3"))

    # Links placed in outgoing emails
    BACKEND_URL = os.getenv("BACKEND_URL", "http://127.0.0.1:5002")
    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://127.0.0.1:5173")

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = _env_bool("SMTP_USE_TLS", "true")
    # log outgoing mail instead of sending it (local development)
    MAIL_SUPPRESS_SEND = _env_bool("MAIL_SUPPRESS_SEND", "false")

    # Basic app settings
    DEBUG = False
