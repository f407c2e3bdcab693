import enum
from datetime import datetime
from models.db import db


class AttemptReason(str, enum.Enum):
    INVALID_CREDENTIALS = "invalid-credentials"
    TEMPORARY_LOCKED = "temporary-locked"
    PERMANENT_LOCKED = "permanent-locked"
    EMAIL_NOT_VERIFIED = "email-not-verified"
    SESSION_ACTIVE = "session-active"
    PASSWORD_ACCEPTED = "password-accepted"
    MFA_REQUIRED = "mfa-required"


class LoginAttempt(db.Model):
    """One row per login call, successful or not."""

    __tablename__ = "login_attempts"

    id = db.Column(db.Integer, primary_key=True)

    # email is kept even when no account matches it
    email = db.Column(db.String(255), nullable=False, index=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True, index=True)
    ip = db.Column(db.String(64), nullable=True, index=True)
    user_agent = db.Column(db.String(255), nullable=True)

    success = db.Column(db.Boolean, nullable=False)
    reason = db.Column(
        db.Enum(AttemptReason, name="login_attempt_reason", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
