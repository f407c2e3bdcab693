import enum
from datetime import datetime

from models.db import db


class Role(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class LockoutStage(enum.IntEnum):
    OPEN = 0
    TEMPORARY = 1
    PERMANENT = 2


class Account(db.Model):
    __tablename__ = "accounts"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(
        db.Enum(Role, name="account_role", values_callable=lambda e: [m.value for m in e]),
        default=Role.USER,
        nullable=False,
    )
    full_name = db.Column(db.String(120), nullable=True)
    phone_number = db.Column(db.String(30), nullable=True)
    is_verified = db.Column(db.Boolean, default=False, nullable=False)

    # progressive lockout
    failed_login_attempts = db.Column(db.Integer, default=0, nullable=False)
    lockout_stage = db.Column(db.Enum(LockoutStage, name="lockout_stage"), default=LockoutStage.OPEN, nullable=False)
    temporary_lock_until = db.Column(db.DateTime, nullable=True)
    permanently_locked = db.Column(db.Boolean, default=False, nullable=False)

    # outstanding MFA challenge (hash only) + trust window start
    mfa_code_hash = db.Column(db.String(128), nullable=True)
    mfa_expiry = db.Column(db.DateTime, nullable=True)
    last_mfa_verified_at = db.Column(db.DateTime, nullable=True)

    # single live session (hash only)
    active_session_token_hash = db.Column(db.String(128), nullable=True, index=True)
    active_device = db.Column(db.String(255), nullable=True)
    session_created_at = db.Column(db.DateTime, nullable=True)

    # password reset (hash only)
    reset_token_hash = db.Column(db.String(128), nullable=True, unique=True, index=True)
    reset_token_expiry = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    password_changed_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    # every UPDATE is conditioned on the version read (optimistic concurrency)
    version = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        db.CheckConstraint("failed_login_attempts >= 0", name="ck_accounts_failed_attempts_non_negative"),
        db.CheckConstraint(
            "NOT permanently_locked OR lockout_stage = 'PERMANENT'",
            name="ck_accounts_permanent_lock_stage",
        ),
    )

    @property
    def has_session(self) -> bool:
        return self.active_session_token_hash is not None

    def __repr__(self):
        return f"<Account {self.id} {self.email}>"
