"""create accounts, login_attempts and audit_logs tables

Revision ID: a4f1c2d3e5b6
Revises:
Create Date: 2026-02-02 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a4f1c2d3e5b6"
down_revision = None
branch_labels = None
depends_on = None


account_role = sa.Enum("user", "admin", name="account_role")
lockout_stage = sa.Enum("OPEN", "TEMPORARY", "PERMANENT", name="lockout_stage")
login_attempt_reason = sa.Enum(
    "invalid-credentials",
    "temporary-locked",
    "permanent-locked",
    "email-not-verified",
    "session-active",
    "password-accepted",
    "mfa-required",
    name="login_attempt_reason",
)


def upgrade():
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", account_role, nullable=False),
        sa.Column("full_name", sa.String(length=120), nullable=True),
        sa.Column("phone_number", sa.String(length=30), nullable=True),
        sa.Column("is_verified", sa.Boolean(), nullable=False),
        sa.Column("failed_login_attempts", sa.Integer(), nullable=False),
        sa.Column("lockout_stage", lockout_stage, nullable=False),
        sa.Column("temporary_lock_until", sa.DateTime(), nullable=True),
        sa.Column("permanently_locked", sa.Boolean(), nullable=False),
        sa.Column("mfa_code_hash", sa.String(length=128), nullable=True),
        sa.Column("mfa_expiry", sa.DateTime(), nullable=True),
        sa.Column("last_mfa_verified_at", sa.DateTime(), nullable=True),
        sa.Column("active_session_token_hash", sa.String(length=128), nullable=True),
        sa.Column("active_device", sa.String(length=255), nullable=True),
        sa.Column("session_created_at", sa.DateTime(), nullable=True),
        sa.Column("reset_token_hash", sa.String(length=128), nullable=True),
        sa.Column("reset_token_expiry", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("password_changed_at", sa.DateTime(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.CheckConstraint("failed_login_attempts >= 0", name="ck_accounts_failed_attempts_non_negative"),
        sa.CheckConstraint(
            "NOT permanently_locked OR lockout_stage = 'PERMANENT'",
            name="ck_accounts_permanent_lock_stage",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("accounts", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_accounts_email"), ["email"], unique=True)
        batch_op.create_index(batch_op.f("ix_accounts_active_session_token_hash"), ["active_session_token_hash"], unique=False)
        batch_op.create_index(batch_op.f("ix_accounts_reset_token_hash"), ["reset_token_hash"], unique=True)

    op.create_table(
        "login_attempts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=True),
        sa.Column("ip", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=255), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("reason", login_attempt_reason, nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("login_attempts", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_login_attempts_email"), ["email"], unique=False)
        batch_op.create_index(batch_op.f("ix_login_attempts_account_id"), ["account_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_login_attempts_ip"), ["ip"], unique=False)
        batch_op.create_index(batch_op.f("ix_login_attempts_created_at"), ["created_at"], unique=False)

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("entity", sa.String(length=80), nullable=True),
        sa.Column("entity_id", sa.String(length=80), nullable=True),
        sa.Column("ip", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=255), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("audit_logs", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_audit_logs_account_id"), ["account_id"], unique=False)


def downgrade():
    with op.batch_alter_table("audit_logs", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_audit_logs_account_id"))
    op.drop_table("audit_logs")

    with op.batch_alter_table("login_attempts", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_login_attempts_created_at"))
        batch_op.drop_index(batch_op.f("ix_login_attempts_ip"))
        batch_op.drop_index(batch_op.f("ix_login_attempts_account_id"))
        batch_op.drop_index(batch_op.f("ix_login_attempts_email"))
    op.drop_table("login_attempts")

    with op.batch_alter_table("accounts", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_accounts_reset_token_hash"))
        batch_op.drop_index(batch_op.f("ix_accounts_active_session_token_hash"))
        batch_op.drop_index(batch_op.f("ix_accounts_email"))
    op.drop_table("accounts")

    login_attempt_reason.drop(op.get_bind(), checkfirst=True)
    lockout_stage.drop(op.get_bind(), checkfirst=True)
    account_role.drop(op.get_bind(), checkfirst=True)
