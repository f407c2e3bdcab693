"""End-to-end behaviour of the access-control facade against a real SQLite store."""
from datetime import timedelta

import pytest

from models import db
from models.account import Account, LockoutStage, Role
from models.audit_log import AuditLog
from models.login_attempt import AttemptReason, LoginAttempt
from security.access import RESET_REQUESTED_MESSAGE, VERIFICATION_RESENT_MESSAGE
from security.errors import (
    AccountNotFound,
    AlreadyVerified,
    CodeExpired,
    DeliveryFailed,
    DuplicateEmail,
    EmailNotVerified,
    Forbidden,
    InvalidCode,
    InvalidCredentials,
    InvalidOrExpiredToken,
    PermanentlyLocked,
    SessionAlreadyActive,
    TemporarilyLocked,
    ValidationError,
)
from security.password import verify_password

from conftest import EMAIL, PASSWORD, START, login_with_mfa, register_verified, reload


def wrong_code(code):
    return "000000" if code != "000000" else "111111"


def fail_login(access, times, password="wrong"):
    error = None
    for _ in range(times):
        with pytest.raises((InvalidCredentials, TemporarilyLocked, PermanentlyLocked)) as exc:
            access.login(EMAIL, password, "Laptop")
        error = exc.value
    return error


def actions():
    return [row.action for row in AuditLog.query.order_by(AuditLog.id).all()]


# --- registration ---

def test_register_creates_unverified_account_and_sends_link(access, notifier):
    account = access.register(" A@X.com ", PASSWORD, {"full_name": " Ada ", "phone_number": None})

    assert account.email == EMAIL
    assert account.role is Role.USER
    assert not account.is_verified
    assert account.full_name == "Ada"
    assert account.lockout_stage is LockoutStage.OPEN
    assert verify_password(PASSWORD, account.password_hash)
    assert [kind for kind, _, _ in notifier.sent] == ["verify"]
    assert "REGISTER_SUCCESS" in actions()


def test_register_rejects_taken_email_in_any_case(access):
    access.register(EMAIL, PASSWORD)

    with pytest.raises(DuplicateEmail):
        access.register("A@X.COM", PASSWORD)
    assert Account.query.count() == 1


@pytest.mark.parametrize(
    "email, password, profile, field",
    [
        ("not-an-email", PASSWORD, {}, "email"),
        (EMAIL, "a", {}, "password"),
        (EMAIL, None, {}, "password"),
        (EMAIL, "a1" * 50, {}, "password"),
        (EMAIL, "é" * 40, {}, "password"),
        (EMAIL, PASSWORD, {"full_name": "x" * 121}, "full_name"),
        (EMAIL, PASSWORD, {"phone_number": 98000}, "phone_number"),
    ],
)
def test_register_validates_input(access, email, password, profile, field):
    with pytest.raises(ValidationError) as exc:
        access.register(email, password, profile)
    assert exc.value.field == field
    assert Account.query.count() == 0


def test_register_survives_mail_failure(access, notifier):
    notifier.fail = True
    account = access.register(EMAIL, PASSWORD)

    assert reload(account.id) is not None
    assert not reload(account.id).is_verified


# --- email verification ---

def test_verify_email_marks_account_verified(access, notifier):
    account = access.register(EMAIL, PASSWORD)
    access.verify_email(notifier.last("verify"))

    assert reload(account.id).is_verified
    assert "EMAIL_VERIFIED" in actions()


def test_verify_email_twice_reports_already_verified(access, notifier):
    access.register(EMAIL, PASSWORD)
    token = notifier.last("verify")
    access.verify_email(token)

    with pytest.raises(AlreadyVerified):
        access.verify_email(token)


def test_verify_email_rejects_garbage(access):
    with pytest.raises(InvalidOrExpiredToken):
        access.verify_email("definitely-not-a-jwt")


def test_verify_link_expires_after_an_hour(access, notifier, clock):
    account = access.register(EMAIL, PASSWORD)
    clock.advance(minutes=61)

    with pytest.raises(InvalidOrExpiredToken):
        access.verify_email(notifier.last("verify"))
    assert not reload(account.id).is_verified


def test_verify_link_of_deleted_account(access, notifier):
    account = access.register(EMAIL, PASSWORD)
    db.session.delete(account)
    db.session.commit()

    with pytest.raises(AccountNotFound):
        access.verify_email(notifier.last("verify"))


def test_resend_verification_issues_a_new_link(access, notifier):
    notifier.fail = True
    account = access.register(EMAIL, PASSWORD)
    notifier.fail = False

    assert access.resend_verification(EMAIL) == VERIFICATION_RESENT_MESSAGE
    access.verify_email(notifier.last("verify"))
    assert reload(account.id).is_verified


def test_resend_verification_is_silent_for_unknown_and_verified(access, notifier):
    register_verified(access, notifier)
    sent = len(notifier.sent)

    assert access.resend_verification(EMAIL) == VERIFICATION_RESENT_MESSAGE
    assert access.resend_verification("nobody@x.com") == VERIFICATION_RESENT_MESSAGE
    assert len(notifier.sent) == sent


# --- login ---

def test_login_requires_credentials(access):
    with pytest.raises(ValidationError) as exc:
        access.login(EMAIL, "", "Laptop")
    assert exc.value.field == "credentials"


def test_unknown_email_looks_like_a_wrong_password(access):
    with pytest.raises(InvalidCredentials) as exc:
        access.login("nobody@x.com", PASSWORD, "Laptop")

    assert exc.value.remaining_attempts == 2
    attempt = LoginAttempt.query.one()
    assert attempt.account_id is None
    assert attempt.reason is AttemptReason.INVALID_CREDENTIALS


def test_unverified_account_cannot_log_in(access):
    access.register(EMAIL, PASSWORD)

    with pytest.raises(EmailNotVerified):
        access.login(EMAIL, PASSWORD, "Laptop")


def test_wrong_password_on_unverified_account_still_counts(access):
    account = access.register(EMAIL, PASSWORD)

    with pytest.raises(InvalidCredentials):
        access.login(EMAIL, "wrong", "Laptop")
    assert reload(account.id).failed_login_attempts == 1


def test_first_login_then_second_device_then_trusted_login(access, notifier, clock):
    register_verified(access, notifier)

    result = access.login(EMAIL, PASSWORD, "Laptop")
    assert result.mfa_required and result.token is None
    assert notifier.sent[-1][0] == "mfa"

    clock.advance(minutes=2)
    token = access.verify_mfa(result.account_id, notifier.last("mfa"), "Laptop")
    assert access.authenticate(token).id == result.account_id

    with pytest.raises(SessionAlreadyActive) as exc:
        access.login(EMAIL, PASSWORD, "Phone")
    assert exc.value.active_device == "Laptop"

    access.logout(result.account_id, token)
    clock.advance(hours=1)

    mfa_codes = len(notifier.of_kind("mfa"))
    again = access.login(EMAIL, PASSWORD, "Phone")
    assert not again.mfa_required
    assert again.token
    assert len(notifier.of_kind("mfa")) == mfa_codes
    assert reload(result.account_id).active_device == "Phone"


def test_trust_window_ends_at_seventy_two_hours(access, notifier, clock):
    register_verified(access, notifier)
    account_id, token = login_with_mfa(access, notifier)
    access.logout(account_id, token)

    clock.set(START + timedelta(hours=72) - timedelta(seconds=1))
    trusted = access.login(EMAIL, PASSWORD, "Laptop")
    assert not trusted.mfa_required
    access.logout(account_id, trusted.token)

    clock.set(START + timedelta(hours=72))
    assert access.login(EMAIL, PASSWORD, "Laptop").mfa_required


def test_correct_password_clears_failure_count(access, notifier):
    account = register_verified(access, notifier)
    fail_login(access, 2)

    access.login(EMAIL, PASSWORD, "Laptop")
    assert reload(account.id).failed_login_attempts == 0


# --- progressive lockout ---

def test_lockout_escalates_to_permanent_and_reset_recovers(access, notifier, clock):
    account = register_verified(access, notifier)

    assert fail_login(access, 1).remaining_attempts == 2
    assert fail_login(access, 1).remaining_attempts == 1
    locked = fail_login(access, 1)
    assert isinstance(locked, TemporarilyLocked)
    assert locked.remaining_minutes == 5

    # attempts during the lock change nothing, even with the right password
    clock.advance(minutes=2)
    during = fail_login(access, 1, password=PASSWORD)
    assert isinstance(during, TemporarilyLocked)
    assert during.remaining_minutes == 3
    assert reload(account.id).failed_login_attempts == 3

    clock.set(START + timedelta(minutes=6))
    second_chance = fail_login(access, 1)
    assert isinstance(second_chance, InvalidCredentials)
    assert second_chance.remaining_attempts == 2
    assert reload(account.id).lockout_stage is LockoutStage.TEMPORARY

    assert fail_login(access, 1).remaining_attempts == 1
    assert isinstance(fail_login(access, 1), PermanentlyLocked)

    clock.advance(days=30)
    assert isinstance(fail_login(access, 1, password=PASSWORD), PermanentlyLocked)
    stored = reload(account.id)
    assert stored.permanently_locked
    assert stored.lockout_stage is LockoutStage.PERMANENT

    access.forgot_password(EMAIL)
    access.reset_password(notifier.last("reset"), "new-pw")

    stored = reload(account.id)
    assert stored.lockout_stage is LockoutStage.OPEN
    assert not stored.permanently_locked
    assert stored.failed_login_attempts == 0
    assert stored.temporary_lock_until is None

    assert access.login(EMAIL, "new-pw", "Laptop").mfa_required
    assert "ACCOUNT_TEMPORARILY_LOCKED" in actions()
    assert "ACCOUNT_PERMANENTLY_LOCKED" in actions()


def test_login_attempts_are_journaled(access, notifier):
    register_verified(access, notifier)
    fail_login(access, 3)
    fail_login(access, 1)

    reasons = [a.reason for a in LoginAttempt.query.order_by(LoginAttempt.id).all()]
    assert reasons == [
        AttemptReason.INVALID_CREDENTIALS,
        AttemptReason.INVALID_CREDENTIALS,
        AttemptReason.TEMPORARY_LOCKED,
        AttemptReason.TEMPORARY_LOCKED,
    ]
    assert LoginAttempt.query.filter_by(success=True).count() == 0


# --- MFA ---

def test_mfa_code_is_single_use(access, notifier):
    register_verified(access, notifier)
    account_id, token = login_with_mfa(access, notifier)
    code = notifier.last("mfa")
    access.logout(account_id, token)

    with pytest.raises(InvalidCode):
        access.verify_mfa(account_id, code, "Laptop")


def test_wrong_mfa_code_creates_no_session(access, notifier):
    register_verified(access, notifier)
    result = access.login(EMAIL, PASSWORD, "Laptop")

    with pytest.raises(InvalidCode):
        access.verify_mfa(result.account_id, wrong_code(notifier.last("mfa")), "Laptop")

    stored = reload(result.account_id)
    assert stored.active_session_token_hash is None
    assert stored.mfa_code_hash is not None
    assert "MFA_FAIL" in actions()


def test_expired_mfa_code_is_rejected(access, notifier, clock):
    register_verified(access, notifier)
    result = access.login(EMAIL, PASSWORD, "Laptop")
    clock.advance(hours=72, seconds=1)

    with pytest.raises(CodeExpired):
        access.verify_mfa(result.account_id, notifier.last("mfa"), "Laptop")


def test_verify_mfa_refuses_while_another_session_is_live(access, notifier):
    register_verified(access, notifier)
    account_id, _ = login_with_mfa(access, notifier)

    with pytest.raises(SessionAlreadyActive):
        access.verify_mfa(account_id, "123456", "Phone")


def test_verify_mfa_for_unknown_account(access):
    with pytest.raises(AccountNotFound):
        access.verify_mfa(999, "123456", "Laptop")


def test_mfa_delivery_failure_keeps_code_usable(access, notifier):
    register_verified(access, notifier)
    notifier.fail = True

    with pytest.raises(DeliveryFailed):
        access.login(EMAIL, PASSWORD, "Laptop")

    account = Account.query.filter_by(email=EMAIL).one()
    assert account.mfa_code_hash is not None

    notifier.fail = False
    assert access.verify_mfa(account.id, notifier.last("mfa"), "Laptop")


# --- sessions ---

def test_logout_is_idempotent(access, notifier):
    register_verified(access, notifier)
    account_id, token = login_with_mfa(access, notifier)

    access.logout(account_id, token)
    access.logout(account_id, token)

    assert not reload(account_id).has_session
    assert actions().count("LOGOUT") == 1
    with pytest.raises(InvalidOrExpiredToken):
        access.authenticate(token)


def test_logout_for_another_account_is_forbidden(access, notifier):
    register_verified(access, notifier)
    account_id, token = login_with_mfa(access, notifier)

    with pytest.raises(Forbidden):
        access.logout(account_id + 1, token)
    assert reload(account_id).has_session


def test_old_token_cannot_end_a_newer_session(access, notifier, clock):
    register_verified(access, notifier)
    account_id, old = login_with_mfa(access, notifier)
    access.logout(account_id, old)
    new = access.login(EMAIL, PASSWORD, "Phone").token

    with pytest.raises(InvalidOrExpiredToken):
        access.logout(account_id, old)
    assert access.authenticate(new).id == account_id


def test_expired_session_no_longer_blocks_login(access, notifier, clock):
    register_verified(access, notifier)
    account_id, old = login_with_mfa(access, notifier)
    clock.advance(hours=1)

    with pytest.raises(InvalidOrExpiredToken):
        access.authenticate(old)

    result = access.login(EMAIL, PASSWORD, "Phone")
    assert not result.mfa_required
    assert reload(account_id).active_device == "Phone"


# --- password reset ---

def test_forgot_password_does_not_reveal_unknown_email(access, notifier):
    assert access.forgot_password("nobody@x.com") == RESET_REQUESTED_MESSAGE
    assert notifier.of_kind("reset") == []


def test_forgot_password_requires_an_email(access):
    with pytest.raises(ValidationError):
        access.forgot_password("   ")


def test_reset_replaces_password_once(access, notifier):
    account = register_verified(access, notifier)
    assert access.forgot_password(EMAIL) == RESET_REQUESTED_MESSAGE
    token = notifier.last("reset")
    assert reload(account.id).reset_token_hash != token

    access.reset_password(token, "new-pw")

    with pytest.raises(InvalidCredentials):
        access.login(EMAIL, PASSWORD, "Laptop")
    assert access.login(EMAIL, "new-pw", "Laptop").mfa_required

    with pytest.raises(InvalidOrExpiredToken):
        access.reset_password(token, "third-pw")


def test_reset_token_expires_after_fifteen_minutes(access, notifier, clock):
    register_verified(access, notifier)
    access.forgot_password(EMAIL)
    token = notifier.last("reset")

    clock.advance(minutes=15)
    with pytest.raises(InvalidOrExpiredToken):
        access.reset_password(token, "new-pw")


def test_reset_token_valid_just_before_expiry(access, notifier, clock):
    account = register_verified(access, notifier)
    access.forgot_password(EMAIL)

    clock.advance(minutes=14, seconds=59)
    access.reset_password(notifier.last("reset"), "new-pw")
    assert reload(account.id).reset_token_hash is None


def test_new_reset_request_supersedes_the_old_token(access, notifier):
    register_verified(access, notifier)
    access.forgot_password(EMAIL)
    first = notifier.last("reset")
    access.forgot_password(EMAIL)

    with pytest.raises(InvalidOrExpiredToken):
        access.reset_password(first, "new-pw")
    access.reset_password(notifier.last("reset"), "new-pw")


def test_reset_password_checks_policy(access, notifier):
    register_verified(access, notifier)
    access.forgot_password(EMAIL)

    with pytest.raises(ValidationError) as exc:
        access.reset_password(notifier.last("reset"), "a")
    assert exc.value.field == "new_password"


@pytest.mark.parametrize("password", ["b2" * 40, "é" * 40])
def test_reset_password_rejects_passwords_bcrypt_cannot_hash(access, notifier, password):
    account = register_verified(access, notifier)
    access.forgot_password(EMAIL)
    token = notifier.last("reset")

    with pytest.raises(ValidationError) as exc:
        access.reset_password(token, password)
    assert exc.value.field == "new_password"

    access.reset_password(token, "new-pw")
    assert reload(account.id).reset_token_hash is None


def test_reset_ends_the_mfa_trust_window(access, notifier, clock):
    register_verified(access, notifier)
    account_id, token = login_with_mfa(access, notifier)
    access.logout(account_id, token)
    assert reload(account_id).last_mfa_verified_at == START

    clock.advance(hours=1)
    access.forgot_password(EMAIL)
    access.reset_password(notifier.last("reset"), "new-pw")
    assert reload(account_id).last_mfa_verified_at is None

    clock.advance(minutes=5)
    result = access.login(EMAIL, "new-pw", "Laptop")
    assert result.mfa_required
    assert result.token is None


def test_forgot_password_mail_failure_keeps_generic_answer(access, notifier):
    account = register_verified(access, notifier)
    notifier.fail = True

    assert access.forgot_password(EMAIL) == RESET_REQUESTED_MESSAGE
    assert reload(account.id).reset_token_hash is not None


# --- admin ---

def test_promote_to_admin(access, notifier):
    account = register_verified(access, notifier)

    promoted = access.promote_to_admin("A@x.com")
    assert promoted.role is Role.ADMIN
    assert reload(account.id).role is Role.ADMIN
    assert access.promote_to_admin("nobody@x.com") is None


def test_account_status_reports_lockout_and_session(access, notifier):
    account = register_verified(access, notifier)
    fail_login(access, 3)

    status = access.account_status(account.id)
    assert status["email"] == EMAIL
    assert status["lockout_stage"] == 1
    assert status["failed_login_attempts"] == 3
    assert status["temporary_lock_until"] == (START + timedelta(minutes=5)).isoformat()
    assert status["session_active"] is False
    assert status["mfa_trusted"] is False

    with pytest.raises(AccountNotFound):
        access.account_status(account.id + 100)
