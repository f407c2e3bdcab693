"""
Access control facade: the operations a transport layer calls.

register -> verify_email -> login -> (verify_mfa) -> session ... -> logout
forgot_password -> reset_password

Each operation is one unit of work over one account row. Writes are
version-checked by the store; when a write loses a race the whole operation
is re-run against the fresh row, so the loser sees the winner's outcome
(e.g. an already-active session, an already-consumed MFA code).
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping, Optional

from flask import current_app

from models.account import Account, LockoutStage, Role
from models.login_attempt import AttemptReason
from security.clock import Clock
from security.errors import (
    AccessError,
    AccountNotFound,
    AlreadyVerified,
    ConcurrentUpdateError,
    DuplicateEmail,
    EmailNotVerified,
    Forbidden,
    InvalidCredentials,
    InvalidOrExpiredToken,
    PermanentlyLocked,
    SessionAlreadyActive,
    TemporarilyLocked,
    ValidationError,
)
from security.lockout import (
    Accepted,
    LockoutPolicy,
    LockoutState,
    RejectedInvalidCredentials,
    RejectedTemporaryLock,
)
from security.mfa import MfaChallengeManager
from security.password import dummy_hash, hash_password, hash_token, verify_password
from security.password_policy import PasswordPolicy
from security.session import SessionGuard
from security.store import AccountStore
from security.tokens import SESSION, VERIFY_EMAIL, TokenSigner
from utils.audit import log_event, record_login_attempt
from utils.emailer import EmailNotifier
from utils.validation import clean_text, is_valid_email, normalize_email

logger = logging.getLogger(__name__)

RESET_REQUESTED_MESSAGE = "If an account with that email exists, a password reset link has been sent."
VERIFICATION_RESENT_MESSAGE = "If an unverified account with that email exists, a verification link has been sent."


@dataclass(frozen=True)
class LoginResult:
    account_id: int
    mfa_required: bool
    token: Optional[str] = None


class AccessControl:
    def __init__(
        self,
        store: AccountStore,
        notifier,
        clock: Clock,
        signer: TokenSigner,
        lockout: LockoutPolicy,
        mfa: MfaChallengeManager,
        sessions: SessionGuard,
        password_policy: PasswordPolicy,
        bcrypt_rounds: int = 12,
        verify_token_ttl: timedelta = timedelta(hours=1),
        reset_token_ttl: timedelta = timedelta(minutes=15),
        max_retries: int = 3,
    ):
        self.store = store
        self.notifier = notifier
        self.clock = clock
        self.signer = signer
        self.lockout = lockout
        self.mfa = mfa
        self.sessions = sessions
        self.password_policy = password_policy
        self.bcrypt_rounds = bcrypt_rounds
        self.verify_token_ttl = verify_token_ttl
        self.reset_token_ttl = reset_token_ttl
        self.max_retries = max(1, max_retries)

    @classmethod
    def from_config(cls, config: Mapping, store=None, notifier=None, clock=None) -> "AccessControl":
        store = store or AccountStore()
        notifier = notifier or EmailNotifier(config)
        clock = clock or Clock()
        signer = TokenSigner(config["SECRET_KEY"], config.get("JWT_ALGORITHM", "HS256"))
        return cls(
            store=store,
            notifier=notifier,
            clock=clock,
            signer=signer,
            lockout=LockoutPolicy(
                max_attempts=int(config.get("MAX_LOGIN_ATTEMPTS", 3)),
                lock_duration=timedelta(minutes=int(config.get("LOCKOUT_MINUTES", 5))),
            ),
            mfa=MfaChallengeManager(
                store,
                notifier,
                clock,
                code_length=int(config.get("MFA_CODE_LENGTH", 6)),
                code_ttl=timedelta(hours=int(config.get("MFA_CODE_TTL_HOURS", 72))),
                trust_window=timedelta(hours=int(config.get("MFA_TRUST_WINDOW_HOURS", 72))),
            ),
            sessions=SessionGuard(
                store,
                signer,
                clock,
                ttl=timedelta(seconds=int(config.get("SESSION_TOKEN_TTL_SECONDS", 3600))),
            ),
            password_policy=PasswordPolicy.from_config(config),
            bcrypt_rounds=int(config.get("BCRYPT_ROUNDS", 12)),
            verify_token_ttl=timedelta(seconds=int(config.get("VERIFY_TOKEN_TTL_SECONDS", 3600))),
            reset_token_ttl=timedelta(minutes=int(config.get("RESET_TOKEN_TTL_MINUTES", 15))),
            max_retries=int(config.get("STORE_MAX_RETRIES", 3)),
        )

    # ---------- helpers ----------

    def _retrying(self, operation, *args):
        for attempt in range(1, self.max_retries + 1):
            try:
                return operation(*args)
            except ConcurrentUpdateError:
                if attempt == self.max_retries:
                    raise
                logger.info("Re-running %s after a concurrent update (attempt %d)", operation.__name__, attempt)

    def _check_password(self, field: str, password) -> None:
        errors = self.password_policy.violations(password)
        if errors:
            raise ValidationError(field, "Password does not meet policy", errors)

    def _send_verification(self, account: Account) -> None:
        token = self.signer.issue(VERIFY_EMAIL, account.id, self.clock.now(), self.verify_token_ttl)
        ok, err = self.notifier.send_verification_link(account.email, token)
        if not ok:
            # the account stays unverified; resend_verification retries delivery
            logger.warning("Verification email to account %s not delivered: %s", account.id, err)

    def _journal(self, email, reason: AttemptReason, success: bool, account_id=None) -> None:
        record_login_attempt(email, reason, success, account_id=account_id, created_at=self.clock.now())

    # ---------- registration ----------

    def register(self, email, password, profile: Optional[Mapping] = None) -> Account:
        email = normalize_email(email)
        if not is_valid_email(email):
            raise ValidationError("email", "Invalid email")
        self._check_password("password", password)

        profile = profile or {}
        fields = {}
        for name, max_len in (("full_name", 120), ("phone_number", 30)):
            try:
                fields[name] = clean_text(profile.get(name), max_len)
            except ValueError as exc:
                raise ValidationError(name, f"Invalid {name}: {exc}")

        if self.store.get_by_email(email) is not None:
            log_event("REGISTER_FAIL_EMAIL_EXISTS", metadata={"email": email})
            raise DuplicateEmail()

        now = self.clock.now()
        account = Account(
            email=email,
            password_hash=hash_password(password, rounds=self.bcrypt_rounds),
            role=Role.USER,
            is_verified=False,
            failed_login_attempts=0,
            lockout_stage=LockoutStage.OPEN,
            permanently_locked=False,
            created_at=now,
            password_changed_at=now,
            **fields,
        )
        self.store.create(account)
        log_event("REGISTER_SUCCESS", account_id=account.id)

        self._send_verification(account)
        return account

    def verify_email(self, token) -> Account:
        claims = self.signer.read(token, VERIFY_EMAIL, self.clock.now())
        account_id = self.signer.subject_id(claims)
        return self._retrying(self._verify_email, account_id)

    def _verify_email(self, account_id) -> Account:
        account = self.store.get_by_id(account_id)
        if account is None:
            raise AccountNotFound()
        if account.is_verified:
            raise AlreadyVerified()

        account.is_verified = True
        self.store.save(account)
        log_event("EMAIL_VERIFIED", account_id=account.id)
        return account

    def resend_verification(self, email) -> str:
        account = self.store.get_by_email(email)
        if account is not None and not account.is_verified:
            self._send_verification(account)
            log_event("VERIFICATION_RESENT", account_id=account.id)
        return VERIFICATION_RESENT_MESSAGE

    # ---------- login / MFA ----------

    def login(self, email, password, device_label: Optional[str] = None) -> LoginResult:
        email = normalize_email(email)
        if not email or not isinstance(password, str) or not password:
            raise ValidationError("credentials", "Please provide email and password")
        return self._retrying(self._login, email, password, device_label)

    def _login(self, email: str, password: str, device_label: Optional[str]) -> LoginResult:
        account = self.store.get_by_email(email)
        if account is None:
            # same cost and same answer as a first wrong password on a real account
            verify_password(password, dummy_hash(self.bcrypt_rounds))
            self._journal(email, AttemptReason.INVALID_CREDENTIALS, False)
            raise InvalidCredentials(remaining_attempts=self.lockout.max_attempts - 1)

        now = self.clock.now()
        matches = verify_password(password, account.password_hash)
        before = LockoutState.of(account)
        outcome, after = self.lockout.evaluate_attempt(before, matches, now)
        if after != before:
            after.apply_to(account)

        if not isinstance(outcome, Accepted):
            if after != before:
                self.store.save(account)
            self._reject_login(account, outcome, before, after)

        if not account.is_verified:
            self.store.save(account)
            self._journal(email, AttemptReason.EMAIL_NOT_VERIFIED, False, account.id)
            raise EmailNotVerified()

        if self.sessions.is_active(account, now):
            self.store.save(account)
            self._journal(email, AttemptReason.SESSION_ACTIVE, False, account.id)
            raise SessionAlreadyActive(account.active_device)

        if self.mfa.is_trust_window_valid(account, now):
            token = self.sessions.try_acquire(account, device_label)
            self._journal(email, AttemptReason.PASSWORD_ACCEPTED, True, account.id)
            log_event("LOGIN_SUCCESS", account_id=account.id, metadata={"mfa": "trusted"})
            return LoginResult(account_id=account.id, mfa_required=False, token=token)

        self.mfa.issue_challenge(account)
        self._journal(email, AttemptReason.MFA_REQUIRED, True, account.id)
        log_event("MFA_CHALLENGE_ISSUED", account_id=account.id)
        return LoginResult(account_id=account.id, mfa_required=True)

    def _reject_login(self, account: Account, outcome, before: LockoutState, after: LockoutState):
        if isinstance(outcome, RejectedInvalidCredentials):
            self._journal(account.email, AttemptReason.INVALID_CREDENTIALS, False, account.id)
            log_event(
                "LOGIN_FAIL",
                account_id=account.id,
                metadata={"failed_attempts": after.failed_attempts, "stage": int(after.stage)},
            )
            raise InvalidCredentials(remaining_attempts=outcome.remaining_attempts)

        if isinstance(outcome, RejectedTemporaryLock):
            self._journal(account.email, AttemptReason.TEMPORARY_LOCKED, False, account.id)
            if before.temporary_lock_until is None:
                logger.info("Account %s temporarily locked until %s", account.id, outcome.until)
                log_event("ACCOUNT_TEMPORARILY_LOCKED", account_id=account.id, metadata={"until": outcome.until})
            raise TemporarilyLocked(outcome.remaining_minutes, outcome.until)

        self._journal(account.email, AttemptReason.PERMANENT_LOCKED, False, account.id)
        if not before.permanently_locked:
            logger.warning("Account %s permanently locked", account.id)
            log_event("ACCOUNT_PERMANENTLY_LOCKED", account_id=account.id)
        raise PermanentlyLocked()

    def verify_mfa(self, account_id, code, device_label: Optional[str] = None) -> str:
        return self._retrying(self._verify_mfa, account_id, code, device_label)

    def _verify_mfa(self, account_id, code, device_label: Optional[str]) -> str:
        account = self.store.get_by_id(account_id)
        if account is None:
            raise AccountNotFound()

        now = self.clock.now()
        # checked again: time may have passed since login issued the challenge
        if self.sessions.is_active(account, now):
            raise SessionAlreadyActive(account.active_device)

        try:
            self.mfa.verify(account, code, now)
        except AccessError as exc:
            log_event("MFA_FAIL", account_id=account.id, metadata={"reason": type(exc).__name__})
            raise

        # code consumption and session acquisition land in the same write
        token = self.sessions.try_acquire(account, device_label)
        log_event("MFA_VERIFIED", account_id=account.id)
        return token

    # ---------- sessions ----------

    def authenticate(self, token) -> Account:
        """Account behind a bearer token that is still that account's live session."""
        claims = self.signer.read(token, SESSION, self.clock.now())
        account = self.store.get_by_id(self.signer.subject_id(claims))
        if account is None or not self.sessions.validate(token, account):
            raise InvalidOrExpiredToken("Session expired or logged in from another device")
        return account

    def logout(self, account_id, token) -> None:
        claims = self.signer.read(token, SESSION, self.clock.now())
        if self.signer.subject_id(claims) != _as_int(account_id):
            raise Forbidden()
        self._retrying(self._logout, claims, token)

    def _logout(self, claims: dict, token: str) -> None:
        account = self.store.get_by_id(self.signer.subject_id(claims))
        if account is None:
            raise AccountNotFound()
        if account.active_session_token_hash is None:
            return
        if not self.sessions.validate(token, account):
            # an older token must not end the session another device holds
            raise InvalidOrExpiredToken("Session expired or logged in from another device")

        self.sessions.release(account)
        log_event("LOGOUT", account_id=account.id)

    # ---------- password reset ----------

    def forgot_password(self, email) -> str:
        email = normalize_email(email)
        if not email:
            raise ValidationError("email", "Please provide your email address")

        sent_to = self._retrying(self._issue_reset_token, email)
        if sent_to is not None:
            account, raw_token = sent_to
            ok, err = self.notifier.send_password_reset_link(account.email, raw_token)
            if not ok:
                # answered the same either way; the user can ask again
                logger.warning("Password reset email to account %s not delivered: %s", account.id, err)
            log_event("PASSWORD_RESET_REQUESTED", account_id=account.id, metadata={"delivered": ok})
        return RESET_REQUESTED_MESSAGE

    def _issue_reset_token(self, email: str):
        account = self.store.get_by_email(email)
        if account is None:
            return None
        raw_token = secrets.token_hex(32)
        account.reset_token_hash = hash_token(raw_token)
        account.reset_token_expiry = self.clock.now() + self.reset_token_ttl
        self.store.save(account)
        return account, raw_token

    def reset_password(self, token, new_password) -> Account:
        self._check_password("new_password", new_password)
        new_hash = hash_password(new_password, rounds=self.bcrypt_rounds)
        return self._retrying(self._reset_password, token, new_hash)

    def _reset_password(self, token, new_hash: str) -> Account:
        now = self.clock.now()
        account = self.store.find_by_reset_token(token)
        if account is None or account.reset_token_expiry is None or now >= account.reset_token_expiry:
            raise InvalidOrExpiredToken("Invalid or expired reset token")

        account.password_hash = new_hash
        account.password_changed_at = now
        account.reset_token_hash = None
        account.reset_token_expiry = None
        LockoutState.unlocked().apply_to(account)
        # a new password must not inherit the old MFA trust window
        account.last_mfa_verified_at = None
        self.store.save(account)
        log_event("PASSWORD_RESET", account_id=account.id)
        return account

    # ---------- admin ----------

    def account_status(self, account_id) -> dict:
        account = self.store.get_by_id(account_id)
        if account is None:
            raise AccountNotFound()

        now = self.clock.now()
        return {
            "id": account.id,
            "email": account.email,
            "role": account.role.value,
            "is_verified": account.is_verified,
            "lockout_stage": int(account.lockout_stage),
            "failed_login_attempts": account.failed_login_attempts,
            "temporary_lock_until": _iso(account.temporary_lock_until),
            "permanently_locked": account.permanently_locked,
            "mfa_pending": account.mfa_code_hash is not None,
            "mfa_trusted": self.mfa.is_trust_window_valid(account, now),
            "session_active": self.sessions.is_active(account, now),
            "active_device": account.active_device,
            "session_created_at": _iso(account.session_created_at),
        }

    def promote_to_admin(self, email) -> Optional[Account]:
        return self._retrying(self._promote_to_admin, normalize_email(email))

    def _promote_to_admin(self, email: str) -> Optional[Account]:
        account = self.store.get_by_email(email)
        if account is None:
            return None
        if account.role is not Role.ADMIN:
            account.role = Role.ADMIN
            self.store.save(account)
            log_event("ROLE_PROMOTED", account_id=account.id, metadata={"role": Role.ADMIN.value})
        return account


def _iso(value):
    return value.isoformat() if value is not None else None


def _as_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def init_access_control(app, **overrides) -> AccessControl:
    access = AccessControl.from_config(app.config, **overrides)
    app.extensions["access_control"] = access
    return access


def get_access_control() -> AccessControl:
    return current_app.extensions["access_control"]
