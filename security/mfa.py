import hmac
import logging
import secrets
from datetime import datetime, timedelta

from security.errors import CodeExpired, DeliveryFailed, InvalidCode
from security.password import hash_token

logger = logging.getLogger(__name__)


class MfaChallengeManager:
    """
    Email MFA: a short numeric code with its own expiry, plus a trust window
    after a successful verification during which logins skip the challenge.
    """

    def __init__(
        self,
        store,
        notifier,
        clock,
        code_length: int = 6,
        code_ttl: timedelta = timedelta(hours=72),
        trust_window: timedelta = timedelta(hours=72),
    ):
        self.store = store
        self.notifier = notifier
        self.clock = clock
        self.code_length = code_length
        self.code_ttl = code_ttl
        self.trust_window = trust_window

    def generate_code(self) -> str:
        return f"{secrets.randbelow(10 ** self.code_length):0{self.code_length}d}"

    def issue_challenge(self, account) -> str:
        """
        Persist a fresh code on the account, then hand it to the notifier.

        Delivery is not fire-and-forget: when the notifier reports a failure
        DeliveryFailed is raised, after the code is already stored, so the
        caller can tell the user to retry instead of waiting for an email.
        """
        code = self.generate_code()
        account.mfa_code_hash = hash_token(code)
        account.mfa_expiry = self.clock.now() + self.code_ttl
        self.store.save(account)

        ok, err = self.notifier.send_mfa_code(account.email, code)
        if not ok:
            # the challenge stays valid; logging in again issues a new one
            logger.warning("MFA code delivery failed for account %s: %s", account.id, err)
            raise DeliveryFailed()
        return code

    def is_trust_window_valid(self, account, now: datetime) -> bool:
        if account.last_mfa_verified_at is None:
            return False
        return now < account.last_mfa_verified_at + self.trust_window

    def verify(self, account, submitted_code, now: datetime) -> None:
        """
        Consume the outstanding code. On success the code is cleared and the
        trust window restarts at `now`; the caller persists the account.
        """
        if account.mfa_code_hash is None or not isinstance(submitted_code, str):
            raise InvalidCode()
        if not hmac.compare_digest(account.mfa_code_hash, hash_token(submitted_code.strip())):
            raise InvalidCode()
        if account.mfa_expiry is None or now > account.mfa_expiry:
            raise CodeExpired()

        account.mfa_code_hash = None
        account.mfa_expiry = None
        account.last_mfa_verified_at = now
