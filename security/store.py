import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from models import db
from models.account import Account
from security.errors import ConcurrentUpdateError, DuplicateEmail, StoreUnavailable
from security.password import hash_token
from utils.validation import normalize_email

logger = logging.getLogger(__name__)


class AccountStore:
    """
    Durable account records.

    Writes are conditioned on the version the caller read
    (Account.version is the mapper's version_id_col), so an update that lost
    a race raises ConcurrentUpdateError instead of overwriting the winner.
    """

    def get_by_email(self, email: str) -> Optional[Account]:
        return Account.query.filter_by(email=normalize_email(email)).first()

    def get_by_id(self, account_id) -> Optional[Account]:
        try:
            account_id = int(account_id)
        except (TypeError, ValueError):
            return None
        return db.session.get(Account, account_id)

    def find_by_reset_token(self, raw_token: str) -> Optional[Account]:
        if not raw_token:
            return None
        return Account.query.filter_by(reset_token_hash=hash_token(raw_token)).first()

    def create(self, account: Account) -> Account:
        db.session.add(account)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise DuplicateEmail()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error("Account store unavailable on create: %s", exc)
            raise StoreUnavailable() from exc
        return account

    def save(self, account: Account) -> Account:
        account_id = account.id
        db.session.add(account)
        try:
            db.session.commit()
        except StaleDataError as exc:
            db.session.rollback()
            logger.info("Lost concurrent update on account %s", account_id)
            raise ConcurrentUpdateError() from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error("Account store unavailable on save: %s", exc)
            raise StoreUnavailable() from exc
        return account

