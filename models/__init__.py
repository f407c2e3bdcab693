from .db import db
from .account import Account, Role, LockoutStage
from .audit_log import AuditLog
from .login_attempt import LoginAttempt, AttemptReason
