import json
from flask import has_request_context, request
from models import db
from models.audit_log import AuditLog
from models.login_attempt import LoginAttempt


def request_meta():
    """(ip, user_agent) of the current request, or (None, None) outside one."""
    if not has_request_context():
        return None, None
    ip = request.headers.get("X-Forwarded-For", request.remote_addr)
    if ip:
        ip = ip.split(",")[0].strip()[:64]
    user_agent = request.headers.get("User-Agent", "")
    return ip, (user_agent[:255] if user_agent else None)


def log_event(action: str, account_id=None, entity=None, entity_id=None, metadata=None):
    ip, user_agent = request_meta()

    row = AuditLog(
        account_id=account_id,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        ip=ip,
        user_agent=user_agent,
        metadata_json=json.dumps(metadata, default=str) if metadata else None
    )
    db.session.add(row)
    db.session.commit()


def record_login_attempt(email: str, reason, success: bool, account_id=None, created_at=None):
    ip, user_agent = request_meta()

    row = LoginAttempt(
        email=(email or "")[:255],
        account_id=account_id,
        ip=ip,
        user_agent=user_agent,
        success=success,
        reason=reason,
    )
    if created_at is not None:
        row.created_at = created_at
    db.session.add(row)
    db.session.commit()
