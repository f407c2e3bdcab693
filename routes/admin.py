from flask import Blueprint, jsonify, g

from models.account import Role
from security.access import get_access_control
from security.rbac import require_roles
from utils.audit import log_event

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


@admin_bp.get("/accounts/<int:account_id>")
@require_roles(Role.ADMIN)
def account_status(account_id):
    status = get_access_control().account_status(account_id)
    log_event("ADMIN_ACCOUNT_VIEW", account_id=g.account.id, entity="account", entity_id=account_id)
    return jsonify(status), 200
