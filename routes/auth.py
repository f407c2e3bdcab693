from flask import Blueprint, request, jsonify, g

from security.access import get_access_control
from security.errors import ValidationError
from security.session import UNKNOWN_DEVICE
from utils.auth_context import login_required


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _payload() -> dict:
    return request.get_json(silent=True) or {}


def _device_label() -> str:
    return (request.headers.get("User-Agent") or UNKNOWN_DEVICE)[:255]


@auth_bp.post("/register")
def register():
    data = _payload()
    get_access_control().register(
        data.get("email"),
        data.get("password"),
        profile={
            "full_name": data.get("full_name"),
            "phone_number": data.get("phone_number"),
        },
    )
    return jsonify(message="Registration successful! Please check your email to verify your account."), 201


@auth_bp.get("/verify-email")
def verify_email():
    token = request.args.get("token")
    if not token:
        raise ValidationError("token", "Missing token")

    get_access_control().verify_email(token)
    return jsonify(message="Email verified successfully"), 200


@auth_bp.post("/resend-verification")
def resend_verification():
    data = _payload()
    message = get_access_control().resend_verification(data.get("email"))
    return jsonify(message=message), 200


@auth_bp.post("/login")
def login():
    data = _payload()
    result = get_access_control().login(data.get("email"), data.get("password"), _device_label())

    if result.mfa_required:
        return jsonify(
            message="Password accepted. Please verify the MFA code sent to your email.",
            mfa_required=True,
            account_id=result.account_id,
        ), 200

    return jsonify(message="Login successful", mfa_required=False, token=result.token), 200


@auth_bp.post("/verify-mfa")
def verify_mfa():
    data = _payload()
    account_id = data.get("account_id")
    code = str(data.get("code") or "").strip()
    if not account_id or not code:
        raise ValidationError("code", "MFA code and account id are required")

    token = get_access_control().verify_mfa(account_id, code, _device_label())
    return jsonify(message="MFA verified successfully", token=token), 200


@auth_bp.post("/logout")
@login_required
def logout():
    get_access_control().logout(g.account.id, g.session_token)
    return jsonify(message="Logout successful"), 200


@auth_bp.post("/forgot-password")
def forgot_password():
    data = _payload()
    message = get_access_control().forgot_password(data.get("email"))
    return jsonify(message=message), 200


@auth_bp.post("/reset-password")
def reset_password():
    data = _payload()
    token = data.get("token")
    new_password = data.get("new_password")
    confirm_password = data.get("confirm_password")

    if not token or not new_password or not confirm_password:
        raise ValidationError("token", "Please provide all required fields")
    if new_password != confirm_password:
        raise ValidationError("confirm_password", "Passwords do not match")

    get_access_control().reset_password(token, new_password)
    return jsonify(
        message="Password reset successful. Please login with your new password; MFA will be required.",
        account_unlocked=True,
    ), 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(
        id=g.account.id,
        email=g.account.email,
        role=g.account.role.value,
        full_name=g.account.full_name,
        phone_number=g.account.phone_number,
        is_verified=g.account.is_verified,
        active_device=g.account.active_device,
        session_created_at=g.account.session_created_at.isoformat() if g.account.session_created_at else None,
    ), 200
