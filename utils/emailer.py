import logging
import smtplib
from email.message import EmailMessage
from typing import Mapping, Optional, Tuple
from urllib.parse import urlencode

logger = logging.getLogger(__name__)

SendResult = Tuple[bool, Optional[str]]


def send_email(settings: Mapping, to_email: str, subject: str, body: str) -> SendResult:
    host = settings.get("SMTP_HOST")
    port = settings.get("SMTP_PORT", 587)
    username = settings.get("SMTP_USERNAME")
    password = settings.get("SMTP_PASSWORD")
    from_email = settings.get("SMTP_FROM_EMAIL") or username
    use_tls = settings.get("SMTP_USE_TLS", True)

    if settings.get("MAIL_SUPPRESS_SEND"):
        logger.info("Mail suppressed: %r to %s", subject, to_email)
        return True, None

    if not host or not from_email:
        return False, "Email not configured"

    msg = EmailMessage()
    msg["From"] = from_email
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)

    try:
        with smtplib.SMTP(host, port, timeout=10) as server:
            if use_tls:
                server.starttls()
            if username and password:
                server.login(username, password)
            server.send_message(msg)
        return True, None
    except (smtplib.SMTPException, OSError) as exc:
        return False, str(exc)


class EmailNotifier:
    """Delivers verification links, MFA codes and reset links over SMTP."""

    def __init__(self, settings: Mapping):
        self.settings = settings

    def _link(self, base_key: str, path: str, token: str) -> str:
        base = (self.settings.get(base_key) or "").rstrip("/")
        return f"{base}{path}?{urlencode({'token': token})}"

    def send_verification_link(self, email: str, token: str) -> SendResult:
        link = self._link("BACKEND_URL", "/auth/verify-email", token)
        body = (
            "Please verify your email by opening the link below:\n\n"
            f"{link}\n\n"
            "The link is valid for a limited time."
        )
        return send_email(self.settings, email, "Verify Your Email", body)

    def send_mfa_code(self, email: str, code: str) -> SendResult:
        body = f"Your MFA code is: {code}\n\nIf you did not try to log in, reset your password."
        return send_email(self.settings, email, "Your MFA Code", body)

    def send_password_reset_link(self, email: str, token: str) -> SendResult:
        link = self._link("FRONTEND_URL", "/reset-password", token)
        minutes = int(self.settings.get("RESET_TOKEN_TTL_MINUTES", 15))
        body = (
            "A password reset was requested for your account.\n\n"
            f"{link}\n\n"
            f"The link expires in {minutes} minutes. If you did not request it, ignore this email."
        )
        return send_email(self.settings, email, "Reset Your Password", body)
