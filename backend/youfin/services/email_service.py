# Overview: Outbound email (verification, password reset, 2FA, notifications).

"""
Email Service

Sends synchronously via SMTP, or logs the message when MAIL_BACKEND is
"console" (development).

Sending is best-effort: failures are logged and reported back as a result
dict with "error": True, never raised into the calling operation.
"""

from __future__ import annotations

import smtplib
from email.message import EmailMessage

from flask import current_app

from youfin.time_utils import utcnow


def _frontend_url() -> str:
    return current_app.config.get("FRONTEND_URL", "http://localhost:5173").rstrip("/")


def send_email(to_address: str, subject: str, text: str, html: str | None = None) -> dict:
    """
    Compose and send one email.

    Returns {"success": True, ...} on delivery (or console logging), and
    {"success": False, "error": True, "message": ...} on failure.
    """
    config = current_app.config
    sender = f"YouFin Team <{config.get('EMAIL_FROM', 'noreply@youfin.app')}>"

    if config.get("MAIL_BACKEND") == "console":
        current_app.logger.info(
            "Email not sent (console backend)\nTo: %s\nSubject: %s\n%s",
            to_address, subject, text,
        )
        return {
            "success": True,
            "messageId": "console",
            "accepted": [to_address],
        }

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = to_address
    msg.set_content(text)
    if html:
        msg.add_alternative(html, subtype="html")

    host = config.get("SMTP_HOST")
    if not host:
        current_app.logger.error("SMTP_HOST not configured; cannot send '%s' to %s", subject, to_address)
        return {"success": False, "error": True, "message": "Email is not configured"}

    try:
        with smtplib.SMTP(host, config.get("SMTP_PORT", 587), timeout=10) as smtp:
            if config.get("SMTP_USE_TLS", True):
                smtp.starttls()
            if config.get("SMTP_USER"):
                smtp.login(config["SMTP_USER"], config.get("SMTP_PASSWORD") or "")
            smtp.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        current_app.logger.error("Failed to send '%s' to %s: %s", subject, to_address, exc)
        return {"success": False, "error": True, "message": str(exc)}

    current_app.logger.info("Email '%s' sent to %s", subject, to_address)
    return {"success": True, "accepted": [to_address]}


def _wrap_html(title: str, body_html: str) -> str:
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px; background-color: #121212; color: white; border-radius: 8px;">
      <img src="{_frontend_url()}/logo.png" alt="YouFin Logo" style="display: block; margin: 0 auto 20px; max-width: 150px;">
      <h2 style="color: #FFDE59; text-align: center;">{title}</h2>
      {body_html}
      <div style="margin-top: 30px; padding-top: 20px; border-top: 1px solid #333; text-align: center; font-size: 12px; color: #aaa;">
        <p>&copy; {utcnow().year} YouFin. All rights reserved.</p>
      </div>
    </div>
    """


def _button(url: str, label: str) -> str:
    return (
        '<div style="text-align: center; margin: 30px 0;">'
        f'<a href="{url}" style="background-color: #FFDE59; color: black; padding: 12px 24px; '
        f'text-decoration: none; border-radius: 4px; font-weight: bold; display: inline-block;">{label}</a>'
        '</div>'
    )


def send_verification_email(email: str, token: str) -> dict:
    url = f"{_frontend_url()}/verify-email/{token}"
    text = (
        "Hello,\n\n"
        "Thank you for registering with YouFin! Please verify your email address "
        f"by opening the link below:\n\n{url}\n\n"
        "This link will expire in 24 hours.\n\n"
        "Best regards,\nThe YouFin Team"
    )
    html = _wrap_html(
        "Welcome to YouFin!",
        "<p>Thank you for registering with YouFin. To complete your registration, "
        "please verify your email address:</p>"
        + _button(url, "Verify Email Address")
        + "<p>This link will expire in 24 hours.</p>"
        "<p>If you did not create an account, please ignore this email.</p>",
    )
    return send_email(email, "Welcome to YouFin - Verify Your Email", text, html)


def send_reset_password_email(email: str, token: str) -> dict:
    url = f"{_frontend_url()}/reset-password/{token}"
    text = (
        "Hello,\n\n"
        "You have requested to reset your password. Open the link below to set a new password:\n\n"
        f"{url}\n\n"
        "This link will expire in 1 hour.\n\n"
        "If you did not request this, please ignore this email.\n\n"
        "Best regards,\nThe YouFin Team"
    )
    html = _wrap_html(
        "Password Reset Request",
        "<p>You have requested to reset your password.</p>"
        + _button(url, "Reset Password")
        + "<p>This link will expire in 1 hour.</p>"
        "<p>If you did not request this, please ignore this email.</p>",
    )
    return send_email(email, "YouFin - Reset Your Password", text, html)


def send_two_factor_setup_email(email: str, secret: str, qr_code_url: str) -> dict:
    text = (
        "Hello,\n\n"
        "Your two-factor authentication setup is ready.\n\n"
        f"Use the following secret key in your authenticator app:\n{secret}\n\n"
        "Best regards,\nThe YouFin Team"
    )
    html = _wrap_html(
        "Two-Factor Authentication Setup",
        "<p>Scan the QR code below with your authenticator app:</p>"
        '<div style="text-align: center; margin: 30px 0; background-color: white; padding: 15px; border-radius: 4px;">'
        f'<img src="{qr_code_url}" alt="2FA QR Code" style="max-width: 200px;"></div>'
        "<p>Or enter this code manually:</p>"
        f'<div style="text-align: center; font-family: monospace;"><code style="color: #FFDE59;">{secret}</code></div>'
        "<p>Then enter the 6-digit code from your authenticator app to complete the setup.</p>",
    )
    return send_email(email, "YouFin - Two-Factor Authentication Setup", text, html)


def send_notification_email(email: str, subject: str, message: str) -> dict:
    text = f"Hello,\n\n{message}\n\nBest regards,\nThe YouFin Team"
    html = _wrap_html(subject, f"<p>{message}</p>")
    return send_email(email, subject, text, html)
