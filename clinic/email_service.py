import logging
import os
from pathlib import Path

from fastapi_mail import ConnectionConfig, FastMail, MessageSchema, MessageType
from fastapi_mail.errors import ConnectionErrors
from pydantic import EmailStr

from . import config

logger = logging.getLogger(__name__)

conf = ConnectionConfig(
    MAIL_USERNAME=os.getenv("MAIL_USERNAME", ""),
    MAIL_PASSWORD=os.getenv("MAIL_PASSWORD", ""),
    MAIL_FROM=os.getenv("MAIL_FROM", "noreply@dentavis.clinic"),
    MAIL_PORT=int(os.getenv("MAIL_PORT", "587")),
    MAIL_SERVER=os.getenv("MAIL_SERVER", "smtp.gmail.com"),
    MAIL_FROM_NAME=os.getenv("MAIL_FROM_NAME", config.CLINIC_NAME),
    MAIL_STARTTLS=True,
    MAIL_SSL_TLS=False,
    USE_CREDENTIALS=True,
    VALIDATE_CERTS=True,
    SUPPRESS_SEND=int(os.getenv("MAIL_SUPPRESS_SEND", "0")),
    TEMPLATE_FOLDER=Path(__file__).parent / "templates",
)

STYLE = """
    body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; }
    .container { max-width: 600px; margin: 0 auto; padding: 20px; background: #e0f2fe; }
    .content { background: white; padding: 40px; border-radius: 10px; }
    h1 { color: #2563eb; }
    .button { display: inline-block; padding: 15px 30px; background: #2563eb; color: white;
              text-decoration: none; border-radius: 5px; margin: 20px 0; }
    .info-label { font-weight: bold; color: #2563eb; }
    .footer { text-align: center; margin-top: 20px; font-size: 12px; }
"""


def _page(body: str) -> str:
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="UTF-8">
        <style>{STYLE}</style>
    </head>
    <body>
        <div class="container">
            <div class="content">{body}</div>
            <div class="footer"><p>© {config.CLINIC_NAME}</p></div>
        </div>
    </body>
    </html>
    """


async def _send(email: EmailStr, subject: str, html: str) -> bool:
    message = MessageSchema(
        subject=f"{subject} - {config.CLINIC_NAME}",
        recipients=[email],
        body=html,
        subtype=MessageType.html,
    )
    try:
        await FastMail(conf).send_message(message)
    except ConnectionErrors as e:
        logger.error("Email '%s' to %s failed: %s", subject, email, e)
        return False
    return True


async def send_verification_email(email: EmailStr, token: str, name: str) -> bool:
    verification_url = f"{config.FRONTEND_URL}/verify-email?token={token}"
    body = f"""
        <h1>🦷 Welcome to {config.CLINIC_NAME}!</h1>
        <p>Hi {name},</p>
        <p>Thank you for registering. Please confirm your email address:</p>
        <a href="{verification_url}" class="button">Confirm Email</a>
        <p style="word-break: break-all;">{verification_url}</p>
        <p>This link is valid for 24 hours.</p>
    """
    return await _send(email, "Confirm your registration", _page(body))


async def send_password_reset_email(email: EmailStr, token: str, name: str) -> bool:
    reset_url = f"{config.FRONTEND_URL}/reset-password?token={token}"
    body = f"""
        <h1>🔐 Password reset</h1>
        <p>Hi {name},</p>
        <p>We received a request to reset the password of your patient account.</p>
        <a href="{reset_url}" class="button">Reset password</a>
        <p style="word-break: break-all;">{reset_url}</p>
        <p>This link is valid for 1 hour. If you did not ask for a reset, ignore this email.</p>
    """
    return await _send(email, "Password reset", _page(body))


async def send_booking_confirmation_email(email: EmailStr, booking_details: dict) -> bool:
    body = f"""
        <h1>✅ Appointment confirmed</h1>
        <p>Hi {booking_details['name']},</p>
        <p>Your appointment has been confirmed.</p>
        <p><span class="info-label">Service:</span> {booking_details['service']}</p>
        <p><span class="info-label">Date:</span> {booking_details['date']}</p>
        <p><span class="info-label">Time:</span> {booking_details['time']}</p>
        <p>Please arrive 10 minutes early. Contact the clinic if you need to reschedule.</p>
    """
    return await _send(email, "Appointment confirmed", _page(body))
