"""
Email service for account and document review notices.
Uses fastapi-mail; the FastMail instance lives on app.state.mail and is
None when SMTP credentials are not configured.
"""
from typing import Optional, TYPE_CHECKING

from core.logger import logger
import config

if TYPE_CHECKING:
    from fastapi_mail import FastMail

REVIEW_SUBJECTS = {
    "approved": "Documento aprovado",
    "rejected": "Documento rejeitado",
}


def build_mail_client() -> Optional["FastMail"]:
    """FastMail client from SMTP settings, or None when credentials are missing."""
    if not (config.SMTP_USER and config.SMTP_PASSWORD):
        logger.warning("SMTP credentials not set (SMTP_USER/SMTP_PASSWORD). Emails will not be sent.")
        return None

    from fastapi_mail import FastMail, ConnectionConfig

    mail_conf = ConnectionConfig(
        MAIL_USERNAME=config.SMTP_USER,
        MAIL_PASSWORD=config.SMTP_PASSWORD,
        MAIL_FROM=config.SMTP_FROM_EMAIL or config.SMTP_USER,
        MAIL_FROM_NAME=config.SMTP_FROM_NAME,
        MAIL_PORT=config.SMTP_PORT,
        MAIL_SERVER=config.SMTP_HOST,
        MAIL_STARTTLS=config.SMTP_USE_TLS,
        MAIL_SSL_TLS=config.SMTP_USE_SSL,
        USE_CREDENTIALS=True,
        VALIDATE_CERTS=True,
    )
    return FastMail(mail_conf)


class EmailService:
    """Best-effort e-mails; failures are logged and reported as False."""

    @staticmethod
    async def send_html(fm: Optional["FastMail"], to_email: str, subject: str, html_body: str) -> bool:
        if fm is None:
            return False

        from fastapi_mail import MessageSchema, MessageType

        message = MessageSchema(
            subject=subject,
            recipients=[to_email],
            body=html_body,
            subtype=MessageType.html,
        )
        try:
            await fm.send_message(message)
            logger.info(f"Email '{subject}' sent to {to_email}")
            return True
        except Exception as e:
            logger.error(f"Failed to send email to {to_email}: {e}", exc_info=True)
            return False

    @staticmethod
    async def send_document_review_email(
        fm: Optional["FastMail"],
        to_email: str,
        full_name: str,
        document_type: str,
        status: str,
        notes: Optional[str] = None
    ) -> bool:
        """Tell a student their document was approved or rejected."""
        subject = f"{REVIEW_SUBJECTS.get(status, 'Documento revisado')} - {config.SMTP_FROM_NAME}"
        notes_html = f"<p><strong>Observações:</strong> {notes}</p>" if notes else ""
        html_body = f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
                <h2>{config.SMTP_FROM_NAME}</h2>
                <p>Olá {full_name},</p>
                <p>Seu documento <strong>{document_type}</strong> foi
                   <strong>{'aprovado' if status == 'approved' else 'rejeitado'}</strong>.</p>
                {notes_html}
                <p style="color: #666; font-size: 12px;">Acesse o portal para mais detalhes.</p>
            </div>
        </body>
        </html>
        """
        return await EmailService.send_html(fm, to_email, subject, html_body)

    @staticmethod
    async def send_welcome_email(fm: Optional["FastMail"], to_email: str, full_name: str) -> bool:
        subject = f"Bem-vindo ao {config.SMTP_FROM_NAME}"
        html_body = f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
                <h2>{config.SMTP_FROM_NAME}</h2>
                <p>Olá {full_name},</p>
                <p>Sua conta foi criada com sucesso.</p>
            </div>
        </body>
        </html>
        """
        return await EmailService.send_html(fm, to_email, subject, html_body)
