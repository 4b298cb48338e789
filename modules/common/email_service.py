# modules/common/email_service.py
import logging
import smtplib
import ssl
from collections import deque
from email.message import EmailMessage
from typing import Deque, Iterable, List, Optional

logger = logging.getLogger(__name__)

OUTBOX_SIZE = 100


class EmailService:
    def __init__(self, settings):
        self.s = settings
        # last OUTBOX_SIZE messages rendered by the console backend (handy in dev)
        self.outbox: Deque[EmailMessage] = deque(maxlen=OUTBOX_SIZE)

    def _as_msg(self, subject: str, to: List[str], html: str, text: Optional[str] = None) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = f"{self.s.EMAIL_FROM_NAME} <{self.s.EMAIL_FROM or 'noreply@localhost'}>"
        msg["To"] = ", ".join(to)
        msg["Subject"] = subject
        msg.set_content(text or " ")
        if html:
            msg.add_alternative(html, subtype="html")
        return msg

    def _send_smtp(self, msg: EmailMessage) -> bool:
        context = ssl.create_default_context()
        try:
            if self.s.EMAIL_USE_SSL:
                with smtplib.SMTP_SSL(self.s.EMAIL_HOST, self.s.EMAIL_PORT, context=context, timeout=20) as server:
                    if self.s.EMAIL_USERNAME:
                        server.login(self.s.EMAIL_USERNAME, self.s.EMAIL_PASSWORD)
                    server.send_message(msg)
            else:
                with smtplib.SMTP(self.s.EMAIL_HOST, self.s.EMAIL_PORT, timeout=20) as server:
                    if self.s.EMAIL_USE_TLS:
                        server.starttls(context=context)
                    if self.s.EMAIL_USERNAME:
                        server.login(self.s.EMAIL_USERNAME, self.s.EMAIL_PASSWORD)
                    server.send_message(msg)
            logger.info("[Email] Sent via SMTP: %s -> %s", msg["Subject"], msg["To"])
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.exception("SMTP failed (%s): %s", e.__class__.__name__, e)
            return False

    def send(self, subject: str, to: Iterable[str], html: str, text: Optional[str] = None) -> bool:
        """Fail-safe: never raises; returns whether the message left the process."""
        recipients = sorted({e.strip() for e in to if e and "@" in e})
        if not recipients:
            return False

        if not self.s.EMAIL_ENABLED:
            logger.info("[Email] Suppressed (EMAIL_ENABLED=False): %s -> %s", subject, recipients)
            return False

        msg = self._as_msg(subject, recipients, html, text)

        if (self.s.EMAIL_BACKEND or "").lower() == "console":
            self.outbox.append(msg)
            logger.info("[Email console] SUBJECT: %s", subject)
            logger.info("[Email console] TO: %s", ", ".join(recipients))
            logger.info("[Email console] HTML:\n%s", html)
            return True

        if not self.s.EMAIL_HOST or not self.s.EMAIL_PORT:
            logger.error("EMAIL_HOST/EMAIL_PORT not configured")
            return False

        return self._send_smtp(msg)
