"""
core/mailer.py -- Outbound e-mail delivery.

Two implementations share one method, send(recipient, subject, html):

  MailgunMailer -- posts to Mailgun's HTTP API with requests. Failures raise
      MailDeliveryError so the caller decides what the user sees.
  LogMailer     -- writes a one-line notice to the log instead of sending.
      Selected automatically when Mailgun is not configured (dev, tests).

build_mailer() picks one from Settings. Message bodies are never logged:
recovery mails carry a live secret.
"""

from __future__ import annotations

import html
import logging

import requests

from core.config import Settings
from core.errors import MailDeliveryError

logger = logging.getLogger("servpanel.mail")

# Module-level session shared across sends for connection pooling.
_session = requests.Session()
_session.max_redirects = 3


class MailgunMailer:
    def __init__(self, domain: str, api_key: str, sender: str, api_base: str = "https://api.mailgun.net/v3") -> None:
        self.domain = domain
        self.sender = sender
        self._api_key = api_key
        self._url = f"{api_base.rstrip('/')}/{domain}/messages"

    def send(self, recipient: str, subject: str, html_body: str) -> None:
        """Send an HTML message. Raises MailDeliveryError on any transport or API failure."""
        try:
            resp = _session.post(
                self._url,
                auth=("api", self._api_key),
                data={"from": self.sender, "to": recipient, "subject": subject, "html": html_body},
                timeout=10,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.warning("Mailgun delivery to %s failed: %s", recipient, e)
            raise MailDeliveryError("Could not deliver e-mail.") from e
        logger.info("Mail '%s' sent to %s", subject, recipient)


class LogMailer:
    """Stand-in used when no mail provider is configured."""

    def send(self, recipient: str, subject: str, html_body: str) -> None:
        logger.info("Mail provider not configured; '%s' to %s not sent", subject, recipient)


def build_mailer(settings: Settings) -> MailgunMailer | LogMailer:
    if settings.mailgun_domain and settings.mailgun_api_key:
        return MailgunMailer(
            settings.mailgun_domain,
            settings.mailgun_api_key,
            settings.mail_sender,
            api_base=settings.mailgun_api_base,
        )
    return LogMailer()


def render_recovery_email(token: str, recovery_url: str) -> str:
    """Return the HTML body of a password-recovery message."""
    safe_token = html.escape(token)
    link = html.escape(recovery_url.format(token=token), quote=True)
    return f"""
<html>
<body>
  <div style="text-align: center;">
    <p>Your recovery token is: <strong>{safe_token}</strong></p>
    <p>Enter it on the website to choose a new password. It is valid for 24 hours.</p>
    <a href="{link}" style="display: inline-block; background-color: #007BFF; color: white;
       padding: 10px 20px; text-decoration: none; border-radius: 5px; font-weight: bold;">Reset password</a>
  </div>
</body>
</html>
"""
