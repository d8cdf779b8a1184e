"""Transactional e-mail via the configured send-email endpoint."""

import json
import logging
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from vidgate.config import settings

logger = logging.getLogger(__name__)

PLAYLIST_READY_SUBJECT = "Your Video Playlist is Ready!"


class EmailError(Exception):
    """Raised when an e-mail could not be handed to the sender."""


class EmailSender:
    """Posts ``{"to", "subject", "html", "from"}`` as JSON to the e-mail API."""

    def __init__(self, endpoint: str | None = None, sender: str | None = None,
                 timeout: float | None = None) -> None:
        self._endpoint = endpoint or settings.email_endpoint
        self._sender = sender or settings.email_sender
        self._timeout = timeout or settings.email_timeout

    def send(self, to: str, subject: str, html: str) -> None:
        """Send one message.

        Raises:
            EmailError: If the API is unreachable or rejects the message.
        """
        body = json.dumps({
            "to": to,
            "from": self._sender,
            "subject": subject,
            "html": html,
        }).encode("utf-8")
        req = Request(
            self._endpoint,
            data=body,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urlopen(req, timeout=self._timeout) as resp:
                data = json.loads(resp.read().decode("utf-8") or "{}")
        except HTTPError as e:
            if e.code == 401:
                raise EmailError("Invalid email credentials. Check the email configuration.") from e
            if e.code == 503:
                raise EmailError("Unable to connect to email server. Try again later.") from e
            raise EmailError(f"Email API returned {e.code}: {e.reason}") from e
        except (URLError, TimeoutError, json.JSONDecodeError) as e:
            raise EmailError(f"Email request failed: {e}") from e

        if data.get("success") is False:
            raise EmailError(data.get("error") or "Email sending failed without specific error")
        logger.info("Email sent to %s: %s", to, subject)


def playlist_ready_html(playlist_url: str) -> str:
    """Body of the "playlist ready" e-mail."""
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #333;">Your Video Playlist is Ready!</h2>
  <p>Your playlist has been created successfully. Click the button below to start watching:</p>
  <a href="{playlist_url}"
     style="display: inline-block; background-color: #0070f3; color: white;
            padding: 12px 24px; text-decoration: none; border-radius: 5px; margin: 20px 0;">
    View Your Playlist
  </a>
  <p style="color: #666; font-size: 14px;">
    If the button doesn't work, copy and paste this link into your browser:<br>
    <span style="color: #0070f3;">{playlist_url}</span>
  </p>
</div>
""".strip()
