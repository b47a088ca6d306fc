"""Postmark batch API client for broadcast campaigns."""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from typing import Any, Sequence
from urllib.parse import quote

import httpx
from loguru import logger

from grc_api.core.settings import Settings, get_settings
from grc_api.domain.grc import utcnow

_STYLE_OR_SCRIPT = re.compile(r"<(style|script)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
_LINK = re.compile(r'<a[^>]*href="([^"]*)"[^>]*>([^<]*)</a>', re.IGNORECASE)
_TAG = re.compile(r"<[^>]+>")
_BLANK_LINES = re.compile(r"\n{3,}")

_BLOCK_ENDINGS = (
    (re.compile(r"<br\s*/?>", re.IGNORECASE), "\n"),
    (re.compile(r"</p>", re.IGNORECASE), "\n\n"),
    (re.compile(r"</div>", re.IGNORECASE), "\n"),
    (re.compile(r"</h[1-6]>", re.IGNORECASE), "\n\n"),
    (re.compile(r"<li[^>]*>", re.IGNORECASE), "- "),
    (re.compile(r"</li>", re.IGNORECASE), "\n"),
)


def html_to_text(content: str) -> str:
    text = _STYLE_OR_SCRIPT.sub("", content)
    text = _LINK.sub(r"\2 (\1)", text)
    for pattern, replacement in _BLOCK_ENDINGS:
        text = pattern.sub(replacement, text)
    text = html.unescape(_TAG.sub("", text))
    return _BLANK_LINES.sub("\n\n", text).strip()


@dataclass(slots=True)
class BroadcastRecipient:
    email: str
    name: str | None = None
    user_id: str | None = None
    recipient_id: str | None = None


def personalize(content: str, recipient: BroadcastRecipient) -> str:
    name = (recipient.name or "").strip()
    first_name = name.split(" ")[0] if name else "there"
    return (
        content.replace("{{name}}", name or "there")
        .replace("{{firstName}}", first_name)
        .replace("{{email}}", recipient.email)
    )


@dataclass(slots=True)
class DeliveryOutcome:
    recipient: BroadcastRecipient
    message_id: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class BroadcastResult:
    outcomes: list[DeliveryOutcome] = field(default_factory=list)

    @property
    def sent(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.ok)

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.ok)


class PostmarkBroadcastClient:
    """Send personalised broadcast messages through ``/email/batch``."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._http_client = http_client

    def unsubscribe_url(self, recipient: BroadcastRecipient) -> str:
        base = self._settings.frontend_url.rstrip("/")
        return f"{base}/unsubscribe?email={quote(recipient.email)}"

    def build_message(
        self,
        recipient: BroadcastRecipient,
        *,
        subject: str,
        html_content: str,
        campaign_id: str | None = None,
        preview_text: str | None = None,
    ) -> dict[str, Any]:
        unsubscribe_url = self.unsubscribe_url(recipient)
        body = personalize(html_content, recipient)
        preheader = ""
        if preview_text:
            preheader = f'<div style="display:none;max-height:0;overflow:hidden">{html.escape(personalize(preview_text, recipient))}</div>'
        footer = (
            '<p style="font-size:12px;color:#888">'
            f'You are receiving this because you have an account with us. <a href="{unsubscribe_url}">Unsubscribe</a>'
            "</p>"
        )
        message: dict[str, Any] = {
            "From": self._settings.postmark_from_email,
            "To": recipient.email,
            "Subject": personalize(subject, recipient),
            "HtmlBody": f"{preheader}{body}{footer}",
            "TextBody": f"{html_to_text(body)}\n\n---\nTo unsubscribe: {unsubscribe_url}",
            "MessageStream": self._settings.postmark_message_stream,
            "TrackOpens": True,
            "TrackLinks": "HtmlAndText",
            "Headers": [
                {"Name": "List-Unsubscribe", "Value": f"<{unsubscribe_url}>"},
                {"Name": "List-Unsubscribe-Post", "Value": "List-Unsubscribe=One-Click"},
            ],
            "Metadata": {
                "campaignId": campaign_id or "",
                "recipientId": recipient.recipient_id or "",
            },
        }
        if campaign_id:
            message["Tag"] = f"campaign_{campaign_id}"
        return message

    async def send(
        self,
        recipients: Sequence[BroadcastRecipient],
        *,
        subject: str,
        html_content: str,
        campaign_id: str | None = None,
        preview_text: str | None = None,
    ) -> BroadcastResult:
        result = BroadcastResult()
        if not self._settings.postmark_server_token:
            logger.info(
                "Postmark not configured; broadcast logged only",
                campaign_id=campaign_id,
                recipients=len(recipients),
            )
            stamp = int(utcnow().timestamp())
            result.outcomes.extend(
                DeliveryOutcome(recipient=recipient, message_id=f"mock-{stamp}-{index}")
                for index, recipient in enumerate(recipients)
            )
            return result

        batch_size = max(1, min(self._settings.postmark_batch_size, 500))
        close_client = False
        client = self._http_client
        if client is None:
            client = httpx.AsyncClient(timeout=30.0)
            close_client = True
        try:
            for start in range(0, len(recipients), batch_size):
                batch = list(recipients[start:start + batch_size])
                messages = [
                    self.build_message(
                        recipient,
                        subject=subject,
                        html_content=html_content,
                        campaign_id=campaign_id,
                        preview_text=preview_text,
                    )
                    for recipient in batch
                ]
                result.outcomes.extend(await self._send_batch(client, batch, messages))
        finally:
            if close_client:
                await client.aclose()

        logger.info("Broadcast sent", campaign_id=campaign_id, sent=result.sent, failed=result.failed)
        return result

    async def _send_batch(
        self,
        client: httpx.AsyncClient,
        batch: list[BroadcastRecipient],
        messages: list[dict[str, Any]],
    ) -> list[DeliveryOutcome]:
        url = f"{self._settings.postmark_base_url.rstrip('/')}/email/batch"
        try:
            response = await client.post(
                url,
                json=messages,
                headers={
                    "Accept": "application/json",
                    "X-Postmark-Server-Token": self._settings.postmark_server_token,
                },
            )
        except httpx.HTTPError as exc:
            logger.warning("Postmark batch request failed", error=str(exc), size=len(batch))
            return [DeliveryOutcome(recipient=recipient, error="Network error") for recipient in batch]

        if not response.is_success:
            logger.warning("Postmark batch rejected", status_code=response.status_code, body=response.text[:500])
            return [DeliveryOutcome(recipient=recipient, error="Batch send failed") for recipient in batch]

        payload = response.json()
        outcomes: list[DeliveryOutcome] = []
        for index, recipient in enumerate(batch):
            entry = payload[index] if isinstance(payload, list) and index < len(payload) else {}
            if entry.get("ErrorCode") == 0 and entry.get("MessageID"):
                outcomes.append(DeliveryOutcome(recipient=recipient, message_id=str(entry["MessageID"])))
            else:
                outcomes.append(DeliveryOutcome(recipient=recipient, error=str(entry.get("Message") or "Unknown error")))
        return outcomes
