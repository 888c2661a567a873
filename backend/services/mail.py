"""Mail collaborators: an HTTP mail-relay notifier and a Maildir submission inbox."""

from __future__ import annotations

import asyncio
import mailbox
from datetime import datetime
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import getaddresses, parsedate_to_datetime
from pathlib import Path
from typing import List, Optional

import httpx

from expense_flow.errors import ExternalSinkError
from expense_flow.ingestion import InboxMessage
from expense_flow.models import Attachment


class HttpMailNotifier:
    """Sends plain-text mail through a JSON relay endpoint (``POST {from, to, subject, text}``)."""

    def __init__(
        self,
        endpoint: str,
        sender: str,
        api_key: str = "",
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.endpoint = endpoint
        self.sender = sender
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def send(self, to_address: str, subject: str, body: str) -> None:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        payload = {"from": self.sender, "to": to_address, "subject": subject, "text": body}
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.post(self.endpoint, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ExternalSinkError(
                "notifier", f"mail relay returned {exc.response.status_code} for {to_address}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ExternalSinkError("notifier", f"mail relay unreachable: {exc}") from exc


def _addressed_to(message: EmailMessage, address: str) -> bool:
    recipients = getaddresses(message.get_all("To", []) + message.get_all("Cc", []))
    wanted = address.lower()
    return any(addr.lower() == wanted for _, addr in recipients)


def _message_date(message: EmailMessage) -> Optional[datetime]:
    raw = message.get("Date")
    if not raw:
        return None
    try:
        return parsedate_to_datetime(str(raw))
    except (TypeError, ValueError):
        return None


def _body_text(message: EmailMessage) -> str:
    part = message.get_body(preferencelist=("plain",))
    return part.get_content() if part is not None else ""


def _attachments(message: EmailMessage) -> List[Attachment]:
    found = []
    for part in message.iter_attachments():
        filename = part.get_filename()
        content = part.get_payload(decode=True)
        if filename and content:
            found.append(Attachment(filename=filename, content_type=part.get_content_type(), content=content))
    return found


class MaildirInbox:
    """Submission inbox over a Maildir; the Maildir "seen" flag is the read marker."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _open(self) -> mailbox.Maildir:
        return mailbox.Maildir(self.path, factory=None, create=True)

    async def list_unread_matching(self, address_pattern: str) -> List[str]:
        return await asyncio.to_thread(self._list_unread, address_pattern)

    async def fetch(self, message_id: str) -> InboxMessage:
        return await asyncio.to_thread(self._fetch, message_id)

    async def mark_read(self, message_id: str) -> None:
        await asyncio.to_thread(self._mark_read, message_id)

    def _parse(self, box: mailbox.Maildir, message_id: str) -> EmailMessage:
        try:
            with box.get_file(message_id) as handle:
                return BytesParser(policy=policy.default).parse(handle)
        except KeyError as exc:
            raise ExternalSinkError("inbox", f"message {message_id} not found") from exc

    def _list_unread(self, address_pattern: str) -> List[str]:
        box = self._open()
        unread = []
        for key in sorted(box.keys()):
            if "S" in box.get_message(key).get_flags():
                continue
            if _addressed_to(self._parse(box, key), address_pattern):
                unread.append(key)
        return unread

    def _fetch(self, message_id: str) -> InboxMessage:
        message = self._parse(self._open(), message_id)
        return InboxMessage(
            message_id=message_id,
            sender=str(message.get("From", "")),
            subject=str(message.get("Subject", "")),
            date=_message_date(message),
            body_text=_body_text(message),
            attachments=tuple(_attachments(message)),
        )

    def _mark_read(self, message_id: str) -> None:
        box = self._open()
        try:
            stored = box.get_message(message_id)
        except KeyError as exc:
            raise ExternalSinkError("inbox", f"message {message_id} not found") from exc
        stored.set_subdir("cur")
        stored.add_flag("S")
        box[message_id] = stored
