import asyncio
from email.message import EmailMessage
import json
import mailbox

import httpx
import pytest

from backend.services.mail import HttpMailNotifier, MaildirInbox
from backend.services.receipt_hosting import LocalFileHost, sanitize_filename
from expense_flow.errors import ExternalSinkError


def _notifier(handler) -> HttpMailNotifier:
    return HttpMailNotifier(
        endpoint="https://mail.example.com/send",
        sender="expenses@agency.com",
        api_key="secret",
        transport=httpx.MockTransport(handler),
    )


def test_notifier_posts_plain_text_message():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.headers["Authorization"], json.loads(request.content)))
        return httpx.Response(202, json={"queued": True})

    asyncio.run(_notifier(handler).send("sarah@agency.com", "Expense Report Approved - $156.50", "Approved"))

    auth_header, payload = seen[0]
    assert auth_header == "Bearer secret"
    assert payload == {
        "from": "expenses@agency.com",
        "to": "sarah@agency.com",
        "subject": "Expense Report Approved - $156.50",
        "text": "Approved",
    }


def test_notifier_raises_sink_error_on_relay_failure():
    notifier = _notifier(lambda request: httpx.Response(503, text="unavailable"))

    with pytest.raises(ExternalSinkError) as excinfo:
        asyncio.run(notifier.send("sarah@agency.com", "Subject", "Body"))

    assert excinfo.value.sink == "notifier"


def _email(to: str, subject: str, body: str, attachment: bytes = b"") -> EmailMessage:
    message = EmailMessage()
    message["From"] = "Sarah Miller <sarah@agency.com>"
    message["To"] = to
    message["Subject"] = subject
    message["Date"] = "Sat, 21 Jun 2025 14:30:00 +0000"
    message.set_content(body)
    if attachment:
        message.add_attachment(attachment, maintype="image", subtype="jpeg", filename="lunch.jpg")
    return message


def test_maildir_inbox_lists_unread_submissions_and_marks_them_read(tmp_path):
    box = mailbox.Maildir(tmp_path / "inbox", create=True)
    wanted = box.add(_email("receipts@agency.com", "Team lunch expense", "Total $156.50", b"\xff\xd8\xff"))
    box.add(_email("someone@agency.com", "Hello", "Not an expense"))
    inbox = MaildirInbox(tmp_path / "inbox")

    unread = asyncio.run(inbox.list_unread_matching("receipts@agency.com"))
    message = asyncio.run(inbox.fetch(wanted))
    asyncio.run(inbox.mark_read(wanted))

    assert unread == [wanted]
    assert message.sender == "Sarah Miller <sarah@agency.com>"
    assert message.subject == "Team lunch expense"
    assert message.body_text.strip() == "Total $156.50"
    assert message.date.year == 2025
    assert [a.filename for a in message.attachments] == ["lunch.jpg"]
    assert message.attachments[0].content_type == "image/jpeg"
    assert asyncio.run(inbox.list_unread_matching("receipts@agency.com")) == []


def test_local_file_host_stores_supported_receipts(tmp_path):
    host = LocalFileHost(base_dir=tmp_path / "receipts", public_base_url="http://localhost:8000/receipts/")

    url = asyncio.run(host.upload("../team lunch.pdf", "application/pdf", b"%PDF-1.7"))

    stored_name = url.rsplit("/", 1)[-1]
    assert url.startswith("http://localhost:8000/receipts/")
    assert stored_name.endswith("-team_lunch.pdf")
    assert host.upload_path(stored_name).read_bytes() == b"%PDF-1.7"
    with pytest.raises(ExternalSinkError):
        asyncio.run(host.upload("notes.txt", "text/plain", b"hi"))
    assert sanitize_filename("") == "receipt.bin"
