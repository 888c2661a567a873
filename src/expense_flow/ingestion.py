"""Expense ingestion from a submission mailbox.

Messages sent to the submission address are parsed into expenses and
submitted through the lifecycle engine exactly like manual submissions:
- the sender must be a registered user
- the first dollar amount in the body is the expense amount
- the subject becomes the description
- keywords pick a category
- the first attachment becomes the receipt

Deduplication relies on the mailbox read flag alone. If marking a message
read fails after its expense was created, the next pass creates it again.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from email.utils import parseaddr
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from expense_flow.dispatch import setting_enabled
from expense_flow.errors import ExpenseFlowError
from expense_flow.lifecycle import ExpenseSubmission, LifecycleEngine
from expense_flow.mileage import quantize_amount
from expense_flow.models import Attachment, SubmitterSnapshot
from expense_flow.repositories import RecordStore

logger = logging.getLogger(__name__)

DEFAULT_SUBMISSION_ADDRESS = "receipts@agency.com"
DEFAULT_DESCRIPTION = "Expense from email"
INBOX_ENABLED = "gmail_enabled"


# -----------------------------
# Data contracts
# -----------------------------


@dataclass(frozen=True)
class InboxMessage:
    message_id: str
    sender: str
    subject: str
    date: Optional[datetime]
    body_text: str
    attachments: Sequence[Attachment] = field(default_factory=tuple)


@dataclass(frozen=True)
class ParsedEmailExpense:
    amount: Decimal
    description: str
    category: str
    expense_date: date


@dataclass
class IngestReport:
    created: List[int] = field(default_factory=list)
    unparseable: List[str] = field(default_factory=list)
    unknown_submitters: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class InboxSource(Protocol):
    async def list_unread_matching(self, address_pattern: str) -> List[str]: ...

    async def fetch(self, message_id: str) -> InboxMessage: ...

    async def mark_read(self, message_id: str) -> None: ...


# -----------------------------
# Parsing helpers
# -----------------------------


_AMOUNT_RE = re.compile(r"\$\s?(\d{1,3}(?:,\d{3})+|\d+)(\.\d{1,2})?")
_EXPENSE_WORD_RE = re.compile(r"expense", re.IGNORECASE)


def extract_sender_address(from_header: str) -> str:
    _, address = parseaddr(from_header or "")
    return address.strip()


def _extract_amount(text: str) -> Optional[Decimal]:
    match = _AMOUNT_RE.search(text)
    if not match:
        return None
    raw = match.group(1).replace(",", "") + (match.group(2) or "")
    try:
        value = quantize_amount(Decimal(raw))
    except (InvalidOperation, ValueError):
        return None
    return value if value > 0 else None


def _extract_description(subject: str) -> str:
    description = subject.strip()
    if "expense" in description.lower():
        description = re.sub(r"\s+", " ", _EXPENSE_WORD_RE.sub("", description)).strip(" -:")
    return description or DEFAULT_DESCRIPTION


# -----------------------------
# Category classification
# -----------------------------


# Order matters: on equal keyword hits the earlier category wins.
CATEGORY_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "Meals & Entertainment": ("meal", "lunch", "dinner"),
    "Lodging": ("hotel", "accommodation"),
    "Transportation": ("uber", "taxi", "transport"),
    "Travel": ("flight", "airline"),
}
FALLBACK_CATEGORY = "Other"


class EmailCategoryClassifier:
    def __init__(self, category_keywords: Optional[Dict[str, Iterable[str]]] = None) -> None:
        source = category_keywords or CATEGORY_KEYWORDS
        self.category_keywords = {k: tuple(v) for k, v in source.items()}

    def classify(self, *texts: str) -> str:
        corpus = " ".join(texts).lower()
        for category, keywords in self.category_keywords.items():
            if any(kw in corpus for kw in keywords):
                return category
        return FALLBACK_CATEGORY


def parse_expense_email(
    body: str,
    subject: str,
    received_at: Optional[datetime] = None,
    classifier: Optional[EmailCategoryClassifier] = None,
    today: Optional[date] = None,
) -> Optional[ParsedEmailExpense]:
    """Return the expense described by a message, or None when it has no amount."""
    amount = _extract_amount(body or "")
    if amount is None:
        return None
    classifier = classifier or EmailCategoryClassifier()
    if received_at is not None:
        expense_date = received_at.date()
    else:
        expense_date = today or date.today()
    return ParsedEmailExpense(
        amount=amount,
        description=_extract_description(subject or ""),
        category=classifier.classify(body or "", subject or ""),
        expense_date=expense_date,
    )


# -----------------------------
# Ingestor
# -----------------------------


class InboxIngestor:
    """Turns unread submission emails into pending expenses."""

    def __init__(
        self,
        store: RecordStore,
        engine: LifecycleEngine,
        inbox: InboxSource,
        submission_address: str = DEFAULT_SUBMISSION_ADDRESS,
        classifier: Optional[EmailCategoryClassifier] = None,
    ) -> None:
        self.store = store
        self.engine = engine
        self.inbox = inbox
        self.submission_address = submission_address
        self.classifier = classifier or EmailCategoryClassifier()

    async def ingest(self) -> IngestReport:
        report = IngestReport()
        if not setting_enabled(self.store, INBOX_ENABLED):
            logger.info("Inbox ingestion disabled by setting %s", INBOX_ENABLED)
            return report

        message_ids = await self.inbox.list_unread_matching(self.submission_address)
        for message_id in message_ids:
            try:
                await self._process(message_id, report)
            except Exception:
                report.failed.append(message_id)
                logger.exception("Error processing message %s", message_id, extra={"message_id": message_id})
        logger.info(
            "Inbox ingestion created %d expenses from %d messages",
            len(report.created),
            len(message_ids),
        )
        return report

    async def _process(self, message_id: str, report: IngestReport) -> None:
        message = await self.inbox.fetch(message_id)
        sender = extract_sender_address(message.sender)
        if not sender:
            logger.warning("No sender found for message %s", message_id, extra={"message_id": message_id})
            report.failed.append(message_id)
            return

        parsed = parse_expense_email(
            message.body_text,
            message.subject,
            received_at=message.date,
            classifier=self.classifier,
            today=self.engine.clock().date(),
        )
        if parsed is None:
            logger.warning("Could not parse expense data from message %s", message_id, extra={"message_id": message_id})
            report.unparseable.append(message_id)
            await self._mark_read(message_id)
            return

        user = self.store.find_user_by_email(sender)
        if user is None:
            logger.warning(
                "Unknown submitter %s for message %s",
                sender,
                message_id,
                extra={"message_id": message_id},
            )
            report.unknown_submitters.append(message_id)
            return

        submission = ExpenseSubmission(
            description=parsed.description,
            category=parsed.category,
            expense_date=parsed.expense_date,
            amount=parsed.amount,
        )
        attachment = message.attachments[0] if message.attachments else None
        try:
            expense = await self.engine.submit(
                SubmitterSnapshot.from_user(user),
                submission,
                email_id=message_id,
                attachment=attachment,
            )
        except ExpenseFlowError as exc:
            logger.warning(
                "Message %s rejected: %s",
                message_id,
                exc.message,
                extra={"message_id": message_id, "user_id": user.id},
            )
            report.failed.append(message_id)
            return

        report.created.append(expense.id)
        await self._mark_read(message_id)
        logger.info(
            "Processed expense email from %s: $%s",
            sender,
            expense.amount,
            extra={"message_id": message_id, "expense_id": expense.id, "user_id": user.id},
        )

    async def _mark_read(self, message_id: str) -> None:
        try:
            await self.inbox.mark_read(message_id)
        except Exception:
            logger.exception(
                "Could not mark message %s read; it will be ingested again",
                message_id,
                extra={"message_id": message_id},
            )
