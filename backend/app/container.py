from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from backend.services.mail import HttpMailNotifier, MaildirInbox
from backend.services.receipt_hosting import LocalFileHost
from backend.services.sheets_ledger import WorkbookLedger
from expense_flow.auth import AuthService, CredentialStore, InMemoryCredentialStore
from expense_flow.config import AppConfig
from expense_flow.db import apply_sqlite_migration, connect_sqlite
from expense_flow.dispatch import ExpenseDispatcher
from expense_flow.ingestion import InboxIngestor
from expense_flow.lifecycle import LifecycleEngine
from expense_flow.reconciliation import Reconciler
from expense_flow.repositories import InMemoryRecordStore, RecordStore, SqliteRecordStore
from expense_flow.seed import seed_defaults
from expense_flow.services import ExpenseService

logger = logging.getLogger(__name__)


@dataclass
class Container:
    config: AppConfig
    store: RecordStore
    auth: AuthService
    service: ExpenseService
    file_host: LocalFileHost


def build_store(config: AppConfig) -> RecordStore:
    if config.database.backend == "memory":
        return InMemoryRecordStore()
    if config.database.backend != "sqlite":
        raise ValueError(f"Unknown database backend: {config.database.backend}")
    if config.database.path != ":memory:":
        Path(config.database.path).parent.mkdir(parents=True, exist_ok=True)
    # The event loop thread is the only user, but it is not the thread that builds the app.
    conn = connect_sqlite(config.database.path, check_same_thread=False)
    apply_sqlite_migration(conn, config.database.migration)
    return SqliteRecordStore(conn)


def build_container(config: AppConfig, credentials: Optional[CredentialStore] = None) -> Container:
    store = build_store(config)
    if config.database.seed_defaults:
        seed_defaults(store)

    ledger = None
    if config.ledger.enabled:
        ledger = WorkbookLedger(config.ledger.workbook_path, config.ledger.sheet_name)

    notifier = None
    if config.notifier.enabled and config.notifier.endpoint:
        notifier = HttpMailNotifier(
            endpoint=config.notifier.endpoint,
            sender=config.notifier.sender,
            api_key=config.notifier.api_key,
            timeout_seconds=config.notifier.timeout_seconds,
        )

    file_host = LocalFileHost(config.receipts.upload_dir, config.receipts.public_base_url)
    dispatcher = ExpenseDispatcher(store, ledger=ledger, notifier=notifier)
    engine = LifecycleEngine(store, dispatcher, file_host=file_host)

    ingestor = None
    if config.inbox.enabled:
        ingestor = InboxIngestor(
            store,
            engine,
            MaildirInbox(config.inbox.maildir_path),
            submission_address=config.inbox.submission_address,
        )

    service = ExpenseService(store, engine, Reconciler(store, dispatcher), ingestor)
    auth = AuthService(store, credentials or InMemoryCredentialStore())
    logger.info(
        "Expense flow wired (store=%s, ledger=%s, notifier=%s, inbox=%s)",
        config.database.backend,
        ledger is not None,
        notifier is not None,
        ingestor is not None,
    )
    return Container(config=config, store=store, auth=auth, service=service, file_host=file_host)
