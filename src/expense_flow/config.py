from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel

from expense_flow.db import DEFAULT_MIGRATION

CONFIG_ENV_VAR = "EXPENSE_FLOW_CONFIG"
DEFAULT_CONFIG_PATH = Path("config/expense_flow.yaml")


class DatabaseConfig(BaseModel):
    backend: str = "sqlite"
    path: str = "data/expense_flow.sqlite3"
    migration: Path = DEFAULT_MIGRATION
    seed_defaults: bool = True


class LedgerConfig(BaseModel):
    enabled: bool = True
    workbook_path: Path = Path("data/expense_ledger.xlsx")
    sheet_name: str = "Expenses"


class NotifierConfig(BaseModel):
    enabled: bool = False
    endpoint: str = ""
    sender: str = "expenses@agency.com"
    api_key: str = ""
    timeout_seconds: float = 10.0


class InboxConfig(BaseModel):
    enabled: bool = False
    maildir_path: Path = Path("data/inbox")
    submission_address: str = "receipts@agency.com"


class ReceiptConfig(BaseModel):
    upload_dir: Path = Path("data/receipts")
    public_base_url: str = "http://localhost:8000/receipts"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    logs_path: Optional[Path] = None


class AppConfig(BaseModel):
    database: DatabaseConfig = DatabaseConfig()
    ledger: LedgerConfig = LedgerConfig()
    notifier: NotifierConfig = NotifierConfig()
    inbox: InboxConfig = InboxConfig()
    receipts: ReceiptConfig = ReceiptConfig()
    logging: LoggingConfig = LoggingConfig()


def _load_mapping(config_path: Path) -> dict[str, Any]:
    with config_path.open("r", encoding="utf-8") as config_file:
        loaded = yaml.safe_load(config_file)

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        msg = f"Config file must contain a dictionary at root: {config_path}"
        raise ValueError(msg)
    return loaded


def load_config(path: Optional[Path | str] = None) -> AppConfig:
    """Read the YAML config; a missing default file means built-in defaults."""
    if path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH
        if not env_path and not path.exists():
            return AppConfig()
    return AppConfig.model_validate(_load_mapping(Path(path)))
