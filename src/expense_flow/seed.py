from __future__ import annotations

import logging

from expense_flow.repositories import RecordStore

logger = logging.getLogger(__name__)

DEFAULT_USERS = (
    {"email": "admin@agency.com", "name": "Admin User", "department": "Administration", "role": "admin"},
    {"email": "manager@agency.com", "name": "Finance Manager", "department": "Finance", "role": "approver"},
    {"email": "sarah@agency.com", "name": "Sarah Miller", "department": "Marketing", "role": "employee"},
    {"email": "michael@agency.com", "name": "Michael Johnson", "department": "Engineering", "role": "employee"},
)

DEFAULT_SETTINGS = {
    "gmail_enabled": "true",
    "sheets_enabled": "true",
    "notifications_enabled": "true",
}


def seed_defaults(store: RecordStore) -> bool:
    """Create the default accounts and toggles on an empty store; returns True if it did."""
    if store.find_user_by_email(DEFAULT_USERS[0]["email"]) is not None:
        return False
    for user in DEFAULT_USERS:
        if store.find_user_by_email(user["email"]) is None:
            store.create_user(**user)
    for key, value in DEFAULT_SETTINGS.items():
        if store.get_setting(key) is None:
            store.set_setting(key, value)
    logger.info("Store initialized with default data")
    return True
