"""
Narrow interfaces to the collaborators the core depends on but does not own:
user channel preferences, identity (user -> email) and the item catalog.

Each has a SQLAlchemy-backed default; tests swap in fakes.
"""
from typing import Optional, Protocol

from sqlalchemy.orm import Session

from dosetrack.models.item import Item
from dosetrack.models.notification import NotificationPreference
from dosetrack.models.user import User
from dosetrack.schemas.notification import ChannelPreferences


class UserPreferencesStore(Protocol):
    def get_preferences(self, user_id: str) -> ChannelPreferences:  # pragma: no cover - Protocol
        ...


class IdentityProvider(Protocol):
    def resolve_email(self, user_id: str) -> Optional[str]:  # pragma: no cover - Protocol
        ...


class ItemCatalog(Protocol):
    def display_name(self, item_id: str) -> Optional[str]:  # pragma: no cover - Protocol
        ...


class SqlPreferencesStore:
    def __init__(self, db: Session):
        self.db = db

    def get_preferences(self, user_id: str) -> ChannelPreferences:
        row = self.db.get(NotificationPreference, user_id)
        if row is None:
            # No row means defaults: email on, push/chat off
            return ChannelPreferences()
        return ChannelPreferences(
            push_enabled=bool(row.push_enabled),
            push_token=row.push_token,
            email_enabled=bool(row.email_enabled),
            chat_enabled=bool(row.chat_enabled),
            chat_address=row.chat_address,
        )


class SqlIdentityProvider:
    def __init__(self, db: Session):
        self.db = db

    def resolve_email(self, user_id: str) -> Optional[str]:
        user = self.db.get(User, user_id)
        return user.email if user and user.email else None


class SqlItemCatalog:
    def __init__(self, db: Session):
        self.db = db

    def display_name(self, item_id: str) -> Optional[str]:
        item = self.db.get(Item, item_id)
        return item.name if item else None
