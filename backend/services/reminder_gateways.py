"""
Store-facing collaborators for the reminder engine.

MongoEntityGateway answers "which records are due", MongoRecipientRegistry
answers "who gets told". Both are read-only against the application's
MongoDB; driver errors surface as StoreUnavailable so a tick can abort
cleanly and let the next one retry.
"""
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from bson import ObjectId
from pymongo.errors import PyMongoError

from models import Recipient, RecipientRole

logger = logging.getLogger(__name__)

SUBSCRIPTION_ADMIN_ROLES = [
    r.strip() for r in os.getenv("SUBSCRIPTION_ADMIN_ROLES", "egasi,admin").split(",") if r.strip()
]

# Optional cap per query; unset reads every matching record.
REMINDER_QUERY_LIMIT = int(os.getenv("REMINDER_QUERY_LIMIT") or 0) or None


class ReminderError(Exception):
    """Base class for reminder engine errors."""


class StoreUnavailable(ReminderError):
    """The entity store could not be queried for this tick."""


class RecipientUnresolvable(ReminderError):
    """No recipient, or the recipient has no channel to deliver to."""


def mask_chat_id(chat_id: Optional[str]) -> str:
    if not chat_id:
        return "-"
    chat_id = str(chat_id)
    if len(chat_id) <= 4:
        return "***"
    return f"{chat_id[:2]}***{chat_id[-2:]}"


class MongoEntityGateway:
    """Read-only due-entity queries against the application database."""

    def __init__(self, db, limit: Optional[int] = REMINDER_QUERY_LIMIT):
        self.db = db
        self.limit = limit

    @staticmethod
    def build_query(
        trigger_field: str,
        range_start: Optional[datetime],
        range_end: Optional[datetime],
        extra_filter: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        if range_start is not None and range_end is not None:
            query: Dict[str, Any] = {trigger_field: {"$gte": range_start, "$lt": range_end}}
        else:
            query = {trigger_field: {"$ne": None}}
        if extra_filter:
            query.update(extra_filter)
        return query

    async def find_due(
        self,
        collection: str,
        trigger_field: str,
        range_start: Optional[datetime],
        range_end: Optional[datetime],
        extra_filter: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        query = self.build_query(trigger_field, range_start, range_end, extra_filter)
        try:
            entities = await self.db[collection].find(query).to_list(self.limit)
        except PyMongoError as e:
            raise StoreUnavailable(f"{collection} query failed: {e}") from e
        if self.limit and len(entities) >= self.limit:
            logger.warning(
                f"{collection} query hit the limit of {self.limit} records; later records are not reminded this tick"
            )
        return entities


class MongoRecipientRegistry:
    """Looks up users by id or by administrator role."""

    def __init__(self, db, admin_roles: Sequence[str] = SUBSCRIPTION_ADMIN_ROLES):
        self.db = db
        self.admin_roles = list(admin_roles)

    async def get_by_id(self, user_id: Any) -> Optional[Dict[str, Any]]:
        """Find a user by id. userId may be stored as an ObjectId, a string _id, or an `id` field."""
        if user_id is None or user_id == "":
            return None
        if isinstance(user_id, ObjectId):
            return await self.db.users.find_one({"_id": user_id})
        user_id_str = str(user_id)
        user = None
        if ObjectId.is_valid(user_id_str):
            user = await self.db.users.find_one({"_id": ObjectId(user_id_str)})
        if not user:
            user = await self.db.users.find_one({"_id": user_id_str})
        if not user:
            user = await self.db.users.find_one({"id": user_id_str})
        return user

    async def first_admin_with_channel(self) -> Optional[Dict[str, Any]]:
        return await self.db.users.find_one({
            "role": {"$in": self.admin_roles},
            "telegramChatId": {"$exists": True, "$ne": None},
        })

    async def resolve_owner(self, entity: Dict[str, Any]) -> Recipient:
        user = await self.get_by_id(entity.get("userId"))
        if not user:
            raise RecipientUnresolvable(f"owner {entity.get('userId')} not found")
        recipient = Recipient.from_user_document(user, RecipientRole.OWNER)
        if not recipient.has_channel:
            raise RecipientUnresolvable(f"owner {recipient.user_id} has no Telegram chat")
        return recipient

    async def resolve_admin(self) -> Recipient:
        admin = await self.first_admin_with_channel()
        if not admin:
            raise RecipientUnresolvable("no administrator with Telegram linked")
        recipient = Recipient.from_user_document(admin, RecipientRole.ADMIN)
        if not recipient.has_channel:
            raise RecipientUnresolvable(f"administrator {recipient.user_id} has no Telegram chat")
        return recipient


class DryRunNotificationGateway:
    """Logs messages instead of delivering them. Every send succeeds."""

    def __init__(self):
        self.sent: List[Dict[str, str]] = []

    async def send(self, chat_id: str, text: str) -> bool:
        self.sent.append({"chat_id": chat_id, "text": text})
        logger.info(f"[dry-run] would send to chat {mask_chat_id(chat_id)}:\n{text}")
        return True
