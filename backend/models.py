from pydantic import BaseModel, ConfigDict
from typing import Optional, Dict, Any
from enum import Enum

# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class RecipientRole(str, Enum):
    OWNER = "OWNER"            # user who owns the customer/debt record
    SUBSCRIBER = "SUBSCRIBER"  # user whose own subscription is expiring
    ADMIN = "ADMIN"            # first administrator with Telegram linked

class DebtStatus(str, Enum):
    PENDING = "pending"
    OVERDUE = "overdue"
    PAID = "paid"

class TickStatus(str, Enum):
    COMPLETED = "completed"
    OUTSIDE_WINDOW = "outside_window"
    STORE_UNAVAILABLE = "store_unavailable"
    ERROR = "error"
    BUSY = "busy"

# ============================================================================
# RECIPIENTS
# ============================================================================

class Recipient(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    role: RecipientRole
    name: Optional[str] = None
    chat_id: Optional[str] = None
    phone: Optional[str] = None

    @property
    def has_channel(self) -> bool:
        return bool(self.chat_id and self.chat_id.strip())

    @classmethod
    def from_user_document(cls, user: Dict[str, Any], role: RecipientRole) -> "Recipient":
        """Build a recipient from a `users` collection document."""
        chat_id = user.get("telegramChatId")
        return cls(
            user_id=str(user.get("_id") or user.get("id") or ""),
            role=role,
            name=user.get("name"),
            chat_id=str(chat_id) if chat_id not in (None, "") else None,
            phone=user.get("phone"),
        )
