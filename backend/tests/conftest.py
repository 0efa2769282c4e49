"""
Pytest configuration and shared test helpers for backend tests.
"""
import sys
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

BACKEND_DIR = Path(__file__).resolve().parent.parent
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from models import Recipient, RecipientRole
from services.reminder_gateways import RecipientUnresolvable, StoreUnavailable

# Fixed offset (no DST) so expected dates are easy to read.
TZ = ZoneInfo("Asia/Tashkent")


def local(year, month, day, hour=0, minute=0, second=0):
    return datetime(year, month, day, hour, minute, second, tzinfo=TZ)


class AsyncCursor:
    """Motor find() cursor stand-in supporting to_list() and async iteration."""
    def __init__(self, items):
        self._items = list(items)
    def __aiter__(self):
        return self
    async def __anext__(self):
        if not self._items:
            raise StopAsyncIteration
        return self._items.pop(0)
    async def to_list(self, length=None):
        items = self._items if length is None else self._items[:length]
        self._items = []
        return list(items)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now
    def __call__(self) -> datetime:
        return self.now


class FakeEntityGateway:
    """Returns every record of a collection; the engine re-checks trigger values itself."""
    def __init__(self, collections=None):
        self.collections = collections or {}
        self.calls = []
        self.error = None
    async def find_due(self, collection, trigger_field, range_start, range_end, extra_filter=None):
        self.calls.append((collection, trigger_field, range_start, range_end, extra_filter))
        if self.error is not None:
            raise self.error
        return list(self.collections.get(collection, []))


class FakeRegistry:
    def __init__(self, users=None, admin=None):
        self.users = {str(u["_id"]): u for u in (users or [])}
        self.admin = admin
        self.error = None
    async def resolve_owner(self, entity):
        if self.error is not None:
            raise self.error
        user = self.users.get(str(entity.get("userId")))
        if not user:
            raise RecipientUnresolvable(f"owner {entity.get('userId')} not found")
        recipient = Recipient.from_user_document(user, RecipientRole.OWNER)
        if not recipient.has_channel:
            raise RecipientUnresolvable("owner has no Telegram chat")
        return recipient
    async def resolve_admin(self):
        if self.admin is None:
            raise RecipientUnresolvable("no administrator with Telegram linked")
        return Recipient.from_user_document(self.admin, RecipientRole.ADMIN)


class RecordingNotifier:
    """Records sends. Chats in fail_chats report failure; a gate stalls every send until set."""
    def __init__(self):
        self.sent = []
        self.attempts = []
        self.fail_chats = set()
        self.gate = None
    async def send(self, chat_id, text):
        self.attempts.append((chat_id, text))
        if self.gate is not None:
            await self.gate.wait()
        if chat_id in self.fail_chats:
            return False
        self.sent.append((chat_id, text))
        return True


@pytest.fixture
def tz():
    return TZ


@pytest.fixture
def owner():
    return {"_id": "user-1", "name": "Aziz", "telegramChatId": "111111", "role": "user"}


@pytest.fixture
def admin_user():
    return {"_id": "admin-1", "name": "Admin", "telegramChatId": "999999", "role": "egasi"}


@pytest.fixture
def gateway():
    return FakeEntityGateway()


@pytest.fixture
def registry(owner, admin_user):
    return FakeRegistry(users=[owner], admin=admin_user)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def store_down():
    return StoreUnavailable("debts query failed: connection refused")
