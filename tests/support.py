import unittest
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pairchat.database import build_engine, get_db, init_models
from pairchat.models.user import User
from pairchat.security import create_access_token
from pairchat.services.media import MediaStorage
from pairchat.services.message_store import MessageStore

BASE_TIME = datetime(2020, 1, 1, 12, 0, 0)


class FakeWebSocket:
    """Records everything the server pushes to it."""

    def __init__(self, fail: bool = False):
        self.sent: List[dict] = []
        self.fail = fail

    async def send_json(self, data) -> None:
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(data)

    def events(self, name: Optional[str] = None) -> List[dict]:
        return [m for m in self.sent if name is None or m["event"] == name]

    def drain(self) -> List[dict]:
        sent, self.sent = self.sent, []
        return sent


class DatabaseTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.engine = build_engine("sqlite+aiosqlite:///:memory:")
        await init_models(self.engine)
        self.sessionmaker = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)
        self.db = self.sessionmaker()
        self.store = MessageStore(self.db, MediaStorage(upload_url="", upload_preset=""))

    async def asyncTearDown(self):
        await self.db.close()
        await self.engine.dispose()

    async def make_user(self, full_name: str, joined_minutes: int = 0, deleted: bool = False) -> User:
        user = User(
            id=uuid.uuid4(),
            email=f"{full_name.lower().replace(' ', '.')}@example.com",
            full_name=full_name,
            created_at=BASE_TIME + timedelta(minutes=joined_minutes),
            deleted=deleted,
        )
        self.db.add(user)
        await self.db.commit()
        return user


class ApiTestCase(DatabaseTestCase):
    """Runs a fresh app against the test database, in the test's event loop."""

    async def asyncSetUp(self):
        await super().asyncSetUp()
        from pairchat.main import create_app

        self.app = create_app()

        async def override_get_db():
            async with self.sessionmaker() as session:
                yield session

        self.app.dependency_overrides[get_db] = override_get_db
        self.http = httpx.AsyncClient(transport=httpx.ASGITransport(app=self.app), base_url="http://test")

    async def asyncTearDown(self):
        await self.http.aclose()
        await super().asyncTearDown()

    @property
    def registry(self):
        return self.app.state.registry

    async def connect(self, user: User) -> FakeWebSocket:
        socket = FakeWebSocket()
        await self.registry.connect(user.id, socket)
        socket.drain()
        return socket

    def auth(self, user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}
