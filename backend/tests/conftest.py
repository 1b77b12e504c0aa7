import asyncio

import fakeredis
import pytest
from asgiref.sync import async_to_sync
from rest_framework.test import APIClient

from app.authentication.services import issue_jwt_for_user
from app.common.document_store import MemoryDocumentStore
from app.common.redis_store import RedisDocumentStore
from app.highfives.conf import HighFiveConfig
from app.highfives.services import HighFiveService, set_highfive_service
from app.notifications.dispatcher import NotificationBackend, NotificationDispatcher
from app.users.models import User, user_path

PEOPLE = {"alice": "Alice", "bob": "Bob", "carol": "Carol", "dave": "Dave"}


class FakeClock:
    """Shared by the store (server time) and the engine (tap time)."""

    def __init__(self, start: int = 1000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def set(self, value: int):
        self.now = value

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class RecordingBackend(NotificationBackend):
    def __init__(self, store=None):
        super().__init__(store)
        self.sent = []

    async def deliver(self, target_user_id, kind, payload):
        self.sent.append((target_user_id, kind, payload))

    def kinds_for(self, user_id):
        return [kind for target, kind, _ in self.sent if target == user_id]

    def last_for(self, user_id, kind):
        for target, sent_kind, payload in reversed(self.sent):
            if target == user_id and sent_kind == kind:
                return payload
        return None


async def _wait_for(predicate, timeout: float = 1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def wait_for():
    return _wait_for


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemoryDocumentStore(clock=clock)


@pytest.fixture
def redis_server():
    return fakeredis.FakeServer()


@pytest.fixture
def redis_store(redis_server):
    """RedisDocumentStore on an in-process fake server; real TIME, WATCH and pub/sub semantics."""
    client = fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)
    return RedisDocumentStore(client_factory=lambda: client)


@pytest.fixture(params=["memory", "redis"])
def any_store(request):
    return request.getfixturevalue("store" if request.param == "memory" else "redis_store")


@pytest.fixture
def recorder():
    return RecordingBackend()


@pytest.fixture
def config():
    return HighFiveConfig(store_backend="app.common.document_store.MemoryDocumentStore")


@pytest.fixture
def service(store, recorder, config, clock):
    service = HighFiveService(
        store, dispatcher=NotificationDispatcher([recorder]), config=config, clock=clock
    )
    set_highfive_service(service)
    yield service
    set_highfive_service(None)


@pytest.fixture
async def hf(service):
    """service, with expiry timers and deliveries cleaned up on the test's loop."""
    yield service
    await service.engine.close()
    await service.dispatcher.drain()


@pytest.fixture
def people(store):
    """alice, bob, carol, dave with readable ids so session ids read as alice_bob."""
    users = {}
    for user_id, username in PEOPLE.items():
        user = User(id=user_id, username=username)
        async_to_sync(store.set)(user_path(user_id), user.to_document())
        users[user_id] = user
    return users


@pytest.fixture
def token_for(people):
    def issue(user_id):
        return issue_jwt_for_user(people[user_id])

    return issue


@pytest.fixture
def api(service, token_for):
    def client_for(user_id=None):
        client = APIClient()
        if user_id is not None:
            client.credentials(HTTP_AUTHORIZATION=f"Bearer {token_for(user_id)}")
        return client

    return client_for
