# app/users/services.py
import asyncio
import enum
import logging
import uuid

from app.common.document_store import SERVER_TIMESTAMP, DocumentStore
from app.common.exceptions import ServiceError, StoreUnavailable, ValidationFailed
from app.users.models import USERS_PATH, User, user_path

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL_MS = 1000


class UserNotFound(ServiceError):
    code = "USER_NOT_FOUND"
    default_message = "target user not found"
    http_status = 404


class UsernameTaken(ServiceError):
    code = "USERNAME_TAKEN"
    default_message = "Username already exists"
    http_status = 409


class UsernameStatus(str, enum.Enum):
    UNKNOWN = "unknown"
    EXISTING = "existing"
    NEW = "new"


def _clean_username(username) -> str:
    username = str(username or "").strip()
    if not username:
        raise ValidationFailed("Username cannot be empty")
    return username


async def get_user(store: DocumentStore, user_id: str):
    return User.from_document(await store.get(user_path(user_id)), user_id=user_id)


async def require_user(store: DocumentStore, user_id: str) -> User:
    user = await get_user(store, user_id)
    if user is None:
        raise UserNotFound()
    return user


async def display_name(store: DocumentStore, user_id: str) -> str:
    """Name for notification payloads; falls back to the id rather than failing."""
    try:
        user = await get_user(store, user_id)
    except StoreUnavailable:
        logger.warning("could not resolve display name for %s", user_id)
        return user_id
    return user.username if user and user.username else user_id


async def find_user_by_username(store: DocumentStore, username: str):
    # exact, case-sensitive match
    docs = await store.query(USERS_PATH, order_by="username", equal_to=username, limit=1)
    return User.from_document(docs[0]) if docs else None


async def create_user(store: DocumentStore, username: str) -> User:
    user = User(id=str(uuid.uuid4()), username=username)
    doc = user.to_document()
    doc["lastHeartbeat"] = SERVER_TIMESTAMP
    saved = await store.set(user_path(user.id), doc)
    logger.info("Created user %s (%s)", username, user.id)
    return User.from_document(saved, user_id=user.id)


async def login(store: DocumentStore, username: str):
    """Returns (user, created). Display name is the only identity."""
    username = _clean_username(username)
    existing = await find_user_by_username(store, username)
    if existing is not None:
        logger.debug("Found existing user %s (%s)", existing.username, existing.id)
        return existing, False
    return await create_user(store, username), True


async def add_user(store: DocumentStore, username: str) -> User:
    username = _clean_username(username)
    if await find_user_by_username(store, username) is not None:
        raise UsernameTaken()
    return await create_user(store, username)


async def check_username(store: DocumentStore, username: str) -> UsernameStatus:
    if not str(username or "").strip():
        return UsernameStatus.UNKNOWN
    try:
        existing = await find_user_by_username(store, str(username).strip())
    except StoreUnavailable:
        return UsernameStatus.UNKNOWN
    return UsernameStatus.EXISTING if existing else UsernameStatus.NEW


async def heartbeat(store: DocumentStore, user_id: str):
    await store.update(user_path(user_id), {"id": user_id, "lastHeartbeat": SERVER_TIMESTAMP})


async def register_device_token(store: DocumentStore, user_id: str, token: str):
    token = str(token or "").strip()
    if not token:
        raise ValidationFailed("token is required")
    await require_user(store, user_id)
    await store.update(user_path(user_id), {"fcmToken": token})
    logger.info("Stored device token for %s", user_id)


async def all_users(store: DocumentStore) -> list:
    docs = await store.query(USERS_PATH)
    return [User.from_document(doc) for doc in docs]


async def search_users(store: DocumentStore, query: str, exclude_id: str = None) -> list:
    query = str(query or "").strip().lower()
    users = [u for u in await all_users(store) if u.id != exclude_id]
    if query:
        users = [u for u in users if query in u.username.lower()]
    return users


class Heartbeat:
    """
    Keeps users/<id>.lastHeartbeat fresh while a realtime connection is open.

        async with Heartbeat(store, user_id):
            ...
    """

    def __init__(self, store: DocumentStore, user_id: str, interval_ms: int = HEARTBEAT_INTERVAL_MS):
        self._store = store
        self._user_id = user_id
        self._interval = interval_ms / 1000
        self._task = None

    def start(self):
        self.stop()
        self._task = asyncio.create_task(self._run())

    def stop(self):
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self):
        while True:
            try:
                await heartbeat(self._store, self._user_id)
            except StoreUnavailable:
                # keep the cadence, the next beat may get through
                logger.warning("heartbeat for %s failed", self._user_id)
            await asyncio.sleep(self._interval)

    async def __aenter__(self):
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.stop()
