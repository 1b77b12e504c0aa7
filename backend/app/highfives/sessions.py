# app/highfives/sessions.py
"""
Session registry: one rendezvous record per canonical pair of users.

The session id is derived from the pair, so two clients racing to create
the same session write the same key and converge.
"""
import logging

from app.common.document_store import SERVER_TIMESTAMP, DocumentStore
from app.highfives.conf import HighFiveConfig
from app.highfives.errors import AlreadyInSession, InvalidPartner, NotParticipant, SessionNotFound
from app.highfives.models import SESSIONS_PATH, Session, Slot, session_path
from app.notifications.dispatcher import NotificationDispatcher, NotificationKind
from app.users.services import display_name

logger = logging.getLogger(__name__)

SESSION_ID_SEPARATOR = "_"


def canonical_pair(user_a: str, user_b: str) -> tuple:
    first, second = sorted((str(user_a), str(user_b)))
    return first, second


def derive_session_id(user_a: str, user_b: str) -> str:
    return SESSION_ID_SEPARATOR.join(canonical_pair(user_a, user_b))


def slot_for(session: Session, user_id: str) -> Slot:
    if user_id == session.user_a:
        return Slot.A
    if user_id == session.user_b:
        return Slot.B
    raise NotParticipant(user_id=user_id, session_id=session.id)


class SessionRegistry:
    def __init__(self, store: DocumentStore, dispatcher: NotificationDispatcher, config: HighFiveConfig):
        self.store = store
        self.dispatcher = dispatcher
        self.config = config

    async def get(self, session_id: str):
        return Session.from_document(await self.store.get(session_path(session_id)))

    async def require(self, session_id: str) -> Session:
        session = await self.get(session_id)
        if session is None:
            raise SessionNotFound(session_id=session_id)
        return session

    async def active_sessions(self) -> list:
        since = await self.store.now() - self.config.session_active_window_ms
        docs = await self.store.query(SESSIONS_PATH, order_by="lastUpdated", start_at=since)
        return [Session.from_document(doc) for doc in docs]

    async def connect(self, self_id: str, partner_id: str) -> Session:
        if not self_id or not partner_id or str(self_id) == str(partner_id):
            raise InvalidPartner()

        session_id = derive_session_id(self_id, partner_id)

        # 1) 이미 있으면 그냥 join
        existing = await self.get(session_id)
        if existing is not None:
            logger.debug("Joining existing session %s", session_id)
            return existing

        # 2) 다른 active 세션에 둘 중 하나라도 있으면 거절
        for other in await self.active_sessions():
            if other.id == session_id:
                continue
            if other.involves(self_id) or other.involves(partner_id):
                logger.warning(
                    "connect %s -> %s refused: %s already holds %s",
                    self_id, partner_id, other.participants, other.id,
                )
                raise AlreadyInSession(session_id=other.id)

        # 3) 새로 생성 (canonical pair는 생성 시 한 번만 저장)
        user_a, user_b = canonical_pair(self_id, partner_id)
        doc = Session(id=session_id, user_a=user_a, user_b=user_b).to_document()
        doc["lastUpdated"] = SERVER_TIMESTAMP
        session = Session.from_document(await self.store.set(session_path(session_id), doc))
        logger.info("Created high five session %s", session_id)

        self.dispatcher.notify(
            partner_id,
            NotificationKind.HIGH_FIVE_REQUEST,
            {"senderId": self_id, "senderName": await display_name(self.store, self_id)},
        )
        return session

    async def leave(self, user_id: str, session_id: str) -> Session:
        session = await self.require(session_id)
        slot = slot_for(session, user_id)
        doc = await self.store.update(
            session_path(session_id),
            {slot.ready_field: False, "lastUpdated": SERVER_TIMESTAMP},
        )
        logger.info("%s left session %s", user_id, session_id)
        return Session.from_document(doc)

    async def collect_stale(self, now: int = None) -> list:
        """Apply STALE_SESSION_POLICY. Returns the ids removed."""
        if self.config.stale_session_policy == "keep":
            return []

        now = await self.store.now() if now is None else now
        cutoff = now - self.config.stale_session_ttl_ms
        docs = await self.store.query(SESSIONS_PATH, order_by="lastUpdated", end_at=cutoff)
        removed = []
        for doc in docs:
            session = Session.from_document(doc)
            if session.ready_a or session.ready_b:
                continue
            await self.store.delete(session_path(session.id))
            removed.append(session.id)
        if removed:
            logger.info("Removed %d stale sessions", len(removed))
        return removed
