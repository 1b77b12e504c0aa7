# app/highfives/readiness.py
import logging
from typing import Optional

from app.common.document_store import SERVER_TIMESTAMP
from app.highfives.models import ReadinessTransition, Session, session_path
from app.highfives.sessions import SessionRegistry, slot_for
from app.notifications.dispatcher import NotificationKind
from app.users.services import display_name

logger = logging.getLogger(__name__)


def ready_flags(session: Optional[Session], user_id: str) -> tuple:
    """(self ready, partner ready) as seen by user_id; both False without a session."""
    if session is None:
        return False, False
    own = slot_for(session, user_id)
    partner = slot_for(session, session.partner_of(user_id))
    return session.is_ready(own), session.is_ready(partner)


def on_session_update(
    previous: Optional[Session], current: Optional[Session], user_id: str
) -> ReadinessTransition:
    """
    Pure transition between two snapshots of the same session, seen from
    user_id's side.
    """
    if current is None:
        return ReadinessTransition.SESSION_ENDED if previous is not None else ReadinessTransition.NO_CHANGE

    self_was, partner_was = ready_flags(previous, user_id)
    self_is, partner_is = ready_flags(current, user_id)

    if partner_is != partner_was:
        if not partner_is:
            return ReadinessTransition.PARTNER_BECAME_UNREADY
        return ReadinessTransition.BOTH_READY if self_is else ReadinessTransition.PARTNER_BECAME_READY

    if partner_is and self_is and not self_was:
        return ReadinessTransition.BOTH_READY
    return ReadinessTransition.NO_CHANGE


class ReadinessTracker:
    def __init__(self, registry: SessionRegistry):
        self.registry = registry
        self.store = registry.store
        self.dispatcher = registry.dispatcher

    async def is_ready(self, user_id: str, session_id: str) -> bool:
        session = await self.registry.require(session_id)
        return session.is_ready(slot_for(session, user_id))

    async def set_ready(self, user_id: str, session_id: str, ready: bool) -> Session:
        previous = await self.registry.require(session_id)
        slot = slot_for(previous, user_id)

        # each side only ever writes its own slot, so a plain update is safe
        doc = await self.store.update(
            session_path(session_id),
            {slot.ready_field: bool(ready), "lastUpdated": SERVER_TIMESTAMP},
        )
        current = Session.from_document(doc)
        logger.debug("%s ready=%s in %s", user_id, ready, session_id)

        partner_id = current.partner_of(user_id)
        seen_by_partner = on_session_update(previous, current, partner_id)
        if seen_by_partner in (ReadinessTransition.PARTNER_BECAME_READY, ReadinessTransition.BOTH_READY):
            self.dispatcher.notify(
                partner_id,
                NotificationKind.HIGH_FIVE_READY,
                {"partnerId": user_id, "partnerName": await display_name(self.store, user_id)},
            )
        return current
