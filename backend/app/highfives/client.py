# app/highfives/client.py
"""
Per-user view state for one high five session.

A HighFiveClient mirrors the live session document and the attempts that
belong to it into plain attributes, and tells listeners when they change.
Every subscription it opens is cancelled by leave() (or by leaving the
`async with` block), so nothing keeps listening after the user is gone.
"""
import asyncio
import dataclasses
import enum
import logging
from typing import Optional

from app.common.exceptions import ServiceError, StoreUnavailable
from app.highfives.engine import expiry_error
from app.highfives.errors import SessionNotFound
from app.highfives.models import (
    ATTEMPTS_PATH,
    AttemptStatus,
    HighFive,
    ReadinessTransition,
    Session,
    session_path,
)
from app.highfives.readiness import on_session_update, ready_flags

logger = logging.getLogger(__name__)

NOTICES = {
    ReadinessTransition.PARTNER_BECAME_READY: "Your partner is ready! Get ready too!",
    ReadinessTransition.PARTNER_BECAME_UNREADY: "Your partner is no longer ready",
    ReadinessTransition.BOTH_READY: "Both players ready! Tap to high five!",
    ReadinessTransition.SESSION_ENDED: "Session ended",
}


class HighFiveState(str, enum.Enum):
    IDLE = "idle"
    WAITING = "waiting"
    INCOMING = "incoming"
    SUCCESS = "success"
    ERROR = "error"


@dataclasses.dataclass
class HighFiveView:
    state: HighFiveState = HighFiveState.IDLE
    attempt_id: Optional[str] = None
    quality: float = 0.0
    error: Optional[dict] = None

    def as_payload(self) -> dict:
        return {
            "state": self.state.value,
            "highFiveId": self.attempt_id,
            "quality": self.quality,
            "error": self.error,
        }


class HighFiveClient:
    def __init__(self, service, user_id: str):
        self.service = service
        self.user_id = user_id
        self.partner_id: Optional[str] = None
        self.session: Optional[Session] = None
        self.is_ready = False
        self.partner_ready = False
        self.high_five = HighFiveView()
        self.incoming: Optional[str] = None
        self.notice: Optional[str] = None

        self._last_snapshot: Optional[Session] = None
        self._attempts_primed = False
        self._handled = set()
        self._subscriptions = []
        self._tasks = []
        self._listeners = []

    # ---- listeners ----

    def add_listener(self, callback):
        """callback(event, payload); may be a coroutine function."""
        self._listeners.append(callback)

    async def _emit(self, event: str, payload: dict):
        for callback in list(self._listeners):
            try:
                result = callback(event, payload)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("listener failed on %s", event)

    async def _show_notice(self, message: str):
        self.notice = message
        await self._emit("notice", {"message": message})

    def dismiss_notice(self):
        self.notice = None

    async def _set_view(self, view: HighFiveView):
        self.high_five = view
        await self._emit("high_five", view.as_payload())

    async def _fail(self, error: ServiceError, attempt_id: str = None):
        await self._set_view(
            HighFiveView(state=HighFiveState.ERROR, attempt_id=attempt_id, error=error.as_dict())
        )

    # ---- lifecycle ----

    async def connect(self, partner_id: str) -> Session:
        if self.session is not None:
            if partner_id == self.partner_id:
                return self.session
            await self.leave()

        session = await self.service.connect(self.user_id, partner_id)
        self.partner_id = partner_id
        self.session = session
        self.is_ready, self.partner_ready = ready_flags(session, self.user_id)

        await self._watch(session_path(session.id), self._on_session_snapshot)
        await self._watch(ATTEMPTS_PATH, self._on_attempts_snapshot)
        return session

    async def _watch(self, path: str, handler):
        sub = await self.service.store.subscribe(path)
        self._subscriptions.append(sub)
        self._tasks.append(asyncio.create_task(self._pump(sub, handler)))

    async def _pump(self, sub, handler):
        async for snapshot in sub:
            try:
                await handler(snapshot)
            except ServiceError as e:
                logger.warning("%s while handling %s: %s", e.code, sub.path, e.message)
                await self._fail(e)

    async def _detach(self):
        subscriptions, self._subscriptions = self._subscriptions, []
        tasks, self._tasks = self._tasks, []
        for sub in subscriptions:
            await sub.cancel()
        current = asyncio.current_task()
        for task in tasks:
            if task is not current:
                task.cancel()
        await asyncio.gather(*[t for t in tasks if t is not current], return_exceptions=True)

    async def leave(self):
        """Detach every subscription, then reset only our own ready slot."""
        await self._detach()
        session, self.session = self.session, None
        self.is_ready = self.partner_ready = False
        self.incoming = None
        self._last_snapshot = None
        self._attempts_primed = False
        if session is None:
            return
        try:
            await self.service.leave(self.user_id, session.id)
        except StoreUnavailable:
            logger.warning("could not reset ready state for %s in %s", self.user_id, session.id)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.leave()

    # ---- actions ----

    def _require_session(self) -> Session:
        if self.session is None:
            raise SessionNotFound()
        return self.session

    async def set_ready(self, ready: bool) -> Session:
        session = self._require_session()
        self.session = await self.service.set_ready(self.user_id, session.id, ready)
        self.is_ready = bool(ready)
        if ready:
            await self._show_notice("You're ready! Waiting for partner...")
        return self.session

    async def tap(self) -> HighFiveView:
        """Answer an incoming high five if there is one, otherwise start one."""
        self._require_session()

        if self.incoming is not None:
            attempt_id, self.incoming = self.incoming, None
            try:
                await self.service.respond(attempt_id, self.user_id)
                attempt = await self.service.evaluate(attempt_id)
            except ServiceError as e:
                self._handled.add(attempt_id)
                await self._fail(e, attempt_id)
                return self.high_five
            await self._apply(attempt)
            return self.high_five

        if self.high_five.state is HighFiveState.WAITING:
            return self.high_five

        try:
            attempt = await self.service.initiate(self.user_id, self.partner_id)
        except ServiceError as e:
            await self._fail(e)
            return self.high_five
        await self._set_view(HighFiveView(state=HighFiveState.WAITING, attempt_id=attempt.id))
        return self.high_five

    # ---- snapshots ----

    async def _on_session_snapshot(self, doc):
        current = Session.from_document(doc)
        transition = on_session_update(self._last_snapshot, current, self.user_id)
        self._last_snapshot = current

        if current is None:
            self.session = None
            self.is_ready = self.partner_ready = False
        else:
            self.session = current
            self.is_ready, self.partner_ready = ready_flags(current, self.user_id)

        await self._emit("session", self.session_payload())
        if transition is not ReadinessTransition.NO_CHANGE:
            await self._emit("readiness", {"transition": transition.value})
            await self._show_notice(NOTICES[transition])

    async def _on_attempts_snapshot(self, doc):
        if self.session is None:
            return
        attempts = [
            HighFive.from_document(child)
            for child in (doc or {}).values()
            if isinstance(child, dict)
        ]
        mine = sorted(
            (a for a in attempts if a.session_id == self.session.id and a.involves(self.user_id)),
            key=lambda a: a.created_at,
        )

        if not self._attempts_primed:
            # history from earlier visits is not replayed
            self._handled.update(a.id for a in mine if a.status.is_terminal)
            self._attempts_primed = True

        for attempt in mine:
            if attempt.id not in self._handled:
                await self._apply(attempt)

    async def _apply(self, attempt: HighFive):
        if attempt.id in self._handled:
            return

        if attempt.status is AttemptStatus.PENDING:
            if attempt.receiver_id == self.user_id:
                if self.incoming != attempt.id:
                    self.incoming = attempt.id
                    await self._set_view(HighFiveView(state=HighFiveState.INCOMING, attempt_id=attempt.id))
            elif self.high_five.attempt_id != attempt.id:
                await self._set_view(HighFiveView(state=HighFiveState.WAITING, attempt_id=attempt.id))
            return

        if attempt.status is AttemptStatus.MATCHED:
            # either side may score it; the conditional write keeps it single
            await self.service.evaluate(attempt.id)
            return

        self._handled.add(attempt.id)
        if self.incoming == attempt.id:
            self.incoming = None
        if attempt.status is AttemptStatus.COMPLETED:
            await self._set_view(
                HighFiveView(state=HighFiveState.SUCCESS, attempt_id=attempt.id, quality=attempt.quality)
            )
        else:
            await self._fail(expiry_error(attempt), attempt.id)

    def session_payload(self) -> Optional[dict]:
        if self.session is None:
            return None
        return {
            **self.session.to_document(),
            "partnerId": self.session.partner_of(self.user_id),
            "isReady": self.is_ready,
            "partnerReady": self.partner_ready,
        }
