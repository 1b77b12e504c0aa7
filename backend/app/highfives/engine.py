# app/highfives/engine.py
"""
Match engine: pending -> matched -> completed | expired, pending -> expired.

Every status write is a conditional transaction against the current
document. The responder, the evaluator and the expiry timer can all race on
the same attempt; whichever commits first wins and the others become
no-ops, so a terminal attempt is never resurrected.

Tap timestamps come from the caller's clock on purpose: the skew between two
humans is what is being measured. Session bookkeeping uses the store clock.
"""
import asyncio
import logging
import uuid
from typing import Callable

from app.common.clock import now_ms
from app.common.exceptions import ValidationFailed
from app.highfives.errors import (
    AttemptClosed,
    AttemptNotFound,
    NoResponse,
    NotParticipant,
    NotReady,
    TooSlow,
)
from app.highfives.models import (
    ATTEMPTS_PATH,
    AttemptStatus,
    ExpiryReason,
    HighFive,
    attempt_path,
)
from app.highfives.readiness import ReadinessTracker, ready_flags
from app.highfives.sessions import derive_session_id
from app.notifications.dispatcher import NotificationKind
from app.users.services import display_name

logger = logging.getLogger(__name__)

# (exclusive upper bound in ms, quality)
QUALITY_STEPS = (
    (100, 1.0),   # Perfect!
    (300, 0.8),   # Great!
    (500, 0.6),   # Good
    (800, 0.4),   # Ok
)
FLOOR_QUALITY = 0.2  # Meh


def quality_for_skew(skew_ms: int) -> float:
    for upper, quality in QUALITY_STEPS:
        if skew_ms < upper:
            return quality
    return FLOOR_QUALITY


def expiry_error(attempt: HighFive):
    if attempt.expiry_reason is ExpiryReason.TOO_SLOW:
        return TooSlow(attempt_id=attempt.id)
    return NoResponse(attempt_id=attempt.id)


class MatchEngine:
    def __init__(self, tracker: ReadinessTracker, config, clock: Callable[[], int] = None):
        self.tracker = tracker
        self.registry = tracker.registry
        self.store = tracker.store
        self.dispatcher = tracker.dispatcher
        self.config = config
        self.clock = clock or now_ms
        self._timers = {}

    async def get(self, attempt_id: str):
        return HighFive.from_document(await self.store.get(attempt_path(attempt_id)))

    async def require(self, attempt_id: str) -> HighFive:
        attempt = await self.get(attempt_id)
        if attempt is None:
            raise AttemptNotFound(attempt_id=attempt_id)
        return attempt

    async def _transition(self, attempt_id: str, fn: Callable):
        """Apply fn(HighFive) -> HighFive | None conditionally. Returns (changed, attempt)."""
        found = []

        def apply(current):
            attempt = HighFive.from_document(current)
            if attempt is None:
                return None
            found.append(attempt)
            updated = fn(attempt)
            return updated.to_document() if updated is not None else None

        committed, doc = await self.store.transaction(attempt_path(attempt_id), apply)
        if not found:
            raise AttemptNotFound(attempt_id=attempt_id)
        return committed, HighFive.from_document(doc)

    async def initiate(self, initiator_id: str, receiver_id: str, timeout_ms: int = None) -> HighFive:
        if timeout_ms is None:
            timeout_ms = self.config.attempt_timeout_ms
        elif int(timeout_ms) <= 0:
            raise ValidationFailed("timeout must be positive")
        timeout_ms = int(timeout_ms)

        # 세션이 없으면 둘 다 준비 안 된 것으로 본다
        session_id = derive_session_id(initiator_id, receiver_id)
        session = await self.registry.get(session_id)
        self_ready, partner_ready = ready_flags(session, initiator_id)
        if not (self_ready and partner_ready):
            logger.warning(
                "%s tried to high five %s (ready=%s, partner ready=%s)",
                initiator_id, receiver_id, self_ready, partner_ready,
            )
            raise NotReady.for_side(self_ready, partner_ready)

        timestamp = self.clock()
        attempt = HighFive(
            id=str(uuid.uuid4()),
            session_id=session_id,
            initiator_id=initiator_id,
            receiver_id=receiver_id,
            initiator_timestamp=timestamp,
            created_at=timestamp,
            timeout_ms=timeout_ms,
        )
        await self.store.set(attempt_path(attempt.id), attempt.to_document())
        logger.info("%s initiated high five %s with %s", initiator_id, attempt.id, receiver_id)

        self._schedule_expiry(attempt.id, timeout_ms)
        return attempt

    async def respond(self, attempt_id: str, receiver_id: str) -> HighFive:
        attempt = await self.require(attempt_id)
        if receiver_id != attempt.receiver_id:
            raise NotParticipant(user_id=receiver_id, attempt_id=attempt_id)
        if attempt.status is AttemptStatus.EXPIRED:
            raise expiry_error(attempt)
        if attempt.status is not AttemptStatus.PENDING:
            raise AttemptClosed(attempt_id=attempt_id)
        if not await self.tracker.is_ready(receiver_id, attempt.session_id):
            raise NotReady.for_side(False, True)

        timestamp = self.clock()

        def match(current: HighFive):
            if current.status is not AttemptStatus.PENDING:
                return None
            current.receiver_timestamp = timestamp
            current.status = AttemptStatus.MATCHED
            return current

        changed, attempt = await self._transition(attempt_id, match)
        if not changed:
            logger.warning("late response to %s (status=%s)", attempt_id, attempt.status.value)
            if attempt.status is AttemptStatus.EXPIRED:
                raise expiry_error(attempt)
            raise AttemptClosed(attempt_id=attempt_id)

        logger.debug("%s matched, skew=%dms", attempt_id, attempt.time_difference)
        return attempt

    async def evaluate(self, attempt_id: str) -> HighFive:
        """Score a matched attempt. Terminal attempts come back unchanged."""

        def score(current: HighFive):
            if current.status is not AttemptStatus.MATCHED:
                return None
            skew = current.time_difference
            if skew <= self.config.max_skew_ms:
                current.status = AttemptStatus.COMPLETED
                current.quality = quality_for_skew(skew)
            else:
                current.status = AttemptStatus.EXPIRED
                current.expiry_reason = ExpiryReason.TOO_SLOW
            return current

        changed, attempt = await self._transition(attempt_id, score)
        if changed:
            self._cancel_timer(attempt_id)
            if attempt.status is AttemptStatus.COMPLETED:
                logger.info("High five %s completed, quality=%.1f", attempt_id, attempt.quality)
                await self._announce(attempt, NotificationKind.HIGH_FIVE_COMPLETE, {"quality": attempt.quality})
            else:
                logger.info("High five %s too slow (%dms)", attempt_id, attempt.time_difference)
                await self._announce(
                    attempt, NotificationKind.HIGH_FIVE_EXPIRED, {"reason": ExpiryReason.TOO_SLOW.value}
                )
        return attempt

    async def expire(self, attempt_id: str) -> HighFive:
        """Timeout path. No-op unless the attempt is still pending."""

        def timeout(current: HighFive):
            if current.status is not AttemptStatus.PENDING:
                return None
            current.status = AttemptStatus.EXPIRED
            current.expiry_reason = ExpiryReason.NO_RESPONSE
            return current

        changed, attempt = await self._transition(attempt_id, timeout)
        if changed:
            self._cancel_timer(attempt_id)
            logger.info("High five %s expired without response", attempt_id)
            await self._announce(
                attempt, NotificationKind.HIGH_FIVE_EXPIRED, {"reason": ExpiryReason.NO_RESPONSE.value}
            )
        return attempt

    async def expire_overdue(self, now: int = None) -> list:
        """Expire pending attempts whose timer was lost (process restart)."""
        now = self.clock() if now is None else now
        docs = await self.store.query(ATTEMPTS_PATH, order_by="status", equal_to=AttemptStatus.PENDING.value)
        expired = []
        for doc in docs:
            attempt = HighFive.from_document(doc)
            timeout_ms = attempt.timeout_ms or self.config.attempt_timeout_ms
            if now - attempt.created_at < timeout_ms:
                continue
            attempt = await self.expire(attempt.id)
            if attempt.status is AttemptStatus.EXPIRED:
                expired.append(attempt.id)
        return expired

    async def prune_finished(self, now: int = None) -> list:
        """
        Under the delete policy, drop completed/expired attempts older than
        STALE_SESSION_TTL_MS so collection snapshots stay small.
        """
        if self.config.stale_session_policy == "keep":
            return []

        now = self.clock() if now is None else now
        cutoff = now - self.config.stale_session_ttl_ms
        docs = await self.store.query(ATTEMPTS_PATH, order_by="createdAt", end_at=cutoff)
        removed = []
        for doc in docs:
            attempt = HighFive.from_document(doc)
            if attempt.status not in (AttemptStatus.COMPLETED, AttemptStatus.EXPIRED):
                continue
            await self.store.delete(attempt_path(attempt.id))
            removed.append(attempt.id)
        if removed:
            logger.info("Removed %d finished high fives", len(removed))
        return removed

    async def _announce(self, attempt: HighFive, kind: NotificationKind, payload: dict):
        for user_id in (attempt.initiator_id, attempt.receiver_id):
            partner_id = attempt.partner_of(user_id)
            self.dispatcher.notify(
                user_id,
                kind,
                {
                    "highFiveId": attempt.id,
                    "partnerId": partner_id,
                    "partnerName": await display_name(self.store, partner_id),
                    **payload,
                },
            )

    def _schedule_expiry(self, attempt_id: str, timeout_ms: int):
        task = asyncio.create_task(self._expire_after(attempt_id, timeout_ms / 1000))
        self._timers[attempt_id] = task
        task.add_done_callback(lambda _t: self._timers.pop(attempt_id, None))

    def _cancel_timer(self, attempt_id: str):
        task = self._timers.pop(attempt_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _expire_after(self, attempt_id: str, delay: float):
        await asyncio.sleep(delay)
        try:
            await self.expire(attempt_id)
        except Exception:
            logger.exception("expiry timer for %s failed", attempt_id)

    @property
    def pending_timers(self) -> int:
        return len(self._timers)

    async def close(self):
        timers = list(self._timers.values())
        self._timers.clear()
        for task in timers:
            task.cancel()
        await asyncio.gather(*timers, return_exceptions=True)
