# app/highfives/models.py
import dataclasses
import enum
from typing import Optional

SESSIONS_PATH = "high_five_sessions"
ATTEMPTS_PATH = "high_fives"


def session_path(session_id: str) -> str:
    return f"{SESSIONS_PATH}/{session_id}"


def attempt_path(attempt_id: str) -> str:
    return f"{ATTEMPTS_PATH}/{attempt_id}"


class Slot(str, enum.Enum):
    A = "A"
    B = "B"

    @property
    def ready_field(self) -> str:
        return f"ready{self.value}"


class AttemptStatus(str, enum.Enum):
    PENDING = "pending"
    MATCHED = "matched"
    EXPIRED = "expired"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        return self in (AttemptStatus.EXPIRED, AttemptStatus.COMPLETED)


class ExpiryReason(str, enum.Enum):
    NO_RESPONSE = "no_response"
    TOO_SLOW = "too_slow"


class ReadinessTransition(str, enum.Enum):
    PARTNER_BECAME_READY = "partner_became_ready"
    PARTNER_BECAME_UNREADY = "partner_became_unready"
    BOTH_READY = "both_ready"
    NO_CHANGE = "no_change"
    SESSION_ENDED = "session_ended"


@dataclasses.dataclass
class Session:
    id: str
    user_a: str
    user_b: str
    ready_a: bool = False
    ready_b: bool = False
    last_updated: int = 0

    @property
    def participants(self) -> tuple:
        return (self.user_a, self.user_b)

    def involves(self, user_id: str) -> bool:
        return user_id in self.participants

    def partner_of(self, user_id: str) -> str:
        return self.user_b if user_id == self.user_a else self.user_a

    def is_ready(self, slot: Slot) -> bool:
        return self.ready_a if slot is Slot.A else self.ready_b

    @property
    def both_ready(self) -> bool:
        return self.ready_a and self.ready_b

    def to_document(self) -> dict:
        return {
            "id": self.id,
            "userA": self.user_a,
            "userB": self.user_b,
            "readyA": self.ready_a,
            "readyB": self.ready_b,
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_document(cls, doc: Optional[dict]):
        if not doc:
            return None
        return cls(
            id=doc.get("id", ""),
            user_a=doc.get("userA", ""),
            user_b=doc.get("userB", ""),
            ready_a=bool(doc.get("readyA", False)),
            ready_b=bool(doc.get("readyB", False)),
            last_updated=int(doc.get("lastUpdated") or 0),
        )


@dataclasses.dataclass
class HighFive:
    """One synchronized-tap attempt between an initiator and a receiver."""

    id: str
    session_id: str
    initiator_id: str
    receiver_id: str
    initiator_timestamp: int
    receiver_timestamp: int = 0
    status: AttemptStatus = AttemptStatus.PENDING
    quality: float = 0.0
    expiry_reason: Optional[ExpiryReason] = None
    created_at: int = 0
    timeout_ms: int = 0

    @property
    def time_difference(self) -> int:
        return abs(self.initiator_timestamp - self.receiver_timestamp)

    def involves(self, user_id: str) -> bool:
        return user_id in (self.initiator_id, self.receiver_id)

    def partner_of(self, user_id: str) -> str:
        return self.receiver_id if user_id == self.initiator_id else self.initiator_id

    def to_document(self) -> dict:
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "initiatorId": self.initiator_id,
            "receiverId": self.receiver_id,
            "initiatorTimestamp": self.initiator_timestamp,
            "receiverTimestamp": self.receiver_timestamp,
            "status": self.status.value,
            "quality": self.quality,
            "expiryReason": self.expiry_reason.value if self.expiry_reason else None,
            "createdAt": self.created_at,
            "timeoutMs": self.timeout_ms,
        }

    @classmethod
    def from_document(cls, doc: Optional[dict]):
        if not doc:
            return None
        reason = doc.get("expiryReason")
        return cls(
            id=doc.get("id", ""),
            session_id=doc.get("sessionId", ""),
            initiator_id=doc.get("initiatorId", ""),
            receiver_id=doc.get("receiverId", ""),
            initiator_timestamp=int(doc.get("initiatorTimestamp") or 0),
            receiver_timestamp=int(doc.get("receiverTimestamp") or 0),
            status=AttemptStatus(doc.get("status", AttemptStatus.PENDING.value)),
            quality=float(doc.get("quality") or 0.0),
            expiry_reason=ExpiryReason(reason) if reason else None,
            created_at=int(doc.get("createdAt") or 0),
            timeout_ms=int(doc.get("timeoutMs") or 0),
        )
