# app/users/models.py
import dataclasses
from typing import Optional

USERS_PATH = "users"
ONLINE_THRESHOLD_MS = 5000  # 5초


def user_path(user_id: str) -> str:
    return f"{USERS_PATH}/{user_id}"


@dataclasses.dataclass
class User:
    id: str
    username: str
    last_heartbeat: int = 0
    friend_ids: list = dataclasses.field(default_factory=list)
    fcm_token: str = ""

    def is_online(self, now: int, threshold_ms: int = ONLINE_THRESHOLD_MS) -> bool:
        return now - self.last_heartbeat < threshold_ms

    def to_document(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "lastHeartbeat": self.last_heartbeat,
            "friendIds": list(self.friend_ids),
            "fcmToken": self.fcm_token,
        }

    @classmethod
    def from_document(cls, doc: Optional[dict], user_id: str = None):
        if not doc:
            return None
        friend_ids = doc.get("friendIds") or []
        if isinstance(friend_ids, dict):
            # older clients wrote friendIds/<id> = <id>
            friend_ids = list(friend_ids.values())
        return cls(
            id=user_id or doc.get("id", ""),
            username=doc.get("username", ""),
            last_heartbeat=int(doc.get("lastHeartbeat") or 0),
            friend_ids=list(friend_ids),
            fcm_token=doc.get("fcmToken") or "",
        )

    def as_payload(self, now: int, threshold_ms: int = ONLINE_THRESHOLD_MS) -> dict:
        return {
            "userId": self.id,
            "username": self.username,
            "lastHeartbeat": self.last_heartbeat,
            "online": self.is_online(now, threshold_ms),
            "friendIds": list(self.friend_ids),
        }
