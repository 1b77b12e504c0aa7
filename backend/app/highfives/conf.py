# app/highfives/conf.py
import dataclasses

from django.conf import settings

STALE_SESSION_POLICIES = ("keep", "delete")


@dataclasses.dataclass(frozen=True)
class HighFiveConfig:
    store_backend: str = "app.common.redis_store.RedisDocumentStore"
    session_active_window_ms: int = 5 * 60 * 1000
    attempt_timeout_ms: int = 5000
    max_skew_ms: int = 2000
    online_threshold_ms: int = 5000
    heartbeat_interval_ms: int = 1000
    stale_session_policy: str = "keep"
    stale_session_ttl_ms: int = 24 * 60 * 60 * 1000
    notification_backends: tuple = (
        "app.notifications.dispatcher.StoreNotificationBackend",
        "app.notifications.dispatcher.ChannelLayerNotificationBackend",
    )

    def __post_init__(self):
        if self.stale_session_policy not in STALE_SESSION_POLICIES:
            raise ValueError(
                f"STALE_SESSION_POLICY must be one of {STALE_SESSION_POLICIES}, "
                f"got {self.stale_session_policy!r}"
            )
        for name in ("session_active_window_ms", "attempt_timeout_ms", "max_skew_ms"):
            if int(getattr(self, name)) <= 0:
                raise ValueError(f"{name.upper()} must be positive")

    @classmethod
    def from_settings(cls):
        raw = getattr(settings, "HIGHFIVE", {}) or {}
        fields = {}
        for field in dataclasses.fields(cls):
            key = field.name.upper()
            if key in raw:
                fields[field.name] = raw[key]
        if "notification_backends" in fields:
            fields["notification_backends"] = tuple(fields["notification_backends"])
        return cls(**fields)
