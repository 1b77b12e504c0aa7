# app/notifications/consumers.py
import logging

from channels.generic.websocket import AsyncJsonWebsocketConsumer

from app.highfives.services import get_highfive_service
from app.notifications.dispatcher import user_group
from app.users.services import Heartbeat

logger = logging.getLogger(__name__)


class NotificationConsumer(AsyncJsonWebsocketConsumer):
    """
    ws://<host>/ws/notifications/?token=<jwt>

    Joins notifications_<userId> and keeps the user's heartbeat fresh while
    the socket is open. Every event arrives as
        {"type": "<kind>", "payload": {...}}
    """

    async def connect(self):
        self.heartbeat = None
        user = self.scope.get("user")
        if user is None or not user.is_authenticated:
            await self.close(code=4401)
            return

        self.user_id = str(user.id)
        self.group_name = user_group(self.user_id)
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()

        service = get_highfive_service()
        self.heartbeat = Heartbeat(service.store, self.user_id, service.config.heartbeat_interval_ms)
        self.heartbeat.start()
        logger.debug("%s listening for notifications", self.user_id)

    async def disconnect(self, close_code):
        heartbeat = getattr(self, "heartbeat", None)
        if heartbeat is None:
            return
        heartbeat.stop()
        self.heartbeat = None
        await self.channel_layer.group_discard(self.group_name, self.channel_name)

    async def receive_json(self, content, **kwargs):
        # 받는 메시지는 없음. ping만 응답
        if isinstance(content, dict) and content.get("type") == "ping":
            await self.send_json({"type": "pong"})

    # ---- group handlers ----

    async def notification_message(self, event):
        await self.send_json({"type": event.get("kind"), "payload": event.get("payload") or {}})
