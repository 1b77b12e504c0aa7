# app/highfives/consumers.py
import logging

from channels.generic.websocket import AsyncJsonWebsocketConsumer

from app.common.exceptions import ServiceError
from app.highfives.client import HighFiveClient
from app.highfives.services import get_highfive_service

logger = logging.getLogger(__name__)


class HighFiveConsumer(AsyncJsonWebsocketConsumer):
    """
    WS High Five Protocol
      - URL: ws://<host>/ws/highfive/<partnerId>/?token=<jwt>
      - client -> server
          {"type": "ready", "ready": true}
          {"type": "tap"}
          {"type": "leave"}
      - server -> client
          {"type": "session", "payload": {...} | null}
          {"type": "readiness", "payload": {"transition": "..."}}
          {"type": "high_five", "payload": {"state", "highFiveId", "quality", "error"}}
          {"type": "notice", "payload": {"message": "..."}}
          {"type": "error", "code": "...", "message": "..."}
    """

    async def connect(self):
        self.client = None
        user = self.scope.get("user")
        if user is None or not user.is_authenticated:
            # 4401 Unauthorized (앱에서 처리하기 쉬움)
            await self.close(code=4401)
            return

        self.user_id = str(user.id)
        self.partner_id = self.scope["url_route"]["kwargs"]["partner_id"]
        await self.accept()

        self.client = HighFiveClient(get_highfive_service(), self.user_id)
        self.client.add_listener(self._forward)
        try:
            await self.client.connect(self.partner_id)
        except ServiceError as e:
            # 다른 세션에 이미 들어가 있으면 에러 보내고 끊기
            await self.send_error(e)
            self.client = None
            await self.close(code=4409)

    async def disconnect(self, close_code):
        # connect 실패한 케이스 방어
        client = getattr(self, "client", None)
        if client is None:
            return
        self.client = None
        await client.leave()

    async def receive_json(self, content, **kwargs):
        if self.client is None or not isinstance(content, dict):
            return

        msg_type = content.get("type")
        try:
            if msg_type == "ready":
                await self.client.set_ready(bool(content.get("ready", True)))
            elif msg_type == "tap":
                await self.client.tap()
            elif msg_type == "leave":
                client, self.client = self.client, None
                await client.leave()
                await self.close(code=1000)
            else:
                logger.debug("ignoring %r from %s", msg_type, self.user_id)
        except ServiceError as e:
            await self.send_error(e)

    async def send_error(self, error: ServiceError):
        await self.send_json({"type": "error", **error.as_dict()})

    async def _forward(self, event: str, payload):
        await self.send_json({"type": event, "payload": payload})
