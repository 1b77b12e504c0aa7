# app/me/views.py
from rest_framework.views import APIView
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from app.highfives.services import get_highfive_service, run_sync
from app.users import services as users


def ok(data=None):
    return Response({"success": True, "data": data, "error": None})


def fail(code: str, message: str, http_status: int = 400):
    return Response(
        {"success": False, "data": None, "error": {"code": code, "message": message}},
        status=http_status,
    )


async def _me_payload(store, user_id, threshold_ms):
    user = await users.require_user(store, user_id)
    return user.as_payload(await store.now(), threshold_ms)


class MeView(APIView):
    permission_classes = [IsAuthenticated]

    # GET /api/me
    def get(self, request):
        service = get_highfive_service()
        data = run_sync(
            _me_payload, service.store, str(request.user.id), service.config.online_threshold_ms
        )
        return ok(data)


class HeartbeatView(APIView):
    permission_classes = [IsAuthenticated]

    # POST /api/me/heartbeat  (웹소켓 없이 폴링하는 클라이언트용)
    def post(self, request):
        run_sync(users.heartbeat, get_highfive_service().store, str(request.user.id))
        return ok({"ok": True})


class DeviceTokenView(APIView):
    permission_classes = [IsAuthenticated]

    # POST /api/me/device-token
    # body: { "token": "<fcm token>" }
    def post(self, request):
        token = request.data.get("token") or request.data.get("fcmToken")
        if not token:
            return fail("VALIDATION_ERROR", "token is required")
        run_sync(users.register_device_token, get_highfive_service().store, str(request.user.id), token)
        return ok({"ok": True})
