# app/highfives/views.py
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from app.highfives.errors import NotParticipant
from app.highfives.services import get_highfive_service, run_sync
from app.highfives.sessions import slot_for


def ok(data=None):
    return Response({"success": True, "data": data, "error": None})


def fail(code: str, message: str, http_status: int = 400):
    return Response(
        {"success": False, "data": None, "error": {"code": code, "message": message}},
        status=http_status,
    )


def _session_payload(session, user_id: str) -> dict:
    partner_id = session.partner_of(user_id)
    return {
        **session.to_document(),
        "partnerId": partner_id,
        "isReady": session.is_ready(slot_for(session, user_id)),
        "partnerReady": session.is_ready(slot_for(session, partner_id)),
    }


class ConnectView(APIView):
    permission_classes = [IsAuthenticated]

    # POST /api/highfive/connect
    # body: { "partnerId": "<uuid>" }
    def post(self, request):
        partner_id = request.data.get("partnerId")
        if not partner_id:
            return fail("VALIDATION_ERROR", "partnerId is required")

        user_id = str(request.user.id)
        service = get_highfive_service()
        session = run_sync(service.connect, user_id, str(partner_id))
        return ok(_session_payload(session, user_id))


class LeaveView(APIView):
    permission_classes = [IsAuthenticated]

    # POST /api/highfive/leave
    # body: { "sessionId": "alice_bob" }
    def post(self, request):
        session_id = request.data.get("sessionId")
        if not session_id:
            return fail("VALIDATION_ERROR", "sessionId is required")

        user_id = str(request.user.id)
        session = run_sync(get_highfive_service().leave, user_id, str(session_id))
        return ok(_session_payload(session, user_id))


class ReadyView(APIView):
    permission_classes = [IsAuthenticated]

    # POST /api/highfive/ready
    # body: { "sessionId": "alice_bob", "ready": true }
    def post(self, request):
        session_id = request.data.get("sessionId")
        if not session_id:
            return fail("VALIDATION_ERROR", "sessionId is required")
        ready = request.data.get("ready", True)
        if not isinstance(ready, bool):
            return fail("VALIDATION_ERROR", "ready must be a boolean")

        user_id = str(request.user.id)
        session = run_sync(get_highfive_service().set_ready, user_id, str(session_id), ready)
        return ok(_session_payload(session, user_id))


class SessionDetailView(APIView):
    permission_classes = [IsAuthenticated]

    # GET /api/highfive/sessions/<session_id>
    def get(self, request, session_id):
        user_id = str(request.user.id)
        session = run_sync(get_highfive_service().registry.require, session_id)
        return ok(_session_payload(session, user_id))


class AttemptDetailView(APIView):
    permission_classes = [IsAuthenticated]

    # GET /api/highfive/attempts/<attempt_id>
    def get(self, request, attempt_id):
        user_id = str(request.user.id)
        attempt = run_sync(get_highfive_service().engine.require, attempt_id)
        if not attempt.involves(user_id):
            raise NotParticipant(user_id=user_id, attempt_id=attempt_id)
        return ok(attempt.to_document())
