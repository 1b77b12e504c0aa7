# app/authentication/views.py
import logging

from rest_framework.response import Response
from rest_framework.views import APIView

from app.highfives.services import get_highfive_service, run_sync
from app.users import services as users
from .services import issue_jwt_for_user

logger = logging.getLogger(__name__)


def ok(data=None):
    return Response({"success": True, "data": data, "error": None})


class LoginView(APIView):
    authentication_classes = []
    permission_classes = []

    # POST /api/auth/login
    # body: { "username": "alice" }
    def post(self, request):
        store = get_highfive_service().store
        user, created = run_sync(users.login, store, request.data.get("username"))

        token = issue_jwt_for_user(user)
        logger.info("login %s (%s, new=%s)", user.username, user.id, created)
        return ok(
            {
                "userId": user.id,
                "username": user.username,
                "accessToken": token,
                "tokenType": "Bearer",
                "isNewUser": created,
            }
        )


class UsernameStatusView(APIView):
    authentication_classes = []
    permission_classes = []

    # GET /api/auth/username-status?username=alice
    def get(self, request):
        store = get_highfive_service().store
        status = run_sync(users.check_username, store, request.query_params.get("username"))
        return ok({"status": status.value})
