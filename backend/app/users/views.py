# app/users/views.py
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from app.highfives.services import get_highfive_service, run_sync
from app.users import services as users


def ok(data=None):
    return Response({"success": True, "data": data, "error": None})


async def _search(store, query, exclude_id, threshold_ms):
    found = await users.search_users(store, query, exclude_id=exclude_id)
    now = await store.now()
    found.sort(key=lambda u: u.username.lower())
    return [u.as_payload(now, threshold_ms) for u in found]


class UsersView(APIView):
    permission_classes = [IsAuthenticated]

    # GET /api/users?q=ali
    def get(self, request):
        service = get_highfive_service()
        items = run_sync(
            _search,
            service.store,
            request.query_params.get("q", ""),
            str(request.user.id),
            service.config.online_threshold_ms,
        )
        return ok({"users": items})

    # POST /api/users
    # body: { "username": "carol" }
    def post(self, request):
        service = get_highfive_service()
        user = run_sync(users.add_user, service.store, request.data.get("username"))
        return Response(
            {"success": True, "data": {"userId": user.id, "username": user.username}, "error": None},
            status=201,
        )
