# app/friends/views.py
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from app.friends.services import add_friend, list_friends
from app.highfives.services import get_highfive_service, run_sync

MAX_TOTAL = 100
DEFAULT_LIMIT = 20
MAX_LIMIT = 50


def ok(data=None):
    return Response({"success": True, "data": data, "error": None})


def fail(code: str, message: str, http_status: int = 400):
    return Response(
        {"success": False, "data": None, "error": {"code": code, "message": message}},
        status=http_status,
    )


def _int_param(raw, default: int) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


class FriendAddView(APIView):
    permission_classes = [IsAuthenticated]

    # POST /api/friends/add
    # body: { "targetUserId": "<uuid>" }
    def post(self, request):
        target_user_id = request.data.get("targetUserId")
        if not target_user_id:
            return fail("VALIDATION_ERROR", "targetUserId is required")

        store = get_highfive_service().store
        added = run_sync(add_friend, store, str(request.user.id), str(target_user_id))
        return ok({"added": added})


class FriendListView(APIView):
    permission_classes = [IsAuthenticated]

    # GET /api/friends?offset=0&limit=20
    def get(self, request):
        # 0) pagination params
        offset = max(_int_param(request.query_params.get("offset"), 0), 0)
        limit = _int_param(request.query_params.get("limit"), DEFAULT_LIMIT)
        if limit <= 0:
            limit = DEFAULT_LIMIT
        if limit > MAX_LIMIT:
            limit = MAX_LIMIT

        # 1) 정렬: 온라인 먼저, 최근 heartbeat 먼저, 이름순
        service = get_highfive_service()
        friends = run_sync(
            list_friends, service.store, str(request.user.id), service.config.online_threshold_ms
        )[:MAX_TOTAL]

        items = [
            {
                "userId": user.id,
                "username": user.username,
                "online": online,
                "lastHeartbeat": user.last_heartbeat,
            }
            for user, online in friends
        ]

        # 2) 페이지네이션
        total = len(items)
        paged = items[offset : offset + limit]
        next_offset = offset + limit if (offset + limit) < total else None

        return ok(
            {
                "friends": paged,
                "offset": offset,
                "limit": limit,
                "nextOffset": next_offset,
                "total": total,
            }
        )
