# app/config/jwt_auth_middleware.py
import logging
from urllib.parse import parse_qs

from django.contrib.auth.models import AnonymousUser

from rest_framework_simplejwt.authentication import JWTStatelessUserAuthentication
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError

logger = logging.getLogger(__name__)


def get_user_from_token(token: str):
    """
    SimpleJWT 토큰 검증 후 TokenUser 반환 (DB 조회 없음).
    실패 시 AnonymousUser 반환.
    """
    try:
        jwt_auth = JWTStatelessUserAuthentication()
        validated = jwt_auth.get_validated_token(token)
        return jwt_auth.get_user(validated)
    except (InvalidToken, TokenError) as e:
        logger.info("rejected websocket token: %s", e)
        return AnonymousUser()


class JwtAuthMiddleware:
    """
    ws://.../?token=xxx 로 들어오는 JWT를 검증해서 scope['user']에 세팅
    """

    def __init__(self, inner):
        self.inner = inner

    async def __call__(self, scope, receive, send):
        query_string = scope.get("query_string", b"").decode()
        qs = parse_qs(query_string)
        token_list = qs.get("token", [])
        token = token_list[0] if token_list else None

        scope = dict(scope)
        scope["user"] = get_user_from_token(token) if token else AnonymousUser()

        return await self.inner(scope, receive, send)


def JwtAuthMiddlewareStack(inner):
    return JwtAuthMiddleware(inner)
