# app/authentication/services.py
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.tokens import AccessToken

from app.users.models import User


def issue_jwt_for_user(user: User) -> str:
    # 유저는 DB가 아니라 문서 저장소에 있으니 for_user() 대신 클레임만 직접 세팅
    token = AccessToken()
    token[api_settings.USER_ID_CLAIM] = user.id
    token["username"] = user.username
    return str(token)
