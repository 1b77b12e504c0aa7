# app/config/urls.py
from django.urls import path, include


urlpatterns = [
    path("api/auth/", include("app.authentication.urls")),
    path("api/users/", include("app.users.urls")),
    path("api/me/", include("app.me.urls")),
    path("api/friends/", include("app.friends.urls")),
    path("api/highfive/", include("app.highfives.urls")),
]
