# app/me/urls.py
from django.urls import path
from .views import MeView, HeartbeatView, DeviceTokenView

urlpatterns = [
    path("", MeView.as_view()),  # GET /api/me
    path("heartbeat", HeartbeatView.as_view()),  # POST /api/me/heartbeat
    path("heartbeat/", HeartbeatView.as_view()),
    path("device-token", DeviceTokenView.as_view()),  # POST /api/me/device-token
    path("device-token/", DeviceTokenView.as_view()),
]
