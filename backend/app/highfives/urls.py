# app/highfives/urls.py
from django.urls import path
from .views import (
    ConnectView,
    LeaveView,
    ReadyView,
    SessionDetailView,
    AttemptDetailView,
)

urlpatterns = [
    path("connect", ConnectView.as_view()),  # POST /api/highfive/connect
    path("leave", LeaveView.as_view()),  # POST /api/highfive/leave
    path("ready", ReadyView.as_view()),  # POST /api/highfive/ready
    path("sessions/<str:session_id>", SessionDetailView.as_view()),
    path("attempts/<str:attempt_id>", AttemptDetailView.as_view()),
    path("connect/", ConnectView.as_view()),
    path("leave/", LeaveView.as_view()),
    path("ready/", ReadyView.as_view()),
    path("sessions/<str:session_id>/", SessionDetailView.as_view()),
    path("attempts/<str:attempt_id>/", AttemptDetailView.as_view()),
]
