from django.urls import path
from .views import LoginView, UsernameStatusView

urlpatterns = [
    path("login/", LoginView.as_view()),
    path("login", LoginView.as_view()),
    path("username-status/", UsernameStatusView.as_view()),
    path("username-status", UsernameStatusView.as_view()),
]
