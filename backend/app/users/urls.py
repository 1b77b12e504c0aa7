# app/users/urls.py
from django.urls import path
from .views import UsersView

urlpatterns = [
    path("", UsersView.as_view()),  # GET/POST /api/users
]
