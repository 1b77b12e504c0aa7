# app/highfives/routing.py
from django.urls import re_path
from .consumers import HighFiveConsumer

websocket_urlpatterns = [
    re_path(r"^ws/highfive/(?P<partner_id>[^/]+)/?$", HighFiveConsumer.as_asgi()),
]
