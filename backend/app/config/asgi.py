import os
from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "app.config.settings")

django_asgi_app = get_asgi_application()

from channels.routing import ProtocolTypeRouter, URLRouter
from app.config.jwt_auth_middleware import JwtAuthMiddlewareStack
import app.highfives.routing
import app.notifications.routing

websocket_urlpatterns = (
    app.highfives.routing.websocket_urlpatterns
    + app.notifications.routing.websocket_urlpatterns
)

application = ProtocolTypeRouter(
    {
        "http": django_asgi_app,
        "websocket": JwtAuthMiddlewareStack(URLRouter(websocket_urlpatterns)),
    }
)
