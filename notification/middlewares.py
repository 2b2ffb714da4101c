from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.tokens import AccessToken, TokenError

User = get_user_model()


@database_sync_to_async
def _get_user(user_id):
    try:
        return User.objects.get(id=user_id, is_active=True)
    except User.DoesNotExist:
        return AnonymousUser()


class WebSocketJWTAuthMiddleware:
    """Resolve `?token=<access token>` on the websocket URL into scope['user']."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        qs = parse_qs(scope.get("query_string", b"").decode())
        token_list = qs.get("token") or []
        token = token_list[0] if token_list else None

        scope["user"] = AnonymousUser()
        if token:
            try:
                user_id = AccessToken(token).get("user_id")
            except TokenError:
                user_id = None
            if user_id:
                scope["user"] = await _get_user(user_id)

        return await self.app(scope, receive, send)
