"""Bearer-token identity for the JSON API.

Tokens are HS256 JWTs signed with ``settings.JWT_SECRET`` carrying a
``userId`` claim. They are read from ``Authorization: Bearer ...`` or the
``authToken`` cookie; a Django session login is accepted as a fallback so the
admin site user can call the staff endpoints.
"""

import logging
from datetime import datetime, timedelta, timezone
from functools import wraps

import jwt
from django.conf import settings
from django.contrib.auth import get_user_model
from django.http import JsonResponse

logger = logging.getLogger(__name__)

User = get_user_model()


def issue_token(user) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "userId": user.pk,
        "role": user.role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=getattr(settings, "JWT_TTL_SECONDS", 604800))).timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def _raw_token(request):
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        return header.split(" ", 1)[1].strip()
    return request.COOKIES.get("authToken")


def get_token_user(request):
    """Resolve the caller, or ``None`` for a guest or an unusable token."""
    token = _raw_token(request)
    if token:
        try:
            payload = jwt.decode(token, settings.JWT_SECRET, algorithms=["HS256"])
        except jwt.PyJWTError:
            logger.info("Rejected bearer token: invalid or expired")
            return None
        return User.objects.filter(pk=payload.get("userId"), is_active=True).first()

    session_user = getattr(request, "user", None)
    if session_user is not None and session_user.is_authenticated:
        return session_user
    return None


def optional_auth(view):
    """Proceed as guest when no identity is supplied."""

    @wraps(view)
    def wrapper(request, *args, **kwargs):
        request.token_user = get_token_user(request)
        return view(request, *args, **kwargs)

    return wrapper


def auth_required(view):
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        user = get_token_user(request)
        if user is None:
            return JsonResponse({"message": "Authentication required"}, status=401)
        request.token_user = user
        return view(request, *args, **kwargs)

    return wrapper


def role_required(*roles):
    def decorator(view):
        @wraps(view)
        def wrapper(request, *args, **kwargs):
            user = get_token_user(request)
            if user is None:
                return JsonResponse({"message": "Authentication required"}, status=401)
            if user.role not in roles:
                return JsonResponse({"message": "Forbidden"}, status=403)
            request.token_user = user
            return view(request, *args, **kwargs)

        return wrapper

    return decorator
