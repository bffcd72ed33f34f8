from typing import Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import get_settings
from errors import AuthenticationError


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.auth_secret, salt="auth-token")


def issue_token(user_id: str) -> str:
    if not user_id:
        raise AuthenticationError("User id is required")
    return _serializer().dumps({"u": user_id})


def verify_token(token: str, max_age_secs: Optional[int] = None) -> str:
    """Return the user id carried by ``token`` or raise AuthenticationError."""
    if not token:
        raise AuthenticationError("User not authenticated")
    max_age = max_age_secs or get_settings().auth_max_age_secs
    try:
        data = _serializer().loads(token, max_age=max_age)
    except SignatureExpired as exc:
        raise AuthenticationError("Token expired") from exc
    except BadSignature as exc:
        raise AuthenticationError("Invalid token") from exc

    user_id = data.get("u") if isinstance(data, dict) else None
    if not isinstance(user_id, str) or not user_id:
        raise AuthenticationError("Invalid token")
    return user_id
