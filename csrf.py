import secrets
import time

from itsdangerous import BadSignature, URLSafeSerializer

from config import get_settings


def _serializer() -> URLSafeSerializer:
    settings = get_settings()
    return URLSafeSerializer(settings.csrf_secret, salt="spender-csrf")


def new_session_nonce() -> str:
    return secrets.token_urlsafe(16)


def generate_csrf_token(nonce: str, max_age_hours: int = 2) -> str:
    timestamp = int(time.time())
    token_data = {"n": nonce, "exp": timestamp + (max_age_hours * 3600)}
    return _serializer().dumps(token_data)


def validate_csrf_token(token: str, nonce: str) -> bool:
    if not token or not nonce:
        return False
    try:
        data = _serializer().loads(token)
    except BadSignature:
        return False

    if not isinstance(data, dict) or data.get("n") != nonce:
        return False

    return int(time.time()) <= data.get("exp", 0)
