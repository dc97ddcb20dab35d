"""Per-browser state kept in the signed session cookie.

The cookie holds the user info returned by the login endpoint (bearer token
included), a CSRF nonce and pending flash messages.
"""

import logging
from typing import Optional

from fastapi import Request
from pydantic import ValidationError

from csrf import new_session_nonce
from schemas import UserInfo

logger = logging.getLogger(__name__)

USER_KEY = "user"
FLASH_KEY = "flash"
NONCE_KEY = "csrf_nonce"


class LoginRequired(Exception):
    pass


def csrf_nonce(request: Request) -> str:
    nonce = request.session.get(NONCE_KEY)
    if not nonce:
        nonce = new_session_nonce()
        request.session[NONCE_KEY] = nonce
    return nonce


def current_user(request: Request) -> Optional[UserInfo]:
    raw = request.session.get(USER_KEY)
    if not raw:
        return None
    try:
        return UserInfo.model_validate(raw)
    except ValidationError:
        logger.warning("session_user_invalid: dropping stored user info")
        request.session.pop(USER_KEY, None)
        return None


def store_user(request: Request, user: UserInfo) -> None:
    request.session[USER_KEY] = user.model_dump(by_alias=True, mode="json")
    # rotate the nonce so pre-login forms cannot be replayed
    request.session[NONCE_KEY] = new_session_nonce()


def clear_user(request: Request) -> None:
    request.session.pop(USER_KEY, None)
    request.session[NONCE_KEY] = new_session_nonce()


def require_user(request: Request) -> UserInfo:
    user = current_user(request)
    if user is None:
        raise LoginRequired()
    return user


def flash(request: Request, message: str, level: str = "success") -> None:
    messages = list(request.session.get(FLASH_KEY, []))
    messages.append({"level": level, "message": message})
    request.session[FLASH_KEY] = messages


def pop_flashes(request: Request) -> list[dict[str, str]]:
    return request.session.pop(FLASH_KEY, [])
