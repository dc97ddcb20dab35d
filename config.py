import os
from functools import lru_cache


class Settings:
    def __init__(
        self,
        api_url: str,
        api_timeout_secs: float,
        timezone: str,
        locale: str,
        currency: str,
        session_secret: str,
        csrf_secret: str,
        session_max_age_secs: int,
    ) -> None:
        self.api_url = api_url
        self.api_timeout_secs = api_timeout_secs
        self.timezone = timezone
        self.locale = locale
        self.currency = currency
        self.session_secret = session_secret
        self.csrf_secret = csrf_secret
        self.session_max_age_secs = session_max_age_secs


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    api_url = os.getenv(
        "SPENDER_API_URL", "https://money-manager-backend-l19d.onrender.com"
    ).rstrip("/")
    api_timeout_secs = float(os.getenv("SPENDER_API_TIMEOUT_SECS", "10"))
    timezone = os.getenv("SPENDER_TIMEZONE", "Asia/Kolkata")
    locale = os.getenv("SPENDER_LOCALE", "en_IN")
    currency = os.getenv("SPENDER_CURRENCY", "INR")
    session_secret = os.getenv(
        "SPENDER_SESSION_SECRET",
        "4c1f0d7e9b2a43c8a6f35e0d91b7c2aa6e8d3f1b0c9a7e5d2b4f6a8c0e1d3b5f",
    )
    csrf_secret = os.getenv(
        "SPENDER_CSRF_SECRET",
        "b7e2c9a41d6f38e05a9c1b7d3e6f2a8c4d0b9e7f1a3c5e7d9b1f3a5c7e9d1b3f",
    )
    session_max_age_secs = int(os.getenv("SPENDER_SESSION_MAX_AGE_SECS", "604800"))
    return Settings(
        api_url=api_url,
        api_timeout_secs=api_timeout_secs,
        timezone=timezone,
        locale=locale,
        currency=currency,
        session_secret=session_secret,
        csrf_secret=csrf_secret,
        session_max_age_secs=session_max_age_secs,
    )
