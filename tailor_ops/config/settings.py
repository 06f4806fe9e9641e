"""
Service settings loaded from the environment
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Supabase project
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: str = ""
    INSPIRATION_BUCKET: str = "inspiration"

    # Status emails (EmailJS REST API)
    EMAIL_API_URL: str = "https://api.emailjs.com/api/v1.0/email/send"
    EMAILJS_SERVICE_ID: str = ""
    EMAILJS_TEMPLATE_ID: str = ""
    EMAILJS_PUBLIC_KEY: str = ""
    EMAILJS_PRIVATE_KEY: str = ""
    SHOP_NAME: str = "Tailor Shop"

    # Notifications
    DUE_DATE_WARNING_DAYS: int = 2
    DUE_DATE_URGENT_DAYS: int = 1
    MAX_NOTIFICATIONS: int = 50
    LISTENER_RECONNECT_DELAY_SEC: float = 5.0

    # Inspiration photos
    MAX_INSPIRATION_PHOTOS: int = 5
    MAX_PHOTO_BYTES: int = 5 * 1024 * 1024

    # Web service
    CORS_ORIGINS: str = "*"
    PORT: int = 5001

    # Other
    LOG_LEVEL: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
