from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings.
    Values are read from environment variables or a `.env` file.
    """
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Database
    DATABASE_URL: str = "sqlite:///./classroom_booking.db"

    # JWT access credentials
    SECRET_KEY: str = "change-me-to-a-long-random-string-of-at-least-32-bytes"
    ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "classroom-booking"
    JWT_AUDIENCE: str = "classroom-booking-clients"
    ACCESS_TOKEN_EXPIRE_HOURS: int = 24

    # Opaque tokens
    REFRESH_TOKEN_EXPIRE_DAYS: int = 14
    EMAIL_CONFIRMATION_EXPIRE_DAYS: int = 2
    PASSWORD_RESET_EXPIRE_HOURS: int = 2

    # werkzeug hash method, e.g. "pbkdf2:sha256" or "pbkdf2:sha256:600000"
    PASSWORD_HASH_METHOD: str = "pbkdf2:sha256"

    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]
    LOG_LEVEL: str = "INFO"

    # Seed admin on startup (empty password disables seeding)
    DEFAULT_ADMIN_EMAIL: str = "admin@example.com"
    DEFAULT_ADMIN_PASSWORD: str = ""

    # used to build links inside emails
    FRONTEND_URL: str = "http://localhost:3000"


settings = Settings()


class EmailSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # turn real delivery on/off
    EMAIL_ENABLED: bool = False

    # smtp | console
    EMAIL_BACKEND: str = "console"

    EMAIL_HOST: str = "localhost"
    EMAIL_PORT: int = 587

    EMAIL_USERNAME: str = ""
    EMAIL_PASSWORD: str = ""
    EMAIL_FROM: str = "noreply@example.com"
    EMAIL_FROM_NAME: str = "Classroom Booking"

    EMAIL_USE_TLS: bool = True
    EMAIL_USE_SSL: bool = False


email_settings = EmailSettings()
