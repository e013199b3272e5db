from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "MediShop API"
    APP_ENV: str = "development"
    DEBUG: bool = True
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    ENABLE_API_DOCS: bool = True

    # Database
    DATABASE_URL: str

    # Security
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 24 hours
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Refresh tokens go into an HttpOnly cookie when a frontend is configured
    FRONTEND_BASE_URL: str = ""

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    @property
    def origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    # OTP
    OTP_LENGTH: int = 6
    OTP_EXPIRE_MINUTES: int = 5
    OTP_MAX_ATTEMPTS: int = 5
    OTP_MAX_SENDS_PER_HOUR: int = 3
    OTP_HASH_ROUNDS: int = 10
    OTP_EXPOSE_IN_RESPONSE: bool = False  # development only

    # SMS provider: mock, msg91 or twilio
    OTP_PROVIDER: str = "mock"
    MSG91_API_KEY: str = ""
    MSG91_SENDER: str = "MEDISP"
    MSG91_TEMPLATE_ID: str = ""
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_FROM: str = ""
    SMS_TIMEOUT_SECONDS: int = 10

    # Rate limiting (slowapi); point at redis://... to share counters between workers
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_STORAGE_URI: str = "memory://"
    AUTH_RATE_LIMIT: str = "5/minute"

    # File Upload
    UPLOAD_DIR: str = "uploads"
    MEDIA_URL_PREFIX: str = "/media"
    MAX_UPLOAD_SIZE: int = 10 * 1024 * 1024  # 10MB
    ALLOWED_UPLOAD_TYPES: str = "image/jpeg,image/png,image/jpg,application/pdf"

    @property
    def upload_types_list(self) -> List[str]:
        return [t.strip() for t in self.ALLOWED_UPLOAD_TYPES.split(",") if t.strip()]

    # Pricing
    DELIVERY_FEE: float = 50
    FREE_DELIVERY_THRESHOLD: float = 499
    TAX_RATE: float = 0.18

    # Behaviour switches
    ORDER_REQUIRES_PRESCRIPTION: bool = True
    STRICT_STATUS_TRANSITIONS: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "allow"


# Create settings instance
settings = Settings()
