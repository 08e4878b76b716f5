from pydantic_settings import BaseSettings
from typing import Optional, Dict, Any, List


class Settings(BaseSettings):
    """
    Application settings.
    Values are read from the .env file or from environment variables.
    """

    # Application info
    PROJECT_NAME: str = "Task Assistant API"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"

    # OpenAI
    OPENAI_API_KEY: str
    OPENAI_MODEL: str = "gpt-4o"
    OPENAI_SMALL_MODEL: str = "gpt-4o-mini"
    OPENAI_EMBEDDING_MODEL: str = "text-embedding-3-small"
    OPENAI_IMAGE_MODEL: str = "dall-e-3"

    # Database
    DATABASE_URL: str = "sqlite:///./data/assistant.db"

    # JWT
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 10080  # 7 days

    # Google OAuth (login + Gmail)
    GOOGLE_CLIENT_ID: Optional[str] = None
    GOOGLE_CLIENT_SECRET: Optional[str] = None
    GMAIL_REDIRECT_URI: Optional[str] = None
    GMAIL_PUBSUB_TOPIC: Optional[str] = None
    GMAIL_ALLOWED_SUBSCRIPTIONS: List[str] = []
    GMAIL_PUBSUB_SERVICE_ACCOUNT: Optional[str] = None
    GMAIL_WEBHOOK_AUDIENCE: Optional[str] = None

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_FREE_PROMO_CODE: str = "FREEFOREVER"
    STRIPE_LAUNCH_PROMO_CODE: str = "LAUNCHOFFER"
    STRIPE_LAUNCH_CUSTOMER_LIMIT: int = 1000
    CORPORATE_EMAIL_DOMAIN: Optional[str] = None

    # Vapi
    VAPI_API_KEY: Optional[str] = None
    VAPI_ASSISTANT_ID: Optional[str] = None
    VAPI_PHONE_NUMBER_ID: Optional[str] = None
    VAPI_SERVER_SECRET: Optional[str] = None

    # Browserbase
    BROWSERBASE_API_KEY: Optional[str] = None
    BROWSERBASE_PROJECT_ID: Optional[str] = None

    # Firecrawl
    FIRECRAWL_API_KEY: Optional[str] = None

    # URLs
    FRONTEND_URL: str = "http://localhost:3000"
    BACKEND_URL: str = "http://localhost:8001"

    # Debug / logging
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    @property
    def OAUTH_PROVIDERS(self) -> Dict[str, Dict[str, Any]]:
        """Login providers that have credentials configured."""
        providers = {}

        if self.GOOGLE_CLIENT_ID and self.GOOGLE_CLIENT_SECRET:
            providers["google"] = {
                "client_id": self.GOOGLE_CLIENT_ID,
                "client_secret": self.GOOGLE_CLIENT_SECRET,
                "authorize_url": "https://accounts.google.com/o/oauth2/auth",
                "token_url": "https://oauth2.googleapis.com/token",
                "revoke_url": "https://oauth2.googleapis.com/revoke",
                "userinfo_url": "https://www.googleapis.com/oauth2/v3/userinfo",
                "redirect_uri": f"{self.BACKEND_URL}{self.API_V1_STR}/auth/google/callback",
                "scope": "openid email profile",
            }

        return providers

    @property
    def GMAIL_CALLBACK_URL(self) -> str:
        return self.GMAIL_REDIRECT_URI or f"{self.BACKEND_URL}{self.API_V1_STR}/gmail/callback"

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
