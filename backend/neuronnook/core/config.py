from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

# Used only when JWT_SECRET is unset; startup logs a warning when it is in effect.
INSECURE_JWT_SECRET = "your-secret-key-change-in-production"

class Settings(BaseSettings):
    DATABASE_URL: str
    DATABASE_NAME: str = "neuron-nook"
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    JWT_SECRET: str = INSECURE_JWT_SECRET

    APP_URL: str = "http://localhost:8000"
    FRONTEND_PUBLIC_URL: str = "http://localhost:3000"
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = None
    GOOGLE_REDIRECT_URI: str | None = None

    MICROSOFT_CLIENT_ID: str | None = None
    MICROSOFT_CLIENT_SECRET: str | None = None
    MICROSOFT_REDIRECT_URI: str | None = None
    MICROSOFT_TENANT_ID: str = "common"

    PROVIDER_TIMEOUT_SECONDS: float = 10.0

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    def redirect_uri_for(self, provider: str) -> str:
        configured = getattr(self, f"{provider.upper()}_REDIRECT_URI")
        return configured or f"{self.APP_URL.rstrip('/')}/auth/{provider}/callback"

    def frontend_url(self, path: str) -> str:
        return f"{self.FRONTEND_PUBLIC_URL.rstrip('/')}{path}"

@lru_cache
def get_settings():
    return Settings()
