from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    PROJECT_NAME: str = "AgencyHub"
    VERSION: str = "0.1.0"
    ENVIRONMENT: str = "development"

    API_V1_STR: str = "/api/v1"

    # Central registry database
    DATABASE_URL: str
    REDIS_URL: str = "redis://localhost:6379/0"

    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    CORS_ORIGINS: str = "http://localhost:3000"

    LOG_LEVEL: str = "INFO"

    # Agency domains are "<subdomain><suffix>"
    AGENCY_DOMAIN_SUFFIX: str = ".agencyhub.app"

    # Tenant database backend: "postgresql" or "sqlite"; empty = same as DATABASE_URL
    TENANT_DATABASE_BACKEND: str = ""
    POSTGRES_MAINTENANCE_DB: str = "postgres"
    TENANT_SQLITE_DIRECTORY: str = "./tenant_databases"

    # Provisioning
    PROVISIONING_MAX_CONCURRENCY: int = 4
    PROVISIONING_LOCK_ENABLED: bool = False
    PROVISIONING_LOCK_TTL_SECONDS: int = 300
    PROVISIONING_STALE_AFTER_MINUTES: int = 30
    PROVISIONING_RECONCILE_INTERVAL_MINUTES: int = 10

    # Tenant connection pools
    TENANT_POOL_MAX_POOLS: int = 50
    TENANT_POOL_MAX_CONNECTIONS_PER_TENANT: int = 5
    TENANT_POOL_GLOBAL_MAX_CONNECTIONS: int = 200
    TENANT_POOL_IDLE_TIMEOUT_SECONDS: int = 30 * 60
    TENANT_POOL_EVICTION_INTERVAL_SECONDS: int = 5 * 60
    TENANT_POOL_ACQUIRE_TIMEOUT_SECONDS: float = 5.0

    # Subscription plans (monthly, USD)
    PLAN_PRICE_STARTER: float = 29.0
    PLAN_PRICE_PROFESSIONAL: float = 79.0
    PLAN_PRICE_ENTERPRISE: float = 199.0

    PLAN_MAX_USERS_STARTER: int = 5
    PLAN_MAX_USERS_PROFESSIONAL: int = 25
    PLAN_MAX_USERS_ENTERPRISE: int = 1000

    ANNUAL_DISCOUNT_RATE: float = 0.10

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def cors_origins_list(self) -> List[str]:
        if isinstance(self.CORS_ORIGINS, str):
            return [o.strip() for o in self.CORS_ORIGINS.split(",")]
        return self.CORS_ORIGINS

    @property
    def async_database_url(self) -> str:
        return to_async_url(self.DATABASE_URL)

    @property
    def tenant_backend(self) -> str:
        if self.TENANT_DATABASE_BACKEND:
            return self.TENANT_DATABASE_BACKEND
        return "sqlite" if self.DATABASE_URL.startswith("sqlite") else "postgresql"


def to_async_url(url: str) -> str:
    """Convert a sync database URL to its async driver form."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return url


settings = Settings()
