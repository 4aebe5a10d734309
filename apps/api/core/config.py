"""
Configuración centralizada de la aplicación.
Lee todas las variables de entorno usando pydantic-settings.
NUNCA hardcodear valores sensibles aquí.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Base de datos -------------------------------------------------------
    # URL asíncrona (asyncpg) para el servidor FastAPI
    DATABASE_URL: str

    # URL síncrona (psycopg2) usada exclusivamente por Alembic para migraciones
    DATABASE_SYNC_URL: str

    # Pool compartido por requests y jobs del scheduler
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10

    # --- Seguridad -----------------------------------------------------------
    # Clave compartida con el proveedor de auth para verificar los JWT HS256.
    SECRET_KEY: str

    # Tiempo de vida de los tokens emitidos localmente (scripts y tests)
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # --- Aplicación ----------------------------------------------------------
    APP_ENV: str = "production"
    LOG_LEVEL: str = "INFO"

    # Orígenes CORS permitidos (cadena separada por comas)
    CORS_ORIGINS: str = "http://localhost:3000"

    # Tipo de cambio ARS/USD por defecto cuando no hay precios cargados
    DEFAULT_USD_RATE: Decimal = Decimal("1000")

    # --- Series históricas (optimizador) -------------------------------------
    YAHOO_CHART_BASE_URL: str = "https://query1.finance.yahoo.com"
    HISTORY_FETCH_TIMEOUT_SECONDS: float = 15.0
    HISTORY_FETCH_MAX_RETRIES: int = 3

    OPTIMIZER_NUM_PORTFOLIOS: int = 5000

    # El Sharpe observado usa tasa libre de riesgo 0%; True resta la tasa pedida
    SHARPE_APPLY_RISK_FREE_RATE: bool = False

    # --- Feed de precios en vivo ---------------------------------------------
    PRICE_FEED_URL: str = "https://data912.com"

    # Intervalo mínimo: 5 minutos
    PRICE_SYNC_INTERVAL_MINUTES: int = 15

    # --- Propiedades calculadas ----------------------------------------------
    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @field_validator("PRICE_SYNC_INTERVAL_MINUTES")
    @classmethod
    def validate_sync_interval(cls, v: int) -> int:
        if v < 5:
            raise ValueError("PRICE_SYNC_INTERVAL_MINUTES debe ser >= 5")
        return v

    @field_validator("DEFAULT_USD_RATE")
    @classmethod
    def validate_usd_rate(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("DEFAULT_USD_RATE debe ser mayor a 0")
        return v

    @field_validator("HISTORY_FETCH_MAX_RETRIES", "OPTIMIZER_NUM_PORTFOLIOS")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Debe ser >= 1")
        return v

    @field_validator("APP_ENV")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        allowed = {"development", "production", "test"}
        if v not in allowed:
            raise ValueError(f"APP_ENV debe ser uno de: {allowed}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL debe ser uno de: {allowed}")
        return v.upper()


@lru_cache
def get_settings() -> Settings:
    """Instancia singleton de Settings, cacheada para evitar re-lecturas del .env."""
    return Settings()


# Exportación conveniente para importar directamente en otros módulos
settings: Settings = get_settings()
