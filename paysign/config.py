"""
Configuración del servicio de firmas.
Carga variables de entorno y define settings globales.
"""

from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Literal


class Settings(BaseSettings):
    """Configuración principal del servicio."""

    # Aplicación
    APP_NAME: str = "Paysign Gateway Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    # Redis para deduplicar notificaciones
    REDIS_URL: str = "redis://localhost:6379/0"
    NOTIFICATION_DEDUPE_TTL_HOURS: int = 24

    # Alipay
    ALIPAY_APP_ID: str = ""
    ALIPAY_PARTNER_ID: str = ""
    ALIPAY_PRIVATE_KEY: str = ""  # PEM del comercio
    ALIPAY_PUBLIC_KEY: str = ""   # PEM público de la pasarela
    ALIPAY_NOTIFY_URL: str = ""
    ALIPAY_SANDBOX: bool = False

    # WeChat Pay
    WECHAT_APP_ID: str = ""
    WECHAT_MERCHANT_ID: str = ""
    WECHAT_API_KEY: str = ""  # secreto compartido para MD5 y req_info
    WECHAT_NOTIFY_URL: str = ""
    WECHAT_FEE_TYPE: str = "CNY"
    WECHAT_ORDER_TIMEOUT_MINUTES: int = 5
    WECHAT_LIMIT_PAY: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Retorna instancia cacheada de settings."""
    return Settings()


settings = get_settings()
