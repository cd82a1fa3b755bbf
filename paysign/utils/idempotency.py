"""
Control de idempotencia para notificaciones.
Evita ejecutar dos veces el callback de negocio ante reenvíos de la pasarela.
"""

import json
from datetime import timedelta
from typing import Any

import structlog
import redis.asyncio as redis
from redis.exceptions import RedisError

from paysign.config import settings


logger = structlog.get_logger(__name__)

# Tiempo de expiración de notificaciones procesadas
NOTIFICATION_TTL_HOURS = settings.NOTIFICATION_DEDUPE_TTL_HOURS

# Segundos que dura el lock de procesamiento
PROCESSING_LOCK_SECONDS = 30


def notification_key(plat: str, notification_id: str) -> str:
    return f"{plat}:{notification_id}"


class IdempotencyManager:
    """
    Gestor de idempotencia usando Redis.

    Almacena la respuesta enviada a la pasarela para una notificación ya
    procesada y la retorna si la misma notificación se recibe otra vez.
    """

    def __init__(self, redis_client: redis.Redis):
        self._redis = redis_client
        self._prefix = "notification:"

    def _make_key(self, key: str) -> str:
        """Genera la clave Redis."""
        return f"{self._prefix}{key}"

    async def get_cached_response(self, key: str) -> dict[str, Any] | None:
        """
        Obtiene la respuesta cacheada de una notificación.

        Args:
            key: Clave ``<plat>:<id de notificación>``

        Returns:
            Respuesta cacheada o None si no existe
        """
        try:
            data = await self._redis.get(self._make_key(key))

            if data:
                logger.info("Notification cache hit", notification_key=key)
                return json.loads(data)

            return None

        except RedisError as e:
            logger.error(
                "Redis error getting notification key",
                error=str(e),
                notification_key=key,
            )
            # Sin Redis se procesa de nuevo; el callback debe tolerarlo
            return None

    async def cache_response(
        self,
        key: str,
        response: dict[str, Any],
        ttl_hours: int = NOTIFICATION_TTL_HOURS,
    ) -> bool:
        """
        Cachea la respuesta de una notificación procesada.

        Returns:
            True si se guardó correctamente
        """
        try:
            await self._redis.setex(
                self._make_key(key),
                timedelta(hours=ttl_hours),
                json.dumps(response, default=str),
            )

            logger.info(
                "Notification response cached",
                notification_key=key,
                ttl_hours=ttl_hours,
            )
            return True

        except RedisError as e:
            logger.error(
                "Redis error caching notification response",
                error=str(e),
                notification_key=key,
            )
            return False

    async def is_processing(self, key: str) -> bool:
        """
        Verifica si la notificación está siendo procesada.

        Usa un lock temporal para prevenir race conditions.
        """
        try:
            acquired = await self._redis.set(
                self._make_key(f"lock:{key}"),
                "processing",
                nx=True,
                ex=PROCESSING_LOCK_SECONDS,
            )
            return not acquired

        except RedisError as e:
            logger.error(
                "Redis error checking processing lock",
                error=str(e),
                notification_key=key,
            )
            return False

    async def ping(self) -> None:
        await self._redis.ping()

    async def release_lock(self, key: str) -> None:
        """Libera el lock de procesamiento."""
        try:
            await self._redis.delete(self._make_key(f"lock:{key}"))
        except RedisError as e:
            logger.error(
                "Redis error releasing lock",
                error=str(e),
                notification_key=key,
            )


# Singleton del cliente Redis
_redis_client: redis.Redis | None = None
_idempotency_manager: IdempotencyManager | None = None


async def get_redis_client() -> redis.Redis:
    """Obtiene o crea el cliente Redis."""
    global _redis_client

    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
        logger.info("Redis client initialized", url=settings.REDIS_URL.split("@")[-1])

    return _redis_client


async def get_idempotency_manager() -> IdempotencyManager:
    """Obtiene o crea el gestor de idempotencia."""
    global _idempotency_manager

    if _idempotency_manager is None:
        redis_client = await get_redis_client()
        _idempotency_manager = IdempotencyManager(redis_client)

    return _idempotency_manager


async def close_redis() -> None:
    """Cierra la conexión de Redis."""
    global _redis_client, _idempotency_manager

    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
        _idempotency_manager = None
        logger.info("Redis connection closed")


class InMemoryIdempotencyManager:
    """
    Implementación en memoria para desarrollo sin Redis.

    NO USAR EN PRODUCCIÓN - no es persistente ni distribuido.
    """

    def __init__(self):
        self._cache: dict[str, dict[str, Any]] = {}
        self._locks: set[str] = set()

    async def get_cached_response(self, key: str) -> dict[str, Any] | None:
        return self._cache.get(key)

    async def cache_response(
        self,
        key: str,
        response: dict[str, Any],
        ttl_hours: int = NOTIFICATION_TTL_HOURS,
    ) -> bool:
        self._cache[key] = response
        return True

    async def is_processing(self, key: str) -> bool:
        if key in self._locks:
            return True
        self._locks.add(key)
        return False

    async def release_lock(self, key: str) -> None:
        self._locks.discard(key)


async def get_idempotency_manager_with_fallback() -> IdempotencyManager | InMemoryIdempotencyManager:
    """
    Obtiene el gestor de idempotencia con fallback a memoria.

    Intenta conectar a Redis, si falla usa implementación en memoria.
    """
    try:
        manager = await get_idempotency_manager()
        await manager.ping()
        return manager
    except (RedisError, OSError) as e:
        logger.warning(
            "Failed to connect to Redis, using in-memory idempotency",
            error=str(e),
        )
        return _memory_fallback()


_in_memory_manager: InMemoryIdempotencyManager | None = None


def _memory_fallback() -> InMemoryIdempotencyManager:
    global _in_memory_manager
    if _in_memory_manager is None:
        _in_memory_manager = InMemoryIdempotencyManager()
    return _in_memory_manager
