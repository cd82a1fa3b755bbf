"""
Codificador canónico de parámetros.

Convierte un conjunto de parámetros en la cadena exacta que se firma:
claves ordenadas, valores recortados, entradas vacías omitidas y un
trailer opcional (``key=<secreto>``) al final.
"""

import io
import threading
from contextlib import contextmanager
from typing import Iterator, Mapping


# Tamaño por defecto del pool de buffers
DEFAULT_POOL_SIZE = 16

ParameterSet = dict[str, str]


class BufferPool:
    """
    Pool de buffers reutilizables.

    Seguro para checkout/return concurrentes. Cada buffer se resetea al
    entregarse y vuelve al pool en cualquier salida, incluso con error.
    """

    def __init__(self, max_size: int = DEFAULT_POOL_SIZE):
        self._max_size = max_size
        self._free: list[io.BytesIO] = []
        self._lock = threading.Lock()

    @contextmanager
    def acquire(self) -> Iterator[io.BytesIO]:
        with self._lock:
            buf = self._free.pop() if self._free else io.BytesIO()
        buf.seek(0)
        buf.truncate()
        try:
            yield buf
        finally:
            with self._lock:
                if len(self._free) < self._max_size:
                    self._free.append(buf)

    @property
    def available(self) -> int:
        with self._lock:
            return len(self._free)


class CanonicalEncoder:
    """Produce los bytes canónicos que firman ambos extremos."""

    def __init__(self, pool: BufferPool | None = None):
        self._pool = pool or BufferPool()

    def encode(self, params: Mapping[str, str], trailer: str = "") -> bytes:
        """
        Genera la cadena canónica.

        Args:
            params: Parámetros a firmar (el orden de inserción no importa)
            trailer: Sufijo del esquema (``key=<secreto>``) o vacío

        Returns:
            Bytes UTF-8 con formato ``a=1&b=2[&trailer]``
        """
        with self._pool.acquire() as buf:
            first = True
            # El orden por code point equivale al orden byte a byte de UTF-8
            for key in sorted(params):
                value = (params[key] or "").strip()
                if not value:
                    continue
                if not first:
                    buf.write(b"&")
                buf.write(f"{key}={value}".encode("utf-8"))
                first = False

            if trailer:
                if not first:
                    buf.write(b"&")
                buf.write(trailer.encode("utf-8"))

            return buf.getvalue()


def secret_trailer(secret: str) -> str:
    """Trailer de secreto compartido para el esquema MD5."""
    return f"key={secret}"
