"""
Material de claves.

Se carga una vez al construir el cliente y no se modifica después, por lo
que puede compartirse entre llamadas concurrentes sin locks.
"""

import hashlib
import textwrap
from dataclasses import dataclass, field

import structlog
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey

from paysign.utils.exceptions import ConfigurationError


logger = structlog.get_logger(__name__)


def _ensure_pem(key: str | bytes, label: str) -> bytes:
    """
    Acepta PEM completo o solo el cuerpo base64 (formato habitual en las
    consolas de las pasarelas) y devuelve PEM.
    """
    if isinstance(key, bytes):
        key = key.decode("ascii")
    key = key.strip()
    if not key:
        raise ConfigurationError(f"empty {label.lower()}")
    if key.startswith("-----BEGIN"):
        return key.encode("ascii")
    body = "".join(key.split())
    wrapped = "\n".join(textwrap.wrap(body, 64))
    return f"-----BEGIN {label}-----\n{wrapped}\n-----END {label}-----\n".encode("ascii")


@dataclass(frozen=True)
class RSAKeyPair:
    """
    Clave privada del comercio y clave pública de verificación.

    La clave de verificación es la pública de la pasarela; si no se
    configura se usa la mitad pública de la privada.
    """

    private_key: RSAPrivateKey
    public_key: RSAPublicKey

    @property
    def modulus_bytes(self) -> int:
        return self.private_key.key_size // 8

    @classmethod
    def from_pem(
        cls,
        private_pem: str | bytes,
        public_pem: str | bytes | None = None,
        password: bytes | None = None,
    ) -> "RSAKeyPair":
        """
        Carga el par desde PEM (PKCS#1 o PKCS#8 para la privada, PKIX para
        la pública).

        Raises:
            ConfigurationError: Si alguna clave no es RSA válida
        """
        private_key = None
        last_error: Exception | None = None
        # Cuerpo sin cabecera: puede ser PKCS#8 o PKCS#1
        for label in ("PRIVATE KEY", "RSA PRIVATE KEY"):
            try:
                private_key = serialization.load_pem_private_key(
                    _ensure_pem(private_pem, label),
                    password=password,
                )
                break
            except (ValueError, TypeError) as e:
                last_error = e
        if private_key is None:
            raise ConfigurationError(f"private key error: {last_error}")
        if not isinstance(private_key, RSAPrivateKey):
            raise ConfigurationError(
                f"expected RSA private key, got {type(private_key).__name__}"
            )

        if public_pem:
            try:
                public_key = serialization.load_pem_public_key(
                    _ensure_pem(public_pem, "PUBLIC KEY"),
                )
            except (ValueError, TypeError) as e:
                raise ConfigurationError(f"public key error: {e}") from e
            if not isinstance(public_key, RSAPublicKey):
                raise ConfigurationError(
                    f"expected RSA public key, got {type(public_key).__name__}"
                )
        else:
            public_key = private_key.public_key()

        logger.debug("RSA key pair loaded", key_size=private_key.key_size)
        return cls(private_key=private_key, public_key=public_key)


@dataclass(frozen=True)
class SharedSecret:
    """
    Secreto compartido del esquema MD5.

    ``derived_key`` es el digest MD5 en hex minúsculas del secreto (32 bytes
    ASCII, clave AES-256) y se calcula una única vez.
    """

    secret: str = field(repr=False)
    derived_key: bytes = field(init=False, repr=False)

    def __post_init__(self):
        if not self.secret:
            raise ConfigurationError("empty shared secret")
        digest = hashlib.md5(self.secret.encode("utf-8")).hexdigest().lower()
        object.__setattr__(self, "derived_key", digest.encode("ascii"))
