"""
Estrategias de firma.

Una implementación por esquema, todas sobre los bytes canónicos:

- RSA2: firma PKCS#1 v1.5 sobre SHA-256, base64.
- RSA: patrón heredado de "cifrar como firma" (PKCS#1 v1.5 por trozos),
  base64. Solo firma.
- MD5: digest MD5 en hex mayúsculas con el secreto ya incluido como
  trailer por el codificador canónico.
"""

import base64
import binascii
import hashlib
import hmac
from abc import ABC, abstractmethod
from enum import Enum
from typing import Mapping

import structlog
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding

from paysign.engine.canonical import CanonicalEncoder, secret_trailer
from paysign.engine.ciphers import RSAChunkCipher
from paysign.engine.keys import RSAKeyPair, SharedSecret
from paysign.utils.exceptions import (
    ConfigurationError,
    SignatureVerificationError,
    UnsupportedSchemeError,
    UnsupportedVerificationError,
)


logger = structlog.get_logger(__name__)


class SigningScheme(str, Enum):
    """Esquemas soportados; el valor es el literal ``sign_type`` del wire."""

    MD5 = "MD5"    # MAC heredado (digest con secreto)
    RSA = "RSA"    # cifrado asimétrico heredado usado como firma
    RSA2 = "RSA2"  # firma asimétrica SHA-256

    @classmethod
    def parse(cls, value: "str | SigningScheme") -> "SigningScheme":
        """
        Convierte un literal en esquema.

        Raises:
            UnsupportedSchemeError: Si el literal no es un esquema conocido
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnsupportedSchemeError(str(value))

    @property
    def uses_secret_trailer(self) -> bool:
        return self is SigningScheme.MD5


class SchemeStrategy(ABC):
    """Contrato común de firma/verificación sobre bytes canónicos."""

    scheme: SigningScheme

    @abstractmethod
    def sign(self, message: bytes) -> str:
        pass

    @abstractmethod
    def verify(self, message: bytes, signature: str) -> None:
        """
        Verifica la firma.

        Raises:
            SignatureError: Si la firma no es válida o no puede verificarse
        """
        pass


class RSA2Strategy(SchemeStrategy):
    scheme = SigningScheme.RSA2

    def __init__(self, keys: RSAKeyPair):
        self._keys = keys

    def sign(self, message: bytes) -> str:
        signature = self._keys.private_key.sign(
            message,
            padding.PKCS1v15(),
            hashes.SHA256(),
        )
        return base64.b64encode(signature).decode("ascii")

    def verify(self, message: bytes, signature: str) -> None:
        try:
            raw = base64.b64decode(signature, validate=True)
        except (binascii.Error, ValueError) as e:
            raise SignatureVerificationError(f"malformed signature encoding: {e}") from e
        try:
            self._keys.public_key.verify(
                raw,
                message,
                padding.PKCS1v15(),
                hashes.SHA256(),
            )
        except InvalidSignature as e:
            raise SignatureVerificationError("RSA2 signature mismatch") from e


class RSAEncryptStrategy(SchemeStrategy):
    """Firma heredada: los bytes canónicos se cifran por trozos."""

    scheme = SigningScheme.RSA

    def __init__(self, keys: RSAKeyPair):
        self._cipher = RSAChunkCipher(keys.private_key)

    def sign(self, message: bytes) -> str:
        # Un mensaje vacío se firma como un único bloque cifrado
        if not message:
            return base64.b64encode(self._cipher.encrypt_block(b"")).decode("ascii")
        return base64.b64encode(self._cipher.encrypt(message)).decode("ascii")

    def verify(self, message: bytes, signature: str) -> None:
        raise UnsupportedVerificationError(self.scheme.value)


class MD5Strategy(SchemeStrategy):
    scheme = SigningScheme.MD5

    def sign(self, message: bytes) -> str:
        return hashlib.md5(message).hexdigest().upper()

    def verify(self, message: bytes, signature: str) -> None:
        expected = self.sign(message)
        if not hmac.compare_digest(expected.encode("ascii"), (signature or "").encode("utf-8")):
            raise SignatureVerificationError("MD5 digest mismatch")


class Signer:
    """
    Fachada de firma.

    Elige la estrategia según el esquema declarado, aplica el trailer que
    corresponde y delega en el codificador canónico.
    """

    def __init__(
        self,
        encoder: CanonicalEncoder | None = None,
        rsa_keys: RSAKeyPair | None = None,
        secret: SharedSecret | None = None,
    ):
        self._encoder = encoder or CanonicalEncoder()
        self._secret = secret
        self._strategies: dict[SigningScheme, SchemeStrategy] = {}
        if rsa_keys is not None:
            self._strategies[SigningScheme.RSA2] = RSA2Strategy(rsa_keys)
            self._strategies[SigningScheme.RSA] = RSAEncryptStrategy(rsa_keys)
        if secret is not None:
            self._strategies[SigningScheme.MD5] = MD5Strategy()

    @property
    def encoder(self) -> CanonicalEncoder:
        return self._encoder

    def _strategy(self, scheme: SigningScheme) -> SchemeStrategy:
        strategy = self._strategies.get(scheme)
        if strategy is None:
            raise ConfigurationError(f"no key material configured for scheme {scheme.value}")
        return strategy

    def canonical(self, scheme: "str | SigningScheme", params: Mapping[str, str]) -> bytes:
        scheme = SigningScheme.parse(scheme)
        trailer = ""
        if scheme.uses_secret_trailer:
            if self._secret is None:
                raise ConfigurationError("MD5 scheme requires a shared secret")
            trailer = secret_trailer(self._secret.secret)
        return self._encoder.encode(params, trailer)

    def sign(self, scheme: "str | SigningScheme", params: Mapping[str, str]) -> str:
        """
        Firma un conjunto de parámetros.

        Raises:
            UnsupportedSchemeError: Si el esquema no es conocido
            ConfigurationError: Si el esquema no tiene claves configuradas
        """
        scheme = SigningScheme.parse(scheme)
        return self.sign_bytes(scheme, self.canonical(scheme, params))

    def sign_bytes(self, scheme: "str | SigningScheme", message: bytes) -> str:
        scheme = SigningScheme.parse(scheme)
        signature = self._strategy(scheme).sign(message)
        logger.debug("Payload signed", scheme=scheme.value, message_length=len(message))
        return signature

    def verify(
        self,
        scheme: "str | SigningScheme",
        params: Mapping[str, str],
        signature: str,
    ) -> None:
        """
        Verifica la firma de un conjunto de parámetros (sin ``sign`` ni
        ``sign_type``).

        Un esquema desconocido o sin claves en este firmante es un fallo de
        verificación.

        Raises:
            SignatureVerificationError: Esquema desconocido, sin claves o firma inválida
            UnsupportedVerificationError: El esquema no soporta verificación
        """
        scheme = self._verify_scheme(scheme)
        if scheme.uses_secret_trailer and self._secret is None:
            raise SignatureVerificationError(f"no shared secret configured for scheme {scheme.value}")
        self.verify_bytes(scheme, self.canonical(scheme, params), signature)

    def verify_bytes(self, scheme: "str | SigningScheme", message: bytes, signature: str) -> None:
        scheme = self._verify_scheme(scheme)
        strategy = self._strategies.get(scheme)
        if strategy is None:
            raise SignatureVerificationError(f"no key material configured for scheme {scheme.value}")

        try:
            strategy.verify(message, signature)
        except SignatureVerificationError:
            logger.warning(
                "Signature verification FAILED",
                scheme=scheme.value,
                message_length=len(message),
            )
            raise

    @staticmethod
    def _verify_scheme(scheme: "str | SigningScheme") -> SigningScheme:
        try:
            return SigningScheme.parse(scheme)
        except UnsupportedSchemeError as e:
            raise SignatureVerificationError(e.message) from e
