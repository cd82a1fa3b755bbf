"""
Adaptador de cifrado por bloques.

- Troceado para operaciones RSA (el primitivo solo acepta bloques menores
  que el módulo).
- Modo ECB explícito sobre un primitivo de bloque único (AES).
- Padding PKCS#5/PKCS#7.
"""

from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from paysign.utils.exceptions import ChunkingError, EncodingError


# Overhead de PKCS#1 v1.5 para cifrado
PKCS1_V15_OVERHEAD = 11

AES_BLOCK_SIZE = 16


def chunk(data: bytes, size: int) -> list[bytes]:
    """
    Divide ``data`` en trozos ordenados de como máximo ``size`` bytes.

    Una entrada vacía no produce trozos.
    """
    if size <= 0:
        raise ChunkingError(f"invalid chunk size {size}")
    return [data[i:i + size] for i in range(0, len(data), size)]


class RSAChunkCipher:
    """
    Cifrado RSA PKCS#1 v1.5 por trozos.

    El cifrado usa la mitad pública del par; el descifrado, la privada.
    Cada trozo se procesa de forma independiente y los resultados se
    concatenan en orden.
    """

    def __init__(self, private_key: RSAPrivateKey):
        self._private_key = private_key
        self._public_key = private_key.public_key()
        self.modulus_bytes = private_key.key_size // 8

    @property
    def max_plain_chunk(self) -> int:
        return self.modulus_bytes - PKCS1_V15_OVERHEAD

    def encrypt_block(self, part: bytes) -> bytes:
        return self._public_key.encrypt(part, padding.PKCS1v15())

    def encrypt(self, plaintext: bytes) -> bytes:
        return b"".join(
            self.encrypt_block(part)
            for part in chunk(plaintext, self.max_plain_chunk)
        )

    def decrypt(self, ciphertext: bytes) -> bytes:
        if len(ciphertext) % self.modulus_bytes != 0:
            raise ChunkingError(
                f"ciphertext length {len(ciphertext)} is not a multiple of "
                f"modulus size {self.modulus_bytes}"
            )
        plain = bytearray()
        for part in chunk(ciphertext, self.modulus_bytes):
            try:
                plain += self._private_key.decrypt(part, padding.PKCS1v15())
            except ValueError as e:
                raise EncodingError(f"RSA decryption failed: {e}") from e
        return bytes(plain)


class ECBMode:
    """
    Modo electronic-codebook.

    Cada bloque se cifra/descifra de forma independiente y secuencial con
    el primitivo de bloque. Sin padding: la entrada debe estar alineada.
    """

    def __init__(self, algorithm: algorithms.AES):
        self._algorithm = algorithm
        self.block_size = algorithm.block_size // 8

    def _crypt_blocks(self, data: bytes, decrypt: bool) -> bytes:
        if len(data) % self.block_size != 0:
            raise ChunkingError("crypto/cipher: input not full blocks")

        cipher = Cipher(self._algorithm, modes.ECB())
        context = cipher.decryptor() if decrypt else cipher.encryptor()

        out = bytearray()
        for block in chunk(data, self.block_size):
            out += context.update(block)
        out += context.finalize()
        return bytes(out)

    def encrypt(self, plaintext: bytes) -> bytes:
        return self._crypt_blocks(plaintext, decrypt=False)

    def decrypt(self, ciphertext: bytes) -> bytes:
        return self._crypt_blocks(ciphertext, decrypt=True)


def aes_ecb(key: bytes) -> ECBMode:
    """ECB sobre AES; la longitud de la clave elige AES-128/192/256."""
    try:
        return ECBMode(algorithms.AES(key))
    except ValueError as e:
        raise ChunkingError(f"invalid AES key: {e}") from e


def pkcs5_pad(data: bytes, block_size: int = AES_BLOCK_SIZE) -> bytes:
    pad = block_size - len(data) % block_size
    return data + bytes([pad]) * pad


def pkcs5_unpad(data: bytes) -> bytes:
    """
    Quita el padding leyendo el último byte como contador.

    No comprueba que todos los bytes de padding sean iguales; la pasarela
    heredada depende de este comportamiento.
    """
    if not data:
        raise ChunkingError("cannot unpad empty plaintext")
    count = data[-1]
    if count > len(data):
        raise ChunkingError(
            f"padding length {count} exceeds plaintext length {len(data)}"
        )
    return data[:len(data) - count]
