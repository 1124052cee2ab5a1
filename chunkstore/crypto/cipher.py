"""
Chunk Cipher

Design Decision: Cipher and Key Derivation
==========================================

Options Considered for the cipher:
| Cipher             | Authenticated | Notes                               |
|--------------------|---------------|-------------------------------------|
| AES-256-CBC + HMAC | Yes (manual)  | Two primitives to get right         |
| Fernet             | Yes           | 128-bit AES, base64 overhead        |
| ChaCha20-Poly1305  | Yes           | Fast without AES-NI                 |
| AES-256-GCM        | Yes           | Hardware accelerated, standard      |

Decision: AES-256-GCM
- Tampering or corruption is detected at decrypt time, independently of the
  content-hash check done by the chunk engine (two integrity layers)
- 12-byte random nonce per call, prepended to the ciphertext
- Nonces never come from the chunk index or content

Options Considered for key derivation:
1. SHA-256(password) - fast, trivially brute-forced offline
2. PBKDF2-HMAC-SHA256 - salted and slow, CPU-hard only
3. scrypt - salted, slow and memory-hard

Decision: scrypt (n=2**14, r=8, p=1) with a 16-byte random salt
- The salt and parameters are stored in the manifest so the same password
  re-derives the same key at assembly time
- The password itself is never stored

Blob layout:
```
+----------------+---------------------------+
| nonce (12B)    | ciphertext || tag (16B)   |
+----------------+---------------------------+
```
"""

import os
from dataclasses import dataclass
from typing import Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from ..errors import AuthenticationFailure, EncryptionFailure, MalformedCiphertext

KEY_SIZE = 32    # AES-256
NONCE_SIZE = 12  # GCM standard
SALT_SIZE = 16

SCRYPT_N = 2 ** 14
SCRYPT_R = 8
SCRYPT_P = 1


@dataclass(frozen=True)
class KdfParams:
    """scrypt parameters and salt used to derive a chunk key."""
    salt: bytes
    n: int = SCRYPT_N
    r: int = SCRYPT_R
    p: int = SCRYPT_P
    algorithm: str = 'scrypt'

    @classmethod
    def generate(cls) -> 'KdfParams':
        """Fresh parameters with a random salt."""
        return cls(salt=os.urandom(SALT_SIZE))

    def to_dict(self) -> Dict:
        return {
            'algorithm': self.algorithm,
            'salt': self.salt.hex(),
            'n': self.n,
            'r': self.r,
            'p': self.p,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'KdfParams':
        return cls(
            salt=bytes.fromhex(data['salt']),
            n=data.get('n', SCRYPT_N),
            r=data.get('r', SCRYPT_R),
            p=data.get('p', SCRYPT_P),
            algorithm=data.get('algorithm', 'scrypt'),
        )


@dataclass(frozen=True)
class KeyMaterial:
    """A derived key plus the parameters needed to derive it again."""
    key: bytes
    kdf: KdfParams


def derive_key(password: str, kdf: Optional[KdfParams] = None) -> KeyMaterial:
    """
    Derive a 256-bit key from a password.

    Args:
        password: Human password, used once and never persisted
        kdf: Parameters from an existing manifest; a new salt is generated
             when omitted

    Returns:
        KeyMaterial with the key and the parameters used
    """
    if kdf is None:
        kdf = KdfParams.generate()
    if kdf.algorithm != 'scrypt':
        raise EncryptionFailure(f"Unsupported key derivation: {kdf.algorithm}")

    try:
        key = Scrypt(salt=kdf.salt, length=KEY_SIZE, n=kdf.n, r=kdf.r, p=kdf.p)\
            .derive(password.encode('utf-8'))
    except (ValueError, TypeError) as e:
        raise EncryptionFailure(f"Key derivation failed: {e}") from e

    return KeyMaterial(key=key, kdf=kdf)


class Cipher:
    """
    Per-chunk authenticated encryption.

    A disabled cipher passes bytes through unchanged, so callers never need
    to branch on whether encryption is on.
    """

    def __init__(self, key: Optional[bytes] = None, kdf: Optional[KdfParams] = None):
        if key is not None and len(key) != KEY_SIZE:
            raise EncryptionFailure(f"Key must be {KEY_SIZE} bytes, got {len(key)}")
        self._aead = AESGCM(key) if key is not None else None
        self.kdf = kdf

    @classmethod
    def disabled(cls) -> 'Cipher':
        return cls()

    @classmethod
    def from_password(cls, password: str, kdf: Optional[KdfParams] = None) -> 'Cipher':
        material = derive_key(password, kdf)
        return cls(material.key, material.kdf)

    @property
    def enabled(self) -> bool:
        return self._aead is not None

    def encrypt(self, plaintext: bytes) -> bytes:
        """Encrypt one chunk; returns nonce || ciphertext || tag."""
        if self._aead is None:
            return plaintext

        nonce = os.urandom(NONCE_SIZE)
        return nonce + self._aead.encrypt(nonce, plaintext, None)

    def decrypt(self, blob: bytes) -> bytes:
        """
        Decrypt one chunk.

        Raises:
            MalformedCiphertext: blob is shorter than a nonce
            AuthenticationFailure: tag does not verify
        """
        if self._aead is None:
            return blob

        if len(blob) < NONCE_SIZE:
            raise MalformedCiphertext(
                f"Ciphertext too short: {len(blob)} bytes, need at least {NONCE_SIZE}"
            )

        nonce, ciphertext = blob[:NONCE_SIZE], blob[NONCE_SIZE:]
        try:
            return self._aead.decrypt(nonce, ciphertext, None)
        except InvalidTag as e:
            raise AuthenticationFailure(
                "Authentication failed: wrong password or corrupted ciphertext"
            ) from e
