"""
Crypto Module - Per-chunk Encryption

AES-256-GCM chunk encryption with scrypt password key derivation.
"""

from .cipher import Cipher, KdfParams, KeyMaterial, derive_key, NONCE_SIZE, KEY_SIZE

__all__ = [
    'Cipher',
    'KdfParams',
    'KeyMaterial',
    'derive_key',
    'NONCE_SIZE',
    'KEY_SIZE',
]
