"""
Error Taxonomy

Every failure raised by the core derives from ChunkStoreError and can carry
the chunk id, chunk index, provider and account it concerns, so an operator
can tell exactly which chunk and which destination failed.

Fatal vs. non-fatal:
- IOFailure, MalformedManifest, ConfigurationError: fatal to the current
  operation, never retried internally.
- BackendError: one replica failed; uploads record it as skipped, downloads
  fall through to the next recorded destination.
- ChunkUnavailable: no destination could supply a chunk; fatal to assembly.
- EncryptionFailure (AuthenticationFailure, MalformedCiphertext) and
  IntegrityFailure are kept apart so "wrong password / corrupted ciphertext"
  can be told from "storage corruption after decryption".
"""

from typing import Optional


class ChunkStoreError(Exception):
    """Base exception for all chunkstore errors."""

    def __init__(self, message: str, *, chunk_id: Optional[str] = None,
                 index: Optional[int] = None, provider: Optional[str] = None,
                 account: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.chunk_id = chunk_id
        self.index = index
        self.provider = provider
        self.account = account

    @property
    def context(self) -> dict:
        """Non-empty context fields, in a stable order."""
        fields = {
            'chunk': self.chunk_id,
            'index': self.index,
            'provider': self.provider,
            'account': self.account,
        }
        return {k: v for k, v in fields.items() if v is not None}

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({details})"


class IOFailure(ChunkStoreError):
    """Local read or write failed."""


class EncryptionFailure(ChunkStoreError):
    """Cipher-level failure."""


class AuthenticationFailure(EncryptionFailure):
    """Authentication tag did not verify: wrong password or tampered ciphertext."""


class MalformedCiphertext(EncryptionFailure):
    """Ciphertext is shorter than one nonce."""


class IntegrityFailure(ChunkStoreError):
    """Plaintext hash does not match the recorded content hash."""


class MalformedManifest(ChunkStoreError):
    """Manifest document is structurally invalid."""


class ChunkUnavailable(ChunkStoreError):
    """No recorded destination could supply the chunk."""


class ConfigurationError(ChunkStoreError):
    """Invalid settings or caller intent."""


class BackendError(ChunkStoreError):
    """A storage backend call failed.

    `transient` marks failures worth retrying (rate limits, timeouts); the
    core treats both kinds as a failed replica.
    """

    def __init__(self, message: str, *, transient: bool = False, **context):
        super().__init__(message, **context)
        self.transient = transient


class ReplicationError(ChunkStoreError):
    """Raised in strict mode when at least one replica failed to upload."""

    def __init__(self, message: str, report=None, **context):
        super().__init__(message, **context)
        self.report = report
