"""
Configuration Management

Handles loading configuration from environment variables and config files.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .backends.base import Provider
from .errors import ConfigurationError, IOFailure
from .transfer.strategy import DistributionStrategy, LoadBalancing, Target

logger = logging.getLogger(__name__)

ENV_PREFIX = 'CHUNKSTORE_'


@dataclass
class AccountConfig:
    """One account on one storage provider."""
    name: str
    provider: str = Provider.FOLDER.value
    enabled: bool = True
    root: str = ""  # folder provider: directory holding the replicas
    folder_name: str = ""
    creds_file: str = ""
    token_file: str = ""
    description: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> 'AccountConfig':
        return cls(
            name=data.get('name', ''),
            provider=data.get('provider', Provider.FOLDER.value),
            enabled=data.get('enabled', True),
            root=data.get('root', ''),
            folder_name=data.get('folder_name', ''),
            creds_file=data.get('creds_file', ''),
            token_file=data.get('token_file', ''),
            description=data.get('description', ''),
        )

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'provider': self.provider,
            'enabled': self.enabled,
            'root': self.root,
            'folder_name': self.folder_name,
            'creds_file': self.creds_file,
            'token_file': self.token_file,
            'description': self.description,
        }


@dataclass
class Config:
    """
    Chunk store configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (CHUNKSTORE_*)
    2. Config file (config.json)
    3. Default values

    Accounts are an ordered list: their order is the order of the
    destination pool, and so decides placement.
    """
    # Chunking
    chunk_size: int = 1024 * 1024  # 1MB

    # Local storage
    chunks_dir: Path = field(default_factory=lambda: Path('./chunks'))
    manifest_path: Path = field(default_factory=lambda: Path('./manifest.json'))

    # Distribution
    providers: List[str] = field(default_factory=list)  # empty: chunks stay local
    accounts: List[AccountConfig] = field(default_factory=list)
    replication_count: int = 1
    load_balancing: str = LoadBalancing.ROUND_ROBIN.value

    # Transfers
    max_concurrent_transfers: int = 5
    transfer_timeout: float = 60.0
    fail_on_replica_error: bool = False
    cleanup_after_upload: bool = False

    # Logging
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls, base: Optional['Config'] = None) -> 'Config':
        """Load configuration from environment variables on top of `base`."""
        load_dotenv()

        config = base or cls()

        try:
            for attr, var, kind in (
                ('chunk_size', 'CHUNK_SIZE', int),
                ('replication_count', 'REPLICATION_COUNT', int),
                ('max_concurrent_transfers', 'MAX_CONCURRENT', int),
                ('transfer_timeout', 'TRANSFER_TIMEOUT', float),
            ):
                value = os.getenv(f'{ENV_PREFIX}{var}')
                if value is not None:
                    setattr(config, attr, kind(value))
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric environment setting: {e}") from e

        chunks_dir = os.getenv(f'{ENV_PREFIX}CHUNKS_DIR')
        if chunks_dir:
            config.chunks_dir = Path(chunks_dir)

        manifest_path = os.getenv(f'{ENV_PREFIX}MANIFEST')
        if manifest_path:
            config.manifest_path = Path(manifest_path)

        providers = os.getenv(f'{ENV_PREFIX}PROVIDERS', '')
        if providers:
            config.providers = [p.strip() for p in providers.split(',') if p.strip()]

        config.load_balancing = os.getenv(f'{ENV_PREFIX}LOAD_BALANCING', config.load_balancing)

        strict = os.getenv(f'{ENV_PREFIX}FAIL_ON_REPLICA_ERROR')
        if strict is not None:
            config.fail_on_replica_error = strict.lower() in ('1', 'true', 'yes')

        cleanup = os.getenv(f'{ENV_PREFIX}CLEANUP_AFTER_UPLOAD')
        if cleanup is not None:
            config.cleanup_after_upload = cleanup.lower() in ('1', 'true', 'yes')

        config.log_level = os.getenv(f'{ENV_PREFIX}LOG_LEVEL', config.log_level)

        return config

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Load configuration from a JSON file; defaults if it does not exist."""
        path = Path(path)
        if not path.exists():
            logger.info(f"Config file {path} not found, using defaults")
            return cls()

        try:
            with open(path) as f:
                data = json.load(f)
        except OSError as e:
            raise IOFailure(f"Cannot read config file {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Failed to parse config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a JSON object")

        config = cls()

        providers = data.get('providers', config.providers)
        accounts = data.get('accounts', [])
        if not isinstance(providers, list):
            raise ConfigurationError(f"Config file {path}: 'providers' must be a list")
        if not isinstance(accounts, list) or not all(isinstance(a, dict) for a in accounts):
            raise ConfigurationError(f"Config file {path}: 'accounts' must be a list of objects")

        try:
            # Local storage
            if 'chunks_dir' in data:
                config.chunks_dir = Path(data['chunks_dir'])
            if 'manifest_path' in data:
                config.manifest_path = Path(data['manifest_path'])
        except TypeError as e:
            raise ConfigurationError(f"Config file {path}: invalid path: {e}") from e

        # Chunking
        config.chunk_size = data.get('chunk_size', config.chunk_size)

        # Distribution
        config.providers = list(providers)
        config.accounts = [AccountConfig.from_dict(a) for a in accounts]
        config.replication_count = data.get('replication_count', config.replication_count)
        config.load_balancing = data.get('load_balancing', config.load_balancing)

        # Transfers
        config.max_concurrent_transfers = data.get(
            'max_concurrent_transfers', config.max_concurrent_transfers
        )
        config.transfer_timeout = data.get('transfer_timeout', config.transfer_timeout)
        config.fail_on_replica_error = data.get('fail_on_replica_error', config.fail_on_replica_error)
        config.cleanup_after_upload = data.get('cleanup_after_upload', config.cleanup_after_upload)

        # Logging
        config.log_level = data.get('log_level', config.log_level)

        return config

    def validate(self):
        """
        Check the configuration.

        Values read from a file are type-checked here, so a wrong JSON type
        surfaces as ConfigurationError.

        Raises:
            ConfigurationError: describing the first problem found
        """
        _require_int(self.chunk_size, "chunk size")
        if self.chunk_size <= 0:
            raise ConfigurationError("chunk size must be positive")

        _require_int(self.replication_count, "replication count")
        if self.replication_count < 1:
            raise ConfigurationError("replication count must be at least 1")

        if not isinstance(self.load_balancing, str) or \
                self.load_balancing not in {lb.value for lb in LoadBalancing}:
            raise ConfigurationError(f"invalid load balancing strategy: {self.load_balancing!r}")

        _require_int(self.max_concurrent_transfers, "max concurrent transfers")
        if self.max_concurrent_transfers < 1:
            raise ConfigurationError("max concurrent transfers must be at least 1")

        if isinstance(self.transfer_timeout, bool) or \
                not isinstance(self.transfer_timeout, (int, float)) or self.transfer_timeout <= 0:
            raise ConfigurationError(
                f"transfer timeout must be a positive number, got {self.transfer_timeout!r}"
            )

        for flag in ('fail_on_replica_error', 'cleanup_after_upload'):
            if not isinstance(getattr(self, flag), bool):
                raise ConfigurationError(f"{flag} must be true or false")

        if not isinstance(self.log_level, str) or \
                self.log_level.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ConfigurationError(f"invalid log level: {self.log_level!r}")

        names = set()
        for i, account in enumerate(self.accounts):
            if not account.name or not isinstance(account.name, str):
                raise ConfigurationError(f"account {i}: name must be a non-empty string")
            if account.name in names:
                raise ConfigurationError(f"duplicate account name: {account.name}")
            names.add(account.name)

            provider = Provider.parse(account.provider)
            if provider is Provider.LOCAL:
                raise ConfigurationError(
                    f"account {account.name}: 'local' is not a storage provider",
                    account=account.name,
                )
            if provider is Provider.FOLDER and (not account.root or not isinstance(account.root, str)):
                raise ConfigurationError(
                    f"folder account {account.name}: root directory cannot be empty",
                    provider=provider.value, account=account.name,
                )

        for name in self.providers:
            provider = Provider.parse(name)
            if not any(Provider.parse(a.provider) is provider for a in self.enabled_accounts()):
                raise ConfigurationError(
                    f"{provider.value} provider is enabled but no accounts are configured",
                    provider=provider.value,
                )

    def enabled_accounts(self) -> List[AccountConfig]:
        return [a for a in self.accounts if a.enabled]

    def destination_pool(self) -> List[Target]:
        """Ordered (provider, account) pool: enabled accounts of listed providers."""
        listed = [Provider.parse(p) for p in self.providers]
        pool = []
        for provider in listed:
            for account in self.enabled_accounts():
                if Provider.parse(account.provider) is provider:
                    pool.append(Target(provider, account.name))
        return pool

    def build_strategy(self) -> DistributionStrategy:
        return DistributionStrategy(
            self.destination_pool(),
            replication_count=self.replication_count,
            load_balancing=LoadBalancing(self.load_balancing),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'chunk_size': self.chunk_size,
            'chunks_dir': str(self.chunks_dir),
            'manifest_path': str(self.manifest_path),
            'providers': list(self.providers),
            'accounts': [a.to_dict() for a in self.accounts],
            'replication_count': self.replication_count,
            'load_balancing': self.load_balancing,
            'max_concurrent_transfers': self.max_concurrent_transfers,
            'transfer_timeout': self.transfer_timeout,
            'fail_on_replica_error': self.fail_on_replica_error,
            'cleanup_after_upload': self.cleanup_after_upload,
            'log_level': self.log_level,
        }

    def save(self, path: Path):
        """Save configuration to a JSON file."""
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'w') as f:
                json.dump(self.to_dict(), f, indent=2)
        except OSError as e:
            raise IOFailure(f"Cannot write config file {path}: {e}") from e


def _require_int(value, what: str):
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{what} must be an integer, got {value!r}")


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from file and environment, then validate it.

    Environment variables override file settings.
    """
    if config_path:
        config = Config.from_file(Path(config_path))
    else:
        config = Config()

    config = Config.from_env(base=config)
    config.validate()
    return config


# Example config file template
EXAMPLE_CONFIG = """
{
  "chunk_size": 1048576,
  "chunks_dir": "./chunks",
  "manifest_path": "./manifest.json",
  "providers": ["folder"],
  "accounts": [
    {"name": "nas", "provider": "folder", "root": "/mnt/nas/chunkstore"},
    {"name": "usb", "provider": "folder", "root": "/media/backup", "folder_name": "distributed-chunks"}
  ],
  "replication_count": 2,
  "load_balancing": "round_robin",
  "max_concurrent_transfers": 5,
  "transfer_timeout": 60,
  "fail_on_replica_error": false,
  "log_level": "INFO"
}
"""
