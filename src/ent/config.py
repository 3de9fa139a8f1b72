"""ent runtime configuration.

All environment variable parsing lives here; other modules receive a
typed EntConfig instead of reading the environment themselves.

Environment Variables:
    ENT_FS_ROOT: File system root directory (default: /tmp)
    ENT_PROVIDER_DIR: Directory with bucket policies (default: /tmp)
    ENT_HTTP_ADDR: HTTP listen address "host:port" (default: ":5555")
    ENT_HASH_ALGORITHM: Digest algorithm for file hashes (default: sha1)
    ENT_LOG_LEVEL: Logging level name (default: INFO)
"""

from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path

from ent.storage.errors import EntError, ErrorKind

ENT_FS_ROOT_ENV = "ENT_FS_ROOT"
ENT_PROVIDER_DIR_ENV = "ENT_PROVIDER_DIR"
ENT_HTTP_ADDR_ENV = "ENT_HTTP_ADDR"
ENT_HASH_ALGORITHM_ENV = "ENT_HASH_ALGORITHM"
ENT_LOG_LEVEL_ENV = "ENT_LOG_LEVEL"

DEFAULT_FS_ROOT = "/tmp"
DEFAULT_PROVIDER_DIR = "/tmp"
DEFAULT_HTTP_ADDR = ":5555"
DEFAULT_HASH_ALGORITHM = "sha1"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_HOST = "0.0.0.0"


class ConfigError(EntError):
    """Raised for invalid runtime configuration."""

    kind = ErrorKind.INVALID_PARAM
    default_message = "invalid configuration"


@dataclass(frozen=True)
class EntConfig:
    """Validated runtime configuration.

    Attributes:
        fs_root: Root directory of the disk file system.
        provider_dir: Directory holding ``.entpolicy`` files.
        host: HTTP listen host.
        port: HTTP listen port.
        hash_algorithm: hashlib algorithm used for file digests.
        log_level: Logging level name.
    """

    fs_root: Path
    provider_dir: Path
    host: str
    port: int
    hash_algorithm: str
    log_level: str

    @classmethod
    def from_env(cls) -> EntConfig:
        """Build config from process environment variables.

        Raises:
            ConfigError: If environment values are invalid.
        """
        host, port = parse_http_addr(os.environ.get(ENT_HTTP_ADDR_ENV, DEFAULT_HTTP_ADDR))
        return cls(
            fs_root=Path(os.environ.get(ENT_FS_ROOT_ENV, DEFAULT_FS_ROOT)).expanduser(),
            provider_dir=Path(
                os.environ.get(ENT_PROVIDER_DIR_ENV, DEFAULT_PROVIDER_DIR)
            ).expanduser(),
            host=host,
            port=port,
            hash_algorithm=parse_hash_algorithm(
                os.environ.get(ENT_HASH_ALGORITHM_ENV, DEFAULT_HASH_ALGORITHM)
            ),
            log_level=parse_log_level(os.environ.get(ENT_LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL)),
        )

    def with_overrides(
        self,
        *,
        fs_root: str | None = None,
        provider_dir: str | None = None,
        http_addr: str | None = None,
    ) -> EntConfig:
        """Return a copy with command-line overrides applied."""
        config = self
        if fs_root:
            config = replace(config, fs_root=Path(fs_root).expanduser())
        if provider_dir:
            config = replace(config, provider_dir=Path(provider_dir).expanduser())
        if http_addr:
            host, port = parse_http_addr(http_addr)
            config = replace(config, host=host, port=port)
        return config


def parse_http_addr(raw_value: str) -> tuple[str, int]:
    """Parse a ``host:port`` listen address; an empty host means all interfaces.

    Raises:
        ConfigError: If the port is missing or out of range.
    """
    host, sep, port_value = raw_value.strip().rpartition(":")
    if not sep:
        raise ConfigError(f"Invalid HTTP address {raw_value!r}: expected host:port")
    try:
        port = int(port_value)
    except ValueError as e:
        raise ConfigError(f"Invalid HTTP address {raw_value!r}: port must be numeric") from e
    if not 0 < port < 65536:
        raise ConfigError(f"Invalid HTTP address {raw_value!r}: port out of range")
    return host.strip("[]") or DEFAULT_HOST, port


def parse_hash_algorithm(raw_value: str) -> str:
    """Validate a digest algorithm name.

    Raises:
        ConfigError: If hashlib does not guarantee the algorithm.
    """
    name = raw_value.strip().lower()
    if name not in hashlib.algorithms_guaranteed or name.startswith("shake_"):
        raise ConfigError(
            f"Unsupported hash algorithm {raw_value!r}. "
            f"Choose one of: {', '.join(sorted(_fixed_length_algorithms()))}"
        )
    return name


def parse_log_level(raw_value: str) -> str:
    """Validate a logging level name.

    Raises:
        ConfigError: If the level is unknown to logging.
    """
    name = raw_value.strip().upper()
    if not isinstance(logging.getLevelName(name), int):
        raise ConfigError(f"Invalid log level {raw_value!r}")
    return name


def _fixed_length_algorithms() -> set[str]:
    return {a for a in hashlib.algorithms_guaranteed if not a.startswith("shake_")}
