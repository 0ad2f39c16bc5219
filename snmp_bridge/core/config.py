"""
Configuration management for the SNMP bridge.

Loads configuration from YAML files and environment variables.
Command line options are applied on top by the entry point.
"""

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional
import yaml

from .exceptions import ConfigError


ADDRESS_FAMILIES = ("any", "ipv4", "ipv6")
PROTOCOLS = ("udp", "tcp")


@dataclass
class BackendConfig:
    """RADIUS server the bridge talks to."""

    server: str = ""  # host[:port]
    request_type: str = "status"  # Name (auth, acct, status, ...) or packet code
    secret: str = "testing123"
    secret_file: Optional[str] = None
    codec: str = ""  # package.module:ClassName of the PacketCodec


@dataclass
class TransportConfig:
    """Delivery settings."""

    protocol: str = "udp"  # udp or tcp
    address_family: str = "any"  # any, ipv4 or ipv6
    retries: int = 5
    timeout_seconds: float = 3.0


@dataclass
class DictionaryConfig:
    """Attribute dictionary and the attributes the bridge relies on."""

    path: Optional[str] = None  # None uses the dictionary shipped with the package
    snmp_root_oid: str = "241.26.11344"
    oid_root: int = 1
    operation_attribute: str = "FreeRADIUS-SNMP-Operation"
    type_attribute: str = "FreeRADIUS-SNMP-Type"
    failure_attribute: str = "FreeRADIUS-SNMP-Failure"
    authenticator_attribute: str = "Message-Authenticator"


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: Optional[str] = None  # None or "stderr" logs to stderr
    max_file_size_mb: int = 10
    backup_count: int = 5
    debug_level: int = 0  # >1 also logs every line read and written


@dataclass
class BridgeConfig:
    """Main configuration container."""

    backend: BackendConfig = field(default_factory=BackendConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)
    dictionary: DictionaryConfig = field(default_factory=DictionaryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: str) -> "BridgeConfig":
        """Load configuration from YAML file."""
        config_path = Path(path)
        if not config_path.exists():
            config = cls()
            config._apply_env_overrides()
            return config

        try:
            with open(config_path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed parsing {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"{config_path} must contain a mapping")

        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: dict) -> "BridgeConfig":
        """Create config from dictionary."""
        config = cls()

        try:
            if "backend" in data:
                config.backend = BackendConfig(**data["backend"])

            if "transport" in data:
                config.transport = TransportConfig(**data["transport"])

            if "dictionary" in data:
                config.dictionary = DictionaryConfig(**data["dictionary"])

            if "logging" in data:
                config.logging = LoggingConfig(**data["logging"])
        except TypeError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

        # Override with environment variables
        config._apply_env_overrides()

        return config

    def _apply_env_overrides(self):
        """Apply environment variable overrides."""
        # Backend settings
        if os.getenv("SNMP_BRIDGE_SERVER"):
            self.backend.server = os.getenv("SNMP_BRIDGE_SERVER")
        if os.getenv("SNMP_BRIDGE_SECRET"):
            self.backend.secret = os.getenv("SNMP_BRIDGE_SECRET")
        if os.getenv("SNMP_BRIDGE_CODEC"):
            self.backend.codec = os.getenv("SNMP_BRIDGE_CODEC")

        # Transport settings
        try:
            if os.getenv("SNMP_BRIDGE_RETRIES"):
                self.transport.retries = int(os.getenv("SNMP_BRIDGE_RETRIES"))
            if os.getenv("SNMP_BRIDGE_TIMEOUT"):
                self.transport.timeout_seconds = float(os.getenv("SNMP_BRIDGE_TIMEOUT"))
        except ValueError as e:
            raise ConfigError(f"Invalid environment override: {e}") from e

        # Dictionary
        if os.getenv("SNMP_BRIDGE_DICTIONARY"):
            self.dictionary.path = os.getenv("SNMP_BRIDGE_DICTIONARY")

        # Logging
        if os.getenv("LOG_LEVEL"):
            self.logging.level = os.getenv("LOG_LEVEL")

    def validate(self):
        """Check value ranges; raises ConfigError on the first problem."""
        if not 0 < self.transport.retries <= 1000:
            raise ConfigError(f"Retries must be between 1 and 1000, got {self.transport.retries}")
        if self.transport.timeout_seconds <= 0:
            raise ConfigError(f"Timeout must be positive, got {self.transport.timeout_seconds}")
        if self.transport.protocol not in PROTOCOLS:
            raise ConfigError(f"Unknown protocol \"{self.transport.protocol}\", expected udp or tcp")
        if self.transport.address_family not in ADDRESS_FAMILIES:
            raise ConfigError(f"Unknown address family \"{self.transport.address_family}\"")
        if len(self.backend.secret) < 2:
            raise ConfigError("Secret is too short")
        if not self.backend.server:
            raise ConfigError("No server specified")
        if not self.backend.codec:
            raise ConfigError("No packet codec configured")

    def to_yaml(self, path: str):
        """Save configuration to YAML file."""
        data = {
            "backend": asdict(self.backend),
            "transport": asdict(self.transport),
            "dictionary": asdict(self.dictionary),
            "logging": {
                "level": self.logging.level,
                "file_path": self.logging.file_path,
                "max_file_size_mb": self.logging.max_file_size_mb,
                "backup_count": self.logging.backup_count,
            },
        }

        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False)


def read_secret_file(path: str) -> str:
    """Read a shared secret from the first line of a file."""
    try:
        with open(path, "r") as f:
            line = f.readline()
    except OSError as e:
        raise ConfigError(f"Error opening {path}: {e}") from e

    # Truncate newline and any trailing control characters
    secret = line
    while secret and secret[-1] < " ":
        secret = secret[:-1]

    if len(secret) < 2:
        raise ConfigError(f"Secret in {path} is too short")
    return secret


def get_default_config_path() -> str:
    """Get the default configuration file path."""
    # Check common locations
    candidates = [
        Path("config/snmp-bridge.yaml"),
        Path("snmp-bridge.yaml"),
        Path.home() / ".snmp-bridge" / "config.yaml",
        Path("/etc/snmp-bridge/config.yaml"),
    ]

    for path in candidates:
        if path.exists():
            return str(path)

    # Return the first candidate as default
    return str(candidates[0])
