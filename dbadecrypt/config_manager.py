import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import colorlog
from dotenv import load_dotenv

from .exceptions import InvalidConfigurationError
from .models import TextEncoding

# Load environment variables
load_dotenv(override=True)

"""
Configuration Management for dbadecrypt

This module provides centralized configuration management with validation
and environment variable handling.
"""


def _set_driver_log_level(log_level: str) -> None:
    """Set log levels for driver loggers to reduce noise."""
    driver_loggers = ["pyodbc", "urllib3"]
    # Driver logging should only appear at DEBUG level
    target_level = logging.DEBUG if log_level == "DEBUG" else logging.WARNING
    for name in driver_loggers:
        logging.getLogger(name).setLevel(target_level)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


logger = logging.getLogger(__name__)


@dataclass
class SqlServerConfig:
    """Configuration for SQL Server connections."""

    driver: str = field(
        default_factory=lambda: os.getenv(
            "DBADECRYPT_DRIVER", "ODBC Driver 18 for SQL Server"
        )
    )
    user: str = field(default_factory=lambda: os.getenv("DBADECRYPT_USER", ""))
    password: str = field(
        default_factory=lambda: os.getenv("DBADECRYPT_PASSWORD", "")
    )
    use_dac: bool = field(default_factory=lambda: _env_flag("DBADECRYPT_USE_DAC", "true"))
    trust_server_certificate: bool = field(
        default_factory=lambda: _env_flag(
            "DBADECRYPT_TRUST_SERVER_CERTIFICATE", "true"
        )
    )
    connect_timeout: int = field(
        default_factory=lambda: int(os.getenv("DBADECRYPT_CONNECT_TIMEOUT", "15"))
    )
    connect_retries: int = field(
        default_factory=lambda: int(os.getenv("DBADECRYPT_CONNECT_RETRIES", "2"))
    )

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not self.driver:
            raise InvalidConfigurationError(
                "ODBC driver name is required", config_key="DBADECRYPT_DRIVER"
            )
        if self.connect_timeout < 1:
            raise InvalidConfigurationError(
                "Connect timeout must be at least 1 second",
                config_key="DBADECRYPT_CONNECT_TIMEOUT",
                config_value=self.connect_timeout,
            )
        if self.connect_retries < 0:
            raise InvalidConfigurationError(
                "Connect retries must be non-negative",
                config_key="DBADECRYPT_CONNECT_RETRIES",
                config_value=self.connect_retries,
            )
        if self.password and not self.user:
            raise InvalidConfigurationError(
                "SQL login user is required when a password is set",
                config_key="DBADECRYPT_USER",
            )

    @property
    def integrated_security(self) -> bool:
        return not self.user

    def build_connection_string(self, server: str, database: str = "master") -> str:
        """
        Build an ODBC connection string for ``server``.

        The dedicated administrator connection is requested with the
        ``admin:`` prefix, which is needed to read sys.sysobjvalues.
        """
        target = f"admin:{server}" if self.use_dac else server
        parts = [
            f"DRIVER={{{self.driver}}}",
            f"SERVER={target}",
            f"DATABASE={database}",
        ]
        if self.integrated_security:
            parts.append("Trusted_Connection=yes")
        else:
            parts.append(f"UID={self.user}")
            parts.append(f"PWD={self.password}")
        if self.trust_server_certificate:
            parts.append("TrustServerCertificate=yes")
        return ";".join(parts) + ";"

    def get_connection_string(self, server: str) -> str:
        """Get a connection description for logging (without password)."""
        auth = "integrated" if self.integrated_security else f"user: {self.user}"
        mode = "DAC" if self.use_dac else "standard"
        return f"{server} ({mode}, {auth})"


@dataclass
class DecryptionConfig:
    """Configuration for decryption behavior."""

    encoding: str = field(
        default_factory=lambda: os.getenv("DBADECRYPT_ENCODING", "ASCII")
    )
    export_destination: Optional[str] = field(
        default_factory=lambda: os.getenv("DBADECRYPT_EXPORT_DESTINATION") or None
    )

    def __post_init__(self) -> None:
        """Validate and normalize the encoding name."""
        try:
            self.encoding = TextEncoding.parse(self.encoding).value
        except ValueError as e:
            raise InvalidConfigurationError(
                str(e), config_key="DBADECRYPT_ENCODING", config_value=self.encoding
            ) from e

    @property
    def text_encoding(self) -> TextEncoding:
        return TextEncoding(self.encoding)


@dataclass
class LoggingConfig:
    """Configuration for logging behavior."""

    level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    format: str = field(
        default_factory=lambda: os.getenv(
            "LOG_FORMAT", "%(log_color)s%(levelname)s:%(name)s:%(message)s"
        )
    )
    file_output: Optional[str] = field(default_factory=lambda: os.getenv("LOG_FILE"))

    def __post_init__(self) -> None:
        """Validate logging configuration."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.level.upper() not in valid_levels:
            raise InvalidConfigurationError(
                f"Log level must be one of: {valid_levels}",
                config_key="LOG_LEVEL",
                config_value=self.level,
            )
        self.level = self.level.upper()

    def get_log_level(self) -> int:
        """Convert string log level to logging constant."""
        level_attr = getattr(logging, self.level, None)
        if level_attr is None:
            raise InvalidConfigurationError(
                f"Invalid log level: {self.level}", config_key="LOG_LEVEL"
            )
        return int(level_attr)


@dataclass
class DbaDecryptConfig:
    """Main configuration class that aggregates all configuration sections."""

    sql_server: SqlServerConfig = field(default_factory=SqlServerConfig)
    decryption: DecryptionConfig = field(default_factory=DecryptionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    servers: List[str] = field(default_factory=list)

    @classmethod
    def from_environment(
        cls,
        servers: Optional[List[str]] = None,
        encoding: Optional[str] = None,
        export_destination: Optional[str] = None,
    ) -> "DbaDecryptConfig":
        """
        Create configuration from environment variables.

        Args:
            servers: SQL Server instances to target
            encoding: Optional override of DBADECRYPT_ENCODING
            export_destination: Optional override of DBADECRYPT_EXPORT_DESTINATION

        Returns:
            DbaDecryptConfig: Configured instance
        """
        config = cls()
        if servers:
            config.servers = list(servers)
        if encoding is not None:
            config.decryption.encoding = encoding
        if export_destination is not None:
            config.decryption.export_destination = export_destination
        return config

    def validate_all(self) -> None:
        """Validate all configuration sections."""
        try:
            if not self.servers:
                raise InvalidConfigurationError(
                    "At least one SQL Server instance is required", config_key="servers"
                )

            self.sql_server.__post_init__()
            self.decryption.__post_init__()
            self.logging.__post_init__()

            logger.info("✅ Configuration validation successful")

        except Exception as e:
            logger.exception(f"❌ Configuration validation failed: {e}")
            raise

    def log_configuration_summary(self) -> None:
        """Log a summary of the current configuration (without sensitive data)."""
        logger.info("=" * 60)
        logger.info("🔧 DBADECRYPT CONFIGURATION")
        logger.info("=" * 60)
        for server in self.servers:
            logger.info(f"🗄️  SQL Server: {self.sql_server.get_connection_string(server)}")
        logger.info(f"   - Driver: {self.sql_server.driver}")
        logger.info(f"   - Connect Timeout: {self.sql_server.connect_timeout}s")
        logger.info(f"🔓 Encoding: {self.decryption.encoding}")
        logger.info(
            f"📄 Export Destination: {self.decryption.export_destination or 'None'}"
        )
        logger.info(f"📝 Logging Level: {self.logging.level}")
        if self.logging.file_output:
            logger.info(f"📄 Log File: {self.logging.file_output}")
        logger.info("=" * 60)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for serialization."""
        return {
            "servers": list(self.servers),
            "sql_server": {
                "driver": self.sql_server.driver,
                "user": self.sql_server.user,
                # Don't include password in serialization
                "use_dac": self.sql_server.use_dac,
                "trust_server_certificate": self.sql_server.trust_server_certificate,
                "connect_timeout": self.sql_server.connect_timeout,
                "connect_retries": self.sql_server.connect_retries,
            },
            "decryption": {
                "encoding": self.decryption.encoding,
                "export_destination": self.decryption.export_destination,
            },
            "logging": {
                "level": self.logging.level,
                "file_output": self.logging.file_output,
            },
        }


def setup_logging(config: LoggingConfig) -> None:
    """
    Setup logging configuration based on config.
    """
    _set_driver_log_level(config.level.upper())

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.handlers.clear()  # Remove any existing handlers
    root_logger.setLevel(config.get_log_level())

    console_handler = colorlog.StreamHandler()
    console_handler.setFormatter(colorlog.ColoredFormatter(config.format))
    root_logger.addHandler(console_handler)

    # Add file handler if file output is configured
    if config.file_output:
        file_handler = logging.FileHandler(config.file_output)
        file_formatter = logging.Formatter(
            "%(asctime)s - %(levelname)s:%(name)s:%(message)s"
        )
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

    logger.info(
        f"📝 Logging configured: level={config.level}, file={config.file_output or 'console'}"
    )


def create_config_from_env(
    servers: List[str],
    encoding: Optional[str] = None,
    export_destination: Optional[str] = None,
) -> DbaDecryptConfig:
    """
    Factory function to create and validate configuration from environment.

    Args:
        servers: SQL Server instances to target
        encoding: Optional encoding override (ASCII or UTF8)
        export_destination: Optional directory to write .sql files under

    Returns:
        DbaDecryptConfig: Validated configuration instance

    Raises:
        InvalidConfigurationError: If configuration is invalid
    """
    config = DbaDecryptConfig.from_environment(servers, encoding, export_destination)
    config.validate_all()
    return config
