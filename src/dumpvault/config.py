"""Configuration management using YAML and Pydantic."""

import os
import re
import warnings
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from dumpvault.exceptions import ConfigurationError

TIMESTAMP_PLACEHOLDER = "{timestamp}"


def _substitute_env_vars(value: str) -> str:
    """Substitute environment variables in string.

    Supports ${VAR} and ${VAR:-default} syntax.

    Args:
        value: String potentially containing env var references

    Returns:
        String with environment variables substituted
    """
    pattern = r"\$\{([^}:]+)(?::-([^}]*))?\}"

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        default = match.group(2)
        env_value = os.getenv(var_name)
        if env_value is not None:
            return env_value
        if default is not None:
            return default
        raise ValueError(f"Environment variable {var_name} not set and no default provided")

    return re.sub(pattern, replacer, value)


def _substitute_env_in_dict(data: Any) -> Any:
    """Recursively substitute environment variables in a parsed YAML document."""
    if isinstance(data, dict):
        return {key: _substitute_env_in_dict(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_in_dict(item) for item in data]
    elif isinstance(data, str):
        return _substitute_env_vars(data)
    return data


class S3Config(BaseModel):
    """S3 configuration."""

    endpoint: Optional[str] = Field(
        default=None,
        description="S3 endpoint URL (null for AWS S3, or custom endpoint for S3-compatible)",
    )
    bucket: str = Field(description="S3 bucket name")
    prefix: str = Field(
        default="",
        description="Key prefix acting as the backup folder; only objects under it are managed",
    )
    region: str = Field(default="us-east-1", description="AWS region")
    storage_class: str = Field(
        default="STANDARD",
        description="S3 storage class for uploaded backups (STANDARD, STANDARD_IA, ...)",
    )
    aws_access_key_id: Optional[str] = Field(
        default=None,
        alias="access_key_id",
        description="AWS access key ID (development only - use AWS_ACCESS_KEY_ID env var in production)",
    )
    aws_secret_access_key: Optional[str] = Field(
        default=None,
        alias="secret_access_key",
        description="AWS secret access key (development only - use AWS_SECRET_ACCESS_KEY env var in production)",
    )

    model_config = {"populate_by_name": True}

    @property
    def folder(self) -> str:
        """Prefix normalised to either '' or 'some/path/'."""
        prefix = self.prefix.strip("/")
        return f"{prefix}/" if prefix else ""

    def get_credentials(self) -> Optional[dict[str, str]]:
        """Get AWS credentials from config file or environment variables.

        Returns:
            Dictionary with 'aws_access_key_id' and 'aws_secret_access_key', or None
            if credentials should be obtained from standard AWS locations (IAM role, etc.)

        Raises:
            ValueError: If credentials are partially specified
        """
        config_has_key = self.aws_access_key_id is not None
        config_has_secret = self.aws_secret_access_key is not None

        if config_has_key and config_has_secret:
            warnings.warn(
                "Using AWS credentials from config file. "
                "This is not recommended for production. "
                "Use AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY environment variables instead.",
                UserWarning,
                stacklevel=2,
            )
            return {
                "aws_access_key_id": self.aws_access_key_id,
                "aws_secret_access_key": self.aws_secret_access_key,
            }

        if config_has_key or config_has_secret:
            raise ValueError(
                "Both aws_access_key_id and aws_secret_access_key must be provided together, "
                "or use environment variables (AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY)"
            )

        env_key = os.getenv("AWS_ACCESS_KEY_ID")
        env_secret = os.getenv("AWS_SECRET_ACCESS_KEY")
        if env_key and env_secret:
            return {
                "aws_access_key_id": env_key,
                "aws_secret_access_key": env_secret,
            }

        # Let boto3 fall back to its default credential chain (IAM role, profile, ...)
        return None


class DatabaseConfig(BaseModel):
    """Connection settings for the database that is dumped and restored."""

    driver: str = Field(default="mysql", description="Database driver (only 'mysql' is supported)")
    name: str = Field(description="Database name")
    host: str = Field(default="127.0.0.1", description="Database host")
    port: int = Field(default=3306, description="Database port", gt=0, lt=65536)
    user: str = Field(default="root", description="Database user")
    password_env: Optional[str] = Field(
        default=None,
        description="Environment variable name containing database password (preferred)",
    )
    password: Optional[str] = Field(
        default=None,
        description="Database password (development only - use password_env in production)",
    )

    @model_validator(mode="after")
    def validate_password_source(self) -> "DatabaseConfig":
        """Reject configurations naming two password sources."""
        if self.password_env and self.password:
            raise ValueError(
                "Cannot specify both 'password_env' and 'password'. "
                "Use 'password_env' for production (recommended) or 'password' for development only."
            )
        return self

    def get_password(self) -> str:
        """Get password from environment variable or config file.

        An empty string means "no password"; the tools are still called
        non-interactively.

        Raises:
            ValueError: If password_env names an unset variable
        """
        if self.password_env:
            password = os.getenv(self.password_env)
            if password is None:
                raise ValueError(f"Environment variable {self.password_env} not set")
            return password
        return self.password or ""


class BackupConfig(BaseModel):
    """How backups are named, produced and compressed."""

    name_pattern: str = Field(
        default="mysql_backup_{timestamp}.sql",
        description="Remote file name template; {timestamp} is replaced at backup time",
    )
    temp_file_path: str = Field(
        default="/tmp/dumpvault/mysql_backup_{timestamp}.sql",
        description="Local path of the temporary dump file",
    )
    timestamp_format: str = Field(
        default="%Y%m%d-%H%M%S",
        description="strftime format used to render {timestamp}",
    )
    compress: bool = Field(default=True, description="Gzip the dump before upload")
    compression_level: int = Field(
        default=9,
        description="Gzip compression level (1=fastest, 9=best compression)",
        ge=1,
        le=9,
    )
    exclude_tables: list[str] = Field(
        default_factory=list,
        description="Tables passed to the dump tool as --ignore-table",
    )

    @field_validator("exclude_tables", mode="before")
    @classmethod
    def split_exclude_tables(cls, v: Any) -> Any:
        """Accept a comma-separated string as well as a list."""
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        if isinstance(v, list):
            return [str(t).strip() for t in v if str(t).strip()]
        return v

    def render_name(self, timestamp: str) -> str:
        """Remote name for a backup taken at ``timestamp``."""
        return self.name_pattern.replace(TIMESTAMP_PLACEHOLDER, timestamp)

    def render_temp_path(self, timestamp: str) -> Path:
        """Local dump path for a backup taken at ``timestamp``."""
        return Path(self.temp_file_path.replace(TIMESTAMP_PLACEHOLDER, timestamp))


class RestoreConfig(BaseModel):
    """Restore working directory."""

    temp_dir: str = Field(
        default="/tmp/dumpvault/restore",
        description="Directory for downloaded and extracted files (one run at a time)",
    )


class ToolsConfig(BaseModel):
    """External binaries."""

    mysqldump_path: str = Field(default="mysqldump", description="mysqldump executable")
    mysql_path: str = Field(default="mysql", description="mysql client executable")


class DumpVaultConfig(BaseModel):
    """Root configuration model."""

    version: str = Field(default="1.0", description="Configuration version")
    s3: S3Config = Field(description="S3 configuration")
    database: DatabaseConfig = Field(description="Database to back up and restore")
    backup: BackupConfig = Field(default_factory=BackupConfig, description="Backup settings")
    restore: RestoreConfig = Field(default_factory=RestoreConfig, description="Restore settings")
    tools: ToolsConfig = Field(default_factory=ToolsConfig, description="External tool paths")

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        """Validate configuration version."""
        if v != "1.0":
            raise ValueError(f"Unsupported configuration version: {v}")
        return v


def load_config(config_path: Path) -> DumpVaultConfig:
    """Load and validate configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated configuration object

    Raises:
        ConfigurationError: If configuration is missing or invalid
    """
    try:
        with open(config_path, encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Configuration file not found: {config_path}") from None
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}") from e

    if not raw_config:
        raise ConfigurationError("Configuration file is empty", context={"path": str(config_path)})

    try:
        config_data = _substitute_env_in_dict(raw_config)
        return DumpVaultConfig.model_validate(config_data)
    except (ValueError, ValidationError) as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e
