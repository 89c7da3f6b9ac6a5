"""Configuration management for the migration tool."""

from typing import Optional, Dict, Any
from pathlib import Path
import os

from pydantic import BaseModel, Field, validator
import yaml
from dotenv import load_dotenv

BYTES_PER_MEBIBYTE = 1024 * 1024
MIN_MULTIPART_MEBIBYTES = 5
DEFAULT_MULTIPART_MEBIBYTES = 100


def _validate_http_url(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    if not v.startswith(('http://', 'https://')):
        raise ValueError('URL must start with http:// or https://')
    return v.rstrip('/')


class AdoInstanceConfig(BaseModel):
    """Configuration for an Azure DevOps organization host."""

    url: str = Field(default='https://dev.azure.com', description='ADO base URL')
    pat: Optional[str] = Field(default=None, description='Personal access token')
    timeout: int = Field(default=30, description='Request timeout in seconds')
    no_ssl_verify: bool = Field(default=False, description='Skip TLS verification')

    @validator('url')
    def validate_url(cls, v):
        """Validate ADO URL format."""
        return _validate_http_url(v)


class GithubInstanceConfig(BaseModel):
    """Configuration for the target GitHub instance."""

    api_url: str = Field(default='https://api.github.com', description='API URL')
    uploads_url: str = Field(
        default='https://uploads.github.com', description='Archive uploads URL'
    )
    pat: Optional[str] = Field(default=None, description='Personal access token')
    timeout: int = Field(default=3600, description='Request timeout in seconds')
    no_ssl_verify: bool = Field(default=False, description='Skip TLS verification')

    @validator('api_url', 'uploads_url')
    def validate_urls(cls, v):
        """Validate GitHub URL format."""
        return _validate_http_url(v)


class BbsInstanceConfig(BaseModel):
    """Configuration for an on-prem Bitbucket Server."""

    url: str = Field(..., description='Bitbucket Server URL')
    username: Optional[str] = Field(default=None, description='Basic auth username')
    password: Optional[str] = Field(default=None, description='Basic auth password')
    timeout: int = Field(default=30, description='Request timeout in seconds')
    no_ssl_verify: bool = Field(default=False, description='Skip TLS verification')

    @validator('url')
    def validate_url(cls, v):
        """Validate Bitbucket Server URL format."""
        return _validate_http_url(v)


class RetryConfig(BaseModel):
    """Retry settings shared by every API client."""

    max_attempts: int = Field(default=3, description='Attempts per API call')
    retry_interval: float = Field(
        default=1.0, description='Base delay in seconds between attempts'
    )

    @validator('max_attempts')
    def validate_max_attempts(cls, v):
        """Validate attempts is positive."""
        if v <= 0:
            raise ValueError('max_attempts must be positive')
        return v

    @validator('retry_interval')
    def validate_retry_interval(cls, v):
        """Validate interval is not negative."""
        if v < 0:
            raise ValueError('retry_interval cannot be negative')
        return v


class UploadConfig(BaseModel):
    """Archive upload settings."""

    multipart_mebibytes: Optional[int] = Field(
        default=None,
        description='Multipart threshold and part size in MiB (default 100, minimum 5)',
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default='INFO', description='Log level')
    log_dir: Optional[str] = Field(
        default=None, description='Directory for the log and verbose log files'
    )
    debug_mode: bool = Field(
        default=False, description='Use ISO-8601 timestamps with microseconds'
    )

    @validator('level')
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Log level must be one of: {valid_levels}')
        return v.upper()


class Config(BaseModel):
    """Main configuration class for the migration tool."""

    ado: Optional[AdoInstanceConfig] = Field(
        default=None, description='Azure DevOps source'
    )
    bbs: Optional[BbsInstanceConfig] = Field(
        default=None, description='Bitbucket Server source'
    )
    github: Optional[GithubInstanceConfig] = Field(
        default=None, description='GitHub target'
    )
    retry: RetryConfig = Field(
        default_factory=RetryConfig, description='Retry settings'
    )
    upload: UploadConfig = Field(
        default_factory=UploadConfig, description='Archive upload settings'
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description='Logging settings'
    )

    class Config:
        """Pydantic configuration."""

        extra = 'forbid'  # Don't allow extra fields

    @classmethod
    def from_file(cls, config_path: str) -> 'Config':
        """Load configuration from YAML file."""
        config_file = Path(config_path)

        if not config_file.exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')

        with open(config_file, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        # Load .env file if it exists
        load_dotenv()

        config_data: Dict[str, Any] = {
            'retry': {
                'max_attempts': int(os.getenv('MIGRATE_RETRY_ATTEMPTS', 3)),
                'retry_interval': float(os.getenv('MIGRATE_RETRY_INTERVAL', 1.0)),
            },
            'upload': {
                'multipart_mebibytes': _optional_int(
                    os.getenv('GITHUB_OWNED_STORAGE_MULTIPART_MEBIBYTES')
                ),
            },
            'logging': {
                'level': os.getenv('LOG_LEVEL', 'INFO'),
                'log_dir': os.getenv('LOG_DIR'),
                'debug_mode': os.getenv('GEI_DEBUG_MODE', 'false').lower() == 'true',
            },
        }

        if os.getenv('ADO_PAT'):
            config_data['ado'] = {
                'url': os.getenv('ADO_SERVER_URL', 'https://dev.azure.com'),
                'pat': os.getenv('ADO_PAT'),
            }

        if os.getenv('GH_PAT'):
            config_data['github'] = {
                'api_url': os.getenv('GITHUB_API_URL', 'https://api.github.com'),
                'uploads_url': os.getenv(
                    'GITHUB_UPLOADS_URL', 'https://uploads.github.com'
                ),
                'pat': os.getenv('GH_PAT'),
            }

        if os.getenv('BBS_SERVER_URL'):
            config_data['bbs'] = {
                'url': os.getenv('BBS_SERVER_URL'),
                'username': os.getenv('BBS_USERNAME'),
                'password': os.getenv('BBS_PASSWORD'),
            }

        # Remove None values
        config_data = cls._remove_none_values(config_data)

        return cls(**config_data)

    @staticmethod
    def _remove_none_values(data: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively remove None values from dictionary."""
        if isinstance(data, dict):
            return {
                k: Config._remove_none_values(v)
                for k, v in data.items()
                if v is not None
            }
        return data

    def to_file(self, config_path: str) -> None:
        """Save configuration to YAML file."""
        config_file = Path(config_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                self._remove_none_values(self.dict()),
                f,
                default_flow_style=False,
                indent=2,
                sort_keys=False,
            )

    @staticmethod
    def create_template(output_path: str) -> None:
        """Create a configuration template file."""
        template_config = {
            'ado': {
                'url': 'https://dev.azure.com',
                'pat': 'your-ado-personal-access-token',
                'timeout': 30,
            },
            'bbs': {
                'url': 'https://bitbucket.example.com',
                'username': 'your-bbs-username',
                'password': 'your-bbs-password',
                'timeout': 30,
            },
            'github': {
                'api_url': 'https://api.github.com',
                'uploads_url': 'https://uploads.github.com',
                'pat': 'your-github-personal-access-token',
                'timeout': 3600,
            },
            'retry': {
                'max_attempts': 3,
                'retry_interval': 1.0,
            },
            'upload': {
                'multipart_mebibytes': DEFAULT_MULTIPART_MEBIBYTES,
            },
            'logging': {
                'level': 'INFO',
                'log_dir': 'logs',
                'debug_mode': False,
            },
        }

        config_file = Path(output_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                template_config, f, default_flow_style=False, indent=2, sort_keys=False
            )


def _optional_int(value: Optional[str]) -> Optional[int]:
    if value is None or not value.strip():
        return None
    try:
        return int(value)
    except ValueError:
        return None
