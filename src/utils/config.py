"""Configuration management using environment variables."""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


def _get_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")


class Config:
    """
    Application configuration loaded from environment variables.

    Environment variables can be set in a .env file in the project root.

    Attributes:
        GMAIL_CREDENTIALS_PATH: Path to Gmail OAuth client secrets file
        GMAIL_TOKEN_PATH: Path to stored Gmail OAuth token
        GRAPH_TENANT_ID: Azure AD tenant for Microsoft Graph
        GRAPH_CLIENT_ID: Azure AD application (client) ID
        GRAPH_CLIENT_SECRET: Azure AD client secret
        DATABASE_PATH: SQLite file holding cursors and sender statistics
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        LOG_DIR: Directory for log files
        DATA_DIR: Directory for data storage
        MAX_RETRIES: Retries after the first attempt for 429/503 responses
        INITIAL_BACKOFF_SECONDS: Backoff before the first retry
        MAX_BACKOFF_SECONDS: Upper bound for any computed backoff
        HTTP_TIMEOUT_SECONDS: Per-request timeout for provider calls

    Example:
        >>> config = Config.load()
        >>> print(config.DATABASE_PATH)
        data/senders.db
    """

    GMAIL_CREDENTIALS_PATH: str
    GMAIL_TOKEN_PATH: str
    GRAPH_TENANT_ID: Optional[str]
    GRAPH_CLIENT_ID: Optional[str]
    GRAPH_CLIENT_SECRET: Optional[str]
    DATABASE_PATH: str
    LOG_LEVEL: str
    LOG_DIR: str
    DATA_DIR: str
    MAX_RETRIES: int
    INITIAL_BACKOFF_SECONDS: float
    MAX_BACKOFF_SECONDS: float
    HTTP_TIMEOUT_SECONDS: float

    def __init__(self):
        """Initialize configuration from environment variables."""
        self.GMAIL_CREDENTIALS_PATH = os.getenv(
            'GMAIL_CREDENTIALS_PATH',
            'credentials/credentials.json'
        )
        self.GMAIL_TOKEN_PATH = os.getenv(
            'GMAIL_TOKEN_PATH',
            'credentials/token.json'
        )
        self.GRAPH_TENANT_ID = os.getenv('GRAPH_TENANT_ID')
        self.GRAPH_CLIENT_ID = os.getenv('GRAPH_CLIENT_ID')
        self.GRAPH_CLIENT_SECRET = os.getenv('GRAPH_CLIENT_SECRET')
        self.DATA_DIR = os.getenv('DATA_DIR', 'data')
        self.DATABASE_PATH = os.getenv(
            'DATABASE_PATH',
            str(Path(self.DATA_DIR) / 'senders.db')
        )
        self.LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
        self.LOG_DIR = os.getenv('LOG_DIR', 'logs')
        self.MAX_RETRIES = _get_int('MAX_RETRIES', 3)
        self.INITIAL_BACKOFF_SECONDS = _get_float('INITIAL_BACKOFF_SECONDS', 1.0)
        self.MAX_BACKOFF_SECONDS = _get_float('MAX_BACKOFF_SECONDS', 32.0)
        self.HTTP_TIMEOUT_SECONDS = _get_float('HTTP_TIMEOUT_SECONDS', 30.0)

    @classmethod
    def load(cls, env_file: Optional[str] = None) -> 'Config':
        """
        Load configuration from .env file and environment variables.

        Args:
            env_file: Path to .env file (defaults to .env in project root)

        Returns:
            Config instance

        Example:
            >>> config = Config.load()
            >>> config.validate()
        """
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()

        return cls()

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ValueError: If required configuration is missing or invalid

        Example:
            >>> config = Config.load()
            >>> config.validate()
        """
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if self.LOG_LEVEL not in valid_levels:
            raise ValueError(
                f"Invalid LOG_LEVEL: {self.LOG_LEVEL}. "
                f"Must be one of {valid_levels}"
            )

        if self.MAX_RETRIES < 0:
            raise ValueError(f"MAX_RETRIES must be >= 0, got {self.MAX_RETRIES}")

        if self.INITIAL_BACKOFF_SECONDS <= 0:
            raise ValueError("INITIAL_BACKOFF_SECONDS must be positive")

        if self.MAX_BACKOFF_SECONDS < self.INITIAL_BACKOFF_SECONDS:
            raise ValueError(
                "MAX_BACKOFF_SECONDS must be >= INITIAL_BACKOFF_SECONDS"
            )

        if self.HTTP_TIMEOUT_SECONDS <= 0:
            raise ValueError("HTTP_TIMEOUT_SECONDS must be positive")

        Path(self.LOG_DIR).mkdir(parents=True, exist_ok=True)
        Path(self.DATA_DIR).mkdir(parents=True, exist_ok=True)
        Path(self.DATABASE_PATH).parent.mkdir(parents=True, exist_ok=True)
        Path(self.GMAIL_CREDENTIALS_PATH).parent.mkdir(parents=True, exist_ok=True)

    @property
    def has_graph_credentials(self) -> bool:
        """Whether the Microsoft Graph app registration is configured."""
        return bool(self.GRAPH_TENANT_ID and self.GRAPH_CLIENT_ID and self.GRAPH_CLIENT_SECRET)

    def retry_policy(self):
        """
        Build the retry policy for provider requests.

        Returns:
            RetryPolicy configured from MAX_RETRIES and the backoff settings
        """
        from ..providers.rate_limiter import RetryPolicy

        return RetryPolicy(
            max_retries=self.MAX_RETRIES,
            initial_backoff=self.INITIAL_BACKOFF_SECONDS,
            max_backoff=self.MAX_BACKOFF_SECONDS,
        )

    def __repr__(self) -> str:
        """Return string representation of config."""
        return (
            f"Config("
            f"GMAIL_CREDENTIALS_PATH={self.GMAIL_CREDENTIALS_PATH}, "
            f"DATABASE_PATH={self.DATABASE_PATH}, "
            f"LOG_LEVEL={self.LOG_LEVEL}, "
            f"LOG_DIR={self.LOG_DIR}, "
            f"DATA_DIR={self.DATA_DIR}, "
            f"MAX_RETRIES={self.MAX_RETRIES}"
            ")"
        )
