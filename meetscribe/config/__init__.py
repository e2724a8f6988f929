"""Simple YAML configuration loader for meetscribe."""

import os
import yaml
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)


class MeetscribeConfig:
    """meetscribe configuration loader."""

    def __init__(self, config_path: str):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file
        """
        self.config_file = Path(config_path)

        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")

        if not config:
            raise ValueError("Configuration file is empty")

        # Resolve relative paths
        self._resolve_paths(config)

        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        for section, key in (
            ('google_cloud', 'credentials_path'),
            ('storage', 'data_directory'),
            ('logging', 'file_path'),
            ('browser', 'profile_directory'),
        ):
            section_config = config.get(section)
            if not isinstance(section_config, dict):
                continue
            value = section_config.get(key)
            if value and not os.path.isabs(value):
                section_config[key] = str(config_dir / value)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'meeting.target').

        Args:
            key_path: Dot-separated key path (e.g., 'liveness.activity_threshold')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'meeting.target')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        # Navigate to the parent dictionary
        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def get_google_credentials_path(self) -> str:
        """Get Google credentials path - CRASHES if not found."""
        creds_path = self.get('google_cloud.credentials_path')
        if not creds_path:
            raise ValueError("Google credentials path not configured in meetscribe.yaml")

        creds_file = Path(creds_path)
        if not creds_file.exists():
            raise FileNotFoundError(f"Google credentials file not found: {creds_path}")

        return str(creds_file.absolute())

    def get_data_directory(self) -> str:
        """Get data directory path."""
        data_dir = self.get('storage.data_directory', 'data')
        return str(Path(data_dir).absolute())

    def get_secret(self, key_path: str) -> str:
        """Read a secret from the environment variable named at ``key_path``."""
        env_name = self.get(key_path)
        if not env_name:
            raise ValueError(f"No environment variable configured for '{key_path}'")
        secret = os.environ.get(env_name, '')
        if not secret:
            raise ValueError(f"Environment variable {env_name} is not set")
        return secret

    def get_controller_settings(self) -> "ControllerSettings":
        """Build and validate the lifecycle controller settings."""
        defaults = ControllerSettings(meeting_target='')
        settings = ControllerSettings(
            meeting_target=self.get('meeting.target', ''),
            schedule_expression=self.get('meeting.schedule', defaults.schedule_expression),
            capture_device=self.get('audio.device'),
            browser_profile=self.get('browser.profile_directory'),
            capture_window_ms=int(self.get('audio.capture_window_ms', defaults.capture_window_ms)),
            min_segment_bytes=int(self.get('audio.min_segment_bytes', defaults.min_segment_bytes)),
            capture_retry_backoff_ms=int(self.get('audio.retry_backoff_ms', defaults.capture_retry_backoff_ms)),
            activity_timeout_ms=int(self.get('liveness.activity_timeout_ms', defaults.activity_timeout_ms)),
            grace_period_ms=self.get('liveness.grace_period_ms'),
            activity_interval_ms=int(self.get('liveness.activity_interval_ms', defaults.activity_interval_ms)),
            activity_threshold=int(self.get('liveness.activity_threshold', defaults.activity_threshold)),
            participant_interval_ms=int(self.get('liveness.participant_interval_ms', defaults.participant_interval_ms)),
            participant_threshold=int(self.get('liveness.participant_threshold', defaults.participant_threshold)),
            join_attempts=int(self.get('browser.join_attempts', defaults.join_attempts)),
            join_settle_ms=int(self.get('browser.settle_ms', defaults.join_settle_ms)),
        )
        settings.validate()
        return settings


@dataclass
class ControllerSettings:
    """All tunables of one lifecycle controller run, validated once at startup."""
    meeting_target: str
    schedule_expression: str = "55 18 * * *"
    capture_device: Optional[str] = None
    browser_profile: Optional[str] = None
    capture_window_ms: int = 60_000
    min_segment_bytes: int = 1024
    capture_retry_backoff_ms: int = 5_000
    activity_timeout_ms: int = 60_000
    grace_period_ms: Optional[int] = None  # Defaults to activity_timeout_ms
    activity_interval_ms: int = 20_000
    activity_threshold: int = 2
    participant_interval_ms: int = 60_000
    participant_threshold: int = 5
    join_attempts: int = 3
    join_settle_ms: int = 10_000

    def validate(self) -> None:
        """Raise ValueError if any option is missing or out of range."""
        if not self.meeting_target:
            raise ValueError("meeting.target is required")
        if len(str(self.schedule_expression).split()) != 5:
            raise ValueError(
                f"meeting.schedule must be a five-field cron expression, got '{self.schedule_expression}'"
            )
        for name in (
            'capture_window_ms',
            'activity_timeout_ms',
            'activity_interval_ms',
            'participant_interval_ms',
            'activity_threshold',
            'participant_threshold',
            'join_attempts',
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        for name in ('min_segment_bytes', 'capture_retry_backoff_ms', 'join_settle_ms'):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative, got {getattr(self, name)}")
        if self.grace_period_ms is not None and int(self.grace_period_ms) <= 0:
            raise ValueError(f"grace_period_ms must be positive, got {self.grace_period_ms}")

    @property
    def capture_window(self) -> float:
        return self.capture_window_ms / 1000.0

    @property
    def capture_retry_backoff(self) -> float:
        return self.capture_retry_backoff_ms / 1000.0

    @property
    def activity_timeout(self) -> timedelta:
        return timedelta(milliseconds=self.activity_timeout_ms)

    @property
    def grace_period(self) -> timedelta:
        if self.grace_period_ms is None:
            return self.activity_timeout
        return timedelta(milliseconds=int(self.grace_period_ms))

    @property
    def activity_interval(self) -> float:
        return self.activity_interval_ms / 1000.0

    @property
    def participant_interval(self) -> float:
        return self.participant_interval_ms / 1000.0

    @property
    def join_settle(self) -> float:
        return self.join_settle_ms / 1000.0
