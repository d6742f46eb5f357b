"""
Configuration Service - Proctoring client configuration management.

This module provides the ConfigurationService class that handles loading
and saving the client configuration from a JSON file with environment
variable overrides.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional

from shared_utils.validation import validate_configuration
from .interfaces import ConfigurationProvider


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class ProctoringConfiguration:
    """Settings for the proctoring pipeline and the exam session."""
    ws_url: str = "ws://localhost:8000/api/v1/ws"
    api_base_url: str = "http://localhost:8000/api"
    reference_image: str = "reference.jpg"
    use_mock_data: bool = True

    capture_min_delay_ms: int = 5000
    capture_jitter_ms: int = 5000
    preview_size: int = 200
    preview_fps: int = 30
    camera_index: int = 0
    frame_width: int = 640
    frame_height: int = 480

    alert_dwell_seconds: float = 5.0
    notification_cooldown_seconds: float = 0.0
    sound_enabled: bool = True
    buffer_latest_frame: bool = False
    request_timeout_seconds: float = 5.0

    default_time_limit_minutes: int = 30
    default_passing_score: int = 60

    log_level: str = "INFO"
    log_file: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)


class ConfigurationService(ConfigurationProvider):
    """
    Service for managing client configuration.

    Handles loading configuration from a JSON file and environment variables.
    """

    # Environment variable -> (config key, converter)
    ENV_MAPPINGS = {
        "PROCTORING_WS_URL": ("ws_url", str),
        "PROCTORING_API_BASE_URL": ("api_base_url", str),
        "PROCTORING_REFERENCE_IMAGE": ("reference_image", str),
        "PROCTORING_ENABLE_MOCK_DATA": ("use_mock_data", _parse_bool),
        "PROCTORING_CAPTURE_MIN_DELAY_MS": ("capture_min_delay_ms", int),
        "PROCTORING_CAPTURE_JITTER_MS": ("capture_jitter_ms", int),
        "PROCTORING_ALERT_DWELL": ("alert_dwell_seconds", float),
        "PROCTORING_NOTIFICATION_COOLDOWN": ("notification_cooldown_seconds", float),
        "PROCTORING_CAMERA_INDEX": ("camera_index", int),
        "PROCTORING_SOUND_ENABLED": ("sound_enabled", _parse_bool),
        "PROCTORING_LOG_LEVEL": ("log_level", str),
    }

    def __init__(self, config_file: Optional[str] = "config/proctoring_config.json"):
        """
        Initialize configuration service.

        Args:
            config_file: Path to the configuration file, or None for defaults
                plus environment only
        """
        self.config_file = config_file
        self.logger = logging.getLogger(__name__)

    def load_configuration(self) -> ProctoringConfiguration:
        """Load configuration from defaults, file and environment variables."""
        config_data = ProctoringConfiguration().to_dict()

        if self.config_file and os.path.exists(self.config_file):
            try:
                with open(self.config_file, 'r') as f:
                    file_config = json.load(f)
                if isinstance(file_config, dict):
                    config_data.update(self._known_keys(file_config))
                    self.logger.info(f"Loaded configuration from {self.config_file}")
                else:
                    self.logger.warning(f"Ignoring {self.config_file}: top level is not an object")
            except (OSError, json.JSONDecodeError) as e:
                self.logger.error(f"Error reading configuration file {self.config_file}: {e}")
        elif self.config_file:
            self.logger.info(f"Config file {self.config_file} not found, using defaults")

        config_data = self._apply_environment_overrides(config_data)
        config_data = self._drop_invalid_values(config_data)
        return ProctoringConfiguration(**config_data)

    def save_configuration(self, config: ProctoringConfiguration) -> bool:
        """Save configuration to file."""
        if not self.config_file:
            return False
        try:
            config_dir = os.path.dirname(self.config_file)
            if config_dir:
                os.makedirs(config_dir, exist_ok=True)

            with open(self.config_file, 'w') as f:
                json.dump(config.to_dict(), f, indent=4)

            self.logger.info(f"Configuration saved to {self.config_file}")
            return True
        except OSError as e:
            self.logger.error(f"Error saving configuration: {e}")
            return False

    def _known_keys(self, data: Dict[str, Any]) -> Dict[str, Any]:
        known = {f.name for f in fields(ProctoringConfiguration)}
        unknown = set(data) - known
        if unknown:
            self.logger.warning(f"Ignoring unknown configuration keys: {sorted(unknown)}")
        return {key: value for key, value in data.items() if key in known}

    def _apply_environment_overrides(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration."""
        for env_var, (config_key, converter) in self.ENV_MAPPINGS.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                try:
                    config_data[config_key] = converter(env_value)
                    self.logger.info(f"Applied environment override: {config_key} = {config_data[config_key]}")
                except (ValueError, TypeError) as e:
                    self.logger.warning(f"Invalid environment variable {env_var}={env_value}: {e}")

        return config_data

    def _drop_invalid_values(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Replace values that fail validation with their defaults."""
        defaults = ProctoringConfiguration().to_dict()
        for key in list(config_data):
            is_valid, errors = validate_configuration({key: config_data[key]})
            if not is_valid:
                for error in errors:
                    self.logger.warning(f"{error}; using default {defaults[key]!r}")
                config_data[key] = defaults[key]
        return config_data
