"""
Proctoring Engine Interfaces - Base classes for video devices, alert handlers
and configuration providers.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import numpy as np


class VideoDevice(ABC):
    """
    Abstract base class for a camera stream.

    The device owns its stream exclusively; callers only ever read the most
    recent frame.
    """

    @abstractmethod
    def get_device_name(self) -> str:
        """Return a human readable name for this device."""
        pass

    @abstractmethod
    def open(self) -> None:
        """
        Request access to the device and start streaming.

        Blocking; callers run it off the event loop.

        Raises:
            CameraPermissionError: If access is denied or the device is unavailable
        """
        pass

    @abstractmethod
    def read_latest(self) -> Optional[np.ndarray]:
        """Return a copy of the most recent BGR frame, or None if none is available."""
        pass

    @abstractmethod
    def release(self) -> None:
        """Stop every track of the stream and release the device. Idempotent."""
        pass

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True while the device is streaming."""
        pass

    def get_health_status(self) -> Dict[str, Any]:
        """Return health status information for monitoring."""
        return {
            'device_name': self.get_device_name(),
            'is_open': self.is_open,
        }


class AlertHandler(ABC):
    """
    Abstract base class for alert side effects (audio cue, backend report).
    """

    @abstractmethod
    def handle_alert(self, alert) -> bool:
        """
        Handle a recorded alert.

        Implementations must not raise for operational failures; they log
        and return False instead.
        """
        pass


class ConfigurationProvider(ABC):
    """
    Abstract base class for configuration sources.
    """

    @abstractmethod
    def load_configuration(self):
        """Load and return the current configuration."""
        pass

    @abstractmethod
    def save_configuration(self, config) -> bool:
        """Persist the configuration, returning True on success."""
        pass
