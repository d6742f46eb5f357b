"""
Audible alert cues.

Tones are synthesized with numpy so no sound asset is needed. Higher
severity plays a higher tone. Audio failures are logged and swallowed.
"""

import logging
from typing import Callable, Dict, Optional, Tuple

import numpy as np

try:
    import sounddevice as sd
except (ImportError, OSError):
    # PortAudio missing on the host; cues are disabled
    sd = None

from .interfaces import AlertHandler
from .models import AlertSeverity, SuspiciousAlert


# (frequency Hz, duration seconds)
SEVERITY_TONES: Dict[AlertSeverity, Tuple[float, float]] = {
    AlertSeverity.HIGH: (1200.0, 0.20),
    AlertSeverity.MEDIUM: (1000.0, 0.25),
    AlertSeverity.LOW: (800.0, 0.20),
}

DEFAULT_SAMPLE_RATE = 44100


def synthesize_tone(
    frequency: float,
    duration: float,
    sample_rate: int = DEFAULT_SAMPLE_RATE,
    volume: float = 0.3,
    fade_seconds: float = 0.01
) -> np.ndarray:
    """
    Generate a sine tone with short linear fades to avoid clicks.

    Returns:
        float32 mono samples in [-volume, volume]
    """
    sample_count = int(sample_rate * duration)
    t = np.arange(sample_count) / sample_rate
    wave = volume * np.sin(2 * np.pi * frequency * t)

    fade_len = min(int(sample_rate * fade_seconds), sample_count // 2)
    if fade_len > 0:
        ramp = np.linspace(0.0, 1.0, fade_len)
        wave[:fade_len] *= ramp
        wave[-fade_len:] *= ramp[::-1]

    return wave.astype(np.float32)


def _play_with_sounddevice(samples: np.ndarray, sample_rate: int) -> None:
    if sd is None:
        raise RuntimeError("sounddevice is not available")
    # Non-blocking: playback continues in PortAudio's own thread
    sd.play(samples, sample_rate)


class ToneNotifier(AlertHandler):
    """Plays a severity-dependent tone for each alert."""

    def __init__(
        self,
        enabled: bool = True,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        player: Optional[Callable[[np.ndarray, int], None]] = None
    ):
        """
        Initialize the notifier.

        Args:
            enabled: When False every alert is ignored
            sample_rate: Playback sample rate
            player: Callable(samples, sample_rate); defaults to sounddevice
        """
        self.enabled = enabled
        self.sample_rate = sample_rate
        self.player = player or _play_with_sounddevice
        self.tones_played = 0
        self.failures = 0
        self.logger = logging.getLogger(__name__)

    def tone_for(self, severity: AlertSeverity) -> Tuple[float, float]:
        return SEVERITY_TONES[severity]

    def handle_alert(self, alert: SuspiciousAlert) -> bool:
        if not self.enabled:
            return False

        frequency, duration = self.tone_for(alert.severity)
        try:
            samples = synthesize_tone(frequency, duration, self.sample_rate)
            self.player(samples, self.sample_rate)
            self.tones_played += 1
            return True
        except Exception as e:
            self.failures += 1
            self.logger.warning(f"Could not play alert tone: {e}")
            return False
