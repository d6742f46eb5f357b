"""
Preview rendering and frame encoding.

The live preview is the camera frame scaled to cover a square canvas
(aspect ratio preserved, overflow cropped evenly on both sides) and clipped
to a circle. Captured frames are encoded at full resolution as PNG data URLs.
"""

import math
from typing import Dict, Tuple

import cv2
import numpy as np

from proctoring_engine.alerts import PreviewIndicator
from shared_utils.common import clamp
from shared_utils.file_utils import encode_data_url


# BGR
BACKGROUND_COLOR = (246, 244, 243)
INDICATOR_COLORS: Dict[str, Tuple[int, int, int]] = {
    'red': (68, 68, 239),
    'yellow': (8, 179, 234),
    'blue': (246, 130, 59),
    'green': (94, 197, 34),
    'gray': (175, 163, 156),
}


def compute_cover_geometry(source_width: int, source_height: int, size: int) -> Tuple[int, int, int, int]:
    """
    Compute how a frame is drawn to fill a square canvas.

    Args:
        source_width: Frame width in pixels
        source_height: Frame height in pixels
        size: Side of the square canvas

    Returns:
        (draw_width, draw_height, draw_x, draw_y); the offsets are <= 0 and
        centre the scaled frame on the canvas
    """
    if source_width <= 0 or source_height <= 0:
        raise ValueError(f"Invalid frame size {source_width}x{source_height}")

    aspect_ratio = source_width / source_height
    if aspect_ratio > 1:
        draw_height = size
        draw_width = max(size, math.ceil(size * aspect_ratio))
    else:
        draw_width = size
        draw_height = max(size, math.ceil(size / aspect_ratio))

    draw_x = -((draw_width - size) // 2)
    draw_y = -((draw_height - size) // 2)
    return draw_width, draw_height, draw_x, draw_y


def circular_mask(size: int) -> np.ndarray:
    """Boolean mask of the circle inscribed in a size x size square."""
    mask = np.zeros((size, size), dtype=np.uint8)
    cv2.circle(mask, (size // 2, size // 2), size // 2, 255, thickness=-1)
    return mask.astype(bool)


def render_circular_preview(
    frame: np.ndarray,
    size: int,
    background: Tuple[int, int, int] = BACKGROUND_COLOR
) -> np.ndarray:
    """
    Render a frame into a circular preview.

    Args:
        frame: BGR frame from the camera
        size: Side of the square preview in pixels
        background: BGR colour outside the circle

    Returns:
        size x size x 3 uint8 image
    """
    source_height, source_width = frame.shape[:2]
    draw_width, draw_height, draw_x, draw_y = compute_cover_geometry(source_width, source_height, size)

    scaled = cv2.resize(frame, (draw_width, draw_height), interpolation=cv2.INTER_AREA)
    if scaled.ndim == 2:
        scaled = cv2.cvtColor(scaled, cv2.COLOR_GRAY2BGR)
    cropped = scaled[-draw_y:-draw_y + size, -draw_x:-draw_x + size]

    preview = np.empty((size, size, 3), dtype=np.uint8)
    preview[:] = background
    mask = circular_mask(size)
    preview[mask] = cropped[mask]
    return preview


def draw_indicator_ring(
    preview: np.ndarray,
    indicator: PreviewIndicator,
    thickness: int = 4,
    pulse_phase: float = 1.0
) -> np.ndarray:
    """
    Draw the status ring around a circular preview.

    Pulsing indicators fade with pulse_phase in [0, 1].
    """
    size = preview.shape[0]
    color = np.array(INDICATOR_COLORS.get(indicator.color, INDICATOR_COLORS['gray']), dtype=np.float64)
    if indicator.pulsing:
        color = color * (0.5 + 0.5 * clamp(pulse_phase, 0.0, 1.0))

    output = preview.copy()
    cv2.circle(
        output,
        (size // 2, size // 2),
        size // 2 - thickness // 2,
        tuple(int(c) for c in color),
        thickness=thickness,
    )
    return output


def encode_frame_data_url(frame: np.ndarray, extension: str = '.png') -> str:
    """
    Encode a full-resolution frame as a base64 data URL.

    Raises:
        ValueError: If OpenCV cannot encode the frame
    """
    success, encoded = cv2.imencode(extension, frame)
    if not success:
        raise ValueError(f"Failed to encode frame as {extension}")

    mime_type = 'image/png' if extension == '.png' else 'image/jpeg'
    return encode_data_url(encoded.tobytes(), mime_type)
