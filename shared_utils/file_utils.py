"""
File utility functions for loading binary assets.

This module provides the helpers used to fetch the enrollment reference
image from disk or over HTTP and to turn binary payloads into base64 data
URLs for the verification wire protocol.
"""

import base64
import io
import logging
from pathlib import Path
from typing import Optional, Tuple, Union

import requests
from PIL import Image, UnidentifiedImageError


logger = logging.getLogger(__name__)


def is_remote_source(source: Union[str, Path]) -> bool:
    """Return True when the source is an http(s) URL rather than a local path."""
    return isinstance(source, str) and source.lower().startswith(('http://', 'https://'))


def read_binary_source(
    source: Union[str, Path],
    session: Optional[requests.Session] = None,
    timeout: float = 5.0
) -> bytes:
    """
    Read raw bytes from a local file or an http(s) URL.

    Args:
        source: File path or URL
        session: Optional requests session used for remote sources
        timeout: Request timeout in seconds

    Returns:
        The raw bytes of the asset

    Raises:
        OSError: If a local file cannot be read
        requests.RequestException: If a remote fetch fails
    """
    if is_remote_source(source):
        http = session or requests
        response = http.get(source, timeout=timeout)
        response.raise_for_status()
        return response.content

    with open(source, 'rb') as f:
        return f.read()


def sniff_image_mime(data: bytes) -> str:
    """
    Determine the MIME type of an encoded image.

    Args:
        data: Encoded image bytes

    Returns:
        MIME type such as ``image/jpeg``

    Raises:
        ValueError: If the bytes are not a recognised image
    """
    try:
        with Image.open(io.BytesIO(data)) as image:
            image_format = image.format
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Not a recognised image: {e}") from e

    mime_type = Image.MIME.get(image_format)
    if not mime_type:
        raise ValueError(f"No MIME type known for image format {image_format}")
    return mime_type


def encode_data_url(data: bytes, mime_type: str) -> str:
    """Encode binary data as a base64 data URL."""
    encoded = base64.b64encode(data).decode('ascii')
    return f"data:{mime_type};base64,{encoded}"


def decode_data_url(data_url: str) -> Tuple[str, bytes]:
    """
    Split a base64 data URL into its MIME type and raw bytes.

    Raises:
        ValueError: If the string is not a base64 data URL
    """
    if not data_url.startswith('data:') or ';base64,' not in data_url:
        raise ValueError("Not a base64 data URL")
    header, encoded = data_url.split(',', 1)
    mime_type = header[len('data:'):].split(';', 1)[0]
    return mime_type, base64.b64decode(encoded)


def load_image_data_url(
    source: Union[str, Path],
    session: Optional[requests.Session] = None,
    timeout: float = 5.0
) -> Tuple[str, str]:
    """
    Load an image asset and encode it as a data URL.

    Args:
        source: File path or http(s) URL of the image
        session: Optional requests session for remote sources
        timeout: Request timeout in seconds

    Returns:
        Tuple of (data_url, mime_type)
    """
    data = read_binary_source(source, session=session, timeout=timeout)
    mime_type = sniff_image_mime(data)
    logger.debug(f"Loaded {len(data)} bytes of {mime_type} from {source}")
    return encode_data_url(data, mime_type), mime_type
