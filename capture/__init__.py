"""
Capture components module for the Exam Proctoring Client.

This module contains camera access, the circular preview renderer and the
randomized capture loop.
"""

from .camera import CaptureSession, OpenCVCamera
from .capture_controller import CaptureLoopController

__all__ = [
    'CaptureSession',
    'OpenCVCamera',
    'CaptureLoopController'
]
