"""
TravelDiary Backend: Capture Package
=====================================

What:  Image acquisition for the upload form: file picker vs. live camera.
       Produces the raw bytes handed to ImageService.normalize().
"""

from travel_diary.capture.session import (
    CameraDevice,
    CameraLease,
    CaptureSession,
    CaptureState,
    CaptureStateError,
    ImageSource,
    RawImage,
)

__all__ = [
    "CameraDevice",
    "CameraLease",
    "CaptureSession",
    "CaptureState",
    "CaptureStateError",
    "ImageSource",
    "RawImage",
]
