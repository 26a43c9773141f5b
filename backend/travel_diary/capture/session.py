"""
TravelDiary Backend: Capture Session
=====================================

What:  Client-side coordination of the two ways to get a photo into an
       entry: picking an existing file, or grabbing a frame from a live
       camera. Whichever mode wins produces one RawImage for the image
       service.
How:   A small state machine plus an exclusive camera lease.

State Machine:
                 begin_file_pick()            select_file()
        ┌──────┐ ─────────────────▶ ┌─────────────┐ ───────────▶ ┌───────────┐
        │ Idle │                    │ FilePicking │              │ HasImage  │
        └──────┘ ◀───────────────── └─────────────┘              └───────────┘
          ▲  │    cancel_file_pick()                               ▲    │
          │  │ open_camera()   ┌──────────────┐  capture_photo()   │    │
          │  └───────────────▶ │ CameraActive │ ───────────────────┘    │
          │ ◀───────────────── └──────────────┘                         │
          │    cancel_camera()                                          │
          └──────────────────────────────────────────────────────────────┘
                                   remove_image()

    Entering either mode discards a pending preview image.

Camera discipline:
    The camera is acquired in open_camera() and released on every way out
    of CameraActive: capture_photo() (success or failure), cancel_camera(),
    switching to file mode, close(), and the `camera()` context manager.
    A CameraLease is shared by all sessions of one client; only one of them
    can hold the device at a time.
"""

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional

from travel_diary.exceptions import ResourceAcquisitionError
from travel_diary.services.image_service import ImageService

logger = logging.getLogger(__name__)

CAMERA_CAPTURE_FILENAME = "camera-capture.jpg"


class CaptureState(str, Enum):
    IDLE = "idle"
    FILE_PICKING = "file_picking"
    CAMERA_ACTIVE = "camera_active"
    HAS_IMAGE = "has_image"


class ImageSource(str, Enum):
    FILE = "file"
    CAMERA = "camera"


class CaptureStateError(RuntimeError):
    """An operation was called in a state that does not allow it."""


@dataclass(frozen=True)
class RawImage:
    """Unprocessed image bytes as acquired, before normalization."""

    content: bytes
    filename: str
    source: ImageSource
    content_type: Optional[str] = None


class CameraDevice(ABC):
    """
    A capture device (webcam, phone camera).

    Implementations raise OSError (PermissionError included) or
    ResourceAcquisitionError when the device cannot be used.
    """

    @abstractmethod
    def start(self) -> None:
        """Open the device stream."""
        ...

    @abstractmethod
    def capture_frame(self) -> bytes:
        """Return one still frame, encoded (JPEG), at native resolution."""
        ...

    @abstractmethod
    def stop(self) -> None:
        """Stop every track of the device stream."""
        ...


class CameraLease:
    """
    Exclusive ownership of one CameraDevice.

    Thread-safe: acquisition uses a non-blocking lock, so a second session
    asking for a busy camera fails immediately instead of waiting.
    """

    def __init__(self, device: CameraDevice):
        self.device = device
        self._lock = threading.Lock()
        self._owner: Optional[object] = None

    @property
    def owner(self) -> Optional[object]:
        return self._owner

    def acquire(self, owner: object) -> None:
        if not self._lock.acquire(blocking=False):
            raise ResourceAcquisitionError(
                message="The camera is already in use by another capture session",
            )
        started = False
        try:
            self.device.start()
            started = True
        except OSError as e:
            logger.warning("Camera start failed: %s", str(e))
            raise ResourceAcquisitionError(
                message="Unable to access your camera",
                context={"error": str(e), "error_type": type(e).__name__},
            )
        finally:
            # Whatever start() raised, the lock must not outlive the failure
            if not started:
                self._lock.release()
        self._owner = owner

    def release(self, owner: object) -> None:
        """Stop the device if `owner` holds it. Safe to call repeatedly."""
        if self._owner is not owner:
            return
        try:
            self.device.stop()
        finally:
            self._owner = None
            self._lock.release()


class CaptureSession:
    """
    One image-acquisition flow (one upload form).

    Args:
        camera: Lease on the client's camera, or None when no camera exists.

    Usage:
        with CaptureSession(lease) as session:
            session.open_camera()
            raw = session.capture_photo()
            data_url = await session.normalize_image(image_service)
    """

    def __init__(self, camera: Optional[CameraLease] = None):
        self._camera = camera
        self._state = CaptureState.IDLE
        self._image: Optional[RawImage] = None
        self._closed = False
        # Bumped whenever the pending image changes or is discarded;
        # normalization results for an older generation are dropped.
        self._generation = 0

    # ── Introspection ─────────────────────────────────────────────────────

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def image(self) -> Optional[RawImage]:
        return self._image

    @property
    def holds_camera(self) -> bool:
        return self._camera is not None and self._camera.owner is self

    @property
    def closed(self) -> bool:
        return self._closed

    # ── File Mode ─────────────────────────────────────────────────────────

    def begin_file_pick(self) -> None:
        self._ensure_open()
        self._release_camera()
        self._discard_image()
        self._state = CaptureState.FILE_PICKING

    def cancel_file_pick(self) -> None:
        self._ensure_open()
        if self._state is CaptureState.FILE_PICKING:
            self._state = CaptureState.IDLE

    def select_file(self, content: bytes, filename: str, content_type: Optional[str] = None) -> RawImage:
        """
        Accept a picked file as the pending image.

        Also valid from Idle or HasImage (a file input can fire without an
        explicit begin_file_pick); an active camera is released first.
        """
        self._ensure_open()
        if not content:
            raise ResourceAcquisitionError(
                message="The selected file could not be read",
                resource="file",
                context={"filename": filename},
            )
        self._release_camera()
        image = RawImage(
            content=content,
            filename=filename,
            source=ImageSource.FILE,
            content_type=content_type,
        )
        self._set_image(image)
        return image

    # ── Camera Mode ───────────────────────────────────────────────────────

    def open_camera(self) -> None:
        """
        Acquire the camera and enter CameraActive.

        On failure the session keeps its previous state and pending image.
        """
        self._ensure_open()
        if self._state is CaptureState.CAMERA_ACTIVE:
            return
        if self._camera is None:
            raise ResourceAcquisitionError(message="Camera access is not supported on this device")

        self._camera.acquire(self)
        self._discard_image()
        self._state = CaptureState.CAMERA_ACTIVE
        logger.debug("Camera opened")

    def capture_photo(self) -> RawImage:
        """
        Grab one frame and release the camera, whatever happens.

        Raises:
            CaptureStateError: the camera is not active.
            ResourceAcquisitionError: the frame could not be captured; the
                session returns to Idle.
        """
        self._ensure_open()
        if self._state is not CaptureState.CAMERA_ACTIVE or self._camera is None:
            raise CaptureStateError(f"capture_photo() requires an active camera, state is {self._state.value}")

        try:
            frame = self._camera.device.capture_frame()
        except OSError as e:
            self._state = CaptureState.IDLE
            raise ResourceAcquisitionError(
                message="Unable to capture a photo",
                context={"error": str(e)},
            )
        finally:
            self._release_camera()

        if not frame:
            self._state = CaptureState.IDLE
            raise ResourceAcquisitionError(message="The camera returned an empty frame")

        image = RawImage(
            content=frame,
            filename=CAMERA_CAPTURE_FILENAME,
            source=ImageSource.CAMERA,
            content_type="image/jpeg",
        )
        self._set_image(image)
        logger.debug("Captured %d byte frame", len(frame))
        return image

    def cancel_camera(self) -> None:
        """Stop the camera without capturing. No-op outside CameraActive."""
        self._release_camera()

    @contextmanager
    def camera(self) -> Iterator["CaptureSession"]:
        """
        Scoped camera: opened on entry, released on exit unless a photo was
        captured inside the block (capture releases it already).
        """
        self.open_camera()
        try:
            yield self
        finally:
            self.cancel_camera()

    # ── Pending Image ─────────────────────────────────────────────────────

    def remove_image(self) -> None:
        self._ensure_open()
        if self._state is CaptureState.HAS_IMAGE:
            self._discard_image()
            self._state = CaptureState.IDLE

    async def normalize_image(
        self,
        image_service: ImageService,
        max_dimension: Optional[int] = None,
    ) -> Optional[str]:
        """
        Normalize the pending image in a worker thread.

        Returns the data URL, or None when the image was removed/replaced or
        the session closed while normalization ran (the result is discarded).
        Image errors propagate and leave the pending image in place so the
        user can retry or pick another one.
        """
        self._ensure_open()
        if self._state is not CaptureState.HAS_IMAGE or self._image is None:
            raise CaptureStateError(f"normalize_image() requires a pending image, state is {self._state.value}")

        generation = self._generation
        data_url = await asyncio.to_thread(image_service.normalize, self._image.content, max_dimension)

        if self._closed or generation != self._generation:
            logger.debug("Discarding stale normalization result")
            return None
        return data_url

    # ── Teardown ──────────────────────────────────────────────────────────

    def close(self) -> None:
        """Release everything. Idempotent."""
        if self._closed:
            return
        try:
            self._release_camera()
        finally:
            self._discard_image()
            self._state = CaptureState.IDLE
            self._closed = True

    def __enter__(self) -> "CaptureSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ── Internals ─────────────────────────────────────────────────────────

    def _ensure_open(self) -> None:
        if self._closed:
            raise CaptureStateError("Capture session is closed")

    def _release_camera(self) -> None:
        try:
            if self._camera is not None:
                self._camera.release(self)
        finally:
            if self._state is CaptureState.CAMERA_ACTIVE:
                self._state = CaptureState.IDLE

    def _set_image(self, image: RawImage) -> None:
        self._generation += 1
        self._image = image
        self._state = CaptureState.HAS_IMAGE

    def _discard_image(self) -> None:
        if self._image is not None:
            self._generation += 1
        self._image = None
        if self._state is CaptureState.HAS_IMAGE:
            self._state = CaptureState.IDLE
