"""
TravelDiary Backend: Image Normalization Service
=================================================

What:  Turns arbitrary photo bytes into a bounded, compressed, self-contained
       data URL (`data:image/jpeg;base64,...`).
How:   Pillow decode → EXIF orientation → aspect-preserving downscale so the
       longer side fits `max_dimension` → JPEG re-encode at a fixed quality →
       base64 data URL.
Who:   POST /api/images (through a thread pool) and the capture session.
When:  Before an entry is submitted; the entry only ever stores the output.

Processing Pipeline:
    ┌──────────┐   ┌───────────┐   ┌──────────┐   ┌──────────┐   ┌──────────┐
    │  bytes   │──▶│  decode   │──▶│  resize  │──▶│  JPEG 70 │──▶│ data URL │
    └──────────┘   │ + orient  │   │ ≤ 800px  │   └──────────┘   └──────────┘
                   └───────────┘   └──────────┘
    Decode failure → ImageDecodeError, encode failure → ImageEncodeError.
    Both are terminal; nothing is retried and no entry is created.

Sizing rule:
    The larger of width/height is scaled to max_dimension and the other side
    follows the aspect ratio. Images already within the bound keep their
    dimensions but are still re-encoded.

CPU-bound:
    Everything here is synchronous and touches no disk or network. Async
    callers run it with run_in_threadpool / asyncio.to_thread so decoding a
    12MP photo does not stall the event loop.
"""

import base64
import io
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from travel_diary.exceptions import ImageDecodeError, ImageEncodeError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_DIMENSION = 800
DEFAULT_QUALITY = 70
OUTPUT_MIME_TYPE = "image/jpeg"

# Pillow format names accepted as input. Camera captures arrive as JPEG
# (MPO for some multi-frame phone JPEGs); file-picker uploads may be any.
SUPPORTED_INPUT_FORMATS = {"JPEG", "MPO", "PNG", "WEBP", "GIF", "BMP"}


@dataclass(frozen=True)
class NormalizedImage:
    """Output of a normalization with the numbers callers tend to display."""

    data_url: str
    width: int
    height: int
    original_width: int
    original_height: int
    size_bytes: int
    source_format: str


def compute_target_size(width: int, height: int, max_dimension: int) -> Tuple[int, int]:
    """
    Scale (width, height) so the larger side is at most `max_dimension`.

    Returns the input unchanged when it already fits. Each side is at least 1px.
    """
    if max_dimension <= 0:
        raise ValueError(f"max_dimension must be positive, got {max_dimension}")

    longest = max(width, height)
    if longest <= max_dimension:
        return width, height

    scale = max_dimension / longest
    return max(1, round(width * scale)), max(1, round(height * scale))


class ImageService:
    """
    Validates and normalizes uploaded or captured images.

    Args:
        max_dimension:   Default bound for the longer side in pixels.
        quality:         JPEG quality (Pillow scale 1-95).
        max_upload_size: Largest raw payload accepted by `validate_upload`.
    """

    def __init__(
        self,
        max_dimension: int = DEFAULT_MAX_DIMENSION,
        quality: int = DEFAULT_QUALITY,
        max_upload_size: Optional[int] = None,
    ):
        self.max_dimension = max_dimension
        self.quality = quality
        self.max_upload_size = max_upload_size

    # ── Upload Validation ─────────────────────────────────────────────────

    def validate_upload(self, content: bytes, content_length: Optional[int] = None) -> None:
        """
        Reject empty or oversized uploads before any decoding happens.

        Checks the declared Content-Length first, then the actual byte count
        (clients can declare one size and send another).
        """
        if not content:
            raise ValidationError(message="The uploaded file is empty.", field="file")

        if self.max_upload_size is None:
            return

        max_mb = self.max_upload_size / (1024 * 1024)
        if content_length and content_length > self.max_upload_size:
            raise ValidationError(
                message=f"File size exceeds maximum of {max_mb:.0f}MB. Please upload a smaller image.",
                field="file",
                context={"max_size_mb": max_mb, "reported_size": content_length},
            )
        if len(content) > self.max_upload_size:
            raise ValidationError(
                message=f"File size ({len(content) / (1024 * 1024):.1f}MB) exceeds maximum of {max_mb:.0f}MB.",
                field="file",
                context={"max_size_mb": max_mb, "actual_size": len(content)},
            )

    # ── Normalization ─────────────────────────────────────────────────────

    def normalize(self, raw_image: bytes, max_dimension: Optional[int] = None) -> str:
        """
        Normalize `raw_image` and return the data URL.

        Raises:
            ImageDecodeError:  bytes are not a readable image
            ImageEncodeError:  JPEG encoding failed
            ValidationError:   decoded format is not accepted
        """
        return self.normalize_with_info(raw_image, max_dimension).data_url

    def normalize_with_info(self, raw_image: bytes, max_dimension: Optional[int] = None) -> NormalizedImage:
        """Same as `normalize()`, also reporting original and final dimensions."""
        bound = max_dimension if max_dimension is not None else self.max_dimension
        if bound <= 0:
            raise ValidationError(
                message=f"maxDimension must be a positive integer, got {bound}",
                field="maxDimension",
            )

        image, source_format = self._decode(raw_image)
        # Every image object created along the way, closed together at the end
        stages = [image]
        try:
            original_size = image.size
            target_size = compute_target_size(image.width, image.height, bound)

            if image.mode != "RGB":
                # JPEG has no alpha channel; transparent areas become black,
                # the same as a browser canvas export.
                image = image.convert("RGB")
                stages.append(image)
            if target_size != image.size:
                image = image.resize(target_size, Image.Resampling.LANCZOS)
                stages.append(image)

            encoded = self._encode(image)
        finally:
            for stage in stages:
                stage.close()

        data_url = f"data:{OUTPUT_MIME_TYPE};base64,{base64.b64encode(encoded).decode('ascii')}"

        logger.info(
            "Image normalized: %s %dx%d -> %dx%d, %d -> %d bytes",
            source_format,
            original_size[0],
            original_size[1],
            target_size[0],
            target_size[1],
            len(raw_image),
            len(encoded),
        )

        return NormalizedImage(
            data_url=data_url,
            width=target_size[0],
            height=target_size[1],
            original_width=original_size[0],
            original_height=original_size[1],
            size_bytes=len(encoded),
            source_format=source_format,
        )

    def _decode(self, raw_image: bytes) -> Tuple[Image.Image, str]:
        """
        Fully decode `raw_image` into a Pillow image with EXIF orientation applied.

        Image.open() is lazy; load() forces the pixel decode so truncated
        files fail here and not halfway through the resize.
        """
        if not raw_image:
            raise ImageDecodeError(message="The image is empty", context={"size": 0})

        try:
            image = Image.open(io.BytesIO(raw_image))
            source_format = image.format or "UNKNOWN"
            image.load()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, SyntaxError) as e:
            logger.warning("Image decode failed: %s", str(e))
            raise ImageDecodeError(context={"error": str(e), "size": len(raw_image)})

        if source_format not in SUPPORTED_INPUT_FORMATS:
            image.close()
            raise ValidationError(
                message=(
                    f"Image format '{source_format}' is not supported. "
                    f"Allowed: {', '.join(sorted(SUPPORTED_INPUT_FORMATS))}"
                ),
                field="file",
                context={"format": source_format},
            )

        try:
            oriented = ImageOps.exif_transpose(image)
        except (OSError, ValueError, SyntaxError) as e:
            image.close()
            raise ImageDecodeError(context={"error": str(e), "stage": "exif_transpose"})
        if oriented is not image:
            image.close()
        return oriented, source_format

    def _encode(self, image: Image.Image) -> bytes:
        buffer = io.BytesIO()
        try:
            image.save(buffer, format="JPEG", quality=self.quality, optimize=True)
        except (OSError, ValueError) as e:
            logger.error("JPEG encode failed for %dx%d image: %s", image.width, image.height, str(e))
            raise ImageEncodeError(context={"error": str(e)})
        return buffer.getvalue()
