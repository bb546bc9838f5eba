"""Post-processing of captured frames into output images."""

import io
import logging
from typing import Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from errors import EncodingError
from models import OutputImage
from services.bmp import BMPEncoder

logger = logging.getLogger(__name__)

# Gray level at or above which a pixel becomes white in 2-color mode
EINK_THRESHOLD = 220

EINK_BIT_DEPTHS = {2: 1, 4: 2, 16: 4, 256: 8}

# Clockwise rotation in degrees -> lossless transpose
_ROTATIONS = {
    90: Image.Transpose.ROTATE_270,
    180: Image.Transpose.ROTATE_180,
    270: Image.Transpose.ROTATE_90,
}


def threshold(img: Image.Image, level: int = EINK_THRESHOLD, invert: bool = False) -> Image.Image:
    """Reduce to pure black/white on luminance, optionally negated."""
    gray = img.convert("L")
    bw = gray.point(lambda v: 255 if v >= level else 0)
    if invert:
        bw = ImageOps.invert(bw)
    return bw


def _flatten(img: Image.Image) -> Image.Image:
    if img.mode in ("RGB", "L"):
        return img
    return img.convert("RGB")


def _save(img: Image.Image, fmt: str, **params) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format=fmt, **params)
    return buf.getvalue()


def encode_bmp(img: Image.Image, bits_per_pixel: int) -> bytes:
    if bits_per_pixel == 24:
        raw = img.convert("RGB").tobytes()
    else:
        raw = img.convert("L").tobytes()
    return BMPEncoder(img.width, img.height, bits_per_pixel).encode(raw)


def process_frame(
    frame: bytes,
    format: str = "png",
    eink_colors: Optional[int] = None,
    invert: bool = False,
    rotate: Optional[int] = None,
) -> OutputImage:
    """
    Turn a raw PNG capture into the requested output format.

    Without ``eink_colors`` the frame is re-encoded as-is (after rotation).
    With 2 colors a fixed luminance threshold is applied first. For ``bmp``
    the grayscale samples go to the bitmap encoder at the depth matching the
    color count; ``png`` is palette-quantized to the color count.
    """
    try:
        img = Image.open(io.BytesIO(frame))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise EncodingError(f"Cannot decode captured frame: {e}") from e

    if eink_colors is not None and eink_colors not in EINK_BIT_DEPTHS:
        raise EncodingError(f"Unsupported e-ink color count: {eink_colors}")
    if rotate and rotate not in _ROTATIONS:
        raise EncodingError(f"Unsupported rotation: {rotate}")

    try:
        if rotate:
            img = img.transpose(_ROTATIONS[rotate])

        if eink_colors == 2:
            img = threshold(img, invert=invert)

        if format == "bmp":
            depth = EINK_BIT_DEPTHS[eink_colors] if eink_colors else 24
            data = encode_bmp(img, depth)
        elif format == "jpeg":
            data = _save(_flatten(img), "JPEG")
        elif format == "webp":
            data = _save(img, "WEBP")
        elif eink_colors:
            quantized = _flatten(img).quantize(colors=eink_colors)
            data = _save(quantized, "PNG", bits=EINK_BIT_DEPTHS[eink_colors], optimize=True)
        else:
            data = _save(img, "PNG")
    except (ValueError, OSError) as e:
        raise EncodingError(f"Cannot encode {format} image: {e}") from e

    logger.debug(
        "Processed frame %dx%d -> %s (%d colors, %d bytes)",
        img.width, img.height, format, eink_colors or 0, len(data),
    )
    return OutputImage(data=data, format=format, eink_colors=eink_colors)
