"""Windows bitmap encoder for e-ink controllers.

E-ink firmware parses the classic BITMAPINFOHEADER layout strictly, so the
header widths, little-endian byte order and 4-byte row padding below are a
wire format, not an implementation detail. Pillow cannot write 2-bit or
grayscale-indexed 4-bit bitmaps, hence the hand-rolled packing.

Layout::

    BITMAPFILEHEADER   14 bytes
    BITMAPINFOHEADER   40 bytes
    color table        4 * 2**bpp bytes (bpp <= 8 only), grayscale BGRA
    pixel rows         bottom-to-top, each padded to a multiple of 4 bytes
"""

import struct

from errors import EncodingError

FILE_HEADER = struct.Struct("<2sIHHI")
INFO_HEADER = struct.Struct("<IiiHHIIiiII")

SUPPORTED_DEPTHS = (1, 2, 4, 8, 24)
PIXELS_PER_METER = 2835  # 72 DPI
BI_RGB = 0


def row_size(width: int, bits_per_pixel: int) -> int:
    """Bytes per stored row, padded to a 4-byte boundary."""
    return ((width * bits_per_pixel + 31) // 32) * 4


def palette_size(bits_per_pixel: int) -> int:
    return 1 << bits_per_pixel if bits_per_pixel <= 8 else 0


def grayscale_palette(bits_per_pixel: int) -> bytes:
    """Evenly spaced gray levels from black to white, as BGRA quads."""
    count = palette_size(bits_per_pixel)
    table = bytearray()
    for i in range(count):
        level = (i * 255) // (count - 1)
        table += bytes((level, level, level, 0))
    return bytes(table)


class BMPEncoder:
    def __init__(self, width: int, height: int, bits_per_pixel: int):
        if bits_per_pixel not in SUPPORTED_DEPTHS:
            raise EncodingError(f"Unsupported bit depth: {bits_per_pixel}")
        if width <= 0 or height <= 0:
            raise EncodingError(f"Invalid bitmap size: {width}x{height}")
        self.width = width
        self.height = height
        self.bits_per_pixel = bits_per_pixel

    @property
    def row_size(self) -> int:
        return row_size(self.width, self.bits_per_pixel)

    def encode(self, data: bytes) -> bytes:
        """
        Encode raw samples into a complete bitmap file.

        For depths up to 8, ``data`` holds one 8-bit gray sample per pixel,
        top row first; the palette index is the sample's top ``bpp`` bits.
        For 24 bit, ``data`` holds RGB triplets, stored as BGR.
        """
        channels = 3 if self.bits_per_pixel == 24 else 1
        expected = self.width * self.height * channels
        if len(data) < expected:
            raise EncodingError(
                f"Pixel buffer too short: got {len(data)} bytes, need {expected}"
            )

        palette = grayscale_palette(self.bits_per_pixel) if self.bits_per_pixel <= 8 else b""
        stride = self.row_size
        image_size = stride * self.height
        pixel_offset = FILE_HEADER.size + INFO_HEADER.size + len(palette)

        out = bytearray()
        out += FILE_HEADER.pack(b"BM", pixel_offset + image_size, 0, 0, pixel_offset)
        out += INFO_HEADER.pack(
            INFO_HEADER.size,
            self.width,
            self.height,  # positive: rows stored bottom-up
            1,
            self.bits_per_pixel,
            BI_RGB,
            image_size,
            PIXELS_PER_METER,
            PIXELS_PER_METER,
            palette_size(self.bits_per_pixel),
            0,
        )
        out += palette

        line = self.width * channels
        for y in range(self.height - 1, -1, -1):
            row = data[y * line:(y + 1) * line]
            packed = self._pack_row(row)
            out += packed
            out += bytes(stride - len(packed))

        return bytes(out)

    def _pack_row(self, row: bytes) -> bytes:
        bpp = self.bits_per_pixel
        if bpp == 24:
            packed = bytearray(len(row))
            packed[0::3] = row[2::3]
            packed[1::3] = row[1::3]
            packed[2::3] = row[0::3]
            return bytes(packed)
        if bpp == 8:
            return bytes(row)

        per_byte = 8 // bpp
        count = (len(row) + per_byte - 1) // per_byte
        row = bytes(row) + bytes(count * per_byte - len(row))
        # Pixel k of every byte group lands on its own bits, so OR-ing the
        # shifted slices as big integers packs the whole row at once.
        acc = 0
        for k, table in enumerate(_PACK_TABLES[bpp]):
            acc |= int.from_bytes(row[k::per_byte].translate(table), "big")
        return acc.to_bytes(count, "big")


# sample -> palette index shifted into the bits of pixel k within a byte,
# leftmost pixel in the highest bits
_PACK_TABLES = {
    bpp: [
        bytes((sample >> (8 - bpp)) << (8 - bpp * (k + 1)) for sample in range(256))
        for k in range(8 // bpp)
    ]
    for bpp in (1, 2, 4)
}
