import io
import struct

import pytest
from PIL import Image

from errors import EncodingError
from services.bmp import BMPEncoder, grayscale_palette, row_size


def _headers(data):
    magic, file_size, _, _, offset = struct.unpack_from("<2sIHHI", data, 0)
    info = struct.unpack_from("<IiiHHIIiiII", data, 14)
    return magic, file_size, offset, info


class TestRowSize:
    @pytest.mark.parametrize(
        "width,bpp,expected",
        [
            (3, 24, 12),
            (1, 1, 4),
            (32, 1, 4),
            (33, 1, 8),
            (5, 2, 4),
            (9, 4, 8),
            (4, 8, 4),
            (5, 8, 8),
        ],
    )
    def test_padded_to_four_bytes(self, width, bpp, expected):
        assert row_size(width, bpp) == expected


class TestPalette:
    def test_two_bit_levels(self):
        assert grayscale_palette(2) == bytes(
            [0, 0, 0, 0, 85, 85, 85, 0, 170, 170, 170, 0, 255, 255, 255, 0]
        )

    def test_sizes(self):
        assert len(grayscale_palette(1)) == 8
        assert len(grayscale_palette(8)) == 1024


class TestHeaders:
    def test_one_bit_layout(self):
        data = BMPEncoder(3, 2, 1).encode(bytes(6))
        magic, file_size, offset, info = _headers(data)

        assert magic == b"BM"
        assert offset == 14 + 40 + 8
        assert file_size == len(data) == offset + 4 * 2
        size, width, height, planes, bpp, compression, image_size, xppm, yppm, used, important = info
        assert (size, width, height, planes, bpp) == (40, 3, 2, 1, 1)
        assert compression == 0
        assert image_size == 8
        assert (xppm, yppm) == (2835, 2835)
        assert used == 2
        assert important == 0

    def test_24_bit_has_no_palette(self):
        data = BMPEncoder(3, 1, 24).encode(bytes(9))
        _, file_size, offset, info = _headers(data)
        assert offset == 54
        assert info[4] == 24
        assert info[9] == 0
        assert file_size == 54 + 12


class TestPixelData:
    def test_24_bit_rows_are_bgr_and_padded(self):
        rgb = bytes([1, 2, 3, 4, 5, 6, 7, 8, 9])
        data = BMPEncoder(3, 1, 24).encode(rgb)
        assert data[54:] == bytes([3, 2, 1, 6, 5, 4, 9, 8, 7, 0, 0, 0])

    def test_rows_stored_bottom_up(self):
        # top row black, bottom row white
        samples = bytes([0, 0, 255, 255])
        data = BMPEncoder(2, 2, 8).encode(samples)
        offset = 14 + 40 + 1024
        assert data[offset:offset + 4] == bytes([255, 255, 0, 0])
        assert data[offset + 4:offset + 8] == bytes([0, 0, 0, 0])

    def test_two_bit_packing_msb_first(self):
        data = BMPEncoder(4, 1, 2).encode(bytes([0, 85, 170, 255]))
        offset = 14 + 40 + 16
        assert data[offset:] == bytes([0b00011011, 0, 0, 0])

    def test_four_bit_packing(self):
        data = BMPEncoder(3, 1, 4).encode(bytes([255, 0, 136]))
        offset = 14 + 40 + 64
        assert data[offset:] == bytes([0xF0, 0x80, 0, 0])

    def test_one_bit_round_trip(self):
        width, height = 3, 2
        samples = bytes([0, 255, 0, 255, 255, 0])
        data = BMPEncoder(width, height, 1).encode(samples)

        img = Image.open(io.BytesIO(data))
        assert img.size == (width, height)
        assert [255 if v else 0 for v in img.getdata()] == list(samples)

    def test_eight_bit_round_trip(self):
        width, height = 5, 3
        samples = bytes(range(0, 15 * 17, 17))
        data = BMPEncoder(width, height, 8).encode(samples)

        img = Image.open(io.BytesIO(data)).convert("L")
        assert img.size == (width, height)
        assert list(img.getdata()) == list(samples)


class TestErrors:
    def test_unsupported_depth(self):
        with pytest.raises(EncodingError):
            BMPEncoder(10, 10, 16)

    def test_invalid_size(self):
        with pytest.raises(EncodingError):
            BMPEncoder(0, 10, 8)

    def test_short_buffer(self):
        with pytest.raises(EncodingError, match="too short"):
            BMPEncoder(4, 4, 24).encode(bytes(10))
