"""Tests for element kinds and dtype descriptors."""

import numpy as np
import pytest

from npzcodec.dtypes import (
    ElementKind,
    byte_order_marker,
    class_code_and_width,
    kind_from_code_and_width,
    kind_from_numpy,
)
from npzcodec.errors import NpzCodecError, UnknownDtype


USABLE_KINDS = [k for k in ElementKind if k is not ElementKind.VOID]


class TestDescriptorTable:
    @pytest.mark.parametrize("kind,expected", [
        (ElementKind.INT8, ("i", 1)),
        (ElementKind.INT64, ("i", 8)),
        (ElementKind.UINT16, ("u", 2)),
        (ElementKind.FLOAT32, ("f", 4)),
        (ElementKind.FLOAT64, ("f", 8)),
        (ElementKind.LONG_DOUBLE, ("f", 16)),
        (ElementKind.COMPLEX_FLOAT32, ("c", 8)),
        (ElementKind.COMPLEX_FLOAT64, ("c", 16)),
        (ElementKind.COMPLEX_LONG_DOUBLE, ("c", 32)),
        (ElementKind.BOOL, ("b", 1)),
    ])
    def test_known_pairs(self, kind, expected):
        """Each kind maps to its fixed (class code, width) pair."""
        assert class_code_and_width(kind) == expected

    def test_inverse_for_every_kind(self):
        """kind_from_code_and_width undoes class_code_and_width."""
        for kind in USABLE_KINDS:
            code, width = class_code_and_width(kind)
            assert kind_from_code_and_width(code, width) is kind

    def test_pairs_are_unique(self):
        """No two kinds share a descriptor."""
        pairs = [class_code_and_width(k) for k in USABLE_KINDS]
        assert len(set(pairs)) == len(pairs)

    def test_void_has_no_descriptor(self):
        """VOID raises UnknownDtype, which is also a ValueError."""
        with pytest.raises(UnknownDtype):
            class_code_and_width(ElementKind.VOID)
        with pytest.raises(ValueError):
            class_code_and_width(ElementKind.VOID)

    @pytest.mark.parametrize("code,width", [("i", 3), ("f", 2), ("c", 4), ("b", 2), ("U", 4)])
    def test_unknown_pair(self, code, width):
        """Unsupported pairs raise with the descriptor as the actual value."""
        with pytest.raises(UnknownDtype) as exc_info:
            kind_from_code_and_width(code, width)
        assert exc_info.value.actual == f"{code}{width}"
        assert isinstance(exc_info.value, NpzCodecError)

    def test_kind_properties(self):
        """class_code and width properties agree with the table."""
        assert ElementKind.UINT32.class_code == "u"
        assert ElementKind.UINT32.width == 4


class TestNumpyMapping:
    @pytest.mark.parametrize("dtype,kind", [
        (np.int8, ElementKind.INT8),
        (np.int32, ElementKind.INT32),
        (np.uint64, ElementKind.UINT64),
        (np.float32, ElementKind.FLOAT32),
        (np.float64, ElementKind.FLOAT64),
        (np.complex64, ElementKind.COMPLEX_FLOAT32),
        (np.complex128, ElementKind.COMPLEX_FLOAT64),
        (np.bool_, ElementKind.BOOL),
    ])
    def test_kind_from_numpy(self, dtype, kind):
        """Fixed-width NumPy dtypes map to their kinds."""
        assert kind_from_numpy(dtype) is kind

    def test_big_endian_numpy_dtype_maps_by_kind(self):
        """Byte order is not part of the kind."""
        assert kind_from_numpy(np.dtype(">f8")) is ElementKind.FLOAT64

    def test_numpy_dtype_is_little_endian(self):
        """numpy_dtype carries the on-disk descriptor."""
        assert ElementKind.FLOAT64.numpy_dtype.str == "<f8"
        assert ElementKind.UINT8.numpy_dtype.str == "|u1"
        assert ElementKind.BOOL.numpy_dtype.str == "|b1"

    def test_float16_is_rejected(self):
        """Half floats have no element kind."""
        with pytest.raises(UnknownDtype):
            kind_from_numpy(np.float16)


class TestByteOrderMarker:
    def test_single_byte_has_no_order(self):
        assert byte_order_marker(1) == "|"

    @pytest.mark.parametrize("width", [2, 4, 8, 16, 32])
    def test_multi_byte_is_little_endian(self, width):
        assert byte_order_marker(width) == "<"
