"""Tests for .npy load, save and append."""

import hashlib
import logging

import numpy as np
import pytest

from npzcodec.buffer import ArrayBuffer
from npzcodec.config import SaveMode
from npzcodec.dtypes import ElementKind
from npzcodec.errors import (
    DtypeMismatch,
    MalformedHeader,
    ShapeMismatch,
    ShapeRankMismatch,
    UnknownDtype,
)
from npzcodec.storage.npy_file import npy_load, npy_save, npy_save_data
from npzcodec.storage.npy_header import encode_npy_header


ROUNDTRIP_DTYPES = [
    np.int8, np.int16, np.int32, np.int64,
    np.uint8, np.uint16, np.uint32, np.uint64,
    np.float32, np.float64, np.complex64, np.complex128, np.bool_,
]


def _digest(path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


@pytest.fixture
def float_matrix():
    rng = np.random.RandomState(7)
    return rng.randn(4, 3)


class TestSaveLoad:
    @pytest.mark.parametrize("dtype", ROUNDTRIP_DTYPES)
    def test_roundtrip(self, tmp_path, dtype):
        """Saved arrays load back with identical shape, kind and bytes."""
        values = (np.arange(24) % 2 == 1) if dtype is np.bool_ else np.arange(24).astype(dtype)
        values = values.reshape(2, 3, 4)
        buf = ArrayBuffer.from_numpy(values)
        path = tmp_path / "a.npy"
        npy_save(path, buf)
        loaded = npy_load(path)
        assert loaded == buf
        assert loaded.owns_data

    @pytest.mark.parametrize("kind", [ElementKind.LONG_DOUBLE, ElementKind.COMPLEX_LONG_DOUBLE])
    def test_long_double_roundtrip(self, tmp_path, kind):
        """Long-double kinds round-trip as raw bytes, whatever NumPy's platform type."""
        data = bytes(range(256))[:3 * kind.width]
        buf = ArrayBuffer.from_bytes(data, (3,), kind)
        path = tmp_path / "ld.npy"
        npy_save(path, buf)
        loaded = npy_load(path)
        assert loaded == buf
        assert loaded.kind is kind

    def test_unsupported_dtype_names_path(self, tmp_path):
        """A float16 file has no element kind; the error names the file."""
        path = tmp_path / "half.npy"
        np.save(path, np.zeros(3, dtype=np.float16))
        with pytest.raises(UnknownDtype) as exc_info:
            npy_load(path)
        assert exc_info.value.path == str(path)
        assert exc_info.value.actual == "f2"
        assert str(path) in str(exc_info.value)

    def test_numpy_reads_our_file(self, tmp_path, float_matrix):
        """np.load reads what npy_save writes."""
        path = tmp_path / "a.npy"
        npy_save(path, ArrayBuffer.from_numpy(float_matrix))
        np.testing.assert_array_equal(np.load(path), float_matrix)

    def test_we_read_numpy_file(self, tmp_path, float_matrix):
        path = tmp_path / "a.npy"
        np.save(path, float_matrix.astype(np.float32))
        loaded = npy_load(path)
        assert loaded.kind is ElementKind.FLOAT32
        np.testing.assert_array_equal(loaded.to_numpy(), float_matrix.astype(np.float32))

    def test_file_layout(self, tmp_path):
        """File is the encoded header followed by the raw element bytes."""
        data = np.arange(6, dtype=np.float64).tobytes()
        path = tmp_path / "a.npy"
        total = npy_save_data(path, data, ElementKind.FLOAT64, 8, (2, 3))
        header = encode_npy_header(ElementKind.FLOAT64, 8, (2, 3))
        assert path.read_bytes() == header + data
        assert total == len(header) + len(data)

    def test_overwrite_replaces(self, tmp_path):
        path = tmp_path / "a.npy"
        npy_save_data(path, b"\x01" * 8, ElementKind.UINT8, 1, (8,))
        npy_save_data(path, b"\x02" * 2, ElementKind.UINT8, 1, (2,), mode=SaveMode.OVERWRITE)
        assert npy_load(path).shape == (2,)

    def test_length_mismatch(self, tmp_path):
        """Data shorter than the shape implies is rejected before writing."""
        path = tmp_path / "a.npy"
        with pytest.raises(ShapeMismatch):
            npy_save_data(path, b"\x00" * 10, ElementKind.FLOAT64, 8, (2,))
        assert not path.exists()

    def test_unknown_mode(self, tmp_path):
        with pytest.raises(ValueError):
            npy_save_data(tmp_path / "a.npy", b"\x00", ElementKind.UINT8, 1, (1,), mode="x")

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            npy_load(tmp_path / "missing.npy")

    def test_missing_ok(self, tmp_path):
        assert npy_load(tmp_path / "missing.npy", missing_ok=True) is None

    def test_truncated_payload(self, tmp_path):
        path = tmp_path / "a.npy"
        npy_save_data(path, b"\x00" * 32, ElementKind.FLOAT64, 8, (4,))
        path.write_bytes(path.read_bytes()[:-3])
        with pytest.raises(MalformedHeader):
            npy_load(path)

    def test_fortran_buffer_keeps_flag(self, tmp_path):
        """A column-major array read from disk is re-saved column-major."""
        values = np.asfortranarray(np.arange(6, dtype=np.int64).reshape(2, 3))
        src = tmp_path / "f.npy"
        np.save(src, values)
        buf = npy_load(src)
        assert buf.fortran_order
        dst = tmp_path / "g.npy"
        npy_save(dst, buf)
        reloaded = np.load(dst)
        assert reloaded.flags.f_contiguous
        np.testing.assert_array_equal(reloaded, values)


class TestAppend:
    def test_append_grows_leading_axis(self, tmp_path, float_matrix):
        """Appending concatenates along axis 0."""
        path = tmp_path / "a.npy"
        first = ArrayBuffer.from_numpy(float_matrix)
        second = ArrayBuffer.from_numpy(float_matrix[:2] * 10)
        npy_save(path, first)
        npy_save(path, second, mode="a")
        loaded = npy_load(path)
        assert loaded.shape == (6, 3)
        np.testing.assert_array_equal(
            loaded.to_numpy(), np.concatenate([float_matrix, float_matrix[:2] * 10]),
        )
        np.testing.assert_array_equal(np.load(path), loaded.to_numpy())

    def test_append_layout(self, tmp_path):
        """After append the file is new header + old bytes + new bytes."""
        path = tmp_path / "a.npy"
        a = np.arange(6, dtype=np.int32).tobytes()
        b = np.arange(6, 9, dtype=np.int32).tobytes()
        npy_save_data(path, a, ElementKind.INT32, 4, (2, 3))
        total = npy_save_data(path, b, ElementKind.INT32, 4, (1, 3), mode="a")
        header = encode_npy_header(ElementKind.INT32, 4, (3, 3))
        assert path.read_bytes() == header + a + b
        assert total == path.stat().st_size

    def test_append_creates_missing_file(self, tmp_path):
        """Append to a missing file behaves like a fresh save."""
        path = tmp_path / "new.npy"
        npy_save_data(path, b"\x05\x06", ElementKind.UINT8, 1, (2,), mode="a")
        assert npy_load(path).tobytes() == b"\x05\x06"

    def test_append_header_growth_shifts_payload(self, tmp_path, caplog):
        """When the new shape crosses a pad boundary the payload moves."""
        # Find trailing singleton dims where 9 -> 10 rows changes the header size.
        for k in range(64):
            tail = (1,) * k
            old = encode_npy_header(ElementKind.FLOAT64, 8, (9,) + tail)
            new = encode_npy_header(ElementKind.FLOAT64, 8, (10,) + tail)
            if len(old) != len(new):
                break
        else:
            pytest.fail("no header size boundary found")

        path = tmp_path / "grow.npy"
        first = np.arange(9, dtype=np.float64).reshape((9,) + tail)
        extra = np.array([99.0]).reshape((1,) + tail)
        npy_save(path, ArrayBuffer.from_numpy(first))
        assert path.stat().st_size == len(old) + first.nbytes

        with caplog.at_level(logging.DEBUG, logger="npzcodec.storage.npy_file"):
            npy_save(path, ArrayBuffer.from_numpy(extra), mode="a")
        assert "shifting payload" in caplog.text

        raw = path.read_bytes()
        assert raw[:len(new)] == new
        assert raw[len(new):] == first.tobytes() + extra.tobytes()
        np.testing.assert_array_equal(np.load(path), np.concatenate([first, extra]))

    def test_dtype_mismatch_leaves_file(self, tmp_path):
        """Appending another dtype fails and leaves the file untouched."""
        path = tmp_path / "a.npy"
        npy_save_data(path, b"\x00" * 16, ElementKind.FLOAT64, 8, (2,))
        before = _digest(path)
        with pytest.raises(DtypeMismatch) as exc_info:
            npy_save_data(path, b"\x00" * 8, ElementKind.FLOAT32, 4, (2,), mode="a")
        assert exc_info.value.expected == "<f8"
        assert exc_info.value.actual == "<f4"
        assert _digest(path) == before

    def test_same_width_other_class_rejected(self, tmp_path):
        """int64 cannot be appended to float64 even though widths match."""
        path = tmp_path / "a.npy"
        npy_save_data(path, b"\x00" * 16, ElementKind.FLOAT64, 8, (2,))
        before = _digest(path)
        with pytest.raises(DtypeMismatch):
            npy_save_data(path, b"\x00" * 8, ElementKind.INT64, 8, (1,), mode="a")
        assert _digest(path) == before

    def test_rank_mismatch_leaves_file(self, tmp_path):
        path = tmp_path / "a.npy"
        npy_save_data(path, b"\x00" * 48, ElementKind.FLOAT64, 8, (2, 3))
        before = _digest(path)
        with pytest.raises(ShapeRankMismatch) as exc_info:
            npy_save_data(path, b"\x00" * 24, ElementKind.FLOAT64, 8, (3,), mode="a")
        assert exc_info.value.expected == 2
        assert exc_info.value.actual == 1
        assert _digest(path) == before

    def test_trailing_dims_mismatch_leaves_file(self, tmp_path):
        path = tmp_path / "a.npy"
        npy_save_data(path, b"\x00" * 48, ElementKind.FLOAT64, 8, (2, 3))
        before = _digest(path)
        with pytest.raises(ShapeMismatch):
            npy_save_data(path, b"\x00" * 32, ElementKind.FLOAT64, 8, (1, 4), mode="a")
        assert _digest(path) == before

    def test_fortran_file_rejects_append(self, tmp_path):
        path = tmp_path / "f.npy"
        np.save(path, np.asfortranarray(np.ones((2, 3))))
        before = _digest(path)
        with pytest.raises(ShapeMismatch):
            npy_save_data(path, b"\x00" * 24, ElementKind.FLOAT64, 8, (1, 3), mode="a")
        assert _digest(path) == before

    def test_inconsistent_file_size(self, tmp_path):
        """A file with trailing garbage is not extended."""
        path = tmp_path / "a.npy"
        npy_save_data(path, b"\x00" * 8, ElementKind.FLOAT64, 8, (1,))
        with open(path, "ab") as fp:
            fp.write(b"junk")
        with pytest.raises(MalformedHeader):
            npy_save_data(path, b"\x00" * 8, ElementKind.FLOAT64, 8, (1,), mode="a")

    def test_repeated_appends(self, tmp_path):
        """Many small appends accumulate in order."""
        path = tmp_path / "rows.npy"
        for i in range(20):
            row = np.full((1, 2), i, dtype=np.int16)
            npy_save(path, ArrayBuffer.from_numpy(row), mode="a")
        loaded = np.load(path)
        assert loaded.shape == (20, 2)
        np.testing.assert_array_equal(loaded[:, 0], np.arange(20))
