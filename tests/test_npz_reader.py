"""Tests for reading .npz archives."""

import hashlib
import io
import zipfile

import numpy as np
import pytest

from npzcodec.config import CodecConfig
from npzcodec.dtypes import ElementKind
from npzcodec.errors import (
    ArchiveFormatError,
    ChecksumMismatch,
    DuplicateEntry,
    EntryNotFound,
    UnsupportedCompression,
)
from npzcodec.storage.npz_reader import NpzReader, npz_list, npz_load


def _npy_bytes(values: np.ndarray) -> bytes:
    fp = io.BytesIO()
    np.save(fp, values)
    return fp.getvalue()


@pytest.fixture
def numpy_archive(tmp_path):
    """Archive written by np.savez with three differently typed entries."""
    path = tmp_path / "np.npz"
    arrays = {
        "a": np.arange(12, dtype=np.int32).reshape(3, 4),
        "b": np.linspace(0, 1, 5),
        "flags": np.array([True, False, True]),
    }
    np.savez(path, **arrays)
    return path, arrays


class TestNumpyArchives:
    def test_load_all(self, numpy_archive):
        """Every np.savez entry loads with its values intact."""
        path, arrays = numpy_archive
        loaded = npz_load(path)
        assert set(loaded) == set(arrays)
        for name, values in arrays.items():
            np.testing.assert_array_equal(loaded[name].to_numpy(), values)
        assert loaded["flags"].kind is ElementKind.BOOL

    def test_load_one(self, numpy_archive):
        path, arrays = numpy_archive
        buf = npz_load(path, "b")
        assert buf.shape == (5,)
        np.testing.assert_array_equal(buf.to_numpy(), arrays["b"])

    def test_list(self, numpy_archive):
        """npz_list reports names, offsets and sizes from the directory."""
        path, arrays = numpy_archive
        entries = npz_list(path)
        assert [e.name for e in entries] == ["a", "b", "flags"]
        assert all(e.filename.endswith(".npy") for e in entries)
        with zipfile.ZipFile(path) as zf:
            for entry in entries:
                info = zf.getinfo(entry.filename)
                assert entry.offset == info.header_offset
                assert entry.size == info.file_size
                assert entry.crc32 == info.CRC

    def test_read_entry_header(self, numpy_archive):
        path, arrays = numpy_archive
        with NpzReader(path) as reader:
            headers = {e.name: reader.read_entry_header(e) for e in reader.entries()}
        assert headers["a"].shape == (3, 4)
        assert headers["a"].kind is ElementKind.INT32
        assert headers["flags"].byte_order == "|"

    def test_empty_archive(self, tmp_path):
        path = tmp_path / "empty.npz"
        np.savez(path)
        assert npz_load(path) == {}
        assert npz_list(path) == []


class TestLookup:
    def test_entry_not_found(self, numpy_archive):
        """A missing name raises EntryNotFound and leaves the file as is."""
        path, _ = numpy_archive
        before = hashlib.sha256(path.read_bytes()).hexdigest()
        with pytest.raises(EntryNotFound) as exc_info:
            npz_load(path, "nope")
        assert isinstance(exc_info.value, LookupError)
        assert exc_info.value.path == str(path)
        assert hashlib.sha256(path.read_bytes()).hexdigest() == before

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            npz_load(tmp_path / "missing.npz")

    def test_missing_ok(self, tmp_path):
        assert npz_load(tmp_path / "missing.npz", missing_ok=True) is None

    def test_reader_requires_context(self, numpy_archive):
        path, _ = numpy_archive
        with pytest.raises(ValueError):
            NpzReader(path).load_all()


class TestMalformedArchives:
    def test_duplicate_names_rejected(self, tmp_path):
        """A name stored twice raises DuplicateEntry by default."""
        path = tmp_path / "dup.npz"
        with pytest.warns(UserWarning):
            with zipfile.ZipFile(path, "w") as zf:
                zf.writestr("x.npy", _npy_bytes(np.zeros(2)))
                zf.writestr("x.npy", _npy_bytes(np.ones(3)))
        with pytest.raises(DuplicateEntry):
            npz_load(path)

    def test_duplicate_names_last_wins(self, tmp_path):
        path = tmp_path / "dup.npz"
        with pytest.warns(UserWarning):
            with zipfile.ZipFile(path, "w") as zf:
                zf.writestr("x.npy", _npy_bytes(np.zeros(2)))
                zf.writestr("x.npy", _npy_bytes(np.ones(3)))
        with pytest.warns(UserWarning, match="keeping the last one"):
            loaded = npz_load(path, config=CodecConfig(duplicate_policy="last"))
        np.testing.assert_array_equal(loaded["x"].to_numpy(), np.ones(3))

    def test_compressed_entry_rejected(self, tmp_path):
        """np.savez_compressed archives use deflate, which is not read."""
        path = tmp_path / "c.npz"
        np.savez_compressed(path, a=np.zeros(100))
        with pytest.raises(UnsupportedCompression):
            npz_load(path)

    def test_non_npy_entry(self, tmp_path):
        path = tmp_path / "other.npz"
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("readme.txt", b"hello")
        with pytest.raises(ArchiveFormatError):
            npz_load(path)

    def test_crc_mismatch(self, tmp_path):
        """A flipped payload byte is caught by the CRC32 check."""
        path = tmp_path / "crc.npz"
        np.savez(path, a=np.arange(8, dtype=np.uint8))
        raw = bytearray(path.read_bytes())
        pos = raw.index(b"\x00\x01\x02\x03\x04\x05\x06\x07")
        raw[pos + 3] ^= 0xFF
        path.write_bytes(bytes(raw))
        with pytest.raises(ChecksumMismatch):
            npz_load(path)
        loaded = npz_load(path, config=CodecConfig(verify_crc=False))
        assert loaded["a"].tobytes()[3] == 0x03 ^ 0xFF

    def test_not_a_zip(self, tmp_path):
        path = tmp_path / "junk.npz"
        path.write_bytes(b"this is not an archive at all")
        with pytest.raises(ArchiveFormatError):
            npz_load(path)

    def test_entry_size_disagrees_with_npy(self, tmp_path):
        """Stored bytes beyond the NPY payload are reported."""
        path = tmp_path / "pad.npz"
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("a.npy", _npy_bytes(np.zeros(2)) + b"extra")
        with pytest.raises(ArchiveFormatError):
            npz_load(path)


class TestDataDescriptors:
    def test_streamed_entries(self, tmp_path):
        """Entries written to an unseekable stream carry data descriptors."""

        class Unseekable(io.RawIOBase):
            def __init__(self):
                super().__init__()
                self.buf = bytearray()

            def writable(self):
                return True

            def write(self, b):
                self.buf += b
                return len(b)

        sink = Unseekable()
        with zipfile.ZipFile(sink, "w") as zf:
            with zf.open("a.npy", "w") as dest:
                dest.write(_npy_bytes(np.arange(5.0)))
            with zf.open("b.npy", "w") as dest:
                dest.write(_npy_bytes(np.arange(3, dtype=np.int8)))

        path = tmp_path / "stream.npz"
        path.write_bytes(bytes(sink.buf))
        loaded = npz_load(path)
        np.testing.assert_array_equal(loaded["a"].to_numpy(), np.arange(5.0))
        np.testing.assert_array_equal(loaded["b"].to_numpy(), np.arange(3, dtype=np.int8))
        assert npz_load(path, "b").shape == (3,)
