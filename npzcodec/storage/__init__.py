from .npy_header import NpyHeader, encode_npy_header, decode_npy_header, read_npy_header
from .npy_file import npy_load, npy_save, npy_save_data
from .npz_reader import NpzReader, NpzEntryInfo, npz_load, npz_list
from .npz_stream import NpyEntrySource, EntryStat, Phase, StreamingNpzWriter
from .npz_writer import DirectNpzWriter, npz_save, npz_save_data

__all__ = [
    "NpyHeader", "encode_npy_header", "decode_npy_header", "read_npy_header",
    "npy_load", "npy_save", "npy_save_data",
    "NpzReader", "NpzEntryInfo", "npz_load", "npz_list",
    "NpyEntrySource", "EntryStat", "Phase", "StreamingNpzWriter",
    "DirectNpzWriter", "npz_save", "npz_save_data",
]
