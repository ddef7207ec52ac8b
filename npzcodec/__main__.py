"""CLI entry point: python -m npzcodec <command>"""

import argparse
import logging
import sys


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="npzcodec",
        description="Read and write NumPy .npy/.npz files",
    )
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log codec activity at debug level")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # --- info ---
    info_parser = subparsers.add_parser("info", help="Show the header of a .npy or the entries of a .npz")
    info_parser.add_argument("input", type=str, help="Path to a .npy or .npz file")

    # --- extract ---
    extract_parser = subparsers.add_parser("extract", help="Copy one .npz entry to a .npy file")
    extract_parser.add_argument("input", type=str, help="Path to the .npz archive")
    extract_parser.add_argument("name", type=str, help="Entry name (without .npy)")
    extract_parser.add_argument("-o", "--output", type=str, default=None,
                                help="Output .npy file (default: <name>.npy)")

    # --- demo ---
    demo_parser = subparsers.add_parser("demo", help="Round-trip a complex array through both formats")
    demo_parser.add_argument("directory", type=str, help="Directory for the demo files")
    demo_parser.add_argument("--strategy", type=str, default="direct",
                             choices=["direct", "streaming"],
                             help="Archive write strategy (default: direct)")
    demo_parser.add_argument("--shape", type=str, default="32,64,128",
                             help="Comma-separated array shape (default: 32,64,128)")

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    from .errors import NpzCodecError

    try:
        if args.command == "info":
            _cmd_info(args)
        elif args.command == "extract":
            _cmd_extract(args)
        elif args.command == "demo":
            _cmd_demo(args)
    except NpzCodecError as exc:
        from .cli_formatting import console
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)


def _cmd_info(args):
    from pathlib import Path

    from .cli_formatting import print_npy_info, print_npz_entries
    from .storage import NpzReader, read_npy_header
    from .storage.npy_header import MAGIC

    path = Path(args.input)
    if not path.exists():
        print(f"Error: file not found: {args.input}")
        sys.exit(1)

    with open(path, "rb") as fp:
        magic = fp.read(len(MAGIC))
        if magic == MAGIC:
            fp.seek(0)
            header = read_npy_header(fp, path=str(path))
            print_npy_info(path.name, header, path.stat().st_size)
            return

    if magic[:2] == b"PK":
        with NpzReader(path) as reader:
            rows = [(entry, reader.read_entry_header(entry)) for entry in reader.entries()]
        print_npz_entries(path.name, rows)
    else:
        print(f"Unknown file format (magic: {magic[:4]!r})")
        sys.exit(1)


def _cmd_extract(args):
    from .cli_formatting import console
    from .storage import npy_save, npz_load

    output = args.output or f"{args.name}.npy"
    buffer = npz_load(args.input, name=args.name)
    total = npy_save(output, buffer)
    console.print(f"  Extracted [bold]{args.name}[/bold] {buffer.shape} -> {output} ({total:,} bytes)")


def _cmd_demo(args):
    """Save, append and reload a complex128 array as .npy and as .npz."""
    from pathlib import Path

    import numpy as np

    from .buffer import ArrayBuffer
    from .cli_formatting import print_check, print_header
    from .config import CodecConfig
    from .dtypes import ElementKind
    from .storage import npy_load, npy_save, npz_load, npz_save

    shape = tuple(int(d) for d in args.shape.split(","))
    out_dir = Path(args.directory)
    out_dir.mkdir(parents=True, exist_ok=True)
    config = CodecConfig(write_strategy=args.strategy)

    rng = np.random.default_rng(0)
    values = rng.standard_normal(shape) + 1j * rng.standard_normal(shape)
    buffer = ArrayBuffer.from_numpy(values)
    failures = 0

    def check(label, ok):
        nonlocal failures
        print_check(label, ok)
        failures += not ok

    print_header(f"npzcodec demo: complex128 {shape}")

    npy_path = out_dir / "arr1.npy"
    npy_save(npy_path, buffer)
    loaded = npy_load(npy_path)
    check("npy round trip", loaded == buffer)
    check("np.load reads the .npy", np.array_equal(np.load(npy_path), values))

    npy_save(npy_path, buffer, mode="a")
    appended = npy_load(npy_path)
    check("npy append doubles the first axis",
          appended.shape == (2 * shape[0],) + shape[1:])
    check("appended rows repeat the original",
          np.array_equal(appended.to_numpy(), np.concatenate([values, values])))

    npz_path = out_dir / "out.npz"
    scalar = ArrayBuffer.from_numpy(np.array([3.14159], dtype=np.float64))
    words = ArrayBuffer.from_bytes(b"abcdefghijklmnopqrstuvwxyz", (26,), ElementKind.INT8)
    npz_save(npz_path, "myVar1", scalar, mode="w", config=config)
    npz_save(npz_path, "myVar2", words, mode="a", config=config)
    npz_save(npz_path, "arr1", buffer, mode="a", config=config)

    one = npz_load(npz_path, "arr1", config=config)
    check("npz load of a single entry", one == buffer)

    everything = npz_load(npz_path, config=config)
    check("npz load of all entries", set(everything) == {"myVar1", "myVar2", "arr1"})
    check("scalar entry survives", everything["myVar1"] == scalar)

    with np.load(npz_path) as archive:
        check("np.load reads the .npz", np.array_equal(archive["arr1"], values))

    if failures:
        print(f"\n  {failures} check(s) failed")
        sys.exit(1)


if __name__ == "__main__":
    main()
