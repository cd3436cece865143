# PPF -> CPI CONVERSION ENGINE ->

from __future__ import annotations

import decimal
import os as _os_module
import pathlib
import struct
import sys
import typing
import warnings
from dataclasses import dataclass, field

from .chaining import OUTER_KEY, des_cbc_encrypt, triple_des_cbc_encrypt, vendor_pad
from .chunks import (
    chunk_text,
    decode_children,
    decode_chunks,
    encode_chunk,
    encode_container,
    encode_text,
)
from .des import adjust_parity
from .devicelock import CSEC_LEN, build_locked_csec
from .errors import TruncationWarning


@dataclass(frozen=True)
class Blob:
    uid: str = ""
    title: str = ""
    extension: str = ""
    icon_code: typing.Optional[str] = None
    binary_data: bytes = b""

    def __post_init__(self) -> None:
        object.__setattr__(self, "binary_data", bytes(self.binary_data))


@dataclass(frozen=True)
class Pack:
    uid: str = ""
    title: str = ""
    blobs: typing.Tuple[Blob, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "blobs", tuple(self.blobs))


@dataclass(frozen=True)
class N27Info:
    model_name: str
    serial: str
    full_id: str


class ppfcpi:
    decimal = decimal
    struct = struct
    sys = sys
    pathlib = pathlib
    warnings = warnings
    typing = typing

    @staticmethod
    def _env_int(name: str) -> "typing.Optional[int]":
        value = _os_module.getenv(name)
        if not value:
            return None
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            return None
        if parsed <= 0:
            return None
        return parsed

    ENGINE_VERSION = "1.2.0"
    PPF_HEADER_LEN = 8
    N27_FIELDS = (("model_name", 0, 64), ("serial", 64, 24), ("full_id", 88, 32))
    OUTPUT_SUFFIX = ".cpi"
    MAX_INSTALL_ID = 0xFFFFFFFF
    MAX_INPUT_BYTES = 512 * 1024 * 1024
    _MAX_INPUT_BYTES_ENV = _env_int("PPFCPI_MAX_INPUT_BYTES")
    if _MAX_INPUT_BYTES_ENV is not None:
        MAX_INPUT_BYTES = _MAX_INPUT_BYTES_ENV
    DEFAULT_MODEL = _os_module.getenv("PPFCPI_MODEL", "")
    DEFAULT_INSTALL_ID = _env_int("PPFCPI_INSTALL_ID") or 0
    DEFAULT_DEVICE_ID = _os_module.getenv("PPFCPI_DEVICE_ID") or None
    _SILENT_MODE: typing.ClassVar[bool] = _os_module.getenv("PPFCPI_SILENT", "0") == "1"
    TEXT_TAGS = frozenset({"EUID", "ETIT", "EEXT", "EICO", "XMDL"})

    # Unlocked authentication blob accepted by every device.
    CSEC_CONSTANT = bytes((
        0x5a, 0x51, 0x7c, 0x40, 0x5f, 0x44, 0x7c, 0x02,
        0x90, 0x3b, 0xcc, 0x5e, 0x1d, 0x69, 0xdc, 0xf8,
        0x52, 0x2f, 0xe8, 0x75, 0xd0, 0xed, 0x7f, 0x97,
        0xf3, 0xef, 0x1e, 0x23, 0x6e, 0x4f, 0x9d, 0x80,
        0x29, 0x87, 0x42, 0x89, 0xad, 0xdc, 0xc3, 0xc2,
        0x23, 0xff, 0xa3, 0x65, 0x55, 0xc2, 0x5d, 0xaf,
        0xf4, 0x93, 0x11, 0x96, 0xf1, 0x4d, 0xa7, 0xd9,
        0x12, 0xe6, 0x07, 0xee, 0x15, 0xc0, 0x45, 0x24,
        0x26, 0x58, 0x5c, 0x1f, 0xb4, 0x50, 0x56, 0xe7,
        0x54, 0xbc, 0xe9, 0x49, 0xf6, 0xda, 0xf0, 0x55,
    ))

    # FIPS 46 worked example
    KAT_KEY = bytes.fromhex("133457799bbcdff1")
    KAT_PLAINTEXT = bytes.fromhex("0123456789abcdef")
    KAT_CIPHERTEXT = bytes.fromhex("85e813540f0ab405")

    @staticmethod
    def _log(message: str) -> None:
        if ppfcpi._SILENT_MODE:
            return
        print(f"[ppfcpi] {message}", file=ppfcpi.sys.stderr)

    @staticmethod
    def format_file_size(num_bytes: int) -> str:
        if num_bytes < 1024:
            return f"{num_bytes} B"
        unit, divisor = ("KB", 1024) if num_bytes < 1024 * 1024 else ("MB", 1024 * 1024)
        # ties round up (1280 B -> 1.3 KB)
        value = (ppfcpi.decimal.Decimal(num_bytes) / divisor).quantize(
            ppfcpi.decimal.Decimal("0.1"), rounding=ppfcpi.decimal.ROUND_HALF_UP
        )
        return f"{value} {unit}"

    # ---------- Parsing -------------------------------------------------

    @staticmethod
    def parse_n27(data: bytes) -> N27Info:
        """Read the fixed-layout N27 device record (64/24/32-byte ASCII fields)."""
        values = {}
        for name, offset, width in ppfcpi.N27_FIELDS:
            raw = bytes(data[offset:offset + width])
            values[name] = raw.split(b"\x00", 1)[0].decode("ascii", errors="replace")
        return N27Info(**values)

    @staticmethod
    def _parse_blob(chunk) -> Blob:
        fields: typing.Dict[str, typing.Any] = {}
        for sub in decode_children(chunk):
            if sub.tag == "EUID":
                fields["uid"] = chunk_text(sub)
            elif sub.tag == "ETIT":
                fields["title"] = chunk_text(sub)
            elif sub.tag == "EEXT":
                fields["extension"] = chunk_text(sub)
            elif sub.tag == "EICO":
                fields["icon_code"] = chunk_text(sub)
            elif sub.tag == "FBIN":
                if sub.truncated:
                    ppfcpi.warnings.warn(
                        f"FBIN payload truncated: {len(sub.data)} of {sub.size} bytes present",
                        TruncationWarning,
                        stacklevel=3,
                    )
                fields["binary_data"] = sub.data
        return Blob(**fields)

    @staticmethod
    def parse_ppf(data: bytes) -> Pack:
        """
        Decode a PPF container into a Pack.

        Malformed input never raises. A pack missing its identifier, title or
        every blob is still returned, with a TruncationWarning.
        """
        uid = ""
        title = ""
        blobs: typing.List[Blob] = []
        for chunk in decode_chunks(data, ppfcpi.PPF_HEADER_LEN):
            if chunk.tag == "EUID" and not uid:
                uid = chunk_text(chunk)
            elif chunk.tag == "ETIT" and not title:
                title = chunk_text(chunk)
            elif chunk.tag == "BLOB":
                blobs.append(ppfcpi._parse_blob(chunk))
        missing = [
            name for name, present in (("identifier", uid), ("title", title), ("blobs", blobs))
            if not present
        ]
        if missing:
            ppfcpi.warnings.warn(
                f"Pack decoded without {', '.join(missing)}; input may be truncated",
                TruncationWarning,
                stacklevel=2,
            )
        return Pack(uid=uid, title=title, blobs=tuple(blobs))

    # ---------- Building ------------------------------------------------

    @staticmethod
    def _blob_chunk(blob: Blob) -> bytes:
        parts = [
            encode_text("EUID", blob.uid),
            encode_text("ETIT", blob.title),
            encode_text("EEXT", blob.extension),
        ]
        if blob.icon_code:
            parts.append(encode_text("EICO", blob.icon_code))
        parts.append(encode_chunk("FBIN", blob.binary_data))
        return encode_container("BLOB", parts)

    @staticmethod
    def build_payload(pack: Pack) -> bytes:
        """Plaintext CPI payload before padding and encryption."""
        parts = [encode_text("EUID", pack.uid), encode_text("ETIT", pack.title)]
        parts.extend(ppfcpi._blob_chunk(blob) for blob in pack.blobs)
        return b"".join(parts)

    @staticmethod
    def build_ppf(pack: Pack) -> bytes:
        return encode_chunk("XPFH", ppfcpi.build_payload(pack))

    @staticmethod
    def build_header(model_name: str, install_id: int) -> bytes:
        if not 0 <= install_id <= ppfcpi.MAX_INSTALL_ID:
            raise ValueError(f"Install id must fit in 32 bits, got {install_id}")
        return encode_container("XPIH", [
            encode_text("XMDL", model_name),
            encode_chunk("XPID", ppfcpi.struct.pack(">I", install_id)),
        ])

    @staticmethod
    def build_csec(device_id: "typing.Optional[typing.Union[str, bytes]]" = None) -> bytes:
        data = build_locked_csec(device_id) if device_id else ppfcpi.CSEC_CONSTANT
        return encode_chunk("CSEC", data)

    @staticmethod
    def build_encrypted_cpi(
        pack: Pack,
        model_name: str,
        install_id: int,
        device_id: "typing.Optional[typing.Union[str, bytes]]" = None,
    ) -> bytes:
        header = ppfcpi.build_header(model_name, install_id)
        csec = ppfcpi.build_csec(device_id)
        payload = des_cbc_encrypt(vendor_pad(ppfcpi.build_payload(pack)), OUTER_KEY)
        return header + csec + payload

    # ---------- Files ---------------------------------------------------

    @staticmethod
    def _normalize_path(path_like: "typing.Union[str, pathlib.Path]") -> pathlib.Path:
        return ppfcpi.pathlib.Path(path_like).expanduser()

    @staticmethod
    def _ensure_existing_file(path: pathlib.Path) -> None:
        if not path.is_file():
            raise FileNotFoundError(f"Input file not found: {path}")

    @staticmethod
    def _ensure_size_limit(path: pathlib.Path) -> None:
        limit = ppfcpi.MAX_INPUT_BYTES
        size = path.stat().st_size
        if size > limit:
            raise ValueError(
                f"Input {path.name} is {ppfcpi.format_file_size(size)}; "
                f"limit is {ppfcpi.format_file_size(limit)}"
            )

    @staticmethod
    def read_n27(path: "typing.Union[str, pathlib.Path]") -> N27Info:
        src = ppfcpi._normalize_path(path)
        ppfcpi._ensure_existing_file(src)
        return ppfcpi.parse_n27(src.read_bytes())

    @staticmethod
    def convert_file(
        path: "typing.Union[str, pathlib.Path]",
        model_name: "typing.Optional[str]" = None,
        install_id: "typing.Optional[int]" = None,
        device_id: "typing.Optional[str]" = None,
        *,
        output: "typing.Optional[typing.Union[str, pathlib.Path]]" = None,
        n27: "typing.Optional[typing.Union[str, pathlib.Path]]" = None,
        silent: "typing.Optional[bool]" = None,
    ) -> pathlib.Path:
        previous_silent = ppfcpi._SILENT_MODE
        if silent is not None:
            ppfcpi._SILENT_MODE = silent
        try:
            src = ppfcpi._normalize_path(path)
            ppfcpi._ensure_existing_file(src)
            ppfcpi._ensure_size_limit(src)

            if n27 is not None:
                info = ppfcpi.read_n27(n27)
                model_name = model_name or info.model_name
                if device_id is None:
                    device_id = info.full_id
            model_name = model_name or ppfcpi.DEFAULT_MODEL
            if not model_name:
                raise ValueError("Model name required (pass one, an N27 file, or set PPFCPI_MODEL)")
            if install_id is None:
                install_id = ppfcpi.DEFAULT_INSTALL_ID
            if device_id is None:
                device_id = ppfcpi.DEFAULT_DEVICE_ID

            out_path = ppfcpi._normalize_path(output) if output else src.with_suffix(ppfcpi.OUTPUT_SUFFIX)
            if out_path.resolve() == src.resolve():
                raise ValueError(f"Refusing to overwrite input {src}")

            pack = ppfcpi.parse_ppf(src.read_bytes())
            blob = ppfcpi.build_encrypted_cpi(pack, model_name, install_id, device_id)
            out_path.write_bytes(blob)
            ppfcpi._log(
                f"op=convert in={src.name} out={out_path.name} model={model_name} "
                f"blobs={len(pack.blobs)} lock={'device' if device_id else 'none'} "
                f"size={ppfcpi.format_file_size(len(blob))}"
            )
            return out_path
        finally:
            ppfcpi._SILENT_MODE = previous_silent

    @staticmethod
    def describe_ppf(data: bytes) -> typing.List[str]:
        """Human-readable chunk listing of a PPF container."""
        lines: typing.List[str] = []
        for chunk in decode_chunks(data, ppfcpi.PPF_HEADER_LEN):
            lines.append(ppfcpi._describe_chunk(chunk, indent=""))
            if chunk.tag == "BLOB":
                for sub in decode_children(chunk):
                    lines.append(ppfcpi._describe_chunk(sub, indent="  "))
        return lines

    @staticmethod
    def _describe_chunk(chunk, indent: str) -> str:
        line = f"{indent}{chunk.tag} @{chunk.offset} {ppfcpi.format_file_size(chunk.size)}"
        if chunk.tag in ppfcpi.TEXT_TAGS:
            line += f" {chunk_text(chunk)!r}"
        if chunk.truncated:
            line += f" (truncated to {len(chunk.data)} bytes)"
        return line

    # ---------- Self test -----------------------------------------------

    @staticmethod
    def _reference_cbc_encrypt(data: bytes, key: bytes) -> bytes:
        """Encrypt with the cryptography package's TripleDES; an 8-byte key runs as K1=K2=K3 EDE."""
        from cryptography.hazmat.primitives.ciphers import Cipher, modes
        try:
            from cryptography.hazmat.decrepit.ciphers.algorithms import TripleDES
        except ImportError:  # cryptography < 43 keeps it in primitives
            from cryptography.hazmat.primitives.ciphers.algorithms import TripleDES

        key = adjust_parity(key)
        if len(key) == 8:
            key = key * 3
        encryptor = Cipher(TripleDES(key), modes.CBC(bytes(8))).encryptor()
        return encryptor.update(data) + encryptor.finalize()

    @staticmethod
    def selftest() -> typing.Dict[str, bool]:
        import secrets

        results: typing.Dict[str, bool] = {}
        results["des-kat"] = (
            des_cbc_encrypt(ppfcpi.KAT_PLAINTEXT, ppfcpi.KAT_KEY) == ppfcpi.KAT_CIPHERTEXT
        )
        data = secrets.token_bytes(64)
        key8 = secrets.token_bytes(8)
        key24 = secrets.token_bytes(24)
        results["des-cbc"] = (
            des_cbc_encrypt(data, key8) == ppfcpi._reference_cbc_encrypt(data, key8)
        )
        results["3des-ede-cbc"] = (
            triple_des_cbc_encrypt(data, key24) == ppfcpi._reference_cbc_encrypt(data, key24)
        )
        results["csec-length"] = len(build_locked_csec("selftest-device")) == CSEC_LEN
        return results


def cli(argv=None) -> int:
    import argparse

    parser = argparse.ArgumentParser(prog="ppfcpi", description="PPF to encrypted CPI converter")
    subparsers = parser.add_subparsers(dest="command", required=True)

    convert = subparsers.add_parser("convert", help="Convert one or more PPF packs to CPI")
    convert.add_argument("paths", nargs="+", help="One or more PPF file paths")
    convert.add_argument(
        "-m", "--model",
        default=None,
        help="Target model name written to the XMDL header (default: $PPFCPI_MODEL)"
    )
    convert.add_argument(
        "-i", "--install-id",
        type=int,
        default=None,
        help="32-bit pack install id (default: $PPFCPI_INSTALL_ID or 0)"
    )
    convert.add_argument(
        "-d", "--device-id",
        default=None,
        help="Device full id; locks the pack to that device"
    )
    convert.add_argument(
        "--n27",
        default=None,
        help="N27 device file supplying the model name and device full id"
    )
    convert.add_argument(
        "-o", "--output",
        default=None,
        help="Output path (single input only)"
    )
    convert.add_argument("--silent", action="store_true", help="Suppress progress output")

    inspect = subparsers.add_parser("inspect", help="List the chunk structure of a PPF pack")
    inspect.add_argument("path")

    n27 = subparsers.add_parser("n27", help="Show the fields of an N27 device file")
    n27.add_argument("path")

    subparsers.add_parser("selftest", help="Cross-check DES/3DES against the cryptography package")

    args = parser.parse_args(argv)

    if args.command == "convert":
        if args.output and len(args.paths) > 1:
            parser.error("--output can only be used with a single input")
        results = {}
        for raw_path in args.paths:
            try:
                ppfcpi.convert_file(
                    raw_path,
                    args.model,
                    args.install_id,
                    args.device_id,
                    output=args.output,
                    n27=args.n27,
                    silent=True if args.silent else None,
                )
                results[str(raw_path)] = "SUCCESS!"
            except (OSError, ValueError) as exc:
                results[str(raw_path)] = f"FAIL! {exc}"
        failures = 0
        for path, status in results.items():
            print(f"{path}: {status}")
            if status != "SUCCESS!":
                failures += 1
        return 0 if failures == 0 else 1

    if args.command == "inspect":
        try:
            data = ppfcpi._normalize_path(args.path).read_bytes()
        except OSError as exc:
            print(f"Failed to read {args.path}: {exc}", file=sys.stderr)
            return 1
        for line in ppfcpi.describe_ppf(data):
            print(line)
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", TruncationWarning)
            pack = ppfcpi.parse_ppf(data)
        print(f"Pack: {pack.uid!r} {pack.title!r} ({len(pack.blobs)} blobs)")
        return 0

    if args.command == "n27":
        try:
            info = ppfcpi.read_n27(args.path)
        except OSError as exc:
            print(f"Failed to read {args.path}: {exc}", file=sys.stderr)
            return 1
        print(f"Model:   {info.model_name}")
        print(f"Serial:  {info.serial}")
        print(f"Full id: {info.full_id}")
        return 0

    if args.command == "selftest":
        results = ppfcpi.selftest()
        for name, ok in results.items():
            print(f"{name}: {'OK' if ok else 'MISMATCH'}")
        return 0 if all(results.values()) else 1

    return 0


def main(argv=None) -> int:
    return cli(argv)


__all__ = ["Blob", "N27Info", "Pack", "cli", "ppfcpi"]


if __name__ == "__main__":
    raise SystemExit(main())
