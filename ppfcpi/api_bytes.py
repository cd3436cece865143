"""In-memory pack conversion wrappers."""

from .devicelock import build_locked_csec, derive_key_slot, expand_key
from .main import ppfcpi


def parse_ppf(data: bytes):
    return ppfcpi.parse_ppf(data)


def parse_n27(data: bytes):
    return ppfcpi.parse_n27(data)


def build_ppf(pack):
    return ppfcpi.build_ppf(pack)


def build_encrypted_cpi(pack, model_name: str, install_id: int, device_id: str | None = None):
    return ppfcpi.build_encrypted_cpi(pack, model_name, install_id, device_id)


def generate_locked_csec(device_id: str):
    return build_locked_csec(device_id)


def format_file_size(num_bytes: int):
    return ppfcpi.format_file_size(num_bytes)


__all__ = [
    "build_encrypted_cpi",
    "build_ppf",
    "derive_key_slot",
    "expand_key",
    "format_file_size",
    "generate_locked_csec",
    "parse_n27",
    "parse_ppf",
]
