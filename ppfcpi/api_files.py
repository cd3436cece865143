"""File-oriented convenience wrappers."""

from .main import ppfcpi


def convert_file(
    path: str,
    model_name: str | None = None,
    install_id: int | None = None,
    device_id: str | None = None,
    *,
    output: str | None = None,
    n27: str | None = None,
    silent: bool | None = None,
):
    return ppfcpi.convert_file(
        path,
        model_name,
        install_id,
        device_id,
        output=output,
        n27=n27,
        silent=silent,
    )


def read_n27(path: str):
    return ppfcpi.read_n27(path)


def describe_ppf_file(path: str):
    return ppfcpi.describe_ppf(ppfcpi._normalize_path(path).read_bytes())


__all__ = ["convert_file", "describe_ppf_file", "read_n27"]
