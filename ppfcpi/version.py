"""Runtime engine version."""

from .main import ppfcpi

__version__ = ppfcpi.ENGINE_VERSION

__all__ = ["__version__"]
