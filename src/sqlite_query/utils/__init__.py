from .general import setup_logger
from .conversions import StorageClass

__all__ = [
    "setup_logger",
    "StorageClass",
]
