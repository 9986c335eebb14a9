"""
Storage boundary: where uploaded inputs and produced artifacts live.
"""

from .files import FileStore, StorageError, UnsafeStorageKeyError

__all__ = ["FileStore", "StorageError", "UnsafeStorageKeyError"]
