"""Caller-owned result cache for repeated scans of the same source."""

import hashlib
import threading
from collections import OrderedDict
from typing import Optional

import numpy as np

from .config import ScannerConfig
from .schemas import PixelBuffer, ScanOptions, ScanResult
from .utils.logging_utils import get_logger

logger = get_logger(__name__)


def make_cache_key(
    raw: Optional[bytes],
    image: PixelBuffer,
    options: ScanOptions,
    config: ScannerConfig,
) -> str:
    """SHA-256 over the source content, the options and the output-affecting config.

    Encoded sources are keyed by their bytes; decoded sources by their
    pixels, shape and dtype.
    """
    digest = hashlib.sha256()
    if raw is not None:
        digest.update(b"raw:")
        digest.update(raw)
    else:
        data = np.ascontiguousarray(image.data)
        digest.update(f"pixels:{data.shape}:{data.dtype}:".encode())
        digest.update(data.tobytes())
    digest.update(options.cache_token().encode())
    digest.update(config.fingerprint().encode())
    return digest.hexdigest()


class ScanCache:
    """Bounded LRU map from cache key to ``ScanResult``, safe to share across threads."""

    def __init__(self, max_entries: int = 32):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, ScanResult]" = OrderedDict()
        self.hits = 0
        self.misses = 0
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: ScannerConfig) -> "ScanCache":
        return cls(config.cache.max_entries)

    def get(self, key: str) -> Optional[ScanResult]:
        with self._lock:
            result = self._entries.get(key)
            if result is None:
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return result

    def put(self, key: str, result: ScanResult) -> None:
        with self._lock:
            self._entries[key] = result
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Evicted cache entry {evicted[:12]}")

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
