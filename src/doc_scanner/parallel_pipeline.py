"""Parallel batch scanning over a process pool."""

import traceback
from dataclasses import dataclass
from functools import partial
from multiprocessing import Pool, cpu_count
from typing import Any, List, Optional, Sequence, Tuple

from tqdm import tqdm

from .config import ScannerConfig, get_default_config
from .pipeline import DocumentScanner, OptionsLike
from .processors import ImageSource
from .schemas import ScanOptions, ScanResult, coerce_options
from .utils.logging_utils import get_logger, setup_logging_from_config

logger = get_logger(__name__)


@dataclass(frozen=True, eq=False)
class BatchScanItem:
    """Outcome of one source in a batch; exactly one of result/error is set."""

    index: int
    result: Optional[ScanResult]
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _init_worker(config: ScannerConfig) -> None:
    """Apply the configured logging inside a fresh worker process."""
    setup_logging_from_config(config.logging)


def scan_single_source_wrapper(
    item: Tuple[int, Any],
    config: ScannerConfig,
    options: ScanOptions,
) -> BatchScanItem:
    """Scan one source in a worker process.

    Args:
        item: Tuple of (batch index, image source)
        config: Scanner configuration
        options: Validated scan options

    Returns:
        BatchScanItem with the result or the formatted error
    """
    index, source = item
    try:
        # Each worker builds its own scanner; nothing is shared between calls
        scanner = DocumentScanner(config)
        return BatchScanItem(index, scanner.scan(source, options))
    except Exception as e:
        error_msg = f"Error scanning item {index}: {e}\n{traceback.format_exc()}"
        return BatchScanItem(index, None, error_msg)


class ParallelScanner:
    """Scans many independent documents, one call per worker."""

    def __init__(
        self,
        config: Optional[ScannerConfig] = None,
        max_workers: Optional[int] = None,
        show_progress: bool = True,
    ):
        """Initialize parallel scanner.

        Args:
            config: Scanner configuration shared by every worker
            max_workers: Worker processes (default: CPU count - 1); 1 runs in-process
            show_progress: Whether to show a progress bar
        """
        self.config = config or get_default_config()
        self.max_workers = max_workers or max(1, cpu_count() - 1)
        self.show_progress = show_progress

    def scan_many(self, sources: Sequence[ImageSource], options: OptionsLike = None) -> List[BatchScanItem]:
        """Scan every source, preserving input order.

        Options are validated once up front, so invalid options fail the
        whole batch before any source is loaded. Per-source failures are
        captured in the returned items.
        """
        options = coerce_options(options)
        items = list(enumerate(sources))
        if not items:
            return []

        worker = partial(scan_single_source_wrapper, config=self.config, options=options)

        if self.max_workers == 1 or len(items) == 1:
            logger.debug(f"Scanning {len(items)} source(s) sequentially")
            results = [
                worker(item)
                for item in tqdm(items, desc="Scanning documents", unit="doc", disable=not self.show_progress)
            ]
        else:
            workers = min(self.max_workers, len(items))
            logger.debug(f"Scanning {len(items)} sources using {workers} workers")
            with Pool(processes=workers, initializer=_init_worker, initargs=(self.config,)) as pool:
                results = list(tqdm(
                    pool.imap(worker, items),
                    total=len(items),
                    desc="Scanning documents",
                    unit="doc",
                    disable=not self.show_progress,
                ))

        failed = sum(1 for r in results if not r.ok)
        if failed:
            logger.warning(f"{failed} of {len(results)} scans failed")
        return results
