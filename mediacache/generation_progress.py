"""
GenerationProgress - Tracks and displays preprocessing progress.
"""

import logging
import threading
from typing import Optional

from .generation_stats import GenerationStats
from .models import Asset


class GenerationProgress:
    """
    Tracks and displays preprocessing progress with optional per-file output.
    """

    def __init__(
        self,
        show_files: bool = False,
        log_interval: int = 50,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize progress tracker.

        Args:
            show_files: If True, print each asset as it's processed
            log_interval: Log summary progress every N assets
            logger: Optional logger instance
        """
        self.show_files = show_files
        self.log_interval = log_interval
        self.logger = logger or logging.getLogger(__name__)
        self.last_logged = 0
        self._lock = threading.Lock()

    def on_item_processed(
        self,
        asset: Asset,
        index: int,
        total: int,
        success: bool,
        error: Optional[str] = None
    ) -> None:
        """
        Called when an asset is processed.

        Args:
            asset: The asset
            index: 1-based position in the run
            total: Number of assets in the run
            success: Whether its derivatives were ensured
            error: Error message (if failed)
        """
        label = f"[{index}/{total}] {asset.kind} {asset.rel_path}"
        if success:
            if self.show_files:
                print(f"  [OK] {label}")
        else:
            self.logger.error(f"{label} failed: {error or 'unknown error'}")

    def on_dry_run(self, asset: Asset, index: int, total: int) -> None:
        """Called in dry-run mode."""
        print(f"  [DRY RUN] [{index}/{total}] {asset.kind} {asset.rel_path}")

    def on_progress_update(self, stats: GenerationStats) -> None:
        """
        Called after every asset; logs a summary every log_interval assets.

        Args:
            stats: Current generation statistics
        """
        with self._lock:
            total_done = stats.completed_count
            if total_done - self.last_logged < self.log_interval:
                return
            self.last_logged = total_done

        self.logger.info(
            f"Progress: {total_done}/{stats.total_to_process} "
            f"(ok={stats.processed}, failed={stats.errors}, "
            f"{stats.elapsed_seconds:.0f}s, {stats.rate_per_minute:.1f}/min, "
            f"~{stats.estimated_remaining_seconds / 60:.0f}m remaining)"
        )

    def __call__(self, stats: GenerationStats) -> None:
        """Allow use as callback for stats updates."""
        self.on_progress_update(stats)
