"""
Preprocessor - Warms the cache for a whole library ahead of browsing.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

from .config import THUMBNAIL_WIDTH
from .generation_progress import GenerationProgress
from .generation_stats import GenerationStats
from .image_variants import ImageVariantGenerator
from .library import MediaLibrary
from .models import Asset, KIND_IMAGE
from .transcode import TranscodeCoordinator
from .video_thumbnails import VideoThumbnailGenerator

# Variants the browser asks for: grid thumbnails and the full view
DEFAULT_WIDTHS = (THUMBNAIL_WIDTH, None)


class Preprocessor:
    """
    Generates the derivatives the browser will request, for every asset.

    Images get the thumbnail and full variants; videos get a poster frame
    and, when eligible, a transcode. Work runs on a small thread pool.
    """

    def __init__(
        self,
        library: MediaLibrary,
        variants: ImageVariantGenerator,
        thumbnails: VideoThumbnailGenerator,
        transcoder: TranscodeCoordinator,
        concurrency: int = 2,
        dry_run: bool = False,
        widths: Sequence[Optional[int]] = DEFAULT_WIDTHS,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize preprocessor.

        Args:
            library: Library used to enumerate assets
            variants: Image variant generator
            thumbnails: Video thumbnail generator
            transcoder: Video transcode coordinator
            concurrency: Number of assets processed at once
            dry_run: If True, only list what would be processed
            widths: Image variants to ensure (None = full)
            logger: Optional logger instance
        """
        if concurrency <= 0:
            raise ValueError("concurrency must be positive")
        self.library = library
        self.variants = variants
        self.thumbnails = thumbnails
        self.transcoder = transcoder
        self.concurrency = concurrency
        self.dry_run = dry_run
        self.widths = tuple(widths)
        self.logger = logger or logging.getLogger(__name__)
        self.stats = GenerationStats()
        self._stop_requested = False

    def stop(self) -> None:
        """Request the preprocessor to stop before starting further assets."""
        self._stop_requested = True

    def collect(self, rel_path: str = '', limit: Optional[int] = None) -> List[Asset]:
        """Enumerate assets under rel_path, up to limit."""
        assets = []
        for asset in self.library.walk_media(rel_path):
            assets.append(asset)
            if limit and len(assets) >= limit:
                self.logger.info(f"Stopping at limit ({limit})")
                break
        return assets

    def run(
        self,
        rel_path: str = '',
        progress: Optional[GenerationProgress] = None,
        limit: Optional[int] = None
    ) -> GenerationStats:
        """
        Ensure derivatives for every asset under rel_path.

        Args:
            rel_path: Folder to process ('' for the whole library)
            progress: Optional progress tracker
            limit: Optional limit on number of assets (for testing)

        Returns:
            GenerationStats with results
        """
        if self._stop_requested:
            self.logger.info("Stop was requested before preprocessing started")
            self.stats = GenerationStats(total_to_process=0)
            return self.stats

        assets = self.collect(rel_path, limit)
        self.stats = GenerationStats(total_to_process=len(assets))
        progress = progress or GenerationProgress(logger=self.logger)

        mode_str = " [DRY RUN]" if self.dry_run else ""
        self.logger.info(
            f"Starting preprocessing: {len(assets)} assets, "
            f"concurrency {self.concurrency}{mode_str}"
        )

        with ThreadPoolExecutor(max_workers=self.concurrency) as pool:
            futures = [
                pool.submit(self._process, asset, index, len(assets), progress)
                for index, asset in enumerate(assets, start=1)
            ]
            for future in futures:
                future.result()

        self.logger.info(
            f"Done. ok={self.stats.processed}, failed={self.stats.errors}, "
            f"total={self.stats.total_to_process}, {self.stats.elapsed_seconds:.0f}s"
        )
        return self.stats

    def _process(self, asset: Asset, index: int, total: int, progress: GenerationProgress) -> bool:
        if self._stop_requested:
            return False

        if self.dry_run:
            progress.on_dry_run(asset, index, total)
            self.stats.record_success(asset.kind)
            return True

        try:
            transcoded = False
            if asset.kind == KIND_IMAGE:
                for width in self.widths:
                    self.variants.ensure_variant(asset.rel_path, width)
            else:
                self.thumbnails.ensure_thumbnail(asset.rel_path)
                transcoded = self.transcoder.ensure_transcode(asset.rel_path) is not None
        except Exception as e:
            self.stats.record_error(f"Error processing {asset.rel_path}: {e}")
            progress.on_item_processed(asset, index, total, success=False, error=str(e))
            progress.on_progress_update(self.stats)
            return False

        self.stats.record_success(asset.kind, transcoded=transcoded)
        progress.on_item_processed(asset, index, total, success=True)
        progress.on_progress_update(self.stats)
        return True
