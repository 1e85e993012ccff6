"""
CachePaths - Maps assets and variants to cache file locations.

Derivatives live next to their originals, in a hidden folder inside the
asset's own directory:

    Trip/img.dng        -> Trip/<hidden>/img_w300.jpg, Trip/<hidden>/img_full.jpg
    Trip/clip.mov       -> Trip/<hidden>/clip.mov.jpg (thumbnail)
                        -> Trip/<hidden>/clip.h265.mp4 (transcode)
"""

import glob
import logging
import os
from typing import List, Optional

from .config import CACHE_FOLDER_NAME, TRANSCODE_CODEC_TAG
from .errors import AssetNotFound
from .models import Asset, VariantSpec


class CachePaths:
    """
    Pure path arithmetic for the cache. Nothing here touches the disk except
    resolve_original's containment check and invalidate.
    """

    def __init__(
        self,
        photos_dir: str,
        cache_folder_name: str = CACHE_FOLDER_NAME,
        codec_tag: str = TRANSCODE_CODEC_TAG,
        logger: Optional[logging.Logger] = None
    ):
        self.photos_dir = os.path.abspath(photos_dir)
        self.cache_folder_name = cache_folder_name
        self.codec_tag = codec_tag
        self.logger = logger or logging.getLogger(__name__)

    def resolve_original(self, rel_path: str) -> str:
        """
        Absolute path of an original, refusing paths that leave the media root.

        Raises:
            AssetNotFound: If the path escapes the media root
        """
        candidate = os.path.abspath(os.path.join(self.photos_dir, rel_path))
        if candidate != self.photos_dir and not candidate.startswith(self.photos_dir + os.sep):
            raise AssetNotFound(f"Path outside media root: {rel_path}")
        return candidate

    def cache_dir(self, rel_path: str) -> str:
        """Hidden cache folder for the directory containing rel_path."""
        folder = os.path.dirname(rel_path)
        return os.path.join(self.photos_dir, folder, self.cache_folder_name)

    def image_variant(self, rel_path: str, variant: VariantSpec) -> str:
        """Cache path of a resized JPEG: <base>_<w300|full>.jpg."""
        asset = Asset.from_path(rel_path)
        return os.path.join(self.cache_dir(rel_path), f"{asset.base}_{variant.label}.jpg")

    def video_thumbnail(self, rel_path: str) -> str:
        """Cache path of a video poster frame: <video name>.jpg."""
        return os.path.join(self.cache_dir(rel_path), f"{os.path.basename(rel_path)}.jpg")

    def _transcode_stem(self, rel_path: str) -> str:
        base = Asset.from_path(rel_path).base
        return os.path.join(self.cache_dir(rel_path), f"{base}.{self.codec_tag}")

    def video_transcode(self, rel_path: str) -> str:
        return f"{self._transcode_stem(rel_path)}.mp4"

    def transcode_lock(self, rel_path: str) -> str:
        return f"{self._transcode_stem(rel_path)}.lock"

    def transcode_failure(self, rel_path: str) -> str:
        return f"{self._transcode_stem(rel_path)}.fail.json"

    def transcode_skip(self, rel_path: str) -> str:
        return f"{self._transcode_stem(rel_path)}.skip.json"

    def transcode_temp(self, rel_path: str, pid: int, stamp_ms: int) -> str:
        return f"{self._transcode_stem(rel_path)}.tmp.{pid}.{stamp_ms}.mp4"

    def raw_sidecar(self, rel_path: str) -> str:
        """Pixel payload path handed to the RAW worker; metadata is <this>.json."""
        return self.image_variant(rel_path, VariantSpec()) + '.raw'

    def invalidate(self, rel_path: str) -> List[str]:
        """
        Remove every cached image variant of an asset.

        Returns:
            Paths that were removed
        """
        base = Asset.from_path(rel_path).base
        pattern = os.path.join(glob.escape(self.cache_dir(rel_path)), f"{glob.escape(base)}_*.jpg")
        removed = []
        for name in glob.glob(pattern):
            suffix = os.path.basename(name)[len(base) + 1:-len('.jpg')]
            if suffix != 'full' and not (suffix.startswith('w') and suffix[1:].isdigit()):
                continue
            try:
                os.remove(name)
                removed.append(name)
            except FileNotFoundError:
                pass
        if removed:
            self.logger.info(f"Invalidated {len(removed)} cached variant(s) of {rel_path}")
        return removed
