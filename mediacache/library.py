"""
MediaLibrary - Browsing and in-place edits of the media root.
"""

import logging
import os
import random
from dataclasses import dataclass, field, asdict
from typing import Iterator, List, Optional

from PIL import Image, ImageOps

from .cache_paths import CachePaths
from .config import FOLDER_CACHE_TTL_SECONDS
from .errors import AssetNotFound, DecodeError, ErrorKind, TransientIOError, classify_error
from .models import Asset, IMAGE_EXTENSIONS, VIDEO_EXTENSIONS
from .storage import atomic_output
from .ttl_cache import TtlCache

# Formats Pillow can write back over the original
ROTATABLE_FORMATS = {
    '.jpg': 'JPEG',
    '.jpeg': 'JPEG',
    '.png': 'PNG',
    '.gif': 'GIF',
    '.webp': 'WEBP',
}

EXIF_ORIENTATION = 0x0112
FOLDERS_KEY = 'folders'


def is_image(name: str) -> bool:
    return os.path.splitext(name)[1].lower() in IMAGE_EXTENSIONS


def is_video(name: str) -> bool:
    return os.path.splitext(name)[1].lower() in VIDEO_EXTENSIONS


@dataclass
class DirectoryListing:
    """Contents of one folder, names only, sorted."""
    path: str
    images: List[str] = field(default_factory=list)
    videos: List[str] = field(default_factory=list)
    folders: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


class MediaLibrary:
    """
    Lists folders and media under the media root.

    The cache folder and dot-files are never listed. A RAW file is hidden
    when a JPEG with the same base name sits next to it, since the JPEG is
    what gets displayed for both.
    """

    def __init__(
        self,
        paths: CachePaths,
        folder_cache: Optional[TtlCache] = None,
        rng: Optional[random.Random] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.paths = paths
        self.folder_cache = folder_cache or TtlCache(FOLDER_CACHE_TTL_SECONDS)
        self.rng = rng or random.Random()
        self.logger = logger or logging.getLogger(__name__)

    def _is_listed(self, name: str) -> bool:
        return not name.startswith('.') and name != self.paths.cache_folder_name

    def _scan(self, directory: str) -> DirectoryListing:
        images, videos, folders = [], [], []
        with os.scandir(directory) as it:
            entries = [e for e in it if self._is_listed(e.name)]

        jpeg_bases = {
            os.path.splitext(e.name)[0].lower()
            for e in entries
            if e.is_file() and os.path.splitext(e.name)[1].lower() in ('.jpg', '.jpeg')
        }
        for entry in entries:
            if entry.is_dir():
                folders.append(entry.name)
            elif not entry.is_file():
                continue
            elif is_image(entry.name):
                base, ext = os.path.splitext(entry.name)
                if ext.lower() == '.dng' and base.lower() in jpeg_bases:
                    continue
                images.append(entry.name)
            elif is_video(entry.name):
                videos.append(entry.name)

        return DirectoryListing(
            path='',
            images=sorted(images),
            videos=sorted(videos),
            folders=sorted(folders),
        )

    def list_directory(self, rel_path: str = '') -> DirectoryListing:
        """
        List one folder.

        Args:
            rel_path: Folder relative to the media root ('' for the root)

        Raises:
            AssetNotFound: If the folder does not exist
        """
        directory = self.paths.resolve_original(rel_path)
        if not os.path.isdir(directory):
            raise AssetNotFound(f"Folder not found: {rel_path}")
        listing = self._scan(directory)
        listing.path = rel_path.strip('/')
        return listing

    def list_folders(self) -> List[str]:
        """Top-level folders, cached for a few minutes."""
        def compute():
            self.logger.debug(f"Listing folders in {self.paths.photos_dir}")
            return self._scan(self.paths.photos_dir).folders
        return list(self.folder_cache.get_or_compute(FOLDERS_KEY, compute))

    def walk_media(self, rel_path: str = '') -> Iterator[Asset]:
        """
        Yield every listed image and video below a folder, depth first.

        Args:
            rel_path: Folder to start from ('' for the whole library)
        """
        listing = self.list_directory(rel_path)
        prefix = f"{listing.path}/" if listing.path else ''
        for name in listing.images + listing.videos:
            yield Asset.from_path(prefix + name)
        for name in listing.folders:
            yield from self.walk_media(prefix + name)

    def _find_random(self, rel_path: str, kind: str) -> Optional[str]:
        try:
            listing = self.list_directory(rel_path)
        except (AssetNotFound, OSError) as e:
            self.logger.debug(f"Cannot search {rel_path!r} for a random {kind[:-1]}: {e}")
            return None
        prefix = f"{listing.path}/" if listing.path else ''
        candidates = getattr(listing, kind)
        if candidates:
            return prefix + self.rng.choice(candidates)

        folders = list(listing.folders)
        self.rng.shuffle(folders)
        for name in folders:
            found = self._find_random(prefix + name, kind)
            if found:
                return found
        return None

    def find_random_image(self, rel_path: str = '') -> Optional[str]:
        """
        Pick a random listed image below a folder.

        Images directly in a folder win over its sub-folders, which are
        searched in random order. Missing folders give None.

        Args:
            rel_path: Folder to search ('' for the whole library)

        Returns:
            Image path relative to the media root, or None
        """
        return self._find_random(rel_path, 'images')

    def find_random_video(self, rel_path: str = '') -> Optional[str]:
        """Same as find_random_image, for videos."""
        return self._find_random(rel_path, 'videos')

    def rotate_in_place(self, rel_path: str) -> List[str]:
        """
        Rotate an image 90 degrees clockwise, overwriting the original.

        EXIF metadata is kept (with orientation reset, since it is baked
        into the pixels) and every cached variant of the image is removed.

        Args:
            rel_path: Image path relative to the media root

        Returns:
            Cache files that were invalidated

        Raises:
            AssetNotFound: If the image does not exist
            DecodeError: If the format cannot be rewritten or decoded
        """
        original = self.paths.resolve_original(rel_path)
        if not os.path.isfile(original):
            raise AssetNotFound(f"Image not found: {rel_path}")

        ext = os.path.splitext(original)[1].lower()
        image_format = ROTATABLE_FORMATS.get(ext)
        if image_format is None:
            raise DecodeError(f"Cannot rotate {ext} files in place")

        try:
            with Image.open(original) as img:
                img.load()
                exif = img.getexif()
                icc_profile = img.info.get('icc_profile')
                rotated = ImageOps.exif_transpose(img).rotate(-90, expand=True)
        except (OSError, ValueError) as e:
            if classify_error(e) == ErrorKind.TRANSIENT_IO:
                raise TransientIOError(f"Transient error reading {rel_path}: {e}")
            raise DecodeError(f"Cannot decode {rel_path}: {e}")

        if EXIF_ORIENTATION in exif:
            exif[EXIF_ORIENTATION] = 1
        save_args = {'format': image_format}
        if image_format in ('JPEG', 'PNG', 'WEBP') and len(exif):
            save_args['exif'] = exif.tobytes()
        if icc_profile:
            save_args['icc_profile'] = icc_profile
        if image_format == 'JPEG':
            save_args['quality'] = 95

        with atomic_output(original) as tmp:
            rotated.save(tmp, **save_args)
        self.logger.info(f"Rotated {rel_path}")
        return self.paths.invalidate(rel_path)
