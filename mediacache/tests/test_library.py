"""Tests for MediaLibrary."""

import os

import pytest
from PIL import Image

from mediacache.errors import AssetNotFound, DecodeError
from mediacache.library import MediaLibrary
from mediacache.ttl_cache import TtlCache


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def library(paths, logger):
    return MediaLibrary(paths, logger=logger)


class TestListing:
    """Tests for folder listings."""

    def test_list_directory(self, library, make_image, make_file, cache_dir):
        """Test images, videos and folders are listed and sorted."""
        make_image('Trip/b.jpg')
        make_image('Trip/a.png', image_format='PNG')
        make_file('Trip/clip.mov')
        make_file('Trip/notes.txt')
        make_file('Trip/.DS_Store')
        make_file('Trip/Day 2/c.jpg')
        os.makedirs(cache_dir('Trip'))

        listing = library.list_directory('Trip')

        assert listing.path == 'Trip'
        assert listing.images == ['a.png', 'b.jpg']
        assert listing.videos == ['clip.mov']
        assert listing.folders == ['Day 2']

    def test_raw_hidden_behind_jpeg(self, library, make_file):
        """Test a DNG with a same-named JPEG is not listed."""
        make_file('img.DNG')
        make_file('img.jpg')
        make_file('solo.dng')

        assert library.list_directory().images == ['img.jpg', 'solo.dng']

    def test_missing_folder(self, library):
        """Test listing a missing folder is AssetNotFound."""
        with pytest.raises(AssetNotFound):
            library.list_directory('nope')

    def test_to_dict(self, library, make_file):
        """Test listings serialize to plain dicts."""
        make_file('a.jpg')

        assert library.list_directory().to_dict() == {
            'path': '', 'images': ['a.jpg'], 'videos': [], 'folders': [],
        }

    def test_list_folders_cached(self, paths, make_file, logger):
        """Test the top-level folder list is cached until the TTL passes."""
        clock = FakeClock()
        library = MediaLibrary(paths, folder_cache=TtlCache(300, clock=clock), logger=logger)
        make_file('A/x.jpg')

        assert library.list_folders() == ['A']
        make_file('B/y.jpg')
        assert library.list_folders() == ['A']

        clock.now += 301
        assert library.list_folders() == ['A', 'B']

    def test_walk_media(self, library, make_file, cache_dir):
        """Test every listed asset below a folder is yielded."""
        make_file('a.jpg')
        make_file('Trip/clip.mp4')
        make_file('Trip/Day 2/b.heic')
        make_file('Trip/.hidden.jpg')
        os.makedirs(cache_dir('Trip'))
        make_file(os.path.join('Trip', os.path.basename(cache_dir('Trip')), 'b_w300.jpg'))

        assets = list(library.walk_media())

        assert [a.rel_path for a in assets] == ['a.jpg', 'Trip/clip.mp4', 'Trip/Day 2/b.heic']
        assert [a.kind for a in assets] == ['image', 'video', 'image']


class TestRandomMedia:
    """Tests for find_random_image and find_random_video."""

    def test_images_in_folder_win(self, library, make_file):
        """Test images directly in the folder are picked over sub-folders."""
        make_file('Trip/a.jpg')
        make_file('Trip/Day 2/b.jpg')

        for _ in range(10):
            assert library.find_random_image('Trip') == 'Trip/a.jpg'

    def test_descends_into_sub_folders(self, library, make_file, cache_dir):
        """Test the cache folder is skipped while searching sub-folders."""
        make_file('Trip/clip.mov')
        make_file('Trip/Day 2/b.png')
        os.makedirs(cache_dir('Trip'))
        make_file(os.path.join('Trip', os.path.basename(cache_dir('Trip')), 'x_w300.jpg'))

        for _ in range(10):
            assert library.find_random_image('Trip') == 'Trip/Day 2/b.png'

    def test_raw_with_jpeg_never_picked(self, library, make_file):
        """Test a DNG hidden behind its JPEG is not chosen."""
        make_file('img.dng')
        make_file('img.jpg')

        for _ in range(10):
            assert library.find_random_image() == 'img.jpg'

    def test_uses_injected_rng(self, paths, make_file, logger, mocker):
        """Test the choice comes from the library's random generator."""
        for name in ('a.jpg', 'b.jpg', 'c.jpg'):
            make_file(f"Trip/{name}")
        rng = mocker.Mock()
        rng.choice.side_effect = lambda items: items[-1]
        library = MediaLibrary(paths, rng=rng, logger=logger)

        assert library.find_random_image('Trip') == 'Trip/c.jpg'

    def test_random_video(self, library, make_file):
        """Test videos are found below folders without any."""
        make_file('Trip/a.jpg')
        make_file('Trip/Day 2/clip.mp4')

        assert library.find_random_video('Trip') == 'Trip/Day 2/clip.mp4'

    def test_nothing_found(self, library, make_file):
        """Test empty and missing folders give None."""
        make_file('Trip/notes.txt')

        assert library.find_random_image('Trip') is None
        assert library.find_random_video('Trip') is None
        assert library.find_random_image('nope') is None


class TestRotate:
    """Tests for rotate_in_place."""

    def test_rotates_clockwise(self, library, make_image, media_root):
        """Test the image is rotated 90 degrees clockwise in place."""
        path = make_image('a.png', size=(40, 20), image_format='PNG', mode='RGB')
        with Image.open(path) as img:
            img = img.copy()
        img.putpixel((0, 0), (0, 0, 255))
        img.save(path, format='PNG')

        library.rotate_in_place('a.png')

        with Image.open(path) as rotated:
            assert rotated.size == (20, 40)
            # top-left moves to top-right
            assert rotated.getpixel((19, 0)) == (0, 0, 255)
        assert [n for n in os.listdir(media_root) if n.startswith('.')] == []

    def test_exif_orientation_reset(self, library, make_image):
        """Test the EXIF orientation is baked in and reset to 1."""
        path = make_image('a.jpg', size=(40, 20))
        with Image.open(path) as img:
            exif = img.getexif()
            exif[0x0112] = 6
            img.save(path, format='JPEG', exif=exif.tobytes())

        library.rotate_in_place('a.jpg')

        with Image.open(path) as rotated:
            # orientation 6 displays as 20x40; one more turn gives 40x20
            assert rotated.size == (40, 20)
            assert rotated.getexif().get(0x0112, 1) == 1

    def test_invalidates_variants(self, library, make_image, cache_dir):
        """Test cached variants of the image are removed."""
        make_image('a.jpg')
        os.makedirs(cache_dir())
        for name in ('a_w300.jpg', 'a_full.jpg', 'ab_w300.jpg', 'clip.mov.jpg'):
            open(os.path.join(cache_dir(), name), 'wb').close()

        removed = library.rotate_in_place('a.jpg')

        assert sorted(os.path.basename(p) for p in removed) == ['a_full.jpg', 'a_w300.jpg']
        assert sorted(os.listdir(cache_dir())) == ['ab_w300.jpg', 'clip.mov.jpg']

    def test_unsupported_format(self, library, make_file):
        """Test formats that cannot be rewritten are refused."""
        make_file('img.dng', b'raw')

        with pytest.raises(DecodeError):
            library.rotate_in_place('img.dng')

    def test_missing(self, library):
        """Test rotating a missing image is AssetNotFound."""
        with pytest.raises(AssetNotFound):
            library.rotate_in_place('gone.jpg')
