"""
Command Line Interface for the media cache.
"""

import argparse
import logging
from typing import List, Optional

from .config import MediaConfig
from .errors import AssetNotFound, MediaError
from .generation_progress import GenerationProgress
from .service import MediaService


def setup_logging(verbose: bool) -> logging.Logger:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    logging.getLogger('sh').setLevel(logging.WARNING)
    logging.getLogger('PIL').setLevel(logging.WARNING)

    return logging.getLogger('mediacache')


def get_config(args: argparse.Namespace) -> MediaConfig:
    """Get configuration from environment and CLI overrides."""
    config = MediaConfig.from_env()

    if getattr(args, 'photos_dir', None):
        config.photos_dir = args.photos_dir
    if getattr(args, 'raw_workers', None):
        config.raw_workers = args.raw_workers
    if getattr(args, 'min_bytes', None) is not None:
        config.transcode_min_bytes = args.min_bytes
    if getattr(args, 'ffmpeg', None):
        config.ffmpeg = args.ffmpeg
    if getattr(args, 'ffprobe', None):
        config.ffprobe = args.ffprobe

    return config


def build_service(args: argparse.Namespace, logger: logging.Logger) -> Optional[MediaService]:
    """Build the service, or log the configuration problems and return None."""
    config = get_config(args)
    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(error)
        return None
    logger.info(f"Media root: {config.photos_dir}")
    return MediaService(config, logger=logger)


def add_config_arguments(parser: argparse.ArgumentParser) -> None:
    """Add configuration override arguments to a parser."""
    group = parser.add_argument_group('Configuration')
    group.add_argument('--photos-dir', metavar='PATH', help='Override PHOTOS_DIR')
    group.add_argument('--raw-workers', type=int, metavar='N',
                       help='Override MEDIACACHE_RAW_WORKERS')
    group.add_argument('--min-bytes', type=int, metavar='BYTES',
                       help='Override PICVIEW_TRANSCODE_MIN_BYTES')
    group.add_argument('--ffmpeg', help='Override MEDIACACHE_FFMPEG')
    group.add_argument('--ffprobe', help='Override MEDIACACHE_FFPROBE')


def cmd_preprocess(args: argparse.Namespace) -> int:
    """Execute preprocess command."""
    logger = setup_logging(args.verbose)

    if args.concurrency <= 0:
        logger.error("--concurrency must be positive")
        return 1

    service = build_service(args, logger)
    if service is None:
        return 1

    if args.limit:
        logger.info(f"Test mode: limiting to {args.limit} assets")
    if args.show_files:
        logger.info("Show-files mode: will print each file")

    try:
        preprocessor = service.preprocessor(concurrency=args.concurrency, dry_run=args.dry_run)
        progress = GenerationProgress(show_files=args.show_files, logger=logger)
        stats = preprocessor.run(args.path, progress=progress, limit=args.limit)

        if not args.quiet:
            print()
            print(f"Processed: {stats.processed} ({stats.images} images, {stats.videos} videos)")
            print(f"Transcoded: {stats.transcodes}")
            print(f"Errors: {stats.errors}")
            print(f"Time: {stats.elapsed_seconds:.1f}s")
            print(f"Rate: {stats.rate_per_minute:.1f}/min")

        return 0 if stats.errors == 0 else 1

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except AssetNotFound as e:
        logger.error(str(e))
        return 1
    except Exception as e:
        logger.exception(f"Preprocessing failed: {e}")
        return 1


def cmd_image(args: argparse.Namespace) -> int:
    """Execute image command: ensure one image variant."""
    logger = setup_logging(args.verbose)

    if args.width is not None and args.width <= 0:
        logger.error("--width must be positive")
        return 1

    service = build_service(args, logger)
    if service is None:
        return 1

    try:
        path = service.ensure_variant(args.path, args.width)
    except MediaError as e:
        logger.error(f"Failed: {e}")
        return 1

    print(path)
    return 0


def cmd_video(args: argparse.Namespace) -> int:
    """Execute video command: ensure the thumbnail, optionally the transcode."""
    logger = setup_logging(args.verbose)

    service = build_service(args, logger)
    if service is None:
        return 1

    thumbnail = service.ensure_thumbnail(args.path)
    if thumbnail is None:
        logger.error(f"No thumbnail for {args.path}")
        return 1
    print(thumbnail)

    if args.transcode:
        transcoded = service.ensure_transcode(args.path)
        if transcoded is None:
            logger.info(f"No transcode for {args.path} (skipped, in progress or failed)")
        else:
            print(transcoded)

    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog='mediacache',
        description='Derivative cache for photo and video libraries',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Warm the whole library:   python -m mediacache preprocess --concurrency 4
  One image thumbnail:      python -m mediacache image Trip/img.dng --width 300
  Video poster + HEVC:      python -m mediacache video Trip/clip.mov --transcode

Configuration comes from PHOTOS_DIR, PICVIEW_TRANSCODE_MIN_BYTES and the
MEDIACACHE_* environment variables; the options below override them.
"""
    )

    parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # Preprocess command
    pre_parser = subparsers.add_parser('preprocess', help='Generate derivatives for every asset')
    pre_parser.add_argument('path', nargs='?', default='', help='Folder to process (default: all)')
    pre_parser.add_argument('-c', '--concurrency', type=int, default=2,
                            help='Assets processed at once (default: 2)')
    pre_parser.add_argument('-n', '--dry-run', action='store_true', help='Show what would be done')
    pre_parser.add_argument('-q', '--quiet', action='store_true', help='Suppress the summary')
    pre_parser.add_argument('--show-files', action='store_true',
                            help='Print each file as processed')
    pre_parser.add_argument('--limit', type=int, metavar='N',
                            help='Limit to N assets (for testing)')
    pre_parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')
    add_config_arguments(pre_parser)

    # Image command
    image_parser = subparsers.add_parser('image', help='Ensure one image variant and print its path')
    image_parser.add_argument('path', help='Image path relative to the media root')
    image_parser.add_argument('-w', '--width', type=int, help='Width in pixels (default: full)')
    image_parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')
    add_config_arguments(image_parser)

    # Video command
    video_parser = subparsers.add_parser('video', help='Ensure a video thumbnail and print its path')
    video_parser.add_argument('path', help='Video path relative to the media root')
    video_parser.add_argument('--transcode', action='store_true',
                              help='Also ensure the HEVC transcode')
    video_parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')
    add_config_arguments(video_parser)

    return parser


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    if parsed_args.command == 'preprocess':
        return cmd_preprocess(parsed_args)
    elif parsed_args.command == 'image':
        return cmd_image(parsed_args)
    elif parsed_args.command == 'video':
        return cmd_video(parsed_args)

    return 1
