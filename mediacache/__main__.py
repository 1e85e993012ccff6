"""
Main entry point for running the package as a module.

Usage:
    python -m mediacache preprocess --concurrency 4
    python -m mediacache image Trip/img.dng --width 300
    python -m mediacache video Trip/clip.mov --transcode
"""

import sys
from .cli import main

if __name__ == '__main__':
    sys.exit(main())
