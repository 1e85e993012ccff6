"""
GenerationStats - Statistics for a preprocessing run.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import List

from .models import KIND_IMAGE, KIND_VIDEO


@dataclass
class GenerationStats:
    """
    Statistics for a preprocessing run.

    Updated from several worker threads; use the record_* methods rather
    than touching the counters directly.

    Attributes:
        total_to_process: Assets found by the walk
        processed: Assets whose derivatives were ensured
        errors: Assets that failed
        images: Images processed
        videos: Videos processed
        transcodes: Videos with a finished transcode
        start_time: Start timestamp
        error_details: List of error messages
    """
    total_to_process: int = 0
    processed: int = 0
    errors: int = 0
    images: int = 0
    videos: int = 0
    transcodes: int = 0
    start_time: float = field(default_factory=time.time)
    error_details: List[str] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record_success(self, kind: str, transcoded: bool = False) -> int:
        """Count a finished asset. Returns the new completed count."""
        with self._lock:
            self.processed += 1
            if kind == KIND_IMAGE:
                self.images += 1
            elif kind == KIND_VIDEO:
                self.videos += 1
                if transcoded:
                    self.transcodes += 1
            return self.completed_count

    def record_error(self, message: str) -> int:
        """Count a failed asset. Returns the new completed count."""
        with self._lock:
            self.errors += 1
            self.error_details.append(message)
            return self.completed_count

    @property
    def elapsed_seconds(self) -> float:
        """Elapsed time in seconds."""
        return time.time() - self.start_time

    @property
    def rate_per_second(self) -> float:
        """Processing rate in assets per second."""
        if self.elapsed_seconds > 0:
            return self.completed_count / self.elapsed_seconds
        return 0.0

    @property
    def rate_per_minute(self) -> float:
        return self.rate_per_second * 60

    @property
    def estimated_remaining_seconds(self) -> float:
        """Estimated time remaining in seconds."""
        if self.rate_per_second > 0:
            return self.remaining_count / self.rate_per_second
        return 0.0

    @property
    def completed_count(self) -> int:
        """Total completed (processed + errors)."""
        return self.processed + self.errors

    @property
    def remaining_count(self) -> int:
        return self.total_to_process - self.completed_count
