"""Cross-cutting helpers for the application layer."""

from .progress import ProgressEmitter, RecordingProgressSink
from .rate_limiter import SlidingWindowRateLimiter
from .retry import RetryPolicy

__all__ = [
    "ProgressEmitter",
    "RecordingProgressSink",
    "RetryPolicy",
    "SlidingWindowRateLimiter",
]
