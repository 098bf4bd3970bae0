"""Target-catalog identifier parsing."""

import re

VIDEO_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{11}$")
_VIDEO_ID_IN_URL = re.compile(
    r"(?:v=|/videos/|embed/|youtu\.be/|/shorts/)([A-Za-z0-9_-]{11})"
)


def extract_video_id(url: str | None) -> str | None:
    """Pull the 11-character video id out of any common YouTube URL form.

    >>> extract_video_id("https://music.youtube.com/watch?v=dQw4w9WgXcQ&list=x")
    'dQw4w9WgXcQ'
    """
    if not url:
        return None
    match = _VIDEO_ID_IN_URL.search(url)
    return match.group(1) if match else None


def is_video_id(value: str) -> bool:
    return bool(VIDEO_ID_PATTERN.match(value))


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"
