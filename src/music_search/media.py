"""
Image asset materialization.

Downloads a remote image, stores it under a filename derived from a
human-readable label, and wraps the file in an "image" media asset. Assets
are addressed only by that derived filename: the same remote image stored
under two labels becomes two assets.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

import httpx

from music_search.repository import ContentRepository
from music_search.safe_logging import redact_url

log = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_-]")

# Always .jpg, whatever the remote content type is
IMAGE_EXTENSION = ".jpg"


def derive_filename(label: str) -> str:
    """Filesystem-safe filename for a label: non [A-Za-z0-9_-] become "_"."""
    return _UNSAFE_CHARS.sub("_", label) + IMAGE_EXTENSION


def unique_path(directory: Path, filename: str) -> Path:
    """Return directory/filename, renamed to name_0.jpg, name_1.jpg ... on collision."""
    candidate = directory / filename
    if not candidate.exists():
        return candidate

    stem = candidate.stem
    suffix = candidate.suffix
    counter = 0
    while (directory / f"{stem}_{counter}{suffix}").exists():
        counter += 1
    return directory / f"{stem}_{counter}{suffix}"


class MediaStore:
    """
    Creates image media assets from remote URLs.

    Fetch or write failures yield None so the enclosing content creation can
    proceed without the image.
    """

    def __init__(
        self,
        repository: ContentRepository,
        directory: Path,
        client: httpx.Client | None = None,
        timeout_s: float = 10.0,
    ):
        self.repository = repository
        self.directory = directory
        self.timeout_s = timeout_s
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout_s, follow_redirects=True)

    def fetch(self, url: str) -> bytes | None:
        """Download raw bytes; None on any transport failure or empty body."""
        try:
            response = self._client.get(url, timeout=self.timeout_s)
            response.raise_for_status()
        except httpx.HTTPError as e:
            log.error(f"Error fetching image {redact_url(url)}: {e}")
            return None
        except httpx.InvalidURL as e:
            log.error(f"Invalid image URL: {e}")
            return None

        if not response.content:
            log.warning(f"Empty image body from {redact_url(url)}")
            return None
        return response.content

    def create_media_from_url(self, url: str, label: str = "Image") -> int | None:
        """
        Download an image and wrap it in an image media asset.

        Args:
            url: Remote image URL
            label: Human-readable label; drives the filename, media name and alt text

        Returns:
            Media asset ID, or None if the image could not be materialized
        """
        data = self.fetch(url)
        if data is None:
            return None

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            path = unique_path(self.directory, derive_filename(label))
            path.write_bytes(data)

            file_id = self.repository.create_file(str(path), path.name)
            media = self.repository.create_media(name=label, file_id=file_id, alt=label)
        except Exception as e:
            # Repository backends raise their own error types
            log.error(f"Error creating media for {label!r}: {e}")
            return None

        log.info(f"Created image media {media.id} ({path.name}) for {label!r}")
        return media.id

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> MediaStore:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


## Tests


def test_derive_filename():
    assert derive_filename("AC/DC: Live!") == "AC_DC__Live_.jpg"
    assert derive_filename("the-band_1") == "the-band_1.jpg"


def test_unique_path_renames(tmp_path):
    (tmp_path / "cover.jpg").write_bytes(b"x")
    (tmp_path / "cover_0.jpg").write_bytes(b"x")
    assert unique_path(tmp_path, "cover.jpg").name == "cover_1.jpg"
    assert unique_path(tmp_path, "other.jpg").name == "other.jpg"
