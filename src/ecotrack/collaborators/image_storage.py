"""Resolve stored image object references to public URLs."""

from __future__ import annotations

from typing import Optional

from ecotrack.config import Settings
from ecotrack.errors import DownstreamUnavailable


class ImageStorage:
    """Read-only view of the object store; uploads happen upstream."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or Settings()

    def public_url(self, object_ref: str) -> str:
        """Return the public URL for an object key (absolute URLs pass through)."""
        ref = object_ref.strip()
        if ref.startswith(("http://", "https://")):
            return ref

        base_url = self.settings.supabase_url
        if not base_url:
            raise DownstreamUnavailable("SUPABASE_URL is not configured; cannot resolve image")

        key = ref.lstrip("/")
        bucket = self.settings.image_bucket
        if key.startswith(f"{bucket}/"):
            key = key[len(bucket) + 1 :]
        return f"{base_url.rstrip('/')}/storage/v1/object/public/{bucket}/{key}"
