import re
from typing import Awaitable, Callable

from blog_cms.config import settings
from blog_cms.errors import SlugExhausted

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]", re.ASCII)
_SLUG_SPACE_RE = re.compile(r"\s+")
_SLUG_DASH_RE = re.compile(r"-+")

FALLBACK_SLUG = "untitled"

ExistsCheck = Callable[[str], Awaitable[bool]]


def slugify(text: str) -> str:
    """Return a URL-safe, lowercase slug derived from *text*."""
    text = _SLUG_STRIP_RE.sub("", text.lower().strip())
    text = _SLUG_SPACE_RE.sub("-", text)
    return _SLUG_DASH_RE.sub("-", text).strip("-")


async def unique_slug(
    text: str,
    exists: ExistsCheck,
    max_attempts: int | None = None,
) -> str:
    """
    Return the first of ``base``, ``base-1``, ``base-2`` ... for which the
    async predicate *exists* answers False.

    On update, *exists* must ignore the entity being updated.  Raises
    ``SlugExhausted`` after *max_attempts* suffixes have been tried.
    """
    if max_attempts is None:
        max_attempts = settings.SLUG_MAX_ATTEMPTS

    base = slugify(text) or FALLBACK_SLUG
    if not await exists(base):
        return base

    for counter in range(1, max_attempts + 1):
        candidate = f"{base}-{counter}"
        if not await exists(candidate):
            return candidate

    raise SlugExhausted(f"Could not find a free slug for {base!r} after {max_attempts} attempts")
