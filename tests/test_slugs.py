"""
Slug generator and content helper tests — pure functions plus the async
uniqueness probe, no database involved.
"""
import pytest

from blog_cms.content import extract_text, generate_excerpt, truncate
from blog_cms.errors import ErrorKind, SlugExhausted
from blog_cms.slugs import FALLBACK_SLUG, slugify, unique_slug


def _exists_in(taken: set[str]):
    async def exists(candidate: str) -> bool:
        return candidate in taken

    return exists


# ---------------------------------------------------------------------------
# slugify
# ---------------------------------------------------------------------------

def test_slugify_strips_punctuation():
    assert slugify("Hello, World!") == "hello-world"


def test_slugify_collapses_spaces_and_hyphens():
    assert slugify("  multiple   spaces--here ") == "multiple-spaces-here"


def test_slugify_strips_edge_hyphens():
    assert slugify("--Edge Case--") == "edge-case"


def test_slugify_is_deterministic():
    assert slugify("Async Python 101") == slugify("Async Python 101") == "async-python-101"


def test_slugify_only_symbols_is_empty():
    assert slugify("!!!") == ""


def test_slugify_drops_non_ascii_letters():
    slug = slugify("Café Déjà vu")
    assert slug == "caf-dj-vu"
    assert slug.isascii()


def test_slugify_non_ascii_only_is_empty():
    assert slugify("日本語") == ""


# ---------------------------------------------------------------------------
# unique_slug
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_unique_slug_returns_base_when_free():
    assert await unique_slug("Hello World", _exists_in(set())) == "hello-world"


@pytest.mark.asyncio
async def test_unique_slug_first_suffix_is_one():
    assert await unique_slug("Hello World", _exists_in({"hello-world"})) == "hello-world-1"


@pytest.mark.asyncio
async def test_unique_slug_suffixes_have_no_gaps():
    taken = {"hello-world"}
    results = []
    for _ in range(4):
        slug = await unique_slug("Hello World", _exists_in(taken))
        taken.add(slug)
        results.append(slug)
    assert results == ["hello-world-1", "hello-world-2", "hello-world-3", "hello-world-4"]


@pytest.mark.asyncio
async def test_unique_slug_never_returns_a_taken_value():
    taken = {"post", "post-1", "post-3"}
    slug = await unique_slug("Post", _exists_in(taken))
    assert slug not in taken
    assert slug == "post-2"


@pytest.mark.asyncio
async def test_unique_slug_falls_back_for_empty_base():
    assert await unique_slug("???", _exists_in(set())) == FALLBACK_SLUG


@pytest.mark.asyncio
async def test_unique_slug_exhaustion_raises():
    taken = {"busy"} | {f"busy-{i}" for i in range(1, 4)}
    with pytest.raises(SlugExhausted) as exc_info:
        await unique_slug("Busy", _exists_in(taken), max_attempts=3)
    assert exc_info.value.kind is ErrorKind.SLUG_EXHAUSTED
    assert "busy" in exc_info.value.message


# ---------------------------------------------------------------------------
# Content helpers
# ---------------------------------------------------------------------------

DOCUMENT = {
    "type": "doc",
    "content": [
        {"type": "heading", "content": [{"type": "text", "text": "Intro"}]},
        {
            "type": "paragraph",
            "content": [
                {"type": "text", "text": "Hello"},
                {"type": "text", "text": "there"},
            ],
        },
        {"type": "image", "attrs": {"src": "https://example.com/a.png"}},
    ],
}


def test_extract_text_walks_the_document():
    assert extract_text(DOCUMENT) == "Intro\nHello there"


def test_extract_text_tolerates_garbage():
    assert extract_text(None) == ""
    assert extract_text(42) == ""
    assert extract_text({"content": "not a list"}) == ""
    assert extract_text({"content": [None, 3, {"type": "text", "text": 5}]}) == ""


def test_extract_text_accepts_plain_strings():
    assert extract_text("  plain body  ") == "plain body"


def test_truncate_adds_ellipsis():
    assert truncate("abcdefghij", 8) == "abcde..."
    assert truncate("short", 8) == "short"


def test_generate_excerpt_bounds_length():
    doc = {"type": "doc", "content": [{"type": "text", "text": "word " * 100}]}
    excerpt = generate_excerpt(doc, max_length=50)
    assert len(excerpt) == 50
    assert excerpt.endswith("...")
