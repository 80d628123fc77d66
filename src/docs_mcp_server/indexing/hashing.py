from __future__ import annotations

import hashlib
import re

MAX_FILENAME_LENGTH = 100
_UNSAFE_CHARS = re.compile(r'[/?<>\\:*|"]')
_DASH_RUNS = re.compile(r"-+")


def content_hash(content: str) -> str:
    """SHA-256 hex digest of the UTF-8 encoded content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def url_digest(url: str) -> str:
    return hashlib.md5(url.encode("utf-8")).hexdigest()[:8]


def url_to_filename(url: str, base_url: str, disambiguate: bool = False) -> str:
    """
    Derive the corpus filename for a page URL.

    The site prefix is stripped and path separators become dashes, so
    ``https://site/docs/intro`` maps to ``docs-intro.json``. Long names are
    truncated and disambiguated with a short digest of the full URL.

    The readable form is not injective (``/docs/foo/bar`` and
    ``/docs/foo-bar`` share ``docs-foo-bar.json``). With ``disambiguate``
    the digest suffix is always appended, which callers use once the
    readable name is taken by another URL.
    """
    prefix = re.compile(r"^https?://" + re.escape(_strip_scheme(base_url).rstrip("/")) + r"/?")
    name = prefix.sub("", url)
    name = _UNSAFE_CHARS.sub("-", name)
    name = _DASH_RUNS.sub("-", name)
    name = name.strip("-")

    if not name or name == "-":
        name = "index"

    if len(name) > MAX_FILENAME_LENGTH:
        name = name[:92] + "-" + url_digest(url)
    elif disambiguate:
        name = name + "-" + url_digest(url)

    return name + ".json"


def _strip_scheme(url: str) -> str:
    return re.sub(r"^https?://", "", url)
