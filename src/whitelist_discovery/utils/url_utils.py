"""URL manipulation utilities."""

from urllib.parse import unquote, urljoin, urlparse, urlunparse


def normalize_url(url: str) -> str:
    """Normalize a URL by removing fragments and lower-casing the host."""
    parsed = urlparse(url)
    normalized = parsed._replace(fragment="", netloc=parsed.netloc.lower())
    return urlunparse(normalized)


def ensure_trailing_slash(url: str) -> str:
    """Make sure the URL path ends with a slash so relative links resolve below it."""
    parsed = urlparse(url)
    path = parsed.path or "/"
    if not path.endswith("/"):
        path = path + "/"
    return urlunparse(parsed._replace(path=path, fragment=""))


def is_same_origin(url1: str, url2: str) -> bool:
    """Check if two URLs share scheme, host and port."""
    parsed1 = urlparse(url1)
    parsed2 = urlparse(url2)
    return (
        parsed1.scheme.lower() == parsed2.scheme.lower()
        and parsed1.netloc.lower() == parsed2.netloc.lower()
    )


def make_absolute(base_url: str, href: str) -> str:
    """Convert a potentially relative URL to absolute."""
    return urljoin(base_url, href)


def parent_path(url: str) -> str:
    """Return the path of the directory above the URL's directory.

    ``https://repo.example.com/maven2/`` gives ``/``, and the site root is its
    own parent.
    """
    path = urlparse(url).path.rstrip("/")
    if not path:
        return "/"
    head = path.rsplit("/", 1)[0]
    return head + "/" if head else "/"


def relative_child(href: str) -> str | None:
    """Return the href if it names a direct child of the current listing.

    Absolute URLs, host-relative paths, parent links, query and fragment
    links are rejected. The returned value keeps a trailing slash for
    directories.
    """
    href = href.strip()
    if href.startswith("./"):
        href = href[2:]
    if not href or href.startswith(("/", "?", "#")):
        return None
    parsed = urlparse(href)
    if parsed.scheme or parsed.netloc or parsed.query:
        return None
    path = parsed.path
    name = path.rstrip("/")
    if not name or "/" in name or name in (".", ".."):
        return None
    # Checked again decoded, servers normalise %2e%2e/ to the parent
    decoded = unquote(name)
    if "/" in decoded or decoded in (".", ".."):
        return None
    return path


def segment_name(href: str) -> str:
    """Decoded name of a child link, without its trailing slash."""
    return unquote(href.rstrip("/"))


def first_segment(path: str) -> str | None:
    """Extract the first segment of a request path, or None for the root."""
    path = urlparse(path).path if "://" in path else path.split("?", 1)[0]
    for part in path.split("/"):
        if part:
            return unquote(part)
    return None
