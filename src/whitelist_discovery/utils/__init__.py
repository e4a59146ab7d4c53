"""Utility functions."""

from whitelist_discovery.utils.url_utils import (
    ensure_trailing_slash,
    first_segment,
    is_same_origin,
    normalize_url,
    relative_child,
)

__all__ = [
    "ensure_trailing_slash",
    "first_segment",
    "is_same_origin",
    "normalize_url",
    "relative_child",
]
