"""Utilities for cache key generation and management."""

import enum
import hashlib
import json
from typing import Any

from pydantic import BaseModel


def canonicalize(value: Any) -> Any:
    """
    Normalize a value so that semantically identical inputs serialize identically.

    - enums become their values
    - integral floats become ints (5.0 -> 5)
    - lists, tuples and sets are de-duplicated and sorted
    - dicts and pydantic models lose None and empty entries
    """
    if isinstance(value, BaseModel):
        value = value.model_dump()
    if isinstance(value, enum.Enum):
        value = value.value
    if isinstance(value, dict):
        result = {}
        for key in sorted(value, key=str):
            normalized = canonicalize(value[key])
            if normalized is None or normalized == []:
                continue
            result[str(key)] = normalized
        return result
    if isinstance(value, (list, tuple, set, frozenset)):
        items = {json.dumps(canonicalize(item), sort_keys=True, default=str) for item in value}
        return [json.loads(item) for item in sorted(items)]
    if isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def generate_cache_key(prefix: str, **kwargs: Any) -> str:
    """
    Generate a cache key from a prefix and keyword arguments.

    Args:
        prefix: Cache key prefix (e.g., "analytics:subject_statistics")
        **kwargs: Key-value pairs to include in the cache key

    Returns:
        A cache key string in the format: prefix:hash(kwargs)
    """
    key_str = json.dumps(canonicalize(kwargs), sort_keys=True, default=str)

    # Generate hash for compact key
    key_hash = hashlib.md5(key_str.encode()).hexdigest()

    return f"{prefix}:{key_hash}"


def generate_report_key(prefix: str, report_filter: BaseModel) -> str:
    """
    Generate cache key for a subject statistics report.

    Args:
        prefix: Namespace prefix (e.g., "analytics")
        report_filter: Filter the report was computed for

    Returns:
        Cache key string
    """
    return generate_cache_key(f"{prefix}:subject_statistics", filter=report_filter)


def generate_top_performers_key(prefix: str, subject: str, limit: int) -> str:
    """Generate cache key for the top performers of a subject."""
    return f"{prefix}:top_performers:{subject}:{limit}"


def generate_dashboard_key(prefix: str) -> str:
    """Generate cache key for the dashboard overview."""
    return f"{prefix}:dashboard_overview"


def generate_namespace_pattern(prefix: str) -> str:
    """
    Generate a pattern to match every key in a namespace.
    Used for cache invalidation.

    Returns:
        Pattern string for matching cache keys
    """
    return f"{prefix}:*"
