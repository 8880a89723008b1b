"""Type definitions for giscus-proxy."""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from dataclasses import field
from typing import Optional

# Prefix marking the left side of a ``rep`` rule as a regular expression
REGEX_RULE_PREFIX = "re:"

# Separator between the left and right side of a ``rep`` rule
RULE_SEPARATOR = "=>"


@dataclass(frozen=True)
class CacheEntry:
    """A cached upstream response.

    Args:
        status: Upstream status code
        headers: Allow-listed response headers
        body: Full response body
        expires: Epoch timestamp after which the entry is treated as absent
    """

    status: int
    headers: Mapping[str, str]
    body: bytes
    expires: float


@dataclass(frozen=True)
class ReplacementRule:
    """A single text substitution parsed from a ``rep`` query parameter."""

    source: str
    replacement: str
    is_regex: bool = False
    pattern: Optional[re.Pattern[str]] = field(default=None, compare=False)
