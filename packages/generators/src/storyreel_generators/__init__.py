"""Generation pipelines for StoryReel."""

from .parsing import (
    ParsedRecords,
    ParseResult,
    ParseTier,
    appears_truncated,
    parse,
    parse_records,
    strip_code_fences,
)
from .scene import SceneGenerator, truncate_source

__all__ = [
    "ParsedRecords",
    "ParseResult",
    "ParseTier",
    "appears_truncated",
    "parse",
    "parse_records",
    "strip_code_fences",
    "SceneGenerator",
    "truncate_source",
]
