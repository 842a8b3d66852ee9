"""Record counting engine for Dataverse-style OData collections."""

from record_counter.counting.counter import RecordCounter
from record_counter.fetchxml.rewriter import rewrite_for_page, rewrite_for_total_count
from record_counter.paging.walker import PageWalker, normalize_relative_path

__all__ = [
    "PageWalker",
    "RecordCounter",
    "normalize_relative_path",
    "rewrite_for_page",
    "rewrite_for_total_count",
]
