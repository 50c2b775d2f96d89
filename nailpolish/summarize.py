"""Duplicate statistics for an index.

Report rendering is left to other tools; this module produces the numbers as
JSON.
"""

import dataclasses
import json
import logging
from collections import Counter
from typing import Dict, Iterable, Optional

from .groups import assemble_groups, group_sizes
from .index import IndexMetadata, iter_index, read_metadata


@dataclasses.dataclass
class DuplicateStatistics:
    total_reads: int = 0
    duplicate_reads: int = 0
    duplicate_ids: int = 0
    proportion_duplicate: float = 0.0
    distribution: Dict[int, int] = dataclasses.field(default_factory=dict)


def duplicate_statistics(sizes: Iterable[int]) -> DuplicateStatistics:
    """Summarise a group-size distribution.

    `distribution` maps group size to the number of groups of that size, in
    increasing size order.
    """
    counts = Counter(sizes)
    stats = DuplicateStatistics()
    stats.total_reads = sum(size * n for size, n in counts.items())
    stats.duplicate_reads = sum(size * n for size, n in counts.items() if size > 1)
    stats.duplicate_ids = sum(n for size, n in counts.items() if size > 1)
    if stats.total_reads:
        stats.proportion_duplicate = stats.duplicate_reads / stats.total_reads
    stats.distribution = dict(sorted(counts.items()))
    return stats


def summarize_index(index_path: str) -> Dict:
    """Statistics and index metadata for one index, as a JSON-ready dict."""
    logging.info(f"Summarising index at {index_path}")
    groups = assemble_groups(iter_index(index_path))
    stats = duplicate_statistics(group_sizes(groups).values())
    metadata: Optional[IndexMetadata] = read_metadata(index_path)

    summary = dataclasses.asdict(metadata) if metadata is not None else {}
    summary['stats'] = dataclasses.asdict(stats)
    logging.info(f"{stats.total_reads} reads, {stats.duplicate_ids} duplicate groups covering "
                 f"{stats.duplicate_reads} reads ({stats.proportion_duplicate:.1%} duplicate)")
    return summary


def write_summary(index_path: str, output_path: str) -> Dict:
    summary = summarize_index(index_path)
    with open(output_path, 'w') as f:
        json.dump(summary, f, indent=2)
    logging.info(f"Wrote summary to {output_path}")
    return summary
