"""Partition index records into duplicate groups."""

import logging
from typing import Dict, Iterable, Iterator, List, Tuple

from .errors import IndexInconsistency
from .fastq import ReadStore
from .types import DuplicateGroup, Fingerprint, IndexRecord, Read


def assemble_groups(records: Iterable[IndexRecord]) -> List[DuplicateGroup]:
    """Group records by fingerprint.

    Groups are numbered by the first appearance of their fingerprint and keep
    their members in index order. A read ID occurring twice is an
    IndexInconsistency, since every read must belong to exactly one group.
    """
    groups: Dict[Fingerprint, DuplicateGroup] = {}
    seen = set()
    for record in records:
        if record.read_id in seen:
            raise IndexInconsistency(f"Read '{record.read_id}' appears more than once in the index")
        seen.add(record.read_id)

        group = groups.get(record.fingerprint)
        if group is None:
            group = DuplicateGroup(index=len(groups), fingerprint=record.fingerprint)
            groups[record.fingerprint] = group
        group.members.append(record)

    logging.info(f"Found {len(groups)} distinct fingerprints across {len(seen)} reads")
    return list(groups.values())


def group_sizes(groups: Iterable[DuplicateGroup]) -> Dict[Fingerprint, int]:
    """Group size per fingerprint, the input to the duplicate statistics.

    Keyed by the fingerprint itself: distinct fingerprints may share a
    composite key, for example (AAA, "") and ("", AAA).
    """
    return {group.fingerprint: group.size for group in groups}


def iter_group_reads(groups: Iterable[DuplicateGroup], store: ReadStore,
                     duplicates_only: bool = False) -> Iterator[Tuple[DuplicateGroup, List[Read]]]:
    """Load the member reads of each group from the input file.

    Singleton groups are not read at all when duplicates_only is set.
    """
    for group in groups:
        if duplicates_only and group.is_singleton:
            continue
        yield group, [store.fetch(member) for member in group.members]
