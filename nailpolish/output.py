"""Rendering of consensus results and grouped reads."""

from dataclasses import dataclass
from typing import List, Optional, TextIO

from .types import ConsensusResult, DuplicateGroup, Read


def format_fastq(name: str, sequence: str, quality: str) -> str:
    return f"@{name}\n{sequence}\n+\n{quality}\n"


def format_fasta(name: str, sequence: str) -> str:
    return f">{name}\n{sequence}\n"


def singleton_name(key: str) -> str:
    return f"{key}_SIN"


def consensus_name(key: str, size: int) -> str:
    return f"{key}_CON_{size}"


def original_name(key: str, i: int, size: int) -> str:
    return f"{key}_DUP_{i}_of_{size}"


def render_result(result: ConsensusResult, duplicates_only: bool = False,
                  report_original_reads: bool = False) -> str:
    """Render one group's records.

    Singletons keep their quality and are written as FASTQ. A duplicate group
    is written as its FASTA consensus, preceded by its numbered original reads
    (FASTQ) when report_original_reads is set.
    """
    key = result.fingerprint.key
    if result.is_singleton:
        if duplicates_only:
            return ''
        read = result.members[0]
        return format_fastq(singleton_name(key), read.sequence, read.quality)

    parts = []
    if report_original_reads:
        for i, read in enumerate(result.members, start=1):
            parts.append(format_fastq(original_name(key, i, result.member_count), read.sequence, read.quality))
    parts.append(format_fasta(consensus_name(key, result.member_count), result.consensus))
    return ''.join(parts)


@dataclass
class CallStats:
    groups: int = 0
    singletons: int = 0
    duplicate_groups: int = 0
    duplicate_reads: int = 0
    records_written: int = 0
    identity_total: float = 0.0

    @property
    def mean_identity(self) -> Optional[float]:
        if not self.duplicate_groups:
            return None
        return self.identity_total / self.duplicate_groups


class ResultWriter:
    """The single writer for consensus output; also keeps run statistics."""

    def __init__(self, handle: TextIO, duplicates_only: bool = False, report_original_reads: bool = False):
        self.handle = handle
        self.duplicates_only = duplicates_only
        self.report_original_reads = report_original_reads
        self.stats = CallStats()

    def __call__(self, result: ConsensusResult) -> None:
        self.write(result)

    def write(self, result: ConsensusResult) -> None:
        text = render_result(result, self.duplicates_only, self.report_original_reads)
        if text:
            self.handle.write(text)

        self.stats.groups += 1
        if result.is_singleton:
            self.stats.singletons += 1
            if not self.duplicates_only:
                self.stats.records_written += 1
        else:
            self.stats.duplicate_groups += 1
            self.stats.duplicate_reads += result.member_count
            self.stats.records_written += 1
            if self.report_original_reads:
                self.stats.records_written += result.member_count
            if result.identity is not None:
                self.stats.identity_total += result.identity


def render_group_fastq(group: DuplicateGroup, reads: List[Read]) -> bytes:
    """One group's reads as a FASTQ byte stream, tagged with their group.

    Headers keep the read ID and add `UG:i:` (group index), `BX:Z:`
    (fingerprint key) and `UT:Z:` (SIN or DUP_i_of_n).
    """
    key = group.fingerprint.key
    size = len(reads)
    chunks = []
    for i, read in enumerate(reads, start=1):
        label = 'SIN' if size == 1 else f"DUP_{i}_of_{size}"
        name = f"{read.read_id} UG:i:{group.index} BX:Z:{key} UT:Z:{label}"
        chunks.append(format_fastq(name, read.sequence, read.quality))
    return ''.join(chunks).encode('utf-8')
