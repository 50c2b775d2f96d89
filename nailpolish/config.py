"""Configuration for indexing and consensus calling."""

import math
from dataclasses import dataclass, field
from typing import Optional, Tuple

from .presets import DEFAULT_PRESET


def parse_interval(text: str) -> Tuple[float, float]:
    """Parse an 'a,b' interval; either bound may be '-inf' or 'inf'."""
    parts = text.lower().split(',')
    if len(parts) != 2:
        raise ValueError(f"Expected format '<min>,<max>' (for example 0,15000 or 0,inf), got '{text}'")
    try:
        low, high = (float(part.strip()) for part in parts)
    except ValueError:
        raise ValueError(f"Interval bounds must be numbers, 'inf' or '-inf', got '{text}'") from None
    if low > high:
        raise ValueError(f"Interval minimum {low} is greater than maximum {high}")
    return low, high


@dataclass(frozen=True)
class ReadFilter:
    """Inclusive length and mean-quality bounds a read must satisfy to be indexed."""
    length: Tuple[float, float] = (0.0, 15000.0)
    quality: Tuple[float, float] = (0.0, math.inf)

    def accepts(self, n_bases: int, avg_qual: float) -> bool:
        return (self.length[0] <= n_bases <= self.length[1]
                and self.quality[0] <= avg_qual <= self.quality[1])


@dataclass(frozen=True)
class ScoringParams:
    """Alignment scores for the partial-order aligner.

    A gap of length L costs gap_open + (L - 1) * gap_extend.
    """
    match: int = 5
    mismatch: int = -4
    gap_open: int = -8
    gap_extend: int = -6

    def __post_init__(self):
        if self.match <= 0:
            raise ValueError("match score must be positive")
        if self.mismatch > 0 or self.gap_extend > 0:
            raise ValueError("mismatch and gap scores must not be positive")
        if self.gap_open > self.gap_extend:
            raise ValueError("gap_open must be less than or equal to gap_extend")


@dataclass(frozen=True)
class IndexConfig:
    """Settings for building an index.

    Attributes:
        preset: Named header format, ignored when pattern or cluster_file is given
        pattern: Custom capture-group regex applied to the read header
        cluster_file: Semicolon-delimited READ_ID;BARCODE[;UMI] table
        skip_unmatched: Drop reads without a fingerprint instead of failing
        read_filter: Length and quality bounds for indexed reads
    """
    preset: str = DEFAULT_PRESET
    pattern: Optional[str] = None
    cluster_file: Optional[str] = None
    skip_unmatched: bool = False
    read_filter: ReadFilter = field(default_factory=ReadFilter)

    @classmethod
    def from_args(cls, args) -> 'IndexConfig':
        return cls(
            preset=getattr(args, 'preset', DEFAULT_PRESET),
            pattern=getattr(args, 'barcode_regex', None),
            cluster_file=getattr(args, 'clusters', None),
            skip_unmatched=getattr(args, 'skip_unmatched', False),
            read_filter=ReadFilter(
                length=getattr(args, 'len', ReadFilter.length),
                quality=getattr(args, 'qual', ReadFilter.quality),
            ),
        )


@dataclass(frozen=True)
class CallConfig:
    """Settings for consensus calling.

    Attributes:
        threads: Worker threads (1 runs inline)
        duplicates_only: Do not emit singleton reads
        report_original_reads: Emit each member read before its group's consensus
        buffer_size: Maximum groups in flight, defaults to 3 x threads
        scoring: Partial-order alignment scores
    """
    threads: int = 4
    duplicates_only: bool = False
    report_original_reads: bool = False
    buffer_size: Optional[int] = None
    scoring: ScoringParams = field(default_factory=ScoringParams)

    def __post_init__(self):
        if self.threads < 1:
            raise ValueError("threads must be at least 1")
        if self.buffer_size is not None and self.buffer_size < self.threads:
            raise ValueError(f"buffer size {self.buffer_size} is smaller than the thread count {self.threads}")

    @property
    def in_flight(self) -> int:
        return self.buffer_size if self.buffer_size is not None else self.threads * 3

    @classmethod
    def from_args(cls, args) -> 'CallConfig':
        return cls(
            threads=getattr(args, 'threads', 4),
            duplicates_only=getattr(args, 'duplicates_only', False),
            report_original_reads=getattr(args, 'report_original_reads', False),
            scoring=ScoringParams(
                match=getattr(args, 'match', ScoringParams.match),
                mismatch=getattr(args, 'mismatch', ScoringParams.mismatch),
                gap_open=getattr(args, 'gap_open', ScoringParams.gap_open),
                gap_extend=getattr(args, 'gap_extend', ScoringParams.gap_extend),
            ),
        )
