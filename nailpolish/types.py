"""Record types shared across nailpolish modules."""

from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional, Tuple


class Fingerprint(NamedTuple):
    """Barcode and UMI pair identifying one original molecule."""
    barcode: str
    umi: str

    @property
    def key(self) -> str:
        """Composite key used for grouping and output naming (BC_UMI)."""
        return '_'.join(part for part in (self.barcode, self.umi) if part)

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class Read:
    """A single FASTQ record and its location in the source file."""
    read_id: str
    header: str
    sequence: str
    quality: str
    offset: int = 0
    length: int = 0

    @property
    def avg_quality(self) -> float:
        if not self.quality:
            return 0.0
        return sum(ord(c) - 33 for c in self.quality) / len(self.quality)


@dataclass(frozen=True)
class IndexRecord:
    read_id: str
    fingerprint: Fingerprint
    offset: int
    length: int
    avg_qual: float = 0.0
    n_bases: int = 0


@dataclass
class DuplicateGroup:
    """Reads sharing a fingerprint, in order of first appearance in the index."""
    index: int
    fingerprint: Fingerprint
    members: List[IndexRecord] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def is_singleton(self) -> bool:
        return len(self.members) == 1

    @property
    def read_ids(self) -> List[str]:
        return [member.read_id for member in self.members]


class ConsensusResult(NamedTuple):
    fingerprint: Fingerprint
    index: int
    consensus: str
    member_count: int
    member_read_ids: Tuple[str, ...]
    members: Tuple[Read, ...]
    identity: Optional[float] = None  # mean member-to-consensus identity

    @property
    def is_singleton(self) -> bool:
        return self.member_count == 1
