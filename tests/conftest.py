import random

import pytest

BARCODES = ["TCTGGCTCATTCTCCG", "AAACCCAAGGTTACCT", "GGGTCATTCACCTTAT"]
UMIS = ["GCAGCGAAGCCC", "TTGCACGTATAA", "CCATAGGACTGA"]


def random_sequence(seed: str, length: int) -> str:
    """Deterministic DNA sequence from a seed string."""
    rng = random.Random(seed)
    return ''.join(rng.choice('ACGT') for _ in range(length))


def bc_umi_header(barcode: str, umi: str, name: str) -> str:
    """Header in the Flexiplex BC_UMI#READ_+1of1 style."""
    return f"{barcode}_{umi}#{name}_+1of1"


@pytest.fixture
def write_fastq(tmp_path):
    """Return a function writing (header, sequence) pairs to a FASTQ file."""
    def _write(records, name='reads.fastq', quality='I'):
        path = tmp_path / name
        with open(path, 'w') as f:
            for header, sequence in records:
                f.write(f"@{header}\n{sequence}\n+\n{quality * len(sequence)}\n")
        return str(path)
    return _write
