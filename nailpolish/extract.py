"""Fingerprint extraction from read headers or a cluster table."""

import csv
import logging
import re
from typing import Dict, Optional

from .config import IndexConfig
from .errors import (
    ClusterMismatch,
    InconsistentCaptureCount,
    InvalidClusterRow,
    PatternMismatch,
)
from .presets import get_barcode_regex
from .types import Fingerprint, Read


class PatternExtractor:
    """Extract the fingerprint from the read header with a capture-group regex.

    Group 1 is the barcode and group 2 the UMI. Additional groups are appended
    to the UMI with '_'. A pattern with a single group yields a barcode-only
    fingerprint.
    """

    mode = 'pattern'

    def __init__(self, pattern: str):
        self.pattern = pattern
        self.regex = re.compile(pattern)
        if self.regex.groups == 0:
            raise ValueError(f"Pattern {pattern!r} has no capture groups")
        self.expected_captures: Optional[int] = None

    def extract(self, read: Read) -> Fingerprint:
        match = self.regex.search(read.header)
        if match is None:
            raise PatternMismatch(read.read_id, read.header, self.pattern, read.offset)

        captures = [c for c in match.groups() if c is not None]
        if self.expected_captures is None:
            self.expected_captures = len(captures)
        elif len(captures) != self.expected_captures:
            raise InconsistentCaptureCount(read.read_id, len(captures), self.expected_captures, self.pattern)

        if not captures:
            raise PatternMismatch(read.read_id, read.header, self.pattern, read.offset)
        return Fingerprint(captures[0], '_'.join(captures[1:]))


class ClusterExtractor:
    """Look up each read's fingerprint in a pre-loaded cluster table."""

    mode = 'clusters'

    def __init__(self, clusters: Dict[str, Fingerprint], source: str = '<memory>'):
        self.clusters = clusters
        self.source = source

    @classmethod
    def from_file(cls, path: str) -> 'ClusterExtractor':
        return cls(load_cluster_file(path), source=path)

    def extract(self, read: Read) -> Fingerprint:
        try:
            return self.clusters[read.read_id]
        except KeyError:
            raise ClusterMismatch(read.read_id) from None


def load_cluster_file(path: str) -> Dict[str, Fingerprint]:
    """Read a headerless READ_ID;BARCODE[;UMI] table."""
    logging.info(f"Reading identifiers from cluster file {path}")
    clusters = {}
    with open(path, newline='') as f:
        for line_number, row in enumerate(csv.reader(f, delimiter=';'), start=1):
            if not row:
                continue
            if len(row) == 2:
                read_id, barcode = row
                umi = ''
            elif len(row) == 3:
                read_id, barcode, umi = row
            else:
                raise InvalidClusterRow(path, line_number, ';'.join(row))
            clusters[read_id] = Fingerprint(barcode, umi)
    logging.info(f"Loaded {len(clusters)} read identifiers from cluster file")
    return clusters


def make_extractor(config: IndexConfig):
    """Pick the extraction strategy for a run.

    A cluster file takes precedence; otherwise an explicit pattern overrides
    the preset.
    """
    if config.cluster_file:
        return ClusterExtractor.from_file(config.cluster_file)
    pattern = config.pattern if config.pattern else get_barcode_regex(config.preset)
    logging.debug(f"Using barcode pattern {pattern}")
    return PatternExtractor(pattern)
