"""Index construction and loading.

The index is a headerless tab-separated file with one row per indexed read:

    read_id  barcode  umi  offset  length  avg_qual  n_bases

Run information (counts, timings, input path) goes to a JSON sidecar next to
it, ``<index>.json``, so the index itself is identical for identical input.
"""

import csv
import dataclasses
import json
import logging
import os
import tempfile
import time
from datetime import datetime
from typing import Iterator, List, Optional

from . import __version__
from .config import IndexConfig
from .errors import ExtractionMismatch, IndexInconsistency
from .extract import make_extractor
from .fastq import iter_fastq
from .types import Fingerprint, IndexRecord

PROGRESS_INTERVAL = 50000


@dataclasses.dataclass
class IndexMetadata:
    nailpolish_version: str = __version__
    file_path: str = ''
    file_size: int = 0
    index_date: str = ''
    elapsed: float = 0.0
    mode: str = ''
    read_count: int = 0
    matched_read_count: int = 0
    unmatched_read_count: int = 0
    filtered_reads: int = 0
    avg_qual: float = 0.0
    avg_len: float = 0.0


def metadata_path(index_path: str) -> str:
    return index_path + '.json'


def write_metadata(metadata: IndexMetadata, index_path: str) -> None:
    with open(metadata_path(index_path), 'w') as f:
        json.dump(dataclasses.asdict(metadata), f, indent=2)
    logging.debug(f"Wrote index metadata to {metadata_path(index_path)}")


def read_metadata(index_path: str) -> Optional[IndexMetadata]:
    """Load the sidecar metadata, or None if the index has none."""
    path = metadata_path(index_path)
    if not os.path.exists(path):
        return None
    with open(path) as f:
        data = json.load(f)
    known = {f.name for f in dataclasses.fields(IndexMetadata)}
    return IndexMetadata(**{k: v for k, v in data.items() if k in known})


class IndexWriter:
    """Write index rows to a temporary file and move it into place on commit.

    The temporary file lives in the destination directory so the final rename
    is atomic; an aborted run leaves no partial index behind.
    """

    def __init__(self, path: str):
        self.path = path
        directory = os.path.dirname(os.path.abspath(path))
        fd, self._temp_path = tempfile.mkstemp(prefix='.nailpolish-', suffix='.tsv', dir=directory)
        self._handle = os.fdopen(fd, 'w', newline='')
        self._writer = csv.writer(self._handle, delimiter='\t', lineterminator='\n')
        self.count = 0

    def write(self, record: IndexRecord) -> None:
        self._writer.writerow([
            record.read_id,
            record.fingerprint.barcode,
            record.fingerprint.umi,
            record.offset,
            record.length,
            f"{record.avg_qual:.4f}",
            record.n_bases,
        ])
        self.count += 1

    def commit(self) -> None:
        self._handle.close()
        os.replace(self._temp_path, self.path)

    def abort(self) -> None:
        self._handle.close()
        if os.path.exists(self._temp_path):
            os.unlink(self._temp_path)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.commit()
        else:
            self.abort()


def build_index(input_path: str, output_path: str, config: IndexConfig) -> IndexMetadata:
    """Extract a fingerprint for every read of a FASTQ file and write the index.

    Reads that fail extraction abort the run unless config.skip_unmatched is
    set, in which case they are counted and left out. Reads outside the
    configured length/quality bounds are counted as filtered and left out.
    """
    start = time.time()
    extractor = make_extractor(config)
    metadata = IndexMetadata(
        file_path=os.path.abspath(input_path),
        file_size=os.path.getsize(input_path),
        index_date=datetime.now().isoformat(),
        mode=extractor.mode,
    )
    total_quality = 0.0
    total_length = 0

    logging.info(f"Indexing {input_path}")
    with IndexWriter(output_path) as writer:
        for read in iter_fastq(input_path):
            metadata.read_count += 1
            if metadata.read_count % PROGRESS_INTERVAL == 0:
                logging.info(f"Processed: {metadata.read_count}")

            try:
                fingerprint = extractor.extract(read)
            except ExtractionMismatch:
                if not config.skip_unmatched:
                    raise
                metadata.unmatched_read_count += 1
                continue

            avg_qual = read.avg_quality
            n_bases = len(read.sequence)
            if not config.read_filter.accepts(n_bases, avg_qual):
                metadata.filtered_reads += 1
                continue

            writer.write(IndexRecord(read.read_id, fingerprint, read.offset, read.length, avg_qual, n_bases))
            metadata.matched_read_count += 1
            total_quality += avg_qual * n_bases
            total_length += n_bases

    if total_length:
        metadata.avg_qual = total_quality / total_length
    if metadata.matched_read_count:
        metadata.avg_len = total_length / metadata.matched_read_count
    metadata.elapsed = time.time() - start
    write_metadata(metadata, output_path)

    if config.skip_unmatched:
        logging.info(f"Stats: {metadata.matched_read_count} matched reads, "
                     f"{metadata.unmatched_read_count} unmatched reads skipped, "
                     f"{metadata.filtered_reads} filtered reads, {metadata.elapsed:.1f}s runtime")
    else:
        logging.info(f"Stats: {metadata.matched_read_count} reads, "
                     f"{metadata.filtered_reads} filtered reads, {metadata.elapsed:.1f}s runtime")
    return metadata


def iter_index(path: str) -> Iterator[IndexRecord]:
    """Stream the records of an index file in file order."""
    with open(path, newline='') as f:
        for line_number, row in enumerate(csv.reader(f, delimiter='\t'), start=1):
            if not row:
                continue
            if len(row) != 7:
                raise IndexInconsistency(
                    f"{path}:{line_number}: expected 7 tab-separated columns, found {len(row)}"
                )
            read_id, barcode, umi, offset, length, avg_qual, n_bases = row
            try:
                yield IndexRecord(read_id, Fingerprint(barcode, umi), int(offset), int(length),
                                  float(avg_qual), int(n_bases))
            except ValueError as e:
                raise IndexInconsistency(f"{path}:{line_number}: {e}") from e


def read_index(path: str) -> List[IndexRecord]:
    return list(iter_index(path))


def check_input_matches(index_path: str, input_path: str) -> None:
    """Fail early when an index was built from a different version of the input."""
    metadata = read_metadata(index_path)
    if metadata is None:
        logging.debug(f"No metadata found for {index_path}, skipping input size check")
        return
    size = os.path.getsize(input_path)
    if metadata.file_size and metadata.file_size != size:
        raise IndexInconsistency(
            f"Index {index_path} was built from a {metadata.file_size}-byte file "
            f"({metadata.file_path}) but {input_path} has {size} bytes; regenerate the index"
        )
