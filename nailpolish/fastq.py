"""FASTQ access by stream and by byte offset.

Indexing walks the file once, remembering where each record starts and how
many bytes it spans, so that later passes can fetch any read with a single
seek instead of keeping sequences in memory.
"""

import io
import os
from typing import BinaryIO, Iterator, Optional

from Bio.SeqIO.QualityIO import FastqGeneralIterator

from .errors import IndexInconsistency, MalformedInput
from .types import IndexRecord, Read


def read_id_from_header(header: str) -> str:
    """The read ID is the first whitespace-delimited token of the header."""
    parts = header.split(None, 1)
    return parts[0] if parts else ''


def _strip_newline(line: bytes) -> bytes:
    return line.rstrip(b'\r\n')


def iter_fastq(path: str) -> Iterator[Read]:
    """Yield reads from a 4-line FASTQ file together with their byte offsets.

    Raises MalformedInput on truncated or undecodable records and on
    mismatched sequence and quality lengths.
    """
    with open(path, 'rb') as handle:
        offset = 0
        while True:
            header = handle.readline()
            if not header:
                break
            if not header.strip():
                # tolerate blank lines between or after records
                offset += len(header)
                continue
            if not header.startswith(b'@'):
                raise MalformedInput(path, offset, "header line does not start with '@'")

            sequence = handle.readline()
            separator = handle.readline()
            quality = handle.readline()
            if not quality:
                raise MalformedInput(path, offset, "record is truncated")
            if not separator.startswith(b'+'):
                raise MalformedInput(path, offset, "separator line does not start with '+'")

            try:
                title = _strip_newline(header)[1:].decode('utf-8')
                seq_text = _strip_newline(sequence).decode('ascii')
                qual_text = _strip_newline(quality).decode('ascii')
            except UnicodeDecodeError as e:
                raise MalformedInput(path, offset, f"invalid byte 0x{e.object[e.start]:02x} in record") from e
            if len(seq_text) != len(qual_text):
                raise MalformedInput(
                    path, offset,
                    f"sequence has {len(seq_text)} bases but quality has {len(qual_text)} values"
                )

            length = len(header) + len(sequence) + len(separator) + len(quality)
            yield Read(
                read_id=read_id_from_header(title),
                header=title,
                sequence=seq_text,
                quality=qual_text,
                offset=offset,
                length=length,
            )
            offset += length


class ReadStore:
    """Random access to the reads of one FASTQ file using index offsets."""

    def __init__(self, path: str):
        self.path = path
        self._handle: Optional[BinaryIO] = None

    def open(self) -> 'ReadStore':
        if self._handle is None:
            self._handle = open(self.path, 'rb')
        return self

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def size(self) -> int:
        return os.path.getsize(self.path)

    def fetch(self, record: IndexRecord) -> Read:
        """Read the FASTQ record an index row points at.

        Raises IndexInconsistency if the bytes at that position are not the
        expected read.
        """
        if self._handle is None:
            self.open()
        self._handle.seek(record.offset)
        data = self._handle.read(record.length)
        if len(data) != record.length:
            raise IndexInconsistency(
                f"{self.path}: read '{record.read_id}' expected at byte {record.offset} "
                f"but the file ends early; was the index built from a different file?"
            )

        try:
            parsed = list(FastqGeneralIterator(io.StringIO(data.decode('utf-8'))))
        except (ValueError, UnicodeDecodeError) as e:
            raise IndexInconsistency(
                f"{self.path}: no valid FASTQ record for read '{record.read_id}' "
                f"at byte {record.offset}: {e}"
            ) from e
        if len(parsed) != 1:
            raise IndexInconsistency(
                f"{self.path}: expected one FASTQ record for read '{record.read_id}' "
                f"at byte {record.offset}, found {len(parsed)}"
            )

        title, sequence, quality = parsed[0]
        read_id = read_id_from_header(title)
        if read_id != record.read_id:
            raise IndexInconsistency(
                f"{self.path}: index expects read '{record.read_id}' at byte {record.offset} "
                f"but found '{read_id}'"
            )
        return Read(read_id, title, sequence, quality, record.offset, record.length)
