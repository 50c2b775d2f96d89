"""Error types raised by nailpolish.

Every error the command line reports to the user derives from NailpolishError.
I/O failures are left as OSError.
"""


class NailpolishError(Exception):
    """Base class for all nailpolish errors."""


class ExtractionMismatch(NailpolishError):
    """A read could not be resolved to a fingerprint."""

    def __init__(self, read_id: str, message: str):
        super().__init__(message)
        self.read_id = read_id


class PatternMismatch(ExtractionMismatch):
    def __init__(self, read_id: str, header: str, pattern: str, offset: int):
        super().__init__(
            read_id,
            f"No match for read '{read_id}' at byte {offset}:\n"
            f"    {header}\n"
            f"with pattern\n"
            f"    {pattern}\n"
            f"If some reads are not expected to carry a barcode, pass --skip-unmatched"
        )
        self.header = header
        self.pattern = pattern
        self.offset = offset


class ClusterMismatch(ExtractionMismatch):
    def __init__(self, read_id: str):
        super().__init__(read_id, f"Read '{read_id}' of the input file is not present in the cluster file")


class InconsistentCaptureCount(NailpolishError):
    def __init__(self, read_id: str, count: int, expected: int, pattern: str):
        super().__init__(
            f"Read '{read_id}' produced {count} captures with pattern {pattern}, "
            f"whereas {expected} were expected"
        )
        self.read_id = read_id
        self.count = count
        self.expected = expected


class InvalidClusterRow(NailpolishError):
    def __init__(self, path: str, line_number: int, row: str):
        super().__init__(
            f"{path}:{line_number}: invalid cluster row '{row}', "
            f"expected READ_ID;BARCODE;UMI or READ_ID;BARCODE"
        )
        self.path = path
        self.line_number = line_number


class MalformedInput(NailpolishError):
    def __init__(self, path: str, offset: int, reason: str):
        super().__init__(f"{path}: malformed FASTQ record at byte {offset}: {reason}")
        self.path = path
        self.offset = offset


class IndexInconsistency(NailpolishError):
    """The index does not describe the input it is used with."""


class WorkerFailure(NailpolishError):
    def __init__(self, group_index: int, group_key: str, cause: BaseException):
        super().__init__(f"Consensus calling failed for group {group_index} ({group_key}): {cause}")
        self.group_index = group_index
        self.group_key = group_key
