"""Tests for index construction, loading and the unmatched-read policy."""

import os

import pytest

from conftest import BARCODES, UMIS, bc_umi_header, random_sequence
from nailpolish.config import IndexConfig, ReadFilter, parse_interval
from nailpolish.errors import IndexInconsistency, MalformedInput, PatternMismatch
from nailpolish.fastq import ReadStore, iter_fastq
from nailpolish.index import build_index, check_input_matches, read_index, read_metadata
from nailpolish.types import Fingerprint


@pytest.fixture
def barcoded_records():
    return [
        (bc_umi_header(BARCODES[0], UMIS[0], "read1"), random_sequence("a", 80)),
        (bc_umi_header(BARCODES[1], UMIS[1], "read2"), random_sequence("b", 120)),
        (bc_umi_header(BARCODES[0], UMIS[0], "read3"), random_sequence("c", 95)),
        (bc_umi_header(BARCODES[2], UMIS[2], "read4"), random_sequence("d", 60)),
    ]


class TestBuildIndex:
    def test_one_record_per_read_in_order(self, tmp_path, write_fastq, barcoded_records):
        fastq = write_fastq(barcoded_records)
        index = str(tmp_path / "index.tsv")

        metadata = build_index(fastq, index, IndexConfig())
        records = read_index(index)

        assert [r.read_id for r in records] == [h for h, _ in barcoded_records]
        assert records[0].fingerprint == Fingerprint(BARCODES[0], UMIS[0])
        assert records[1].n_bases == 120
        assert records[0].avg_qual == pytest.approx(40.0)
        assert metadata.matched_read_count == 4
        assert metadata.unmatched_read_count == 0
        assert metadata.mode == 'pattern'

    def test_offsets_locate_reads(self, tmp_path, write_fastq, barcoded_records):
        fastq = write_fastq(barcoded_records)
        index = str(tmp_path / "index.tsv")
        build_index(fastq, index, IndexConfig())

        with ReadStore(fastq) as store:
            for record, (header, sequence) in zip(read_index(index), barcoded_records):
                read = store.fetch(record)
                assert read.header == header
                assert read.sequence == sequence

    def test_index_has_no_header_row(self, tmp_path, write_fastq, barcoded_records):
        fastq = write_fastq(barcoded_records)
        index = str(tmp_path / "index.tsv")
        build_index(fastq, index, IndexConfig())

        with open(index) as f:
            lines = f.read().splitlines()
        assert len(lines) == len(barcoded_records)
        assert lines[0].split('\t')[:4] == [barcoded_records[0][0], BARCODES[0], UMIS[0], '0']

    def test_round_trip_is_byte_identical(self, tmp_path, write_fastq, barcoded_records):
        fastq = write_fastq(barcoded_records)
        first = str(tmp_path / "first.tsv")
        second = str(tmp_path / "second.tsv")
        build_index(fastq, first, IndexConfig())
        build_index(fastq, second, IndexConfig())

        with open(first, 'rb') as a, open(second, 'rb') as b:
            assert a.read() == b.read()

    def test_metadata_sidecar(self, tmp_path, write_fastq, barcoded_records):
        fastq = write_fastq(barcoded_records)
        index = str(tmp_path / "index.tsv")
        build_index(fastq, index, IndexConfig())

        metadata = read_metadata(index)
        assert metadata is not None
        assert metadata.read_count == 4
        assert metadata.file_size == os.path.getsize(fastq)
        assert metadata.avg_len == pytest.approx((80 + 120 + 95 + 60) / 4)

    def test_cluster_file_mode(self, tmp_path, write_fastq):
        fastq = write_fastq([("r1 desc", "ACGT"), ("r2", "ACGA"), ("r3", "TTTT")])
        clusters = tmp_path / "clusters.csv"
        clusters.write_text("r1;AAAA;CCCC\nr2;AAAA;CCCC\nr3;GGGG\n")
        index = str(tmp_path / "index.tsv")

        build_index(fastq, index, IndexConfig(cluster_file=str(clusters)))
        keys = [r.fingerprint.key for r in read_index(index)]
        assert keys == ["AAAA_CCCC", "AAAA_CCCC", "GGGG"]


class TestUnmatchedPolicy:
    @pytest.fixture
    def records_with_bad_header(self, barcoded_records):
        return barcoded_records[:2] + [("no_barcode_here", "ACGTACGT")] + barcoded_records[2:]

    def test_fail_fast_by_default(self, tmp_path, write_fastq, records_with_bad_header):
        fastq = write_fastq(records_with_bad_header)
        index = str(tmp_path / "index.tsv")

        with pytest.raises(PatternMismatch) as excinfo:
            build_index(fastq, index, IndexConfig())

        assert excinfo.value.read_id == "no_barcode_here"
        # no partial index and no leftover temporary file
        assert not os.path.exists(index)
        assert sorted(os.listdir(tmp_path)) == ["reads.fastq"]

    def test_skip_drops_exactly_one_record(self, tmp_path, write_fastq, records_with_bad_header):
        fastq = write_fastq(records_with_bad_header)
        index = str(tmp_path / "index.tsv")

        metadata = build_index(fastq, index, IndexConfig(skip_unmatched=True))

        assert len(read_index(index)) == len(records_with_bad_header) - 1
        assert metadata.unmatched_read_count == 1
        assert "no_barcode_here" not in {r.read_id for r in read_index(index)}


class TestReadFilter:
    def test_parse_interval(self):
        assert parse_interval("0,15000") == (0.0, 15000.0)
        assert parse_interval("-inf,inf") == (float('-inf'), float('inf'))
        with pytest.raises(ValueError):
            parse_interval("15000")
        with pytest.raises(ValueError):
            parse_interval("10,1")

    def test_default_bounds(self):
        read_filter = ReadFilter()
        assert read_filter.accepts(15000, 0.0)
        assert not read_filter.accepts(15001, 40.0)
        assert read_filter.accepts(1, float('inf'))

    def test_length_filter(self, tmp_path, write_fastq, barcoded_records):
        fastq = write_fastq(barcoded_records)
        index = str(tmp_path / "index.tsv")

        metadata = build_index(fastq, index, IndexConfig(read_filter=ReadFilter(length=(0, 100))))

        assert [r.n_bases for r in read_index(index)] == [80, 95, 60]
        assert metadata.filtered_reads == 1

    def test_quality_filter(self, tmp_path, write_fastq, barcoded_records):
        fastq = write_fastq(barcoded_records, quality='+')  # phred 10
        index = str(tmp_path / "index.tsv")

        metadata = build_index(fastq, index, IndexConfig(read_filter=ReadFilter(quality=(20, float('inf')))))

        assert read_index(index) == []
        assert metadata.filtered_reads == 4


class TestInputValidation:
    def test_truncated_record(self, tmp_path):
        path = tmp_path / "truncated.fastq"
        path.write_text("@r1\nACGT\n+\nIIII\n@r2\nACGT\n")
        with pytest.raises(MalformedInput):
            list(iter_fastq(str(path)))

    def test_quality_length_mismatch(self, tmp_path):
        path = tmp_path / "bad.fastq"
        path.write_text("@r1\nACGT\n+\nIII\n")
        with pytest.raises(MalformedInput, match="byte 0"):
            list(iter_fastq(str(path)))

    def test_non_ascii_sequence(self, tmp_path):
        path = tmp_path / "bad.fastq"
        path.write_bytes(b"@r1\nACGT\n+\nIIII\n@r2\nAC\xc3\xa9T\n+\nIIIII\n")
        with pytest.raises(MalformedInput, match="byte 16") as excinfo:
            list(iter_fastq(str(path)))
        assert excinfo.value.path == str(path)

    def test_missing_header_sentinel(self, tmp_path):
        path = tmp_path / "bad.fastq"
        path.write_text(">r1\nACGT\n+\nIIII\n")
        with pytest.raises(MalformedInput):
            list(iter_fastq(str(path)))

    def test_index_with_wrong_column_count(self, tmp_path):
        path = tmp_path / "index.tsv"
        path.write_text("r1\tAAAA\tCCCC\n")
        with pytest.raises(IndexInconsistency):
            read_index(str(path))

    def test_changed_input_detected(self, tmp_path, write_fastq, barcoded_records):
        fastq = write_fastq(barcoded_records)
        index = str(tmp_path / "index.tsv")
        build_index(fastq, index, IndexConfig())
        check_input_matches(index, fastq)

        with open(fastq, 'a') as f:
            f.write("@extra\nACGT\n+\nIIII\n")
        with pytest.raises(IndexInconsistency):
            check_input_matches(index, fastq)
