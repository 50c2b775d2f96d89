"""Tests for consensus output naming, flag composition and grouped FASTQ."""

import io

import pytest

from nailpolish.output import ResultWriter, render_group_fastq, render_result
from nailpolish.types import ConsensusResult, DuplicateGroup, Fingerprint, IndexRecord, Read


def make_result(fingerprint, index, sequences, consensus, identity=None):
    reads = tuple(Read(f"{fingerprint.umi}_r{i}", f"{fingerprint.umi}_r{i}", seq, "I" * len(seq))
                  for i, seq in enumerate(sequences, start=1))
    return ConsensusResult(
        fingerprint=fingerprint,
        index=index,
        consensus=consensus,
        member_count=len(reads),
        member_read_ids=tuple(r.read_id for r in reads),
        members=reads,
        identity=identity,
    )


@pytest.fixture
def results():
    singleton = make_result(Fingerprint("BCUMI", "1"), 0, ["AAAA"], "AAAA", identity=1.0)
    duplicate = make_result(Fingerprint("BCUMI", "2"), 1, ["ACGT", "ACGA", "ACGT"], "ACGT", identity=0.9)
    return [singleton, duplicate]


def render_all(results, **flags):
    return ''.join(render_result(r, **flags) for r in results)


class TestFlagComposition:
    def test_default(self, results):
        assert render_all(results) == (
            "@BCUMI_1_SIN\nAAAA\n+\nIIII\n"
            ">BCUMI_2_CON_3\nACGT\n"
        )

    def test_duplicates_only(self, results):
        assert render_all(results, duplicates_only=True) == ">BCUMI_2_CON_3\nACGT\n"

    def test_report_original_reads(self, results):
        assert render_all(results, report_original_reads=True) == (
            "@BCUMI_1_SIN\nAAAA\n+\nIIII\n"
            "@BCUMI_2_DUP_1_of_3\nACGT\n+\nIIII\n"
            "@BCUMI_2_DUP_2_of_3\nACGA\n+\nIIII\n"
            "@BCUMI_2_DUP_3_of_3\nACGT\n+\nIIII\n"
            ">BCUMI_2_CON_3\nACGT\n"
        )

    def test_duplicates_only_with_originals(self, results):
        text = render_all(results, duplicates_only=True, report_original_reads=True)
        assert "SIN" not in text
        assert text.count("_DUP_") == 3
        assert text.endswith(">BCUMI_2_CON_3\nACGT\n")


class TestResultWriter:
    def test_stats(self, results):
        handle = io.StringIO()
        writer = ResultWriter(handle, report_original_reads=True)
        for result in results:
            writer(result)

        assert writer.stats.groups == 2
        assert writer.stats.singletons == 1
        assert writer.stats.duplicate_groups == 1
        assert writer.stats.duplicate_reads == 3
        assert writer.stats.records_written == 5
        assert writer.stats.mean_identity == pytest.approx(0.9)
        assert handle.getvalue() == render_all(results, report_original_reads=True)

    def test_duplicates_only_counts(self, results):
        writer = ResultWriter(io.StringIO(), duplicates_only=True)
        for result in results:
            writer.write(result)

        assert writer.stats.records_written == 1
        assert writer.stats.singletons == 1


class TestGroupFastq:
    def test_tags(self):
        fingerprint = Fingerprint("AAAA", "CCCC")
        group = DuplicateGroup(3, fingerprint, [IndexRecord("r1", fingerprint, 0, 0),
                                                IndexRecord("r2", fingerprint, 0, 0)])
        reads = [Read("r1", "r1 desc", "ACGT", "IIII"), Read("r2", "r2", "ACGA", "IIII")]

        assert render_group_fastq(group, reads) == (
            b"@r1 UG:i:3 BX:Z:AAAA_CCCC UT:Z:DUP_1_of_2\nACGT\n+\nIIII\n"
            b"@r2 UG:i:3 BX:Z:AAAA_CCCC UT:Z:DUP_2_of_2\nACGA\n+\nIIII\n"
        )

    def test_singleton_tag(self):
        fingerprint = Fingerprint("", "ACGT")
        group = DuplicateGroup(0, fingerprint, [IndexRecord("r1", fingerprint, 0, 0)])
        text = render_group_fastq(group, [Read("r1", "r1", "GG", "II")])
        assert text.startswith(b"@r1 UG:i:0 BX:Z:ACGT UT:Z:SIN\n")
