#!/usr/bin/env python3

import argparse
import logging
import re
import sys
from typing import BinaryIO, Iterator, Optional, TextIO, Tuple

try:
    from nailpolish import __version__
except ImportError:
    # Fallback for when running as a script directly
    __version__ = "dev"

from nailpolish.config import CallConfig, IndexConfig, ScoringParams, parse_interval
from nailpolish.dispatch import dispatch
from nailpolish.errors import NailpolishError
from nailpolish.fastq import ReadStore
from nailpolish.groups import assemble_groups, iter_group_reads
from nailpolish.index import build_index, check_input_matches, iter_index
from nailpolish.output import CallStats, ResultWriter, render_group_fastq
from nailpolish.poa import call_consensus
from nailpolish.presets import DEFAULT_PRESET, PRESETS
from nailpolish.summarize import write_summary
from nailpolish.types import DuplicateGroup


def call_duplicates(index_path: str, input_path: str, handle: TextIO,
                    config: Optional[CallConfig] = None, progress: bool = True) -> CallStats:
    """Consensus-call every duplicate group of an indexed FASTQ file.

    Groups are written to `handle` in order of first appearance in the index.
    """
    config = config or CallConfig()
    check_input_matches(index_path, input_path)
    groups = assemble_groups(iter_index(index_path))
    total = sum(1 for group in groups if not (config.duplicates_only and group.is_singleton))

    writer = ResultWriter(handle, config.duplicates_only, config.report_original_reads)
    scoring = config.scoring

    def work(group, reads):
        return call_consensus(group, reads, scoring)

    logging.info(f"Calling consensus for {total} groups with {config.threads} threads")
    with ReadStore(input_path) as store:
        dispatch(
            iter_group_reads(groups, store, config.duplicates_only),
            work,
            writer,
            threads=config.threads,
            in_flight=config.in_flight,
            total=total,
            progress=progress,
        )

    stats = writer.stats
    identity = stats.mean_identity
    identity_str = f", mean read-to-consensus identity {identity:.2%}" if identity is not None else ""
    logging.info(f"Stats: {stats.groups} groups, {stats.singletons} singletons, "
                 f"{stats.duplicate_groups} duplicate groups ({stats.duplicate_reads} reads), "
                 f"{stats.records_written} records written{identity_str}")
    return stats


def iter_group_streams(index_path: str, input_path: str) -> Iterator[Tuple[DuplicateGroup, bytes]]:
    """Yield each duplicate group with its reads rendered as one tagged FASTQ byte stream."""
    check_input_matches(index_path, input_path)
    groups = assemble_groups(iter_index(index_path))
    with ReadStore(input_path) as store:
        for group, reads in iter_group_reads(groups, store):
            yield group, render_group_fastq(group, reads)


def group_reads(index_path: str, input_path: str, handle: BinaryIO) -> int:
    """Write every indexed read as FASTQ, grouped and tagged by duplicate group."""
    count = 0
    n_groups = 0
    for group, stream in iter_group_streams(index_path, input_path):
        handle.write(stream)
        count += group.size
        n_groups += 1
        if n_groups % 100000 == 0:
            logging.info(f"Processed: {n_groups} groups")
    logging.info(f"Wrote {count} reads in {n_groups} groups")
    return count


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Consensus calling of barcode and UMI duplicates in long-read data"
    )
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    parser.add_argument("--version", action="version",
                        version=f"nailpolish {__version__}",
                        help="Show program's version number and exit")
    subparsers = parser.add_subparsers(dest="command", required=True)

    index = subparsers.add_parser("index", help="Create an index file from a demultiplexed FASTQ")
    index.add_argument("file", help="Input FASTQ file")
    index.add_argument("preset", nargs="?", default=DEFAULT_PRESET, choices=sorted(PRESETS),
                       help=f"Header format preset (default: {DEFAULT_PRESET})")
    index.add_argument("-o", "--output", default="index.tsv",
                       help="Output index file (default: index.tsv)")
    index.add_argument("--clusters",
                       help="Semicolon-delimited file of READ_ID;BARCODE or READ_ID;BARCODE;UMI rows, "
                            "used instead of the read headers")
    index.add_argument("--barcode-regex",
                       help="Custom capture-group regex for the header; overrides the preset. "
                            "For example, bc-umi is ^([ATCG]{16})_([ATCG]{12})")
    index.add_argument("--skip-unmatched", action="store_true",
                       help="Skip, instead of failing on, reads without a barcode match "
                            "or absent from the cluster file")
    index.add_argument("--len", type=parse_interval, default="0,15000",
                       help="Keep reads whose length lies in the inclusive interval a,b; "
                            "use 0,inf for no length filter (default: 0,15000)")
    index.add_argument("--qual", type=parse_interval, default="0,inf",
                       help="Keep reads whose mean phred quality lies in a,b (default: 0,inf)")

    call = subparsers.add_parser("call", help="Generate a consensus-called FASTQ/FASTA file")
    call.add_argument("--index", required=True, help="Index file")
    call.add_argument("--input", required=True, help="The FASTQ file the index was built from")
    call.add_argument("-o", "--output", help="Output file (default: stdout)")
    call.add_argument("-t", "--threads", type=int, default=4, metavar="N",
                      help="Number of worker threads (default: 4)")
    call.add_argument("-d", "--duplicates-only", action="store_true",
                      help="Only output duplicate groups, not singleton reads")
    call.add_argument("-r", "--report-original-reads", action="store_true",
                      help="Report each group's original reads before its consensus")
    call.add_argument("--match", type=int, default=ScoringParams.match,
                      help=f"Alignment match score (default: {ScoringParams.match})")
    call.add_argument("--mismatch", type=int, default=ScoringParams.mismatch,
                      help=f"Alignment mismatch score (default: {ScoringParams.mismatch})")
    call.add_argument("--gap-open", type=int, default=ScoringParams.gap_open,
                      help=f"Score of the first gap position (default: {ScoringParams.gap_open})")
    call.add_argument("--gap-extend", type=int, default=ScoringParams.gap_extend,
                      help=f"Score of each further gap position (default: {ScoringParams.gap_extend})")
    call.add_argument("--no-progress", action="store_true", help="Disable the progress bar")

    group = subparsers.add_parser("group", help="Tag each read by its duplicate group and write a FASTQ file")
    group.add_argument("--index", required=True, help="Index file")
    group.add_argument("--input", required=True, help="The FASTQ file the index was built from")
    group.add_argument("-o", "--output", help="Output FASTQ (default: stdout)")

    summary = subparsers.add_parser("summary", help="Write duplicate statistics for an index as JSON")
    summary.add_argument("--index", required=True, help="Index file")
    summary.add_argument("-o", "--output", default="summary.json",
                         help="Output JSON file (default: summary.json)")
    return parser


def run(args) -> None:
    if args.command == "index":
        build_index(args.file, args.output, IndexConfig.from_args(args))

    elif args.command == "call":
        config = CallConfig.from_args(args)
        if args.output:
            with open(args.output, 'w') as handle:
                call_duplicates(args.index, args.input, handle, config, progress=not args.no_progress)
        else:
            call_duplicates(args.index, args.input, sys.stdout, config, progress=not args.no_progress)

    elif args.command == "group":
        if args.output:
            with open(args.output, 'wb') as handle:
                group_reads(args.index, args.input, handle)
        else:
            group_reads(args.index, args.input, sys.stdout.buffer)

    elif args.command == "summary":
        write_summary(args.index, args.output)


def main():
    parser = build_parser()
    args = parser.parse_args()

    # Setup standard logging
    log_format = '%(asctime)s - %(levelname)s - %(message)s'
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format=log_format
    )

    try:
        run(args)
    except NailpolishError as e:
        logging.error(str(e))
        sys.exit(1)
    except OSError as e:
        if e.filename:
            logging.error(f"{e.filename}: {e.strerror}")
        else:
            logging.error(str(e))
        sys.exit(1)
    except (ValueError, re.error) as e:
        logging.error(f"Invalid configuration: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
