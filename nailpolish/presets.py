"""Barcode/UMI header formats understood out of the box."""

from typing import Dict

PRESETS: Dict[str, str] = {
    # @BARCODE_UMI... as written by Flexiplex for 10x 3' chemistry
    'bc-umi': r'^([ATCG]{16})_([ATCG]{12})',
    # ..._UMI as written by `umi_tools extract`
    'umi-tools': r'_([ATCG]+)$',
    # bcl2fastq, with :UMI at the end of the read name
    'illumina': r':([ATCG]+)$',
}

DEFAULT_PRESET = 'bc-umi'


def get_barcode_regex(preset: str) -> str:
    try:
        return PRESETS[preset]
    except KeyError:
        raise ValueError(f"Unknown preset '{preset}', choose from: {', '.join(PRESETS)}") from None
