"""
nailpolish: consensus calling of barcode and UMI duplicates in long-read sequencing data.

Reads sharing a barcode+UMI fingerprint are grouped and each group is collapsed
into one error-corrected sequence by partial-order alignment.
"""

__version__ = "0.1.0"

from .core import main as nailpolish_main

__all__ = ["nailpolish_main", "__version__"]
