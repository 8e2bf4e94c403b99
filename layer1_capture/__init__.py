"""
Layer 1 — Capture
Reads raw MRZ text from document images and votes over repeated reads
"""
from .consensus import ConsensusResult, ScanConsensus
from .reader import MRZReader, normalize_ocr_lines

__all__ = [
    'ConsensusResult',
    'MRZReader',
    'ScanConsensus',
    'normalize_ocr_lines',
]
