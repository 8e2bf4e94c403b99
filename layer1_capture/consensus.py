"""
Layer 1 — Capture
Component: Scan consensus
Responsibility: Accept an MRZ read only after it recurs across recent reads
"""
import logging
from collections import deque
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConsensusResult:
    """MRZ text agreed on by the recent reads"""
    text: str
    count: int
    confidence: float = 0.0

    def to_dict(self):
        return {
            "text": self.text,
            "count": self.count,
            "confidence": self.confidence,
        }


class ScanConsensus:
    """
    Sliding window vote over successive OCR reads.

    One instance per scanning session; it is not shared between sessions.
    """

    def __init__(self, buffer_size=5, required_matches=3):
        if buffer_size < 1:
            raise ValueError("buffer_size must be at least 1")
        if not 1 <= required_matches <= buffer_size:
            raise ValueError("required_matches must be between 1 and buffer_size")

        self.buffer_size = buffer_size
        self.required_matches = required_matches
        self._reads = deque(maxlen=buffer_size)

    @property
    def reads(self):
        return list(self._reads)

    def reset(self):
        self._reads.clear()

    def add(self, text, confidence=0.0):
        """
        Record one read

        Args:
            text: Normalized MRZ text (newline-joined lines)
            confidence: Engine confidence for this read

        Returns:
            ConsensusResult once the most frequent text in the window has
            recurred required_matches times, else None
        """
        if len([line for line in text.splitlines() if line.strip()]) < 2:
            logger.debug("Ignoring read with fewer than 2 lines")
            return None

        self._reads.append((text, float(confidence or 0.0)))
        best = self.most_frequent()
        if best is not None and best.count >= self.required_matches:
            return best
        return None

    def most_frequent(self):
        """Most frequent text in the window; ties go to the earliest read"""
        counts = {}
        best = None
        for text, confidence in self._reads:
            count, top_confidence = counts.get(text, (0, 0.0))
            counts[text] = (count + 1, max(top_confidence, confidence))
            if best is None or counts[text][0] > counts[best][0]:
                best = text

        if best is None:
            return None
        count, confidence = counts[best]
        return ConsensusResult(text=best, count=count, confidence=confidence)
