"""
Layer 1 — Capture
Component: MRZ reader
Responsibility: Read raw MRZ text from document images with FastMRZ
Output: Newline-joined, upper-cased MRZ lines without internal whitespace
"""
import logging
import re

import cv2
from fastmrz import FastMRZ

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def normalize_ocr_lines(lines):
    """
    Apply the OCR collaborator contract to recognized lines

    Each line is upper-cased and stripped of all whitespace; empty lines
    are dropped and the rest joined with newlines.
    """
    cleaned = []
    for line in lines:
        if not isinstance(line, str):
            continue
        text = _WHITESPACE.sub("", line).upper()
        if text:
            cleaned.append(text)
    return "\n".join(cleaned)


class MRZReader:
    """Reads raw MRZ text from passport images"""

    def __init__(self, tessdata_path, engine=None):
        """
        Initialize MRZ reader

        Args:
            tessdata_path: Path to Tesseract data files (mrz.traineddata)
            engine: Pre-built OCR engine exposing get_details()
        """
        logger.info("Initializing MRZReader")
        logger.debug(f"Tessdata path: {tessdata_path}")
        self.tessdata_path = tessdata_path

        if engine is not None:
            self.engine = engine
            return

        try:
            self.engine = FastMRZ(tessdata_path=tessdata_path)
            logger.info("MRZReader initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize FastMRZ: {e}")
            raise

    def read(self, image_path):
        """
        Read raw MRZ text from an image

        Args:
            image_path: Path to the image file

        Returns:
            str: Normalized MRZ text

        Raises:
            InvalidImageError: If the file is not a readable image
            MRZNotFoundError: If no MRZ text was recognized
            OCRReadError: If the OCR engine fails
        """
        from error_handlers import InvalidImageError, MRZNotFoundError, OCRReadError

        logger.info("Starting MRZ read...")
        logger.debug(f"Image path: {image_path}")

        if cv2.imread(str(image_path)) is None:
            logger.warning(f"Unreadable image: {image_path}")
            raise InvalidImageError(image_path)

        try:
            raw = self.engine.get_details(str(image_path), ignore_parse=True)
        except Exception as e:
            logger.error(f"Error during MRZ read: {e}")
            logger.exception("Full traceback:")
            raise OCRReadError(str(e))

        if isinstance(raw, dict):
            # FastMRZ reports failures as {"status": "FAILURE", "message": ...}
            logger.warning(f"OCR engine reported: {raw.get('message', raw)}")
            raise MRZNotFoundError()

        text = normalize_ocr_lines(str(raw or "").splitlines())
        if not text:
            logger.warning("No MRZ text found in image")
            raise MRZNotFoundError()

        logger.info("✓ MRZ read successful")
        logger.debug(f"Raw MRZ text: {text!r}")
        return text

    def read_until_consensus(self, image_paths, consensus):
        """
        Read images one by one until the voter accepts a result

        Args:
            image_paths: Iterable of image paths (successive frames)
            consensus: ScanConsensus collecting the reads

        Returns:
            ConsensusResult: The accepted text

        Raises:
            ConsensusNotReachedError: If the frames run out first
            InvalidImageError: If a frame is not a readable image
        """
        from error_handlers import ConsensusNotReachedError, MRZNotFoundError, OCRReadError

        reads = 0
        for image_path in image_paths:
            reads += 1
            try:
                text = self.read(image_path)
            except (MRZNotFoundError, OCRReadError) as e:
                logger.info(f"Frame {reads} skipped: {e.message}")
                continue

            result = consensus.add(text)
            if result is not None:
                logger.info(f"Consensus reached after {reads} reads ({result.count} matches)")
                return result

        raise ConsensusNotReachedError(reads, consensus.required_matches)
