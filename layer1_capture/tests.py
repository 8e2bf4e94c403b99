"""
Tests for MRZ reading and the scan consensus.
"""
import pytest

from error_handlers import (
    ConsensusNotReachedError,
    InvalidImageError,
    MRZNotFoundError,
    OCRReadError,
)
from layer1_capture import MRZReader, ScanConsensus, normalize_ocr_lines

LINE1 = "P<USADOE<<JOHN<MICHAEL<<<<<<<<<<<<<<<<<<<<<<"
LINE2 = "AB12345676USA9001011M3001012<<<<<<<<<<<<<<06"
TEXT = f"{LINE1}\n{LINE2}"
OTHER = f"{LINE1}\nAB12345676USA9001011M3001013<<<<<<<<<<<<<<06"


class TestNormalizeOCRLines:
    """Test the OCR collaborator normalization."""

    def test_upper_cases_and_strips_whitespace(self):
        """Test internal whitespace is removed and text upper-cased."""
        lines = ["p<usa doe<<john ", "  AB1234567 6USA"]

        assert normalize_ocr_lines(lines) == "P<USADOE<<JOHN\nAB12345676USA"

    def test_drops_empty_and_non_text_lines(self):
        """Test blank entries and non-strings are skipped."""
        assert normalize_ocr_lines(["", LINE1, None, "   ", LINE2]) == TEXT


class TestScanConsensus:
    """Test the sliding window vote."""

    def test_accepts_after_required_matches(self):
        """Test the text is accepted on its third occurrence."""
        consensus = ScanConsensus(buffer_size=5, required_matches=3)

        assert consensus.add(TEXT, 0.7) is None
        assert consensus.add(OTHER, 0.9) is None
        assert consensus.add(TEXT, 0.8) is None
        result = consensus.add(TEXT, 0.6)

        assert result is not None
        assert result.text == TEXT
        assert result.count == 3
        assert result.confidence == 0.8

    def test_window_forgets_old_reads(self):
        """Test reads older than the buffer no longer count."""
        consensus = ScanConsensus(buffer_size=3, required_matches=2)

        assert consensus.add(TEXT) is None
        assert consensus.add(OTHER) is None
        assert consensus.add(f"{LINE1}\nNOISE1") is None
        # TEXT dropped out of the window
        assert consensus.add(f"{LINE1}\nNOISE2") is None
        assert len(consensus.reads) == 3

    def test_ignores_single_line_reads(self):
        """Test reads without two lines never enter the window."""
        consensus = ScanConsensus(buffer_size=5, required_matches=1)

        assert consensus.add(LINE1) is None
        assert consensus.reads == []

    def test_single_match_mode(self):
        """Test required_matches=1 accepts the first valid read."""
        consensus = ScanConsensus(buffer_size=1, required_matches=1)

        assert consensus.add(TEXT).count == 1

    def test_reset(self):
        """Test reset empties the window."""
        consensus = ScanConsensus()
        consensus.add(TEXT)
        consensus.reset()

        assert consensus.reads == []
        assert consensus.most_frequent() is None

    @pytest.mark.parametrize("buffer_size, required_matches", [(0, 1), (3, 0), (3, 4)])
    def test_invalid_configuration(self, buffer_size, required_matches):
        """Test impossible thresholds are rejected."""
        with pytest.raises(ValueError):
            ScanConsensus(buffer_size=buffer_size, required_matches=required_matches)


class TestMRZReader:
    """Test the FastMRZ wrapper with a stub engine."""

    def test_read_returns_normalized_text(self, fake_engine_factory, image_file):
        """Test raw engine output is normalized."""
        engine = fake_engine_factory(["p<usadoe<<john <<<\nAB1234567 6USA\n"])
        reader = MRZReader(tessdata_path="models/", engine=engine)

        assert reader.read(image_file) == "P<USADOE<<JOHN<<<\nAB12345676USA"
        assert engine.calls == [(str(image_file), True)]

    def test_unreadable_image(self, fake_engine_factory, tmp_path):
        """Test files that are not images are rejected before OCR."""
        path = tmp_path / "not_an_image.png"
        path.write_text("plain text")
        engine = fake_engine_factory([TEXT])
        reader = MRZReader(tessdata_path="models/", engine=engine)

        with pytest.raises(InvalidImageError):
            reader.read(path)
        assert engine.calls == []

    @pytest.mark.parametrize("engine_output", ["", "   \n  ", {"status": "FAILURE", "message": "No MRZ"}])
    def test_no_mrz_found(self, fake_engine_factory, image_file, engine_output):
        """Test empty or failed engine output raises MRZNotFoundError."""
        reader = MRZReader(tessdata_path="models/", engine=fake_engine_factory([engine_output]))

        with pytest.raises(MRZNotFoundError):
            reader.read(image_file)

    def test_engine_failure(self, fake_engine_factory, image_file):
        """Test engine exceptions become OCRReadError."""
        reader = MRZReader(
            tessdata_path="models/",
            engine=fake_engine_factory([RuntimeError("tesseract crashed")])
        )

        with pytest.raises(OCRReadError) as exc_info:
            reader.read(image_file)
        assert "tesseract crashed" in exc_info.value.details["reason"]

    def test_read_until_consensus(self, fake_engine_factory, image_file):
        """Test frames are read until the vote succeeds."""
        engine = fake_engine_factory([TEXT, "", OTHER, TEXT, TEXT])
        reader = MRZReader(tessdata_path="models/", engine=engine)
        consensus = ScanConsensus(buffer_size=5, required_matches=2)

        result = reader.read_until_consensus([image_file] * 5, consensus)

        assert result.text == TEXT
        assert result.count == 2
        assert len(engine.calls) == 4

    def test_consensus_not_reached(self, fake_engine_factory, image_file):
        """Test running out of frames raises ConsensusNotReachedError."""
        engine = fake_engine_factory([TEXT, OTHER])
        reader = MRZReader(tessdata_path="models/", engine=engine)

        with pytest.raises(ConsensusNotReachedError) as exc_info:
            reader.read_until_consensus([image_file] * 2, ScanConsensus(required_matches=2))
        assert exc_info.value.details["reads"] == 2
