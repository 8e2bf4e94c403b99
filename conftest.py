"""
Pytest configuration and fixtures for MRZ service tests.
"""
import pytest
import os
import sys

# Add the project root to the path
sys.path.insert(0, os.path.dirname(__file__))


class FakeOCREngine:
    """Stands in for FastMRZ; returns queued raw MRZ reads in order."""

    def __init__(self, reads):
        self.reads = list(reads)
        self.calls = []

    def get_details(self, image_path, ignore_parse=False):
        self.calls.append((image_path, ignore_parse))
        if not self.reads:
            return ""
        read = self.reads.pop(0)
        if isinstance(read, Exception):
            raise read
        return read


@pytest.fixture
def sample_mrz_td3():
    """Sample TD3 MRZ (passport)."""
    return [
        "P<USADOE<<JOHN<MICHAEL<<<<<<<<<<<<<<<<<<<<<<",
        "AB12345676USA9001011M3001012<<<<<<<<<<<<<<06"
    ]


@pytest.fixture
def sample_mrz_text(sample_mrz_td3):
    """Sample MRZ as the OCR collaborator hands it over."""
    return "\n".join(sample_mrz_td3)


@pytest.fixture
def fake_engine_factory():
    return FakeOCREngine


@pytest.fixture
def image_file(tmp_path):
    """A small readable PNG on disk."""
    import cv2
    import numpy as np

    path = tmp_path / "passport.png"
    cv2.imwrite(str(path), np.full((20, 40, 3), 255, dtype=np.uint8))
    return path


@pytest.fixture
def app(tmp_path):
    """Create Flask test application."""
    from app import create_app
    flask_app = create_app({
        'TESTING': True,
        'DATABASE_PATH': str(tmp_path / "scans.db"),
        'FILLED_DOCUMENTS_DIR': str(tmp_path / "filled_documents"),
        'TEMPLATE_PATH': None,
        'DATE_ORDER': 'MDY',
    })
    return flask_app


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()
