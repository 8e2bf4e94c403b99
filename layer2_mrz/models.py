"""
Layer 2 — MRZ Decoding
Component: Decoded document records
"""
from dataclasses import asdict, dataclass, fields
from typing import Dict, List

from .dates import DateOrder, normalize_date

REQUIRED_FIELDS = ("surname", "document_number", "date_of_birth", "expiry_date")


@dataclass(frozen=True)
class ParsedDocument:
    """Identity fields decoded from one MRZ read. Absent values are empty strings."""
    document_type: str = ""
    issuing_country: str = ""
    surname: str = ""
    first_name: str = ""
    middle_name: str = ""
    document_number: str = ""
    nationality: str = ""
    date_of_birth: str = ""
    sex: str = ""
    expiry_date: str = ""
    personal_number: str = ""

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary for API responses and storage."""
        return asdict(self)

    def display_dates(self, order=DateOrder.MONTH_FIRST, current_year=None) -> Dict[str, str]:
        """Birth and expiry dates formatted for display"""
        return {
            "date_of_birth": normalize_date(
                self.date_of_birth, is_expiry=False, order=order, current_year=current_year
            ),
            "expiry_date": normalize_date(
                self.expiry_date, is_expiry=True, order=order, current_year=current_year
            ),
        }

    def missing_required(self) -> List[str]:
        """
        Required fields that came back empty.

        Partial OCR reads still decode, so callers check this before treating
        the record as authoritative identity data.
        """
        return [name for name in REQUIRED_FIELDS if not getattr(self, name)]


@dataclass(frozen=True)
class DecodeFailure:
    """Result of a decode call that could not find two MRZ lines"""
    reason: str
    line_count: int = 0
    raw_text: str = ""

    INSUFFICIENT_LINES = "InsufficientLines"

    def to_error(self):
        """Exception form for the service layer"""
        from error_handlers import InsufficientLinesError
        return InsufficientLinesError(self.line_count, self.raw_text)

    def to_dict(self):
        return {
            "reason": self.reason,
            "line_count": self.line_count,
        }
