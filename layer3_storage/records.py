"""
Layer 3 — Storage
Component: Scan and event records
Responsibility: One explicit record shape for a scan and everything the user adds to it
"""
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Dict, List, Optional

from layer2_mrz import ParsedDocument

# Columns whose values are not free text
_NON_TEXT_FIELDS = {"id", "confidence", "event_id", "saved_at"}


@dataclass(frozen=True)
class ScanRecord:
    """
    A decoded document enriched with travel, contact, emergency and
    billing data. Every text field defaults to an empty string.
    """
    # Decoded MRZ fields
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

    # Flight details
    carrier: str = ""
    routing: str = ""
    flight_number: str = ""
    date_of_flight: str = ""
    seats: str = ""
    meal: str = ""
    assistance_request: str = ""
    remarks: str = ""

    # Personal information
    birth_city: str = ""
    birth_state: str = ""
    birth_country: str = ""
    ssn: str = ""

    # Contact information
    current_lodging: str = ""
    phone_number: str = ""
    email: str = ""

    # Emergency contact
    emergency_last_name: str = ""
    emergency_first_name: str = ""
    emergency_relationship: str = ""
    emergency_address1: str = ""
    emergency_address2: str = ""
    emergency_city: str = ""
    emergency_state: str = ""
    emergency_country: str = ""
    emergency_postal_code: str = ""
    emergency_phone: str = ""
    emergency_email: str = ""

    # Additional information
    accompanying_persons: str = ""
    medical_conditions: str = ""

    # Billing address
    billing_address1: str = ""
    billing_address2: str = ""
    billing_city: str = ""
    billing_state: str = ""
    billing_country: str = ""
    billing_postal_code: str = ""
    billing_phone: str = ""
    billing_email: str = ""

    signature: str = ""

    confidence: float = 0.0
    event_id: Optional[int] = None
    id: Optional[int] = None
    saved_at: str = ""

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def unknown_fields(cls, names) -> List[str]:
        return sorted(set(names) - set(cls.field_names()))

    @classmethod
    def column_names(cls) -> List[str]:
        """Fields stored as columns of the scans table, without the row id"""
        return [name for name in cls.field_names() if name not in ("id", "saved_at")]

    @classmethod
    def from_document(cls, document: ParsedDocument, **extra) -> "ScanRecord":
        """Start a record from a decoded document plus any extra fields"""
        return cls().updated(**{**document.to_dict(), **extra})

    @classmethod
    def from_row(cls, row) -> "ScanRecord":
        """Build a record from a sqlite3.Row (or mapping) of the scans table"""
        known = set(cls.field_names())
        values = {key: row[key] for key in row.keys() if key in known}
        for key, value in list(values.items()):
            if value is None and key not in _NON_TEXT_FIELDS:
                values[key] = ""
        if values.get("confidence") is None:
            values["confidence"] = 0.0
        if values.get("saved_at") is None:
            values["saved_at"] = ""
        return cls(**values)

    def updated(self, **changes) -> "ScanRecord":
        """
        Copy of the record with some fields changed

        Raises:
            UnknownFieldError: If a name is not a record field
        """
        unknown = self.unknown_fields(changes)
        if unknown:
            from error_handlers import UnknownFieldError
            raise UnknownFieldError(unknown)

        cleaned = {}
        for key, value in changes.items():
            if key in _NON_TEXT_FIELDS:
                cleaned[key] = value
            elif isinstance(value, (dict, list, tuple, set)):
                from error_handlers import ValidationError
                raise ValidationError(f"Field '{key}' must be text", field=key)
            else:
                cleaned[key] = "" if value is None else str(value).strip()
        try:
            if "confidence" in cleaned:
                cleaned["confidence"] = float(cleaned["confidence"] or 0.0)
            if "event_id" in cleaned and cleaned["event_id"] not in (None, ""):
                cleaned["event_id"] = int(cleaned["event_id"])
            elif "event_id" in cleaned:
                cleaned["event_id"] = None
        except (TypeError, ValueError) as e:
            from error_handlers import ValidationError
            raise ValidationError(f"Invalid numeric field: {e}")
        return replace(self, **cleaned)

    def document(self) -> ParsedDocument:
        """The decoded MRZ part of the record"""
        return ParsedDocument(**{name: getattr(self, name) for name in ParsedDocument.field_names()})

    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.middle_name, self.surname) if part)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Event:
    """A named group of scans (e.g. one flight or trip)"""
    name: str
    description: str = ""
    id: Optional[int] = None
    created_at: str = ""

    @classmethod
    def from_row(cls, row) -> "Event":
        return cls(
            id=row["id"],
            name=row["name"],
            description=row["description"] or "",
            created_at=row["created_at"] or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
