"""
Tests for DS-3072 form filling.
"""
import os
from datetime import date

import pytest
from PyPDF2 import PdfReader
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

from layer2_mrz import DateOrder, decode
from layer3_storage import ScanRecord
from layer4_document_filling import (
    FORM_FIELDS,
    DocumentFiller,
    DocumentFillingError,
    TemplateNotFoundError,
    build_form_values,
)


@pytest.fixture
def record(sample_mrz_text):
    return ScanRecord.from_document(
        decode(sample_mrz_text),
        birth_city="Springfield",
        birth_country="USA",
        emergency_first_name="Jane",
        emergency_last_name="Doe",
        email="john@example.com",
        carrier="UA",
    )


@pytest.fixture
def template_path(tmp_path):
    """A small fillable PDF with a few DS-3072 field names."""
    path = tmp_path / "ds3072_template.pdf"
    can = canvas.Canvas(str(path), pagesize=letter)
    y = 700
    for name in ("last_name", "first_name", "date_of_birth", "passport_number", "email", "office_use"):
        can.drawString(72, y + 4, name)
        can.acroForm.textfield(name=name, x=200, y=y, width=250, height=18)
        y -= 30
    can.drawString(72, y + 4, "sex_male")
    can.acroForm.checkbox(name="sex_male", x=200, y=y, size=14)
    can.save()
    return str(path)


class TestBuildFormValues:
    """Test mapping a scan record onto form fields."""

    def test_every_form_field_present(self, record):
        values = build_form_values(record, today=date(2026, 10, 19), current_year=2026)

        assert set(values) == set(FORM_FIELDS)
        assert all(isinstance(value, str) for value in values.values())

    def test_passport_fields(self, record):
        """Test MRZ fields land on the identity part of the form."""
        values = build_form_values(record, current_year=2026)

        assert values["last_name"] == "DOE"
        assert values["first_name"] == "JOHN"
        assert values["middle_name"] == "MICHAEL"
        assert values["date_of_birth"] == "01/01/1990"
        assert values["document_passport"] == "X"
        assert values["document_national_id"] == ""
        assert values["passport_number"] == "AB1234567"
        assert values["national_id_number"] == ""
        assert values["sex_male"] == "X"
        assert values["sex_female"] == ""
        assert values["issuing_country"] == "USA"

    def test_derived_fields(self, record):
        """Test composed names and places."""
        values = build_form_values(record, current_year=2026)

        assert values["place_of_birth"] == "Springfield, USA"
        assert values["emergency_contact_name"] == "Jane Doe"
        assert values["full_name_printed"] == "DOE, JOHN MICHAEL"
        assert values["accompanying_none"] == "X"

    def test_national_id_document(self):
        record = ScanRecord(document_type="ID", surname="ROE", document_number="X123", sex="F")

        values = build_form_values(record, current_year=2026)

        assert values["document_national_id"] == "X"
        assert values["national_id_number"] == "X123"
        assert values["passport_number"] == ""
        assert values["sex_female"] == "X"

    def test_day_first_dates(self, record):
        values = build_form_values(
            record.updated(signature="John Doe"),
            date_order=DateOrder.DAY_FIRST,
            today=date(2026, 10, 19),
            current_year=2026,
        )

        assert values["date_of_birth"] == "01/01/1990"
        assert values["signature_date"] == "19/10/2026"

    def test_signature(self, record):
        """Test drawn signatures are referenced, not printed."""
        unsigned = build_form_values(record, today=date(2026, 10, 19))
        drawn = build_form_values(
            record.updated(signature="data:image/png;base64,iVBORw0KGgo="),
            today=date(2026, 10, 19),
        )

        assert unsigned["signature"] == ""
        assert unsigned["signature_date"] == ""
        assert drawn["signature"] == "(signature on file)"
        assert drawn["signature_date"] == "10/19/2026"

    def test_invalid_birth_date(self, record):
        values = build_form_values(record.updated(date_of_birth="021301"))

        assert values["date_of_birth"] == "Invalid date"


class TestDocumentFiller:
    """Test writing filled PDFs."""

    def test_generated_form(self, record, tmp_path):
        """Test a form is drawn when no template is configured."""
        filler = DocumentFiller(output_dir=str(tmp_path / "out"))

        result = filler.fill_form(record, timestamp="20261019_120000")

        assert filler.mode == "generated"
        assert result["output_filename"] == "ds3072_20261019_120000_DOE_JOHN.pdf"
        assert os.path.exists(result["output_path"])
        reader = PdfReader(result["output_path"])
        assert len(reader.pages) >= 1
        text = "".join(page.extract_text() for page in reader.pages)
        assert "DS-3072" in text
        assert "AB1234567" in text

    def test_template_form(self, record, template_path, tmp_path):
        """Test named template fields are filled and the form is flattened."""
        filler = DocumentFiller(template_path=template_path, output_dir=str(tmp_path / "out"))

        result = filler.fill_form(record)

        assert filler.mode == "template"
        reader = PdfReader(result["output_path"])
        assert len(reader.pages) == 1
        text = reader.pages[0].extract_text()
        assert "last_name" in text
        assert "DOE" in text
        assert "JOHN" in text
        assert "01/01/1990" in text
        assert "AB1234567" in text
        assert "john@example.com" in text
        assert reader.get_fields() is None
        assert "/Annots" not in reader.pages[0]

    def test_template_form_keeps_non_widget_annotations(self, record, template_path, tmp_path):
        """Test links survive while form widgets are dropped."""
        linked = tmp_path / "linked_template.pdf"
        can = canvas.Canvas(str(linked), pagesize=letter)
        can.acroForm.textfield(name="last_name", x=200, y=700, width=250, height=18)
        can.linkURL("https://travel.state.gov", (72, 600, 272, 620))
        can.save()
        filler = DocumentFiller(template_path=str(linked), output_dir=str(tmp_path / "out"))

        result = filler.fill_form(record)

        page = PdfReader(result["output_path"]).pages[0]
        subtypes = [annot.get_object()["/Subtype"] for annot in page["/Annots"]]
        assert subtypes == ["/Link"]
        assert "DOE" in page.extract_text()

    def test_template_without_fields(self, record, tmp_path):
        """Test a flat PDF cannot be used as a template."""
        path = tmp_path / "flat.pdf"
        can = canvas.Canvas(str(path), pagesize=letter)
        can.drawString(72, 700, "No form here")
        can.save()
        filler = DocumentFiller(template_path=str(path), output_dir=str(tmp_path / "out"))

        with pytest.raises(DocumentFillingError):
            filler.fill_form(record)

    def test_missing_template(self, tmp_path):
        with pytest.raises(TemplateNotFoundError) as exc_info:
            DocumentFiller(template_path=str(tmp_path / "missing.pdf"), output_dir=str(tmp_path))
        assert exc_info.value.status_code == 500

    def test_surname_required(self, tmp_path):
        """Test records without a surname are not exported."""
        filler = DocumentFiller(output_dir=str(tmp_path))

        with pytest.raises(DocumentFillingError) as exc_info:
            filler.fill_form(ScanRecord(first_name="JOHN"))
        assert "surname" in exc_info.value.message

    def test_output_dir_created(self, tmp_path):
        output_dir = tmp_path / "nested" / "filled"

        DocumentFiller(output_dir=str(output_dir))

        assert output_dir.is_dir()
