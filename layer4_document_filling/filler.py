"""
Layer 4 — Document Filling (PDF)
Responsibility: Fill the DS-3072 loan application with scan record data
Output: Filled PDF document (.pdf)

Two modes:
- template: values are drawn over the named AcroForm fields of a DS-3072 PDF
  and the filled form is flattened
- generated: without a template, a DS-3072-style sheet is drawn with reportlab
"""
import io
import logging
import os
from datetime import date, datetime

from PyPDF2 import PdfReader, PdfWriter
from PyPDF2.generic import ArrayObject, NameObject
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

from error_handlers import DocumentFillingError, TemplateNotFoundError, TemplateSaveError
from layer2_mrz import DateOrder, format_date, is_invalid, normalize_date

logger = logging.getLogger(__name__)

CHECKED = "X"

# (field name, printed label) in form order; None starts a new section
FORM_LAYOUT = [
    (None, "PART 1 - APPLICATION TO BE COMPLETED BY EACH ADULT APPLICANT"),
    ("last_name", "1. Last Name"),
    ("first_name", "2. First Name"),
    ("middle_name", "3. Middle Name"),
    ("ssn", "4. Social Security Number"),
    ("date_of_birth", "5. Date of Birth"),
    ("place_of_birth", "6. Place of Birth"),
    ("issuing_country", "7. Identity Document Issuing Country"),
    ("document_passport", "7. Passport"),
    ("passport_number", "7. Passport No."),
    ("document_national_id", "7. National ID"),
    ("national_id_number", "7. National ID No."),
    ("sex_male", "8. Sex: Male"),
    ("sex_female", "8. Sex: Female"),
    ("current_lodging", "9. Current Lodging"),
    ("phone_number", "10. Phone Number"),
    ("email", "11. E-mail Address"),
    ("medical_conditions", "12. Medical Conditions"),
    (None, "13. Billing Address at Final Destination"),
    ("billing_address1", "14. Address Line 1"),
    ("billing_address2", "15. Address Line 2"),
    ("billing_city", "16. City"),
    ("billing_state", "17. State/Province"),
    ("billing_country", "18. Country"),
    ("billing_postal_code", "19. Postal Code"),
    ("billing_phone", "20. Telephone Number"),
    ("billing_email", "21. E-mail Address"),
    (None, "22. Emergency Contact"),
    ("emergency_last_name", "23. Last Name"),
    ("emergency_first_name", "24. First Name"),
    ("emergency_address1", "25. Address Line 1"),
    ("emergency_address2", "26. Address Line 2"),
    ("emergency_city", "27. City"),
    ("emergency_state", "28. State/Province"),
    ("emergency_country", "29. Country"),
    ("emergency_postal_code", "30. Postal Code"),
    ("emergency_phone", "31. Telephone Number"),
    ("emergency_email", "32. E-mail Address"),
    ("emergency_relationship", "33. Relationship to You"),
    ("emergency_contact_name", "Emergency Contact Name"),
    ("accompanying_none", "34. None Accompanying"),
    ("accompanying_persons", "34. Minor Children / Incapacitated Adults"),
    (None, "Additional Travel Information"),
    ("carrier", "Carrier"),
    ("routing", "Routing"),
    ("flight_number", "Flight Number"),
    ("date_of_flight", "Date of Flight"),
    ("seats", "Seats"),
    ("meal", "Meal Preference"),
    ("assistance_request", "Assistance Request"),
    ("remarks", "Remarks"),
    (None, "90. Signature Block for Applicant"),
    ("full_name_printed", "91. Full Name Printed"),
    ("signature", "92. Signature"),
    ("signature_date", "93. Date"),
]

FORM_FIELDS = [name for name, _ in FORM_LAYOUT if name is not None]

# Record fields copied onto the form unchanged
_DIRECT_FIELDS = (
    "first_name", "middle_name", "ssn", "issuing_country",
    "current_lodging", "phone_number", "email", "medical_conditions",
    "billing_address1", "billing_address2", "billing_city", "billing_state",
    "billing_country", "billing_postal_code", "billing_phone", "billing_email",
    "emergency_last_name", "emergency_first_name", "emergency_address1",
    "emergency_address2", "emergency_city", "emergency_state",
    "emergency_country", "emergency_postal_code", "emergency_phone",
    "emergency_email", "emergency_relationship", "accompanying_persons",
    "carrier", "routing", "flight_number", "date_of_flight", "seats", "meal",
    "assistance_request", "remarks",
)


def _check(flag):
    return CHECKED if flag else ""


def _signature_text(signature):
    if not signature:
        return ""
    if signature.startswith("data:"):
        return "(signature on file)"
    return signature


def _widget_field(annot):
    """(field name, field type) of a widget; kids inherit from their parent"""
    name = annot.get("/T")
    field_type = annot.get("/FT")
    parent = annot.get("/Parent")
    if parent is not None:
        parent = parent.get_object()
        if name is None:
            name = parent.get("/T")
        if field_type is None:
            field_type = parent.get("/FT")
    return (str(name) if name is not None else None), field_type


def _draw_field(can, rect, field_type, value):
    """Draw one value inside a widget rectangle"""
    x1, y1, x2, y2 = [float(v) for v in rect]
    left, right = min(x1, x2), max(x1, x2)
    bottom, top = min(y1, y2), max(y1, y2)
    size = max(4.0, min(10.0, top - bottom - 4))

    can.setFont("Helvetica", size)
    if field_type == "/Btn":
        can.drawCentredString((left + right) / 2, bottom + (top - bottom - size) / 2 + 1, CHECKED)
    else:
        can.drawString(left + 2, bottom + (top - bottom - size) / 2 + 1, value)


def build_form_values(record, date_order=DateOrder.MONTH_FIRST, today=None, current_year=None):
    """
    Map a scan record onto DS-3072 field names

    Args:
        record: ScanRecord to export
        date_order: DateOrder for every printed date
        today: Date printed next to the signature (defaults to today)
        current_year: Year used for the birth date century pivot

    Returns:
        dict: {field name: string value} for every name in FORM_FIELDS
    """
    values = {name: getattr(record, name) for name in _DIRECT_FIELDS}

    is_passport = record.document_type.upper().startswith("P")
    place_of_birth = ", ".join(
        part for part in (record.birth_city, record.birth_state, record.birth_country) if part
    )
    emergency_name = " ".join(
        part for part in (record.emergency_first_name, record.emergency_last_name) if part
    )
    full_name = record.surname
    given = " ".join(part for part in (record.first_name, record.middle_name) if part)
    if given:
        full_name = f"{full_name}, {given}" if full_name else given

    values.update({
        "last_name": record.surname,
        "date_of_birth": normalize_date(
            record.date_of_birth, is_expiry=False, order=date_order, current_year=current_year
        ),
        "place_of_birth": place_of_birth,
        "document_passport": _check(is_passport),
        "document_national_id": _check(bool(record.document_type) and not is_passport),
        "passport_number": record.document_number if is_passport else "",
        "national_id_number": record.document_number if not is_passport else "",
        "sex_male": _check(record.sex == "M"),
        "sex_female": _check(record.sex == "F"),
        "emergency_contact_name": emergency_name,
        "accompanying_none": _check(not record.accompanying_persons),
        "full_name_printed": full_name,
        "signature": _signature_text(record.signature),
        "signature_date": format_date(today or date.today(), date_order) if record.signature else "",
    })

    if is_invalid(values["date_of_birth"]):
        logger.warning(f"Date of birth {record.date_of_birth!r} could not be normalized")

    return values


class DocumentFiller:
    """Handles filling of the DS-3072 form from scan records"""

    def __init__(self, template_path=None, output_dir="filled_documents",
                 date_order=DateOrder.MONTH_FIRST):
        """
        Initialize PDF document filler

        Args:
            template_path: Path to a fillable DS-3072 PDF, or None to generate one
            output_dir: Directory to save filled documents
            date_order: DateOrder used for printed dates

        Raises:
            TemplateNotFoundError: If template_path is given but doesn't exist
        """
        self.template_path = template_path
        self.output_dir = output_dir
        self.date_order = DateOrder.from_name(date_order)

        if template_path and not os.path.exists(template_path):
            logger.error(f"Template not found: {template_path}")
            raise TemplateNotFoundError(template_path)

        if not os.path.exists(output_dir):
            os.makedirs(output_dir)
            logger.info(f"Created output directory: {output_dir}")

        logger.info(f"DocumentFiller initialized ({self.mode} mode)")
        logger.debug(f"  Template: {template_path}")
        logger.debug(f"  Output dir: {output_dir}")

    @property
    def mode(self):
        return "template" if self.template_path else "generated"

    def fill_form(self, record, timestamp=None):
        """
        Fill the DS-3072 form for one scan record

        Args:
            record: ScanRecord to export
            timestamp: Optional timestamp for filename (uses current if None)

        Returns:
            dict: Contains output_path, output_filename, and timestamp

        Raises:
            DocumentFillingError: If the record lacks a surname or filling fails
            TemplateSaveError: If the PDF can't be written
        """
        logger.info("Starting DS-3072 filling process")

        if not record.surname:
            raise DocumentFillingError(
                "Missing critical data: surname",
                details={"scan_id": record.id}
            )

        values = build_form_values(record, self.date_order)

        if timestamp is None:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

        safe_name = f"{record.surname}_{record.first_name}".strip("_").replace(' ', '_')[:50]
        output_filename = f"ds3072_{timestamp}_{safe_name}.pdf"
        output_path = os.path.join(self.output_dir, output_filename)

        try:
            if self.template_path:
                self._fill_template(output_path, values)
            else:
                self._render_form(output_path, values)
        except DocumentFillingError:
            raise
        except OSError as e:
            logger.error(f"Failed to save document: {e}")
            raise TemplateSaveError(output_path, str(e))
        except Exception as e:
            logger.error(f"Error filling document: {e}")
            logger.exception("Full traceback:")
            raise DocumentFillingError(
                f"Document filling failed: {str(e)}",
                details={"error_type": type(e).__name__}
            )

        logger.info(f"✓ DS-3072 filled and saved: {output_filename}")
        return {
            "output_path": output_path,
            "output_filename": output_filename,
            "timestamp": timestamp
        }

    def _fill_template(self, output_path, values):
        """
        Draw values over the template's named form fields

        Each widget's /Rect locates its value on a reportlab overlay that is
        merged onto the template page. Widgets are dropped from the output,
        so the result is a flat PDF like the generated sheet.
        """
        reader = PdfReader(self.template_path)
        if not reader.get_fields():
            raise DocumentFillingError(
                "Template has no fillable form fields",
                details={"template_path": self.template_path}
            )

        output = PdfWriter()
        filled = set()
        for template_page in reader.pages:
            width = float(template_page.mediabox.width)
            height = float(template_page.mediabox.height)

            packet = io.BytesIO()
            can = canvas.Canvas(packet, pagesize=(width, height))

            annots = template_page.get("/Annots")
            annots = annots.get_object() if annots is not None else []
            kept = ArrayObject()
            for ref in annots:
                annot = ref.get_object()
                if annot.get("/Subtype") != "/Widget":
                    kept.append(ref)
                    continue
                name, field_type = _widget_field(annot)
                if name not in values:
                    continue
                filled.add(name)
                if values[name]:
                    _draw_field(can, annot["/Rect"], field_type, values[name])

            can.save()
            packet.seek(0)
            template_page.merge_page(PdfReader(packet).pages[0])

            if kept:
                template_page[NameObject("/Annots")] = kept
                output.add_page(template_page)
            else:
                output.add_page(template_page, excluded_keys=["/Annots"])

        unmatched = sorted(set(values) - filled)
        if unmatched:
            logger.debug(f"Template lacks fields: {unmatched}")

        with open(output_path, 'wb') as output_file:
            output.write(output_file)

    def _render_form(self, output_path, values):
        """Draw a DS-3072-style sheet with every field"""
        width, height = letter
        margin = 54
        can = canvas.Canvas(output_path, pagesize=letter)
        can.setTitle("DS-3072 Repatriation / Emergency Medical and Dietary Assistance Loan Application")

        def header():
            can.setFont("Helvetica-Bold", 12)
            can.drawString(margin, height - margin, "U.S. Department of State")
            can.setFont("Helvetica", 9)
            can.drawString(
                margin, height - margin - 14,
                "REPATRIATION / EMERGENCY MEDICAL AND DIETARY ASSISTANCE LOAN APPLICATION"
            )
            can.drawRightString(width - margin, height - margin, "DS-3072")
            return height - margin - 40

        y = header()
        for name, label in FORM_LAYOUT:
            if y < margin + 20:
                can.showPage()
                y = header()

            if name is None:
                y -= 6
                can.setFont("Helvetica-Bold", 10)
                can.drawString(margin, y, label)
                y -= 16
                continue

            can.setFont("Helvetica", 8)
            can.drawString(margin, y, label)
            can.setFont("Helvetica", 10)
            can.drawString(margin + 200, y, values.get(name, ""))
            can.line(margin + 198, y - 2, width - margin, y - 2)
            y -= 16

        can.save()
