"""
Layer 2 — MRZ Decoding
Component: MRZ decoder
Responsibility: Decode raw OCR text into document fields by fixed columns
Output: ParsedDocument, or DecodeFailure when fewer than 2 lines are present

Column layout (0-indexed, half-open):
    line 1: document type [0:2], issuing country [2:5], name block [5:]
    line 2: document number [0:9], nationality [10:13], birth date [13:19],
            sex [20:21], expiry date [21:27], personal number [28:42]

Slices past the end of a short line come back empty; partial reads still
decode so the user can correct them by hand.
"""
import logging
import re

from .models import DecodeFailure, ParsedDocument

logger = logging.getLogger(__name__)

FILLER = "<"
NAME_SEPARATOR = FILLER * 2
LEGACY_LINE_WIDTH = 44

# Sex codes some OCR engines emit as digits
SEX_CODES = {
    "1": "F",
    "2": "M",
}

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


def split_lines(raw_text):
    """Split raw OCR text into stripped, non-empty lines"""
    lines = [line.strip() for line in _LINE_BREAK.split(raw_text)]
    return [line for line in lines if line]


def _clean_segment(segment):
    return " ".join(segment.replace(FILLER, " ").split())


def parse_name_block(name_block):
    """
    Split an MRZ name block into (surname, first_name, middle_name)

    "DOE<<JOHN<MICHAEL" -> ("DOE", "JOHN", "MICHAEL")
    """
    segments = name_block.split(NAME_SEPARATOR)
    surname = _clean_segment(segments[0])
    given_names = _clean_segment(segments[1]) if len(segments) > 1 else ""

    tokens = given_names.split()
    first_name = tokens[0] if tokens else ""
    middle_name = " ".join(tokens[1:])
    return surname, first_name, middle_name


def normalize_sex(code):
    """'1' -> 'F', '2' -> 'M', anything else uppercased as-is"""
    code = code.strip().upper()
    return SEX_CODES.get(code, code)


def decode(raw_text):
    """
    Decode one raw MRZ read

    Args:
        raw_text: Newline separated OCR text

    Returns:
        ParsedDocument on success, DecodeFailure if fewer than 2 lines

    Raises:
        TypeError: If raw_text is not a string
    """
    if not isinstance(raw_text, str):
        raise TypeError(f"raw_text must be str, not {type(raw_text).__name__}")

    lines = split_lines(raw_text)
    if len(lines) < 2:
        logger.debug(f"Not enough MRZ lines: {len(lines)}")
        return DecodeFailure(
            reason=DecodeFailure.INSUFFICIENT_LINES,
            line_count=len(lines),
            raw_text=raw_text,
        )

    line1, line2 = lines[0], lines[1]
    surname, first_name, middle_name = parse_name_block(line1[5:])

    document = ParsedDocument(
        document_type=line1[0:2].strip(),
        issuing_country=line1[2:5].strip(),
        surname=surname,
        first_name=first_name,
        middle_name=middle_name,
        document_number=line2[0:9].strip(),
        nationality=line2[10:13].strip(),
        date_of_birth=line2[13:19].strip(),
        sex=normalize_sex(line2[20:21]),
        expiry_date=line2[21:27].strip(),
        personal_number=_clean_segment(line2[28:42]),
    )
    logger.debug(f"Decoded MRZ: {document}")
    return document


def decode_fixed_width(raw_text, width=LEGACY_LINE_WIDTH):
    """
    Decode text whose line breaks were lost

    Drops every line terminator, re-slices the buffer into fixed-width
    lines and hands the result to decode().
    """
    if not isinstance(raw_text, str):
        raise TypeError(f"raw_text must be str, not {type(raw_text).__name__}")
    if width <= 0:
        raise ValueError("width must be positive")

    buffer = _LINE_BREAK.sub("", raw_text)
    lines = [buffer[i:i + width] for i in range(0, len(buffer), width)]
    return decode("\n".join(lines))
