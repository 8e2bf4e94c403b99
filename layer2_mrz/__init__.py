"""
Layer 2 — MRZ Decoding
Decodes raw MRZ text into document fields and normalizes MRZ dates
"""
from .dates import INVALID_DATE, DateOrder, expand_date, format_date, is_invalid, normalize_date
from .decoder import decode, decode_fixed_width, normalize_sex, parse_name_block
from .models import DecodeFailure, ParsedDocument

__all__ = [
    'INVALID_DATE',
    'DateOrder',
    'DecodeFailure',
    'ParsedDocument',
    'decode',
    'decode_fixed_width',
    'expand_date',
    'format_date',
    'is_invalid',
    'normalize_date',
    'normalize_sex',
    'parse_name_block',
]
