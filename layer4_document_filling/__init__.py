"""
Layer 4 — Document Filling
Handles automated filling of the DS-3072 form
"""
from error_handlers import DocumentFillingError, TemplateNotFoundError, TemplateSaveError

from .filler import FORM_FIELDS, DocumentFiller, build_form_values

__all__ = [
    'FORM_FIELDS',
    'DocumentFiller',
    'DocumentFillingError',
    'TemplateNotFoundError',
    'TemplateSaveError',
    'build_form_values'
]
