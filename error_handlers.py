"""
Error Handling System
Provides consistent error responses across all layers
"""
import logging

logger = logging.getLogger(__name__)


class ScannerError(Exception):
    """Base exception for scanner errors"""
    status_code = 400

    def __init__(self, message, error_code, details=None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self):
        """Convert error to JSON-serializable dict"""
        return {
            "success": False,
            "error": self.message,
            "error_code": self.error_code,
            "details": self.details
        }


# Layer 1 / 2 Errors - OCR reading and MRZ decoding
class MRZError(ScannerError):
    """MRZ reading and decoding errors"""
    status_code = 422


class MRZNotFoundError(MRZError):
    """No MRZ text found in image"""
    def __init__(self):
        super().__init__(
            message="No MRZ data found in the image",
            error_code="MRZ_NOT_FOUND",
            details={
                "suggestion": "Ensure passport MRZ area is clearly visible and in focus"
            }
        )


class InsufficientLinesError(MRZError):
    """Decoded text has fewer than two usable MRZ lines"""
    def __init__(self, line_count, raw_text=""):
        super().__init__(
            message=f"MRZ text needs at least 2 lines, got {line_count}",
            error_code="INSUFFICIENT_LINES",
            details={
                "line_count": line_count,
                "raw_text": raw_text,
                "suggestion": "Re-scan the document or enter the fields manually"
            }
        )


class OCRReadError(MRZError):
    """OCR engine failed while reading the image"""
    def __init__(self, reason):
        super().__init__(
            message=f"MRZ reading failed: {reason}",
            error_code="OCR_READ_FAILED",
            details={
                "reason": str(reason),
                "suggestion": "Check image quality and lighting"
            }
        )


class InvalidImageError(MRZError):
    """Uploaded file could not be read as an image"""
    status_code = 400

    def __init__(self, image_path):
        super().__init__(
            message="Could not read image file",
            error_code="INVALID_IMAGE",
            details={"image_path": str(image_path)}
        )


class ConsensusNotReachedError(MRZError):
    """Repeated reads never agreed on the same MRZ text"""
    def __init__(self, reads, required_matches):
        super().__init__(
            message=f"No MRZ text recurred {required_matches} times in {reads} reads",
            error_code="CONSENSUS_NOT_REACHED",
            details={
                "reads": reads,
                "required_matches": required_matches,
                "suggestion": "Hold the document still and scan again"
            }
        )


# Layer 3 Errors - Storage
class StorageError(ScannerError):
    """Scan and event storage errors"""
    pass


class RecordNotFoundError(StorageError):
    """Requested scan or event does not exist"""
    status_code = 404

    def __init__(self, kind, record_id):
        super().__init__(
            message=f"{kind.capitalize()} {record_id} not found",
            error_code=f"{kind.upper()}_NOT_FOUND",
            details={"kind": kind, "id": record_id}
        )


class UnknownFieldError(StorageError):
    """Update names fields the record does not have"""
    def __init__(self, fields):
        super().__init__(
            message=f"Unknown field(s): {', '.join(sorted(fields))}",
            error_code="UNKNOWN_FIELD",
            details={"fields": sorted(fields)}
        )


class ValidationError(StorageError):
    """Request payload is missing or malformed"""
    def __init__(self, message, field=None):
        super().__init__(
            message=message,
            error_code="VALIDATION_FAILED",
            details={"field": field} if field else {}
        )


# Layer 4 Errors - Document Filling
class DocumentFillingError(ScannerError):
    """Document filling errors"""
    status_code = 422

    def __init__(self, message, details=None, error_code="DOCUMENT_FILLING_FAILED"):
        super().__init__(message=message, error_code=error_code, details=details)


class TemplateNotFoundError(DocumentFillingError):
    """Template file not found"""
    status_code = 500

    def __init__(self, template_path):
        super().__init__(
            message=f"Template file not found: {template_path}",
            error_code="TEMPLATE_NOT_FOUND",
            details={
                "template_path": str(template_path),
                "suggestion": "Check that TEMPLATE_PATH points to the DS-3072 PDF"
            }
        )


class TemplateSaveError(DocumentFillingError):
    """Failed to save filled document"""
    status_code = 500

    def __init__(self, output_path, reason):
        super().__init__(
            message=f"Failed to save filled document to {output_path}",
            error_code="TEMPLATE_SAVE_FAILED",
            details={
                "output_path": str(output_path),
                "reason": str(reason),
                "suggestion": "Check disk space and write permissions in filled_documents/"
            }
        )


class DocumentFillerUnavailableError(DocumentFillingError):
    """Layer 4 failed to initialize"""
    status_code = 503

    def __init__(self):
        super().__init__(
            message="Document filler not available",
            error_code="DOCUMENT_FILLER_UNAVAILABLE",
            details={"suggestion": "Check TEMPLATE_PATH and FILLED_DOCUMENTS_DIR"}
        )


# Error response helpers
def handle_error(error, log_message=None):
    """
    Handle error consistently across the application

    Args:
        error: Exception that occurred
        log_message: Optional custom log message

    Returns:
        dict: Error response for JSON serialization
    """
    if log_message:
        logger.error(log_message)

    if isinstance(error, ScannerError):
        # Known scanner error
        logger.error(f"{error.error_code}: {error.message}")
        if error.details:
            logger.debug(f"Error details: {error.details}")
        return error.to_dict()
    else:
        # Unexpected error
        logger.error(f"Unexpected error: {error}")
        logger.exception("Full traceback:")
        return {
            "success": False,
            "error": "An unexpected error occurred",
            "error_code": "UNEXPECTED_ERROR",
            "details": {
                "error_type": type(error).__name__,
                "error_message": str(error)
            }
        }


def status_for(error):
    """HTTP status code matching an error"""
    if isinstance(error, ScannerError):
        return error.status_code
    return 500
