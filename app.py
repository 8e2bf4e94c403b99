"""
Travel Form Scanner / MRZ Microservice
Thin coordinator for the layered document scanning system.

Provides REST API for:
- MRZ decoding of raw OCR text and uploaded images
- Scan and event records
- DS-3072 form export (PDF)
"""
import logging
import os
import sqlite3
import tempfile
import uuid

from flask import Flask, current_app, g, jsonify, request, send_file
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

# Import layers
from layer1_capture import MRZReader, ScanConsensus
from layer2_mrz import DateOrder, DecodeFailure, decode, decode_fixed_width, normalize_date
from layer3_storage import ScanRecord, ScanStore
from layer4_document_filling import DocumentFiller

# Import error handling
from error_handlers import (
    DocumentFillerUnavailableError,
    ScannerError,
    UnknownFieldError,
    ValidationError,
    handle_error,
    status_for
)

# Configuration
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
DATABASE_PATH = os.environ.get('DATABASE_PATH', 'Logs/mrz_scanner.db')
TESSDATA_PATH = os.environ.get('TESSDATA_PATH', 'models/')  # Directory containing mrz.traineddata
TEMPLATE_PATH = os.environ.get('TEMPLATE_PATH') or None  # Fillable DS-3072 PDF; generated when unset
FILLED_DOCUMENTS_DIR = os.environ.get('FILLED_DOCUMENTS_DIR', 'Logs/filled_documents')
DATE_ORDER = os.environ.get('DATE_ORDER', 'MDY')
SCAN_BUFFER_SIZE = int(os.environ.get('SCAN_BUFFER_SIZE', 5))
REQUIRED_MATCHING_SCANS = int(os.environ.get('REQUIRED_MATCHING_SCANS', 3))

# Setup logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


class ScannerCoordinator:
    """
    Coordinates the scanning pipeline across layers
    Thin wrapper that delegates to layer-specific components
    """

    def __init__(self, tessdata_path, template_path, filled_documents_dir, date_order,
                 buffer_size=SCAN_BUFFER_SIZE, required_matches=REQUIRED_MATCHING_SCANS,
                 reader=None):
        logger.info("Initializing ScannerCoordinator")
        self.tessdata_path = tessdata_path
        self.date_order = DateOrder.from_name(date_order)
        self.buffer_size = buffer_size
        self.required_matches = required_matches

        # Layer 1: OCR reader (created on first use, the engine is heavy)
        self._reader = reader

        # Layer 4: Document Filling (PDF)
        try:
            self.document_filler = DocumentFiller(
                template_path=template_path,
                output_dir=filled_documents_dir,
                date_order=self.date_order
            )
        except Exception as e:
            logger.warning(f"Document filler initialization failed: {e}")
            logger.warning("Layer 4 will be unavailable")
            self.document_filler = None

        logger.info("ScannerCoordinator initialized successfully")

    @property
    def reader(self):
        if self._reader is None:
            self._reader = MRZReader(tessdata_path=self.tessdata_path)
        return self._reader

    def decode_text(self, raw_text, fixed_width=False):
        """
        Decode raw MRZ text (Layer 2)

        Returns:
            dict: Success response

        Raises:
            InsufficientLinesError: If fewer than 2 lines were found
        """
        logger.info("[Layer 2] Decoding MRZ text...")
        result = decode_fixed_width(raw_text) if fixed_width else decode(raw_text)
        if isinstance(result, DecodeFailure):
            logger.info(f"[Layer 2] Decode failed: {result.reason}")
            raise result.to_error()

        missing = result.missing_required()
        if missing:
            logger.info(f"[Layer 2] Partial read, missing: {missing}")

        return {
            "success": True,
            "data": result.to_dict(),
            "display": result.display_dates(self.date_order),
            "missing_fields": missing,
            "raw_text": raw_text,
        }

    def extract_from_images(self, image_paths):
        """
        Execute the image pipeline:
        Layer 1 (read + consensus) -> Layer 2 (decode)

        Returns:
            dict: Success response
        """
        logger.info("=" * 60)
        logger.info(f"Starting extraction pipeline for {len(image_paths)} image(s)")

        required = min(self.required_matches, len(image_paths))
        consensus = ScanConsensus(
            buffer_size=max(self.buffer_size, required),
            required_matches=required
        )

        logger.info("[Layer 1] Reading MRZ text...")
        accepted = self.reader.read_until_consensus(image_paths, consensus)

        response = self.decode_text(accepted.text)
        response["consensus"] = accepted.to_dict()

        logger.info("[Pipeline] Success!")
        logger.info("=" * 60)
        return response

    def fill_form(self, record):
        """Fill the DS-3072 form for a stored scan (Layer 4)"""
        if self.document_filler is None:
            raise DocumentFillerUnavailableError()
        logger.info(f"[Layer 4] Filling DS-3072 for scan {record.id}...")
        return self.document_filler.fill_form(record)


# ============================================================================
# Storage lifecycle - one connection per request
# ============================================================================

def get_store():
    """Scan store bound to the current request"""
    if 'store' not in g:
        connection = sqlite3.connect(current_app.config['DATABASE_PATH'])
        g.store = ScanStore(connection).initialize()
    return g.store


def close_store(exception=None):
    store = g.pop('store', None)
    if store is not None:
        store.connection.close()


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _error_response(error):
    return jsonify(handle_error(error)), status_for(error)


def create_app(config=None):
    """
    Build the Flask application

    Args:
        config: Optional dict overriding the environment configuration
    """
    app = Flask(__name__)
    app.config.update(
        DATABASE_PATH=DATABASE_PATH,
        TESSDATA_PATH=TESSDATA_PATH,
        TEMPLATE_PATH=TEMPLATE_PATH,
        FILLED_DOCUMENTS_DIR=FILLED_DOCUMENTS_DIR,
        DATE_ORDER=DATE_ORDER,
        SCAN_BUFFER_SIZE=SCAN_BUFFER_SIZE,
        REQUIRED_MATCHING_SCANS=REQUIRED_MATCHING_SCANS,
        MRZ_READER=None,
    )
    if config:
        app.config.update(config)

    database_dir = os.path.dirname(app.config['DATABASE_PATH'])
    if database_dir and not os.path.exists(database_dir):
        os.makedirs(database_dir)

    # Enable CORS for cross-origin requests from the app front end
    CORS(app, origins=["*"])

    scanner = ScannerCoordinator(
        tessdata_path=app.config['TESSDATA_PATH'],
        template_path=app.config['TEMPLATE_PATH'],
        filled_documents_dir=app.config['FILLED_DOCUMENTS_DIR'],
        date_order=app.config['DATE_ORDER'],
        buffer_size=app.config['SCAN_BUFFER_SIZE'],
        required_matches=app.config['REQUIRED_MATCHING_SCANS'],
        reader=app.config['MRZ_READER'],
    )
    app.extensions['scanner'] = scanner
    app.teardown_appcontext(close_store)

    @app.errorhandler(ScannerError)
    def scanner_error(error):
        return _error_response(error)

    @app.errorhandler(Exception)
    def unexpected_error(error):
        # Routing errors (404, 405) keep Flask's own responses
        if isinstance(error, HTTPException):
            return error
        return _error_response(error)

    # ========================================================================
    # Service endpoints
    # ========================================================================

    @app.route("/health", methods=["GET"])
    def health_check():
        """Health check endpoint for service discovery and load balancers"""
        return jsonify({
            "status": "healthy",
            "service": "mrz-service",
            "version": "1.0.0"
        })

    @app.route("/api/status", methods=["GET"])
    def api_status():
        """Get service status and capabilities"""
        filler = scanner.document_filler
        return jsonify({
            "success": True,
            "document_filler_available": filler is not None,
            "document_filler_mode": filler.mode if filler else None,
            "date_order": scanner.date_order.value,
            "tessdata_path": scanner.tessdata_path,
            "consensus": {
                "buffer_size": scanner.buffer_size,
                "required_matches": scanner.required_matches
            },
            "storage": get_store().info(),
            "endpoints": {
                "health": "/health",
                "decode": "/api/decode",
                "normalize_date": "/api/dates/normalize",
                "extract": "/api/extract",
                "events": "/api/events",
                "scans": "/api/scans",
                "form": "/api/scans/<id>/form"
            }
        })

    # ========================================================================
    # MRZ endpoints
    # ========================================================================

    @app.route("/api/decode", methods=["POST"])
    def api_decode():
        """
        Decode raw MRZ text.

        Request:
            {"text": "P<USADOE<<JOHN...\\nAB1234567...", "fixed_width": false}
        """
        logger.info("API decode request received")
        data = _json_body()
        text = data.get("text")
        if not isinstance(text, str):
            raise ValidationError("Field 'text' must be a string", field="text")
        return jsonify(scanner.decode_text(text, fixed_width=bool(data.get("fixed_width"))))

    @app.route("/api/dates/normalize", methods=["POST"])
    def api_normalize_date():
        """Normalize a compact YYMMDD date for display"""
        data = _json_body()
        compact = data.get("date")
        if not isinstance(compact, str):
            raise ValidationError("Field 'date' must be a string", field="date")
        try:
            order = DateOrder.from_name(data.get("order") or scanner.date_order)
        except ValueError as e:
            raise ValidationError(str(e), field="order")

        value = normalize_date(compact, is_expiry=bool(data.get("is_expiry")), order=order)
        return jsonify({
            "success": True,
            "date": value,
            "order": order.value
        })

    @app.route("/api/extract", methods=["POST"])
    def api_extract_from_image():
        """
        Extract MRZ data from uploaded images.

        Request:
            - multipart/form-data with one or more 'image' fields
              (successive frames of the same document)
        """
        logger.info("API extract request received")

        images = [f for f in request.files.getlist('image') if f and f.filename]
        if not images:
            return jsonify({
                "success": False,
                "error": "No image file provided",
                "error_code": "NO_IMAGE"
            }), 400

        temp_paths = []
        try:
            temp_dir = tempfile.gettempdir()
            for image_file in images:
                unique_id = uuid.uuid4().hex[:8]
                filename = os.path.basename(image_file.filename)
                temp_path = os.path.join(temp_dir, f"upload_{unique_id}_{filename}")
                image_file.save(temp_path)
                temp_paths.append(temp_path)
            logger.info(f"Saved {len(temp_paths)} uploaded image(s)")

            return jsonify(scanner.extract_from_images(temp_paths))

        except ScannerError as e:
            logger.error(f"Scanner error during API extraction: {e}")
            return _error_response(e)

        except Exception as e:
            logger.error(f"Unexpected error during API extraction: {e}")
            return jsonify({
                "success": False,
                "error": str(e),
                "error_code": "EXTRACTION_FAILED"
            }), 500

        finally:
            for temp_path in temp_paths:
                if os.path.exists(temp_path):
                    os.remove(temp_path)

    # ========================================================================
    # Event endpoints
    # ========================================================================

    @app.route("/api/events", methods=["GET"])
    def api_list_events():
        events = get_store().list_events()
        return jsonify({"success": True, "events": [e.to_dict() for e in events]})

    @app.route("/api/events", methods=["POST"])
    def api_create_event():
        data = _json_body()
        event = get_store().insert_event(data.get("name"), data.get("description", ""))
        return jsonify({"success": True, "event": event.to_dict()}), 201

    @app.route("/api/events/<int:event_id>", methods=["GET"])
    def api_get_event(event_id):
        store = get_store()
        event = store.get_event(event_id)
        scans = store.list_scans_by_event(event_id)
        return jsonify({
            "success": True,
            "event": event.to_dict(),
            "scans": [s.to_dict() for s in scans]
        })

    @app.route("/api/events/<int:event_id>", methods=["PUT"])
    def api_update_event(event_id):
        data = _json_body()
        event = get_store().update_event(
            event_id, name=data.get("name"), description=data.get("description")
        )
        return jsonify({"success": True, "event": event.to_dict()})

    # ========================================================================
    # Scan endpoints
    # ========================================================================

    @app.route("/api/scans", methods=["GET"])
    def api_list_scans():
        store = get_store()
        raw_event_id = request.args.get("event_id")
        if raw_event_id is None:
            scans = store.list_scans()
        else:
            try:
                event_id = int(raw_event_id)
            except ValueError:
                raise ValidationError("Query parameter 'event_id' must be an integer", field="event_id")
            scans = store.list_scans_by_event(event_id)
        return jsonify({"success": True, "scans": [s.to_dict() for s in scans]})

    @app.route("/api/scans", methods=["POST"])
    def api_create_scan():
        """
        Save a scan.

        Request:
            {"text": "<raw MRZ>", ...extra fields} decodes the text first;
            otherwise the body holds the record fields directly.
        """
        data = _json_body()
        fields = dict(data)
        fields.pop("id", None)
        fields.pop("saved_at", None)

        text = fields.pop("text", None)
        if text is not None:
            if not isinstance(text, str):
                raise ValidationError("Field 'text' must be a string", field="text")
            decoded = scanner.decode_text(text, fixed_width=bool(fields.pop("fixed_width", False)))
            fields = {**decoded["data"], **fields}
        fields.pop("fixed_width", None)

        unknown = ScanRecord.unknown_fields(fields)
        if unknown:
            raise UnknownFieldError(unknown)
        record = ScanRecord().updated(**fields)
        stored = get_store().insert_scan(record)
        return jsonify({"success": True, "scan": stored.to_dict()}), 201

    @app.route("/api/scans/<int:scan_id>", methods=["GET"])
    def api_get_scan(scan_id):
        scan = get_store().get_scan(scan_id)
        return jsonify({
            "success": True,
            "scan": scan.to_dict(),
            "display": scan.document().display_dates(scanner.date_order)
        })

    @app.route("/api/scans/<int:scan_id>", methods=["PATCH"])
    def api_update_scan(scan_id):
        data = _json_body()
        scan = get_store().update_scan(scan_id, data)
        return jsonify({"success": True, "scan": scan.to_dict()})

    @app.route("/api/scans/<int:scan_id>/form", methods=["GET"])
    def api_scan_form(scan_id):
        """Render the DS-3072 PDF for a scan and send it"""
        scan = get_store().get_scan(scan_id)
        fill_result = scanner.fill_form(scan)
        return send_file(
            os.path.abspath(fill_result["output_path"]),
            mimetype="application/pdf",
            as_attachment=True,
            download_name=fill_result["output_filename"]
        )

    @app.route("/api/data", methods=["DELETE"])
    def api_delete_all():
        get_store().delete_all()
        return jsonify({"success": True})

    return app


# ============================================================================
# Main Entry Point
# ============================================================================

if __name__ == '__main__':
    print("\n" + "=" * 60)
    print("TRAVEL FORM SCANNER / MRZ MICROSERVICE")
    print("=" * 60)
    print("\n📁 Project Structure:")
    print("  layer1_capture/          - OCR reading and consensus")
    print("  layer2_mrz/              - MRZ decoding and date normalization")
    print("  layer3_storage/          - Scan and event records")
    print("  layer4_document_filling/ - DS-3072 form (PDF)")
    print("\n📡 API Endpoints:")
    print("  GET  /health               - Health check")
    print("  GET  /api/status           - Service status")
    print("  POST /api/decode           - Decode raw MRZ text")
    print("  POST /api/dates/normalize  - Normalize a YYMMDD date")
    print("  POST /api/extract          - Extract MRZ from uploaded images")
    print("  *    /api/events, /api/scans")
    print("  GET  /api/scans/<id>/form  - DS-3072 PDF")
    print("\n" + "=" * 60)
    print("Server starting... Press Ctrl+C to stop")
    print("=" * 60 + "\n")

    logger.info("Flask server starting")
    create_app().run(host='0.0.0.0', port=5000, debug=True, threaded=True)
