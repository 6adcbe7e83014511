from flask import Flask, current_app, request, jsonify
import io
import os
import sys
import logging
import threading
import traceback
import uuid
from collections import OrderedDict
from datetime import datetime
from functools import wraps
from werkzeug.utils import secure_filename
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_cors import CORS
from PIL import Image, UnidentifiedImageError

from config import get_config
from errors import OCRFailure, StaleRunError, UnsupportedDocumentType
from face_service import FaceEngine, MODES
from models import DocumentType
from ocr_engine import OCREngine
from orchestrator import RunGuard, compare, process_upload

logger = logging.getLogger(__name__)

MAX_IMAGE_DIMENSION = 4096


def configure_logging(level='INFO'):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stdout
    )


# Helper functions
def allowed_file(filename, allowed_extensions):
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in allowed_extensions


def validate_file_size(file, max_size):
    """Validate file size before processing"""
    file.seek(0, os.SEEK_END)
    file_size = file.tell()
    file.seek(0)

    if file_size > max_size:
        size_mb = file_size / (1024 * 1024)
        limit_mb = max_size / (1024 * 1024)
        raise RequestEntityTooLarge(
            f"File size ({size_mb:.2f}MB) exceeds the maximum limit of {limit_mb:g}MB"
        )
    return True


def convert_pdf_first_page(data, dpi=200):
    """Render the first page of a PDF upload as a PIL image"""
    try:
        from pdf2image import convert_from_bytes
    except ImportError as e:
        raise ValueError(
            "PDF processing requires 'pdf2image' and 'poppler' to be installed. "
            "Please install: pip install pdf2image"
        ) from e

    try:
        pages = convert_from_bytes(data, dpi=dpi, first_page=1, last_page=1)
    except Exception as e:
        logger.error(f"Error converting PDF: {str(e)}")
        raise ValueError(f"Failed to process PDF file: {str(e)}") from e
    if not pages:
        raise ValueError("PDF file has no pages")
    logger.info("Converted first PDF page to image")
    return pages[0].convert('RGB')


def validate_image_dimensions(img, min_dimension):
    width, height = img.size
    if width > MAX_IMAGE_DIMENSION or height > MAX_IMAGE_DIMENSION:
        raise ValueError(
            f"Image dimensions ({width}x{height}) exceed maximum allowed size of "
            f"{MAX_IMAGE_DIMENSION}x{MAX_IMAGE_DIMENSION} pixels. Please resize your image before uploading."
        )
    if width < min_dimension or height < min_dimension:
        raise ValueError(
            f"Image dimensions ({width}x{height}) are too small. "
            f"Minimum size is {min_dimension}x{min_dimension} pixels."
        )
    logger.info(f"Image dimensions validated: {width}x{height}")


def read_upload(field, cfg, required=True):
    """Validate one multipart file field and load it as an RGB image.

    Raises ValueError for client mistakes (400) and RequestEntityTooLarge (413).
    """
    file = request.files.get(field)
    if file is None or file.filename == '':
        if required:
            raise ValueError(f"No '{field}' file uploaded")
        return None

    filename = secure_filename(file.filename)
    if not allowed_file(filename, cfg.ALLOWED_EXTENSIONS):
        raise ValueError(f'Invalid file type. Allowed: {", ".join(sorted(cfg.ALLOWED_EXTENSIONS)).upper()}')

    validate_file_size(file.stream, cfg.MAX_CONTENT_LENGTH)
    data = file.read()

    if filename.lower().endswith('.pdf'):
        img = convert_pdf_first_page(data, dpi=cfg.PDF_DPI)
    else:
        try:
            img = Image.open(io.BytesIO(data))
            img.load()
            img = img.convert('RGB')
        except (OSError, UnidentifiedImageError) as e:
            raise ValueError(f"Invalid or corrupted image file: {str(e)}") from e

    validate_image_dimensions(img, cfg.MIN_IMAGE_SIDE)
    logger.info(f"Request {getattr(request, 'id', 'unknown')} - loaded '{field}' ({filename})")
    return img


def create_app(config=None, ocr_engine=None, face_engine=None):
    """Build the Flask app; engines can be injected (tests pass fakes)."""
    Config = config or get_config()
    configure_logging(Config.LOG_LEVEL)

    app = Flask(__name__)
    app.config.from_object(Config)

    ocr = ocr_engine or OCREngine(lang=Config.OCR_LANG)
    faces = face_engine or FaceEngine(
        model_name=Config.FACE_MODEL_NAME,
        detector_backend=Config.FACE_DETECTOR_BACKEND,
        min_confidence=Config.FACE_MIN_CONFIDENCE,
    )

    logger.info(f"Environment: {os.environ.get('FLASK_ENV', 'development')}")
    logger.info(f"Rate limiting: {'enabled' if Config.RATE_LIMIT_ENABLED else 'disabled'}")

    # Initialize CORS
    CORS(app, origins=Config.get_allowed_origins())
    logger.info(f"CORS configured for origins: {Config.get_allowed_origins()}")

    # Initialize Rate Limiter
    limiter = Limiter(
        get_remote_address,
        app=app,
        storage_uri=Config.RATE_LIMIT_STORAGE_URL,
        default_limits=[Config.GLOBAL_RATE_LIMIT] if Config.RATE_LIMIT_ENABLED else [],
        enabled=Config.RATE_LIMIT_ENABLED,
    )
    # route decorators only keep a weak reference to the limiter
    app.extensions['rate_limiter'] = limiter
    upload_limit = limiter.limit(Config.UPLOAD_RATE_LIMIT)

    # Request tracking
    request_stats = {
        'total_requests': 0,
        'successful_requests': 0,
        'failed_requests': 0,
        'start_time': datetime.now()
    }
    app.extensions['request_stats'] = request_stats

    # One RunGuard per client session, least recently used dropped first
    guards = OrderedDict()
    guards_lock = threading.Lock()

    def session_guard():
        session_id = request.headers.get('X-Session-ID')
        if not session_id:
            return RunGuard()
        with guards_lock:
            guard = guards.pop(session_id, None) or RunGuard()
            guards[session_id] = guard
            while len(guards) > Config.SESSION_GUARD_LIMIT:
                guards.popitem(last=False)
            return guard

    app.extensions['run_guards'] = guards

    def require_api_key(f):
        """Decorator to require API key authentication"""
        @wraps(f)
        def decorated_function(*args, **kwargs):
            api_key = request.headers.get('X-API-Key')
            if not api_key:
                logger.warning(f"Request {getattr(request, 'id', 'unknown')} - Missing API key")
                return jsonify({'error': 'Missing API key. Please provide X-API-Key header'}), 401

            if not Config.is_valid_api_key(api_key):
                logger.warning(f"Request {getattr(request, 'id', 'unknown')} - Invalid API key")
                return jsonify({'error': 'Invalid API key'}), 401

            return current_app.ensure_sync(f)(*args, **kwargs)
        return decorated_function

    # Request/Response Hooks
    @app.before_request
    def before_request():
        """Add request ID and track request"""
        request.id = str(uuid.uuid4())
        request.start_time = datetime.now()
        request_stats['total_requests'] += 1
        logger.info(f"Request {request.id} started: {request.method} {request.path}")

    @app.after_request
    def after_request(response):
        """Add request ID to response headers and log completion"""
        if hasattr(request, 'id'):
            response.headers['X-Request-ID'] = request.id

            if hasattr(request, 'start_time'):
                duration = (datetime.now() - request.start_time).total_seconds()
                logger.info(f"Request {request.id} completed: {response.status_code} ({duration:.2f}s)")

            if 200 <= response.status_code < 400:
                request_stats['successful_requests'] += 1
            else:
                request_stats['failed_requests'] += 1

        return response

    def error_response(message, status, **extra):
        body = {'error': message, 'request_id': getattr(request, 'id', None)}
        body.update(extra)
        return jsonify(body), status

    # Error handlers
    @app.errorhandler(UnsupportedDocumentType)
    def unsupported_type(e):
        logger.warning(f"Request {getattr(request, 'id', 'unknown')} - {str(e)}")
        return error_response(str(e), 400, supported_types=[t.value for t in DocumentType])

    @app.errorhandler(OCRFailure)
    def ocr_failed(e):
        logger.error(f"OCR failed in request {getattr(request, 'id', 'unknown')}: {str(e)}")
        return error_response(OCRFailure.user_message, 422, detail=str(e))

    @app.errorhandler(StaleRunError)
    def stale_run(e):
        logger.info(str(e))
        return error_response('Superseded by a newer request for this session', 409)

    @app.errorhandler(404)
    def not_found(e):
        return error_response('Endpoint not found', 404)

    @app.errorhandler(405)
    def method_not_allowed(e):
        return error_response('Method not allowed', 405)

    @app.errorhandler(413)
    def too_large(e):
        limit_mb = Config.MAX_CONTENT_LENGTH / (1024 * 1024)
        return error_response(f'File too large. Maximum size is {limit_mb:g}MB', 413)

    @app.errorhandler(429)
    def ratelimit_handler(e):
        return error_response('Rate limit exceeded. Please try again later.', 429)

    @app.errorhandler(Exception)
    def handle_exception(e):
        """Global exception handler to always return JSON"""
        if isinstance(e, HTTPException):
            return error_response(e.description, e.code)
        logger.error(f"Unhandled exception in request {getattr(request, 'id', 'unknown')}: {str(e)}")
        logger.error(traceback.format_exc())
        return error_response(str(e), 500, type=type(e).__name__)

    # Public Routes (No authentication required)
    @app.route('/health')
    def health():
        """Health check endpoint"""
        uptime = (datetime.now() - request_stats['start_time']).total_seconds()
        return jsonify({
            'status': 'healthy',
            'service': Config.API_TITLE,
            'version': Config.API_VERSION,
            'uptime_seconds': round(uptime, 2)
        }), 200

    @app.route('/api/info')
    def api_info():
        """API information endpoint"""
        return jsonify({
            'service': Config.API_TITLE,
            'version': Config.API_VERSION,
            'supported_documents': Config.SUPPORTED_DOCUMENTS,
            'supported_formats': sorted(Config.ALLOWED_EXTENSIONS),
            'max_file_size': f'{Config.MAX_CONTENT_LENGTH / (1024 * 1024):g}MB',
            'max_image_dimensions': f'{MAX_IMAGE_DIMENSION}x{MAX_IMAGE_DIMENSION} pixels',
            'comparison_modes': list(MODES),
            'endpoints': {
                'health': '/health',
                'api_info': '/api/info',
                'metrics': '/api/metrics',
                'document_types': '/api/document-types',
                'extract_v1': '/api/v1/extract (requires API key)',
                'compare_v1': '/api/v1/compare (requires API key)',
                'legacy_extract': '/extract (public)',
                'legacy_compare': '/compare (public)'
            },
            'authentication': {
                'type': 'API Key',
                'header': 'X-API-Key',
                'required_for': ['/api/v1/*']
            },
            'rate_limits': {
                'enabled': Config.RATE_LIMIT_ENABLED,
                'global': Config.GLOBAL_RATE_LIMIT,
                'upload': Config.UPLOAD_RATE_LIMIT
            }
        }), 200

    @app.route('/api/metrics')
    def metrics():
        """Metrics endpoint for monitoring"""
        uptime = (datetime.now() - request_stats['start_time']).total_seconds()
        total = request_stats['total_requests']
        success_rate = (request_stats['successful_requests'] / total * 100) if total > 0 else 0

        return jsonify({
            'uptime_seconds': round(uptime, 2),
            'total_requests': total,
            'successful_requests': request_stats['successful_requests'],
            'failed_requests': request_stats['failed_requests'],
            'success_rate': round(success_rate, 2),
            'timestamp': datetime.now().isoformat()
        }), 200

    @app.route('/api/document-types')
    def document_types():
        return jsonify({
            'document_types': [{'value': t.value, 'label': t.label} for t in DocumentType]
        }), 200

    async def run_extract():
        try:
            doc_type = DocumentType.parse(request.form.get('document_type', ''))
            front = read_upload('front', Config)
            back = read_upload('back', Config, required=False)
        except RequestEntityTooLarge as e:
            return error_response(e.description, 413)
        except UnsupportedDocumentType:
            raise
        except ValueError as e:
            logger.warning(f"Upload validation failed: {str(e)}")
            return error_response(str(e), 400)

        guard = session_guard()
        logger.info(f"Extracting {doc_type.label} document for request {request.id}")
        start_time = datetime.now()
        outcome = await process_upload(front, doc_type, ocr, faces, guard=guard)
        processing_time = (datetime.now() - start_time).total_seconds()
        logger.info(f"Extraction completed in {processing_time:.2f}s (confidence {outcome.result.confidence})")

        result = outcome.to_dict()
        result['back_received'] = back is not None
        result['request_id'] = request.id
        result['processing_time_seconds'] = round(processing_time, 2)
        return jsonify(result), 200

    async def run_compare():
        mode = request.form.get('mode', 'upload').strip().lower()
        if mode not in MODES:
            return error_response(f"Invalid mode '{mode}'. Allowed: {', '.join(MODES)}", 400)
        try:
            reference = read_upload('reference', Config)
            probe = read_upload('probe', Config)
        except RequestEntityTooLarge as e:
            return error_response(e.description, 413)
        except ValueError as e:
            logger.warning(f"Upload validation failed: {str(e)}")
            return error_response(str(e), 400)

        guard = session_guard()
        start_time = datetime.now()
        similarity, notice = await compare(reference, probe, faces, mode=mode, guard=guard)
        processing_time = (datetime.now() - start_time).total_seconds()

        body = {
            'mode': mode,
            'result': similarity.to_dict() if similarity else None,
            'notices': [notice] if notice else [],
            'request_id': request.id,
            'processing_time_seconds': round(processing_time, 2)
        }
        return jsonify(body), 200

    @app.route('/extract', methods=['POST'])
    @upload_limit
    async def extract_legacy():
        """Legacy extraction endpoint (public)"""
        return await run_extract()

    @app.route('/compare', methods=['POST'])
    @upload_limit
    async def compare_legacy():
        """Legacy comparison endpoint (public)"""
        return await run_compare()

    # API v1 Routes (Require authentication)
    @app.route('/api/v1/extract', methods=['POST'])
    @upload_limit
    @require_api_key
    async def extract_v1():
        """Versioned extraction endpoint with authentication"""
        response, status = await run_extract()
        if status == 200:
            payload = dict(response.json, api_version='v1')
            return jsonify(payload), status
        return response, status

    @app.route('/api/v1/compare', methods=['POST'])
    @upload_limit
    @require_api_key
    async def compare_v1():
        """Versioned comparison endpoint with authentication"""
        response, status = await run_compare()
        if status == 200:
            payload = dict(response.json, api_version='v1')
            return jsonify(payload), status
        return response, status

    app.extensions['ocr_engine'] = ocr
    app.extensions['face_engine'] = faces
    return app


def warmup_ocr_models(ocr):
    """Pre-load PaddleOCR models so the first real request is not slowed by downloads"""
    try:
        logger.info("Warming up PaddleOCR models...")
        ocr.warmup()
        logger.info("PaddleOCR models loaded successfully")
    except OCRFailure as e:
        logger.warning(f"Model warmup failed (will load on first request): {str(e)}")


app = create_app()

if os.environ.get('OCR_WARMUP', 'false').lower() == 'true':
    warmup_ocr_models(app.extensions['ocr_engine'])


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    debug_mode = os.environ.get('FLASK_ENV') == 'development'

    logger.info(f"Starting {app.config['API_TITLE']} v{app.config['API_VERSION']}")
    logger.info(f"Server running on port {port}")
    logger.info(f"Debug mode: {debug_mode}")

    app.run(debug=debug_mode, host='0.0.0.0', port=port)
