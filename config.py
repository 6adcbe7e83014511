"""
Configuration module for the ID intake API
Environment-driven settings for uploads, engines, security and rate limiting
"""
import os
import secrets


class Config:
    """Base configuration"""

    # Flask Configuration
    SECRET_KEY = os.environ.get('SECRET_KEY', secrets.token_hex(32))
    MAX_CONTENT_LENGTH = 5 * 1024 * 1024  # 5MB per request, same cap as the upload form
    TESTING = False

    # API Security
    API_KEYS = set(os.environ.get('API_KEYS', 'dev-key-123').split(','))

    # CORS Configuration
    ALLOWED_ORIGINS = os.environ.get('ALLOWED_ORIGINS', '*').split(',')

    # Rate Limiting
    RATE_LIMIT_ENABLED = os.environ.get('RATE_LIMIT_ENABLED', 'true').lower() == 'true'
    RATE_LIMIT_STORAGE_URL = os.environ.get('RATE_LIMIT_STORAGE_URL', 'memory://')
    GLOBAL_RATE_LIMIT = os.environ.get('GLOBAL_RATE_LIMIT', '100 per hour')
    UPLOAD_RATE_LIMIT = os.environ.get('UPLOAD_RATE_LIMIT', '10 per minute')

    # File Upload Configuration
    ALLOWED_EXTENSIONS = {'jpg', 'jpeg', 'png', 'pdf'}
    MIN_IMAGE_SIDE = 32
    PDF_DPI = int(os.environ.get('PDF_DPI', '200'))

    # Sessions (X-Session-ID) whose run generations are remembered
    SESSION_GUARD_LIMIT = int(os.environ.get('SESSION_GUARD_LIMIT', '1000'))

    # OCR engine
    OCR_LANG = os.environ.get('OCR_LANG', 'en')

    # Face engine (DeepFace)
    FACE_MODEL_NAME = os.environ.get('FACE_MODEL_NAME', 'Facenet')
    FACE_DETECTOR_BACKEND = os.environ.get('FACE_DETECTOR_BACKEND', 'opencv')
    FACE_MIN_CONFIDENCE = float(os.environ.get('FACE_MIN_CONFIDENCE', '0.5'))

    # API Metadata
    API_VERSION = '1.0.0'
    API_TITLE = 'ID Document Intake API'
    SUPPORTED_DOCUMENTS = [
        'Aadhaar Card',
        'PAN Card',
        'Passport / Other ID',
    ]

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    @classmethod
    def is_valid_api_key(cls, key):
        """Check if API key is valid"""
        return key in cls.API_KEYS

    @classmethod
    def get_allowed_origins(cls):
        """Get allowed CORS origins"""
        return cls.ALLOWED_ORIGINS


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    RATE_LIMIT_ENABLED = False  # Disable rate limiting in development


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    RATE_LIMIT_ENABLED = True


class TestingConfig(Config):
    """Test-suite configuration: fixed key, no rate limiting"""
    TESTING = True
    DEBUG = False
    RATE_LIMIT_ENABLED = False
    API_KEYS = {'test-key'}
    SECRET_KEY = 'test-secret'


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config():
    """Get configuration based on environment"""
    env = os.environ.get('FLASK_ENV', 'development')
    return config.get(env, config['default'])
