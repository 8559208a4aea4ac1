"""
Configuration settings for different environments.
"""
import os
from datetime import timedelta

class Config:
    """Base configuration"""
    # Required; app.py refuses to start without it
    SECRET_KEY = os.getenv('FLASK_SECRET_KEY')

    # Session configuration
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    PERMANENT_SESSION_LIFETIME = timedelta(days=7)

    # CSRF Protection
    WTF_CSRF_ENABLED = True
    WTF_CSRF_TIME_LIMIT = None
    WTF_CSRF_SSL_STRICT = False

    # Uploads are checked against the 10MB CSV limit in the import route
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024

    # Supabase. The data client prefers the service role key; password
    # sign-in always goes through the anon key.
    SUPABASE_URL = os.getenv('SUPABASE_URL')
    SUPABASE_ANON_KEY = os.getenv('SUPABASE_ANON_KEY')
    SUPABASE_KEY = os.getenv('SUPABASE_SERVICE_ROLE_KEY') or SUPABASE_ANON_KEY
    SUPABASE_JWT_SECRET = os.getenv('SUPABASE_JWT_SECRET')

    # Reminder emails. ADMIN_EMAIL and APP_URL apply when app_settings has no value
    APP_URL = os.getenv('APP_URL', 'http://localhost:5000')
    ADMIN_EMAIL = os.getenv('ADMIN_EMAIL', 'admin@teamcertify.com')
    FUNCTION_AUTH_TOKEN = os.getenv('FUNCTION_AUTH_TOKEN')

    # CORS for the JSON API
    FRONTEND_URL = os.getenv('FRONTEND_URL')

class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    SESSION_COOKIE_SECURE = False
    SESSION_COOKIE_NAME = 'session'

class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    SESSION_COOKIE_SECURE = True  # Require HTTPS
    SESSION_COOKIE_NAME = '__Host-session'  # Security prefix
    WTF_CSRF_SSL_STRICT = True  # Enforce HTTPS for CSRF in production
    TESTING = False

class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    SESSION_COOKIE_SECURE = False
    WTF_CSRF_ENABLED = False

# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
