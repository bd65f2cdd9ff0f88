import os
import secrets
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _flag(name, default):
    return os.environ.get(name, default).lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Settings read from the environment (and an optional .env file)."""

    SECRET_KEY = os.environ.get('SECRET_KEY') or os.environ.get('FLASK_SECRET')

    # sql | json
    STORAGE_BACKEND = os.environ.get('STORAGE_BACKEND', 'sql')
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', 'sqlite:///data.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JSON_DB_PATH = os.environ.get('JSON_DB_PATH', os.path.join(BASE_DIR, 'db.json'))

    UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER', os.path.join(BASE_DIR, 'uploads'))
    MAX_CONTENT_LENGTH = int(os.environ.get('MAX_CONTENT_LENGTH', 5 * 1024 * 1024))

    SESSION_TTL_HOURS = int(os.environ.get('SESSION_TTL_HOURS', 24))
    PERMANENT_SESSION_LIFETIME = timedelta(hours=SESSION_TTL_HOURS)

    MATCH_LIMIT = int(os.environ.get('MATCH_LIMIT', 5))
    NOTIFICATION_MATCH_LIMIT = int(os.environ.get('NOTIFICATION_MATCH_LIMIT', 3))
    ALLOW_ANONYMOUS_POSTS = _flag('ALLOW_ANONYMOUS_POSTS', 'true')

    SMTP_SERVER = os.environ.get('SMTP_SERVER', '')
    SMTP_PORT = int(os.environ.get('SMTP_PORT') or 0)
    SMTP_USER = os.environ.get('SMTP_USER', '')
    SMTP_PASS = os.environ.get('SMTP_PASS', '')
    SMTP_FROM = os.environ.get('SMTP_FROM', '')
    SMTP_USE_SSL = _flag('SMTP_USE_SSL', 'false')
    APP_BASE_URL = os.environ.get('APP_BASE_URL', 'http://localhost:5000')

    NOTIFY_SYNC = _flag('NOTIFY_SYNC', 'false')
    NOTIFY_RETRIES = int(os.environ.get('NOTIFY_RETRIES', 1))
    NOTIFY_RETRY_DELAY = float(os.environ.get('NOTIFY_RETRY_DELAY', 2.0))


def ephemeral_secret():
    return secrets.token_hex(32)
