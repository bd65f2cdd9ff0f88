import pytest

from campus_lost_and_found import create_app
from campus_lost_and_found.models import db


class RecordingMailer:
    """Stands in for SMTP; remembers every message it was asked to send."""

    configured = True

    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send_email(self, subject, body, to_email, html=None):
        self.sent.append({'subject': subject, 'body': body, 'to': to_email, 'html': html})
        if self.fail:
            return False, 'smtp unavailable'
        return True, 'sent'

    @property
    def recipients(self):
        return [m['to'] for m in self.sent]


def make_config(tmp_path, backend, **overrides):
    config = {
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'STORAGE_BACKEND': backend,
        'SQLALCHEMY_DATABASE_URI': f'sqlite:///{tmp_path / "test.db"}',
        'JSON_DB_PATH': str(tmp_path / 'db.json'),
        'UPLOAD_FOLDER': str(tmp_path / 'uploads'),
        'NOTIFY_SYNC': True,
        'NOTIFY_RETRIES': 0,
        'NOTIFY_RETRY_DELAY': 0,
        'ALLOW_ANONYMOUS_POSTS': True,
    }
    config.update(overrides)
    return config


def build_app(tmp_path, backend, mailer, **overrides):
    return create_app(make_config(tmp_path, backend, **overrides), mailer=mailer)


def teardown_app(app):
    if app.config['STORAGE_BACKEND'] == 'sql':
        with app.app_context():
            db.session.remove()
            db.engine.dispose()


@pytest.fixture()
def mailer():
    return RecordingMailer()


@pytest.fixture(params=['sql', 'json'])
def app(request, tmp_path, mailer):
    application = build_app(tmp_path, request.param, mailer)
    yield application
    teardown_app(application)


@pytest.fixture()
def client(app):
    return app.test_client()


def register(client, name='Alice', email='alice@campus.edu', dob='2001-02-03', **extra):
    body = {'name': name, 'email': email, 'dob': dob, **extra}
    return client.post('/api/register', json=body)


def login(client, email='alice@campus.edu', password='2001-02-03'):
    return client.post('/api/login', json={'email': email, 'password': password})


def signup_and_login(client, name, email, dob='2000-01-01'):
    register(client, name=name, email=email, dob=dob)
    r = login(client, email, dob)
    assert r.status_code == 200, r.get_data(as_text=True)
    return r.get_json()['token']


def post_item(client, **fields):
    body = {'title': 'Item', 'category': 'Misc', 'type': 'lost', 'description': '', 'location': 'Library'}
    body.update(fields)
    return client.post('/api/items', data=body)
