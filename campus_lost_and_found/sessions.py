import secrets
import threading
from datetime import datetime, timedelta, timezone

from flask import request, redirect, url_for
from flask_login import LoginManager

from .errors import error_response


class TokenRegistry:
    """In-process bearer token map with expiry.

    Tokens are random per login and die on logout, on expiry, or with the
    process.
    """

    def __init__(self, ttl=timedelta(hours=24)):
        self.ttl = ttl
        self._tokens = {}
        self._lock = threading.Lock()

    def _now(self):
        return datetime.now(timezone.utc)

    def login(self, identity):
        token = secrets.token_urlsafe(32)
        now = self._now()
        with self._lock:
            self._drop_expired(now)
            self._tokens[token] = (dict(identity), now + self.ttl)
        return token

    def resolve(self, token):
        if not token:
            return None
        with self._lock:
            entry = self._tokens.get(token)
            if entry is None:
                return None
            identity, expires_at = entry
            if expires_at <= self._now():
                del self._tokens[token]
                return None
            return dict(identity)

    def logout(self, token):
        with self._lock:
            self._tokens.pop(token, None)

    def _drop_expired(self, now):
        expired = [t for t, (_, exp) in self._tokens.items() if exp <= now]
        for token in expired:
            del self._tokens[token]
        return len(expired)

    def purge_expired(self):
        with self._lock:
            return self._drop_expired(self._now())

    def __len__(self):
        with self._lock:
            return len(self._tokens)


def bearer_token(req=None):
    header = (req or request).headers.get('Authorization', '')
    if not header.lower().startswith('bearer '):
        return None
    return header.split(' ', 1)[1].strip() or None


def init_login(app, store, registry):
    login_manager = LoginManager()
    login_manager.login_view = 'lost_and_found.index'
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        return store.get_user(user_id)

    @login_manager.request_loader
    def load_user_from_token(req):
        identity = registry.resolve(bearer_token(req))
        if identity is None:
            return None
        return store.get_user(identity['id'])

    @login_manager.unauthorized_handler
    def unauthorized():
        if request.path.startswith('/api/'):
            return error_response('Login required', 401)
        return redirect(url_for('lost_and_found.index'))

    return login_manager
