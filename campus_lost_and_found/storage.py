import json
import os
import tempfile
import threading
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .errors import NotFoundError, StoreError, ValidationError
from .models import db, Item, User, STATUS_ACTIVE

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class Store:
    """Persistence capabilities the rest of the app relies on.

    ``query_items`` always returns newest first.
    """

    def init_schema(self):
        raise NotImplementedError

    def reset(self):
        """Drop every user and item."""
        raise NotImplementedError

    def insert_user(self, user):
        raise NotImplementedError

    def get_user(self, user_id):
        raise NotImplementedError

    def find_user_by_email(self, email):
        raise NotImplementedError

    def find_user_by_credentials(self, email, password):
        user = self.find_user_by_email(email)
        if user and user.check_password(password):
            return user
        return None

    def insert_item(self, item):
        raise NotImplementedError

    def get_item(self, item_id):
        raise NotImplementedError

    def update_status(self, item_id, status):
        raise NotImplementedError

    def query_items(self, category=None, type=None, status=STATUS_ACTIVE, search=None, user_id=None):
        raise NotImplementedError


class SQLStore(Store):
    """Flask-SQLAlchemy backed store; needs an application context."""

    def init_schema(self):
        db.create_all()

    def reset(self):
        db.drop_all()
        db.create_all()

    @contextmanager
    def _commit(self, conflict=None):
        try:
            yield db.session
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            if conflict is not None:
                raise conflict from exc
            raise StoreError(str(exc)) from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreError(str(exc)) from exc

    def insert_user(self, user):
        with self._commit(conflict=ValidationError('Email already registered')) as session:
            session.add(user)
        return user

    def get_user(self, user_id):
        return db.session.get(User, user_id)

    def find_user_by_email(self, email):
        return User.query.filter_by(email=email).first()

    def insert_item(self, item):
        with self._commit() as session:
            session.add(item)
        return item

    def get_item(self, item_id):
        return db.session.get(Item, item_id)

    def update_status(self, item_id, status):
        item = self.get_item(item_id)
        if item is None:
            raise NotFoundError()
        with self._commit():
            item.status = status
        return item

    def query_items(self, category=None, type=None, status=STATUS_ACTIVE, search=None, user_id=None):
        query = Item.query
        if status:
            query = query.filter(Item.status == status)
        if category:
            query = query.filter(Item.category == category)
        if type:
            query = query.filter(Item.type == type)
        if user_id:
            query = query.filter(Item.user_id == user_id)
        items = query.order_by(Item.created_at.desc()).all()
        if search:
            # SQLite's lower() only folds ASCII
            items = [item for item in items if matches_search(item, search)]
        return items


def matches_search(item, search):
    q = search.lower()
    return q in (item.title or '').lower() or q in (item.description or '').lower()


class JSONFileStore(Store):
    """Whole-file JSON store, compatible with the old ``db.json`` layout.

    Every read-modify-write happens under one lock and the file is replaced
    atomically, so concurrent writers cannot lose each other's records.
    """

    def __init__(self, path):
        self.path = path
        self._lock = threading.Lock()

    def init_schema(self):
        with self._lock:
            if not os.path.exists(self.path):
                self._save({'users': [], 'items': []})

    def reset(self):
        with self._lock:
            self._save({'users': [], 'items': []})

    def _load(self):
        if not os.path.exists(self.path):
            return {'users': [], 'items': []}
        try:
            with open(self.path, encoding='utf-8') as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            raise StoreError(f'Cannot read {self.path}: {exc}') from exc
        data.setdefault('users', [])
        data.setdefault('items', [])
        return data

    def _save(self, data):
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix='.tmp')
            with os.fdopen(fd, 'w', encoding='utf-8') as fh:
                json.dump(data, fh, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise StoreError(f'Cannot write {self.path}: {exc}') from exc

    def _users(self):
        with self._lock:
            return [User.from_record(u) for u in self._load()['users']]

    def _items(self):
        with self._lock:
            return [Item.from_dict(i) for i in self._load()['items']]

    def insert_user(self, user):
        with self._lock:
            data = self._load()
            if any(u['email'] == user.email for u in data['users']):
                raise ValidationError('Email already registered')
            data['users'].append(user.to_record())
            self._save(data)
        return user

    def get_user(self, user_id):
        return next((u for u in self._users() if u.id == user_id), None)

    def find_user_by_email(self, email):
        return next((u for u in self._users() if u.email == email), None)

    def insert_item(self, item):
        with self._lock:
            data = self._load()
            data['items'].append(item.to_dict())
            self._save(data)
        return item

    def get_item(self, item_id):
        return next((i for i in self._items() if i.id == item_id), None)

    def update_status(self, item_id, status):
        with self._lock:
            data = self._load()
            record = next((i for i in data['items'] if i['id'] == item_id), None)
            if record is None:
                raise NotFoundError()
            record['status'] = status
            self._save(data)
        return Item.from_dict(record)

    def query_items(self, category=None, type=None, status=STATUS_ACTIVE, search=None, user_id=None):
        items = self._items()
        if status:
            items = [i for i in items if i.status == status]
        if category:
            items = [i for i in items if i.category == category]
        if type:
            items = [i for i in items if i.type == type]
        if user_id:
            items = [i for i in items if i.user_id == user_id]
        if search:
            items = [i for i in items if matches_search(i, search)]
        items.sort(key=lambda i: i.created_at or _EPOCH, reverse=True)
        return items


def make_store(app):
    backend = app.config.get('STORAGE_BACKEND', 'sql')
    if backend == 'sql':
        db.init_app(app)
        return SQLStore()
    if backend == 'json':
        return JSONFileStore(app.config['JSON_DB_PATH'])
    raise ValueError(f'Unknown STORAGE_BACKEND {backend!r}')
