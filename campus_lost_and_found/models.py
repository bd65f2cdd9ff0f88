import uuid
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy
from werkzeug.security import generate_password_hash, check_password_hash
from flask_login import UserMixin

db = SQLAlchemy(session_options={'expire_on_commit': False})

ITEM_TYPES = ('lost', 'found')
STATUS_ACTIVE = 'active'
STATUS_RESOLVED = 'resolved'


def new_id():
    return uuid.uuid4().hex


def utcnow():
    return datetime.now(timezone.utc)


def _iso(dt):
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def _parse_iso(value):
    if not value:
        return None
    # db.json files written by the old server end timestamps with "Z"
    return datetime.fromisoformat(value.replace('Z', '+00:00'))


def opposite_type(item_type):
    return 'lost' if item_type == 'found' else 'found'


class User(db.Model, UserMixin):
    __tablename__ = 'users'

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(200), unique=True, nullable=False)
    dob = db.Column(db.String(20), nullable=False)  # doubles as the password
    password_hash = db.Column(db.String(200))
    roll_number = db.Column(db.String(50))
    department = db.Column(db.String(120))
    created_at = db.Column(db.DateTime, default=utcnow)

    def set_password(self, pw):
        self.password_hash = generate_password_hash(pw)

    def check_password(self, pw):
        if not pw:
            return False
        if self.password_hash:
            return check_password_hash(self.password_hash, pw)
        # records imported from db.json only carry the dob
        return self.dob == pw

    def identity(self):
        return {'id': self.id, 'name': self.name, 'email': self.email}

    def to_record(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'dob': self.dob,
            'passwordHash': self.password_hash,
            'rollNumber': self.roll_number,
            'department': self.department,
            'createdAt': _iso(self.created_at),
        }

    @classmethod
    def from_record(cls, data):
        return cls(
            id=data['id'],
            name=data.get('name'),
            email=data.get('email'),
            dob=data.get('dob'),
            password_hash=data.get('passwordHash'),
            roll_number=data.get('rollNumber'),
            department=data.get('department'),
            created_at=_parse_iso(data.get('createdAt')),
        )


class Item(db.Model):
    __tablename__ = 'items'

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    user_id = db.Column(db.String(32), db.ForeignKey('users.id'), nullable=True)
    uploader_name = db.Column(db.String(120), default='Anonymous')
    uploader_email = db.Column(db.String(200), default='')
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    category = db.Column(db.String(100), nullable=False, index=True)
    type = db.Column(db.String(10), nullable=False, index=True)  # lost/found
    location = db.Column(db.String(200))
    date = db.Column(db.String(40))
    image = db.Column(db.String(300))
    status = db.Column(db.String(20), default=STATUS_ACTIVE, nullable=False)  # active, resolved
    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'uploaderName': self.uploader_name,
            'uploaderEmail': self.uploader_email,
            'title': self.title,
            'description': self.description,
            'category': self.category,
            'type': self.type,
            'location': self.location,
            'date': self.date,
            'image': self.image,
            'status': self.status,
            'createdAt': _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data['id'],
            user_id=data.get('userId'),
            uploader_name=data.get('uploaderName'),
            uploader_email=data.get('uploaderEmail') or '',
            title=data.get('title'),
            description=data.get('description'),
            category=data.get('category'),
            type=data.get('type'),
            location=data.get('location'),
            date=data.get('date'),
            image=data.get('image'),
            status=data.get('status') or STATUS_ACTIVE,
            created_at=_parse_iso(data.get('createdAt')),
        )
