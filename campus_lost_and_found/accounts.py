from .errors import AuthenticationError, ValidationError
from .logs import log_event, current_request_id
from .models import User, new_id, utcnow


def register_user(store, fields):
    """Create a user whose password is their date of birth."""
    name = fields.get('name')
    email = fields.get('email')
    dob = fields.get('dob')
    if not name or not email or not dob:
        raise ValidationError('All fields required')
    if not all(isinstance(value, str) for value in (name, email, dob)):
        raise ValidationError('Name, email and date of birth must be text')
    if store.find_user_by_email(email):
        raise ValidationError('Email already registered')

    user = User(
        id=new_id(),
        name=name,
        email=email,
        dob=dob,
        roll_number=fields.get('rollNumber') or None,
        department=fields.get('department') or None,
        created_at=utcnow(),
    )
    user.set_password(dob)
    store.insert_user(user)
    log_event('user_registered', user_id=user.id, request_id=current_request_id())
    return user


def authenticate(store, email, password):
    # one message for unknown email and wrong password alike
    user = None
    if email and password and isinstance(email, str) and isinstance(password, str):
        user = store.find_user_by_credentials(email, password)
    if user is None:
        raise AuthenticationError()
    log_event('user_login', user_id=user.id, request_id=current_request_id())
    return user
