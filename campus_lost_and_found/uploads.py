import os
import uuid

from PIL import Image, UnidentifiedImageError
from werkzeug.utils import secure_filename

from .errors import ValidationError

ALLOWED_EXT = {'png', 'jpg', 'jpeg', 'gif', 'webp'}
PUBLIC_PREFIX = '/uploads/'


def allowed_file(filename):
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXT


def save_image(file, upload_folder):
    """Store an uploaded image under a generated name and return its public path."""
    if not file or not file.filename:
        return None
    original = secure_filename(file.filename)
    if not allowed_file(original):
        raise ValidationError('Only png, jpg, jpeg, gif or webp images are accepted')

    ext = original.rsplit('.', 1)[1].lower()
    filename = f'{uuid.uuid4().hex}.{ext}'
    os.makedirs(upload_folder, exist_ok=True)
    save_path = os.path.join(upload_folder, filename)
    file.save(save_path)

    try:
        with Image.open(save_path) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        os.remove(save_path)
        raise ValidationError('Uploaded file is not a valid image') from e
    return PUBLIC_PREFIX + filename


def discard_image(public_path, upload_folder):
    """Delete a file written by ``save_image``; missing files are ignored."""
    if not public_path or not public_path.startswith(PUBLIC_PREFIX):
        return
    path = os.path.join(upload_folder, public_path[len(PUBLIC_PREFIX):])
    if os.path.exists(path):
        os.remove(path)
