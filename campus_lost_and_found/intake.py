from collections import namedtuple

from .errors import ValidationError
from .logs import log_event, current_request_id
from .matching import find_matches
from .models import Item, ITEM_TYPES, STATUS_ACTIVE, new_id, opposite_type, utcnow
from .notifier import NotificationJob
from .uploads import discard_image, save_image

REQUIRED_FIELDS = ('title', 'category', 'type')
TEXT_FIELDS = REQUIRED_FIELDS + ('description', 'location', 'date')
ANONYMOUS = 'Anonymous'


class IntakeResult(namedtuple('IntakeResult', 'item matches jobs')):
    @property
    def match_count(self):
        return len(self.matches)


def validate_item_fields(fields):
    if any(not fields.get(name) for name in REQUIRED_FIELDS):
        raise ValidationError('Required fields missing')
    values = [fields.get(name) for name in TEXT_FIELDS]
    if any(value is not None and not isinstance(value, str) for value in values):
        raise ValidationError('Item fields must be text')
    if fields['type'] not in ITEM_TYPES:
        raise ValidationError("Type must be 'lost' or 'found'")


def candidate_matches(store, item, limit=None):
    """Active opposite-type items in ``item``'s category, newest first."""
    if not item.category:
        return []
    candidates = store.query_items(category=item.category, type=opposite_type(item.type))
    return find_matches(item, candidates, limit)


def plan_notifications(item, matches, user=None):
    """Who gets told about a new posting.

    A found item alerts every matching lost-item poster. A lost item alerts
    only its own (logged-in) submitter, about the first matching found item.
    """
    snapshot = item.to_dict()
    if item.type == 'found':
        return [
            NotificationJob(match.uploader_email, match.uploader_name, match.to_dict(), snapshot)
            for match in matches if match.uploader_email
        ]
    if matches and user is not None and user.email:
        return [NotificationJob(user.email, user.name, snapshot, matches[0].to_dict())]
    return []


def submit_item(store, dispatcher, fields, user=None, image=None, upload_folder=None, limit=None):
    validate_item_fields(fields)

    image_path = None
    if image is not None and upload_folder:
        image_path = save_image(image, upload_folder)

    item = Item(
        id=new_id(),
        user_id=user.id if user is not None else None,
        uploader_name=user.name if user is not None else ANONYMOUS,
        uploader_email=user.email if user is not None else '',
        title=fields['title'],
        description=fields.get('description') or '',
        category=fields['category'],
        type=fields['type'],
        location=fields.get('location') or '',
        date=fields.get('date') or utcnow().date().isoformat(),
        image=image_path,
        status=STATUS_ACTIVE,
        created_at=utcnow(),
    )
    try:
        store.insert_item(item)
    except Exception:
        discard_image(image_path, upload_folder)
        raise

    matches = candidate_matches(store, item, limit)
    jobs = plan_notifications(item, matches, user)
    log_event('item_created', item_id=item.id, type=item.type, category=item.category,
              matches=len(matches), notifications=len(jobs), request_id=current_request_id())
    dispatcher.dispatch_all(jobs)
    return IntakeResult(item, matches, jobs)
