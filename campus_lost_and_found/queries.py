from .errors import AuthorizationError, NotFoundError
from .intake import candidate_matches
from .logs import log_event, current_request_id
from .models import STATUS_RESOLVED


def _filter_value(value):
    if not value or value == 'all':
        return None
    return value


def list_items(store, category=None, type=None, search=None):
    return store.query_items(
        category=_filter_value(category),
        type=_filter_value(type),
        search=search or None,
    )


def get_item_matches(store, item_id, limit=None):
    item = store.get_item(item_id)
    if item is None:
        raise NotFoundError()
    return candidate_matches(store, item, limit)


def resolve_item(store, item_id, user):
    item = store.get_item(item_id)
    if item is None:
        raise NotFoundError()
    if item.user_id is None or item.user_id != user.id:
        raise AuthorizationError()
    if item.status == STATUS_RESOLVED:
        return item
    item = store.update_status(item_id, STATUS_RESOLVED)
    log_event('item_resolved', item_id=item_id, user_id=user.id, request_id=current_request_id())
    return item


def owner_notifications(store, user, limit=None):
    """The user's active items that currently have matches."""
    notifications = []
    for item in store.query_items(user_id=user.id):
        matches = candidate_matches(store, item, limit)
        if matches:
            notifications.append({'item': item, 'matches': matches})
    return notifications
