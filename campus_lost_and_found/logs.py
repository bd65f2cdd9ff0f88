import json
import logging
import uuid

from flask import g, has_app_context

logger = logging.getLogger('lost_and_found')
logger.setLevel(logging.INFO)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter('%(message)s'))
    logger.addHandler(handler)


def log_event(event, **kwargs):
    payload = {'event': event, **kwargs}
    logger.info(json.dumps(payload, ensure_ascii=False, default=str))


def current_request_id():
    return g.get('request_id') if has_app_context() else None


def register_request_id(app):
    @app.before_request
    def _assign_request_id():
        g.request_id = str(uuid.uuid4())

    @app.after_request
    def _stamp_request_id(response):
        request_id = g.get('request_id')
        if request_id:
            response.headers['X-Request-Id'] = request_id
        return response
