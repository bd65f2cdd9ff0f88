import os
from datetime import timedelta

import click
from flask import (Blueprint, Flask, current_app, jsonify, redirect, render_template, request,
                   send_from_directory, session, url_for)
from flask.cli import with_appcontext
from flask_login import current_user, login_required, login_user, logout_user

from .accounts import authenticate, register_user
from .config import Config, ephemeral_secret
from .errors import register_error_handlers
from .intake import submit_item
from .logs import register_request_id
from .models import db, Item, new_id, utcnow
from .notifier import Mailer, NotificationDispatcher, Notifier
from .queries import get_item_matches, list_items, owner_notifications, resolve_item
from .sessions import TokenRegistry, bearer_token, init_login
from .storage import SQLStore, make_store

bp = Blueprint('lost_and_found', __name__)


class Services:
    def __init__(self, store, registry, notifier, dispatcher):
        self.store = store
        self.registry = registry
        self.notifier = notifier
        self.dispatcher = dispatcher


def services():
    return current_app.extensions['lost_and_found']


def _payload():
    return request.get_json(silent=True) or request.form


def _acting_user():
    if current_user.is_authenticated:
        return current_user._get_current_object()
    return None


def _limit(name):
    return current_app.config.get(name) or None


# pages

@bp.route('/')
def index():
    if current_user.is_authenticated:
        return redirect(url_for('lost_and_found.dashboard'))
    return render_template('index.html')


@bp.route('/dashboard')
@login_required
def dashboard():
    return render_template('dashboard.html')


@bp.route('/upload')
@login_required
def upload():
    return render_template('upload.html')


@bp.route('/uploads/<path:filename>')
def uploaded_file(filename):
    return send_from_directory(current_app.config['UPLOAD_FOLDER'], filename)


# accounts

@bp.route('/api/register', methods=['POST'])
def api_register():
    register_user(services().store, _payload())
    return jsonify({'success': True, 'message': 'Registration successful! Your password is your date of birth.'})


@bp.route('/api/login', methods=['POST'])
def api_login():
    data = _payload()
    user = authenticate(services().store, data.get('email'), data.get('password'))
    login_user(user)
    session.permanent = True
    token = services().registry.login(user.identity())
    return jsonify({'success': True, 'message': 'Login successful', 'user': user.identity(), 'token': token})


@bp.route('/api/logout', methods=['POST'])
def api_logout():
    token = bearer_token()
    if token:
        services().registry.logout(token)
    logout_user()
    return jsonify({'success': True})


@bp.route('/api/me')
def api_me():
    if current_user.is_authenticated:
        return jsonify({'loggedIn': True, 'user': current_user.identity()})
    return jsonify({'loggedIn': False})


# items

@bp.route('/api/items', methods=['POST'])
def api_create_item():
    if not current_user.is_authenticated and not current_app.config['ALLOW_ANONYMOUS_POSTS']:
        return current_app.login_manager.unauthorized()
    svc = services()
    result = submit_item(
        svc.store, svc.dispatcher, _payload(),
        user=_acting_user(),
        image=request.files.get('image'),
        upload_folder=current_app.config['UPLOAD_FOLDER'],
    )
    count = result.match_count
    if count:
        message = f'Item posted! Found {count} possible match(es).'
        if result.jobs:
            message += ' Email notifications are on their way.'
    else:
        message = 'Item posted successfully!'
    return jsonify({'success': True, 'item': result.item.to_dict(), 'matchCount': count, 'message': message})


@bp.route('/api/items')
def api_list_items():
    items = list_items(
        services().store,
        category=request.args.get('category'),
        type=request.args.get('type'),
        search=request.args.get('search'),
    )
    return jsonify({'success': True, 'items': [it.to_dict() for it in items]})


@bp.route('/api/items/<item_id>/resolve', methods=['PATCH'])
@login_required
def api_resolve_item(item_id):
    resolve_item(services().store, item_id, current_user)
    return jsonify({'success': True})


@bp.route('/api/items/<item_id>/matches')
@login_required
def api_item_matches(item_id):
    matches = get_item_matches(services().store, item_id, limit=_limit('MATCH_LIMIT'))
    return jsonify({'success': True, 'matches': [m.to_dict() for m in matches]})


@bp.route('/api/notifications')
@login_required
def api_notifications():
    entries = owner_notifications(services().store, current_user, limit=_limit('NOTIFICATION_MATCH_LIMIT'))
    return jsonify({
        'success': True,
        'notifications': [
            {'item': e['item'].to_dict(), 'matches': [m.to_dict() for m in e['matches']]}
            for e in entries
        ],
    })


# cli

@click.command('initdb')
@with_appcontext
def initdb_command():
    services().store.reset()
    click.echo('Initialized DB.')


@click.command('seeddb')
@with_appcontext
def seeddb_command():
    store = services().store
    store.reset()
    alice = register_user(store, {'name': 'Alice Student', 'email': 'alice@campus.local',
                                  'dob': '2003-04-12', 'department': 'Physics'})
    bob = register_user(store, {'name': 'Bob Student', 'email': 'bob@campus.local',
                                'dob': '2002-11-30', 'department': 'History'})
    seed = [
        (bob, 'found', 'Black Wallet', 'Accessories', 'Found near library entrance', 'Library'),
        (alice, 'lost', 'Silver Ring', 'Jewellery', 'Lost in canteen area', 'Canteen'),
        (bob, 'found', 'Red Umbrella', 'Other', 'Left at Lecture Hall 2', 'Lecture Hall 2'),
    ]
    for owner, itype, title, category, description, location in seed:
        store.insert_item(Item(
            id=new_id(), user_id=owner.id, uploader_name=owner.name, uploader_email=owner.email,
            title=title, description=description, category=category, type=itype,
            location=location, date=utcnow().date().isoformat(), created_at=utcnow(),
        ))
    click.echo('Seeded DB: alice@campus.local/2003-04-12, bob@campus.local/2002-11-30')


def create_app(config=None, store=None, mailer=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config:
        app.config.update(config)
    if not app.config.get('SECRET_KEY'):
        app.config['SECRET_KEY'] = ephemeral_secret()
        app.logger.warning('SECRET_KEY not set; sessions will not survive a restart')
    app.config['PERMANENT_SESSION_LIFETIME'] = timedelta(hours=app.config['SESSION_TTL_HOURS'])
    os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)

    if store is None:
        store = make_store(app)
    elif isinstance(store, SQLStore) and 'sqlalchemy' not in app.extensions:
        db.init_app(app)

    registry = TokenRegistry(ttl=app.config['PERMANENT_SESSION_LIFETIME'])
    notifier = Notifier(app, mailer or Mailer.from_config(app.config))
    dispatcher = NotificationDispatcher(
        notifier,
        sync=app.config['NOTIFY_SYNC'],
        retries=app.config['NOTIFY_RETRIES'],
        retry_delay=app.config['NOTIFY_RETRY_DELAY'],
    )
    app.extensions['lost_and_found'] = Services(store, registry, notifier, dispatcher)

    init_login(app, store, registry)
    register_error_handlers(app)
    register_request_id(app)
    app.register_blueprint(bp)
    app.cli.add_command(initdb_command)
    app.cli.add_command(seeddb_command)

    with app.app_context():
        store.init_schema()
    return app


if __name__ == '__main__':
    create_app().run(debug=True, port=int(os.environ.get('PORT', 5000)))
