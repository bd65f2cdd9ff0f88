import json
import threading
from datetime import datetime, timedelta, timezone

import pytest

from campus_lost_and_found.errors import NotFoundError, ValidationError
from campus_lost_and_found.models import Item, User, new_id
from campus_lost_and_found.storage import JSONFileStore


def _item(title, created_at, **fields):
    data = dict(id=new_id(), title=title, category='Misc', type='lost', status='active',
                uploader_name='Anonymous', uploader_email='', created_at=created_at)
    data.update(fields)
    return Item(**data)


@pytest.fixture()
def store(tmp_path):
    s = JSONFileStore(str(tmp_path / 'db.json'))
    s.init_schema()
    return s


def test_json_store_query_filters_and_orders_newest_first(store):
    now = datetime.now(timezone.utc)
    store.insert_item(_item('old', now - timedelta(hours=2)))
    store.insert_item(_item('new', now))
    store.insert_item(_item('middle', now - timedelta(hours=1), type='found'))
    store.insert_item(_item('done', now, status='resolved'))

    assert [i.title for i in store.query_items()] == ['new', 'middle', 'old']
    assert [i.title for i in store.query_items(type='found')] == ['middle']
    assert [i.title for i in store.query_items(status='resolved')] == ['done']


def test_json_store_update_status(store):
    item = store.insert_item(_item('mug', datetime.now(timezone.utc)))
    assert store.update_status(item.id, 'resolved').status == 'resolved'
    assert store.get_item(item.id).status == 'resolved'
    with pytest.raises(NotFoundError):
        store.update_status('missing', 'resolved')


def test_json_store_enforces_unique_email(store, tmp_path):
    user = User(id=new_id(), name='A', email='a@campus.edu', dob='2000-01-01')
    store.insert_user(user)
    with pytest.raises(ValidationError):
        store.insert_user(User(id=new_id(), name='B', email='a@campus.edu', dob='1999-01-01'))
    data = json.loads((tmp_path / 'db.json').read_text())
    assert len(data['users']) == 1


def test_json_store_reads_legacy_file(tmp_path):
    path = tmp_path / 'db.json'
    path.write_text(json.dumps({
        'users': [{'id': 'u1', 'name': 'Old User', 'email': 'old@campus.edu', 'dob': '1998-07-01',
                   'createdAt': '2024-01-01T10:00:00.000Z'}],
        'items': [{'id': 'i1', 'userId': 'u1', 'uploaderName': 'Old User', 'uploaderEmail': 'old@campus.edu',
                   'title': 'Calculator', 'category': 'Electronics', 'type': 'lost',
                   'date': '2024-01-01', 'image': None, 'status': 'active',
                   'createdAt': '2024-01-01T10:00:00.000Z'}],
    }))
    store = JSONFileStore(str(path))
    assert store.find_user_by_credentials('old@campus.edu', '1998-07-01').name == 'Old User'
    assert store.find_user_by_credentials('old@campus.edu', '1998-07-02') is None
    assert store.get_item('i1').title == 'Calculator'


def test_json_store_concurrent_inserts_keep_every_record(store):
    def worker(n):
        for i in range(10):
            store.insert_item(_item(f'{n}-{i}', datetime.now(timezone.utc)))

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(store.query_items()) == 80


def test_sql_store_round_trip(app):
    if app.config['STORAGE_BACKEND'] != 'sql':
        pytest.skip('sql only')
    store = app.extensions['lost_and_found'].store
    with app.app_context():
        user = User(id=new_id(), name='A', email='a@campus.edu', dob='2000-01-01')
        user.set_password('2000-01-01')
        store.insert_user(user)
        with pytest.raises(ValidationError):
            store.insert_user(User(id=new_id(), name='B', email='a@campus.edu', dob='1999-01-01'))
        assert store.find_user_by_credentials('a@campus.edu', '2000-01-01').name == 'A'

        item = store.insert_item(_item('Black wallet', datetime.now(timezone.utc), description='Leather'))
        assert [i.id for i in store.query_items(search='WALLET')] == [item.id]
        assert [i.id for i in store.query_items(search='leather')] == [item.id]
        assert store.query_items(search='100%') == []
        store.update_status(item.id, 'resolved')
        assert store.query_items() == []
