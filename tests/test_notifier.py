import pytest

from campus_lost_and_found.notifier import Mailer, NotificationDispatcher, NotificationJob, Notifier
from conftest import RecordingMailer, build_app, teardown_app

LOST = {'id': 'l1', 'type': 'lost', 'title': 'Blue backpack', 'category': 'Bags', 'location': 'Library',
        'date': '2024-03-01', 'description': 'Has a laptop sleeve', 'uploaderName': 'Alice',
        'uploaderEmail': 'alice@campus.edu'}
FOUND = {'id': 'f1', 'type': 'found', 'title': 'Backpack by the stairs', 'category': 'Bags',
         'location': 'Block C', 'date': '2024-03-02', 'description': '', 'uploaderName': 'Bob',
         'uploaderEmail': 'bob@campus.edu'}


class FlakyMailer(RecordingMailer):
    def __init__(self, failures, status='timed out'):
        super().__init__()
        self.failures = failures
        self.status = status

    def send_email(self, subject, body, to_email, html=None):
        self.sent.append({'to': to_email})
        if len(self.sent) <= self.failures:
            return False, self.status
        return True, 'sent'


class ExplodingMailer:
    def send_email(self, subject, body, to_email, html=None):
        raise RuntimeError('boom')


@pytest.fixture()
def flask_app(tmp_path, mailer):
    app = build_app(tmp_path, 'json', mailer)
    yield app
    teardown_app(app)


def test_unconfigured_mailer_reports_not_configured():
    ok, status = Mailer().send_email('Subject', 'Body', 'someone@campus.edu')
    assert (ok, status) == (False, 'not-configured')


def test_notify_composes_both_items(flask_app, mailer):
    notifier = Notifier(flask_app, mailer)
    assert notifier.notify('alice@campus.edu', 'Alice', LOST, FOUND) is True
    message = mailer.sent[0]
    assert message['to'] == 'alice@campus.edu'
    for text in ('Blue backpack', 'Backpack by the stairs', 'Block C', 'bob@campus.edu', 'Alice'):
        assert text in message['html']
    assert 'Backpack by the stairs' in message['body']


def test_notify_swallows_transport_errors(flask_app):
    notifier = Notifier(flask_app, ExplodingMailer())
    assert notifier.notify('alice@campus.edu', 'Alice', LOST, FOUND) is False


def test_notify_without_address_fails_quietly(flask_app, mailer):
    assert Notifier(flask_app, mailer).notify('', 'Alice', LOST, FOUND) is False
    assert mailer.sent == []


def test_dispatcher_retries_then_delivers(flask_app):
    mailer = FlakyMailer(failures=1)
    dispatcher = NotificationDispatcher(Notifier(flask_app, mailer), sync=True, retries=2, retry_delay=0)
    dispatcher.dispatch(NotificationJob('alice@campus.edu', 'Alice', LOST, FOUND))
    assert len(mailer.sent) == 2


def test_dispatcher_gives_up_after_retries(flask_app):
    mailer = FlakyMailer(failures=10)
    dispatcher = NotificationDispatcher(Notifier(flask_app, mailer), sync=True, retries=2, retry_delay=0)
    dispatcher.dispatch(NotificationJob('alice@campus.edu', 'Alice', LOST, FOUND))
    assert len(mailer.sent) == 3


def test_dispatcher_does_not_retry_unconfigured_smtp(flask_app):
    mailer = FlakyMailer(failures=10, status='not-configured')
    dispatcher = NotificationDispatcher(Notifier(flask_app, mailer), sync=True, retries=3, retry_delay=0)
    dispatcher.dispatch(NotificationJob('alice@campus.edu', 'Alice', LOST, FOUND))
    assert len(mailer.sent) == 1


def test_background_dispatch(flask_app, mailer):
    dispatcher = NotificationDispatcher(Notifier(flask_app, mailer), retries=0)
    dispatcher.dispatch_all([
        NotificationJob('alice@campus.edu', 'Alice', LOST, FOUND),
        NotificationJob('carol@campus.edu', 'Carol', LOST, FOUND),
    ])
    dispatcher.join()
    dispatcher.stop()
    assert sorted(mailer.recipients) == ['alice@campus.edu', 'carol@campus.edu']
