import queue
import smtplib
import ssl
import threading
import time
from collections import namedtuple
from email.message import EmailMessage

from flask import render_template

from .errors import NotificationError
from .logs import log_event, logger

NotificationJob = namedtuple('NotificationJob', 'recipient_email recipient_name primary_item matched_item')


class Mailer:
    def __init__(self, server='', port=0, user='', password='', sender='', use_ssl=False, timeout=10):
        self.server = server
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender or user or 'noreply@example.com'
        self.use_ssl = use_ssl
        self.timeout = timeout

    @classmethod
    def from_config(cls, config):
        return cls(
            server=config.get('SMTP_SERVER'),
            port=config.get('SMTP_PORT'),
            user=config.get('SMTP_USER'),
            password=config.get('SMTP_PASS'),
            sender=config.get('SMTP_FROM'),
            use_ssl=config.get('SMTP_USE_SSL', False),
        )

    @property
    def configured(self):
        return bool(self.server and self.port)

    def send_email(self, subject, body, to_email, html=None):
        msg = EmailMessage()
        msg['Subject'] = subject
        msg['From'] = self.sender
        msg['To'] = to_email
        msg.set_content(body)
        if html:
            msg.add_alternative(html, subtype='html')

        if not self.configured:
            log_event('email_not_configured', to=to_email, subject=subject)
            logger.debug(body)
            return False, 'not-configured'

        try:
            context = ssl.create_default_context()
            implicit_tls = self.use_ssl or self.port == 465
            if implicit_tls:
                server = smtplib.SMTP_SSL(self.server, self.port, context=context, timeout=self.timeout)
            else:
                server = smtplib.SMTP(self.server, self.port, timeout=self.timeout)
            with server:
                if not implicit_tls:
                    server.starttls(context=context)
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.send_message(msg)
            return True, 'sent'
        except (smtplib.SMTPException, OSError) as e:
            return False, str(e)


class Notifier:
    """Match alert emails. ``notify`` never raises."""

    subject = 'Possible match found for your item!'

    def __init__(self, app, mailer):
        self.app = app
        self.mailer = mailer

    def compose(self, recipient_name, primary_item, matched_item):
        context = {
            'recipient_name': recipient_name or 'there',
            'primary': primary_item,
            'matched': matched_item,
            'portal_url': self.app.config.get('APP_BASE_URL'),
        }
        with self.app.app_context():
            html = render_template('email/match_alert.html', **context)
            text = render_template('email/match_alert.txt', **context)
        return self.subject, text, html

    def deliver(self, job):
        if not job.recipient_email:
            raise NotificationError('No recipient address')
        subject, text, html = self.compose(job.recipient_name, job.primary_item, job.matched_item)
        ok, status = self.mailer.send_email(subject, text, job.recipient_email, html=html)
        if not ok:
            err = NotificationError(status)
            err.retryable = status != 'not-configured'
            raise err
        log_event('match_email_sent', to=job.recipient_email,
                  item_id=job.primary_item.get('id'), match_id=job.matched_item.get('id'))

    def notify(self, recipient_email, recipient_name, primary_item, matched_item):
        job = NotificationJob(recipient_email, recipient_name, primary_item, matched_item)
        try:
            self.deliver(job)
        except Exception as e:
            log_event('match_email_failed', to=recipient_email, error=str(e))
            return False
        return True


class NotificationDispatcher:
    """Runs notification jobs on a background worker thread.

    ``dispatch`` only enqueues. Failed deliveries are retried ``retries``
    more times and then dropped with a log line.
    """

    def __init__(self, notifier, sync=False, retries=1, retry_delay=2.0):
        self.notifier = notifier
        self.sync = sync
        self.retries = retries
        self.retry_delay = retry_delay
        self._queue = queue.Queue()
        self._thread = None
        self._lock = threading.Lock()

    def _ensure_worker(self):
        with self._lock:
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(target=self._work, name='notification-dispatcher', daemon=True)
                self._thread.start()

    def dispatch(self, job):
        if self.sync:
            self._run(job)
            return
        self._ensure_worker()
        self._queue.put(job)

    def dispatch_all(self, jobs):
        for job in jobs:
            self.dispatch(job)

    def _work(self):
        while True:
            job = self._queue.get()
            try:
                if job is None:
                    return
                self._run(job)
            finally:
                self._queue.task_done()

    def _run(self, job):
        attempts = self.retries + 1
        for attempt in range(1, attempts + 1):
            try:
                self.notifier.deliver(job)
                return True
            except NotificationError as e:
                log_event('match_email_failed', to=job.recipient_email, attempt=attempt, error=str(e))
                if not e.retryable or attempt == attempts:
                    break
                time.sleep(self.retry_delay)
            except Exception as e:
                log_event('match_email_failed', to=job.recipient_email, attempt=attempt, error=str(e))
                break
        log_event('notification_dropped', to=job.recipient_email, item_id=job.primary_item.get('id'))
        return False

    def join(self):
        """Block until every queued job has been handled."""
        self._queue.join()

    def stop(self):
        with self._lock:
            thread = self._thread
        if thread is not None and thread.is_alive():
            self._queue.put(None)
            thread.join()
