"""
Attempt Timer
Countdown state machine for timed attempts and its server-side driver.

``AttemptTimer`` is cooperative and single-threaded: it only moves when it is
told to (``start``, ``tick``, ``submit``, ``cancel``). ``SessionClock`` drives
one from a stored AttemptSession by ticking it with the wall-clock seconds
elapsed since the session started, so expiry is detected lazily whenever a
request touches the session. Overdue sessions nobody touches are swept by
``expire_overdue_sessions`` (the ``expire_attempts`` management command).
"""
from datetime import timedelta
import logging

from django.conf import settings
from django.utils import timezone

from trainee.exceptions import SessionClosed

logger = logging.getLogger(__name__)

NOT_STARTED = 'not_started'
RUNNING = 'running'
SUBMITTED = 'submitted'
EXPIRED = 'expired'
AUTO_SUBMITTED = 'auto_submitted'
CANCELLED = 'cancelled'

FINISHED_STATES = (SUBMITTED, AUTO_SUBMITTED)


def time_tolerance():
    return int(getattr(settings, 'ATTEMPT_TIME_TOLERANCE_SECONDS', 5))


class AttemptTimer:
    """
    not_started -> running -> submitted
                           -> expired -> auto_submitted
                           -> cancelled

    ``on_submit(answers, time_taken, submission_type)`` produces the attempt;
    it is called exactly once, either by ``submit()`` or by the tick that
    reaches zero.
    """

    def __init__(self, time_limit, on_submit, answers=None):
        self.time_limit = time_limit
        self.remaining = time_limit
        self.elapsed = 0
        self.state = NOT_STARTED
        self.answers = dict(answers or {})
        self.result = None
        self._on_submit = on_submit

    def start(self):
        if self.state == RUNNING:
            return self
        if self.state != NOT_STARTED:
            raise SessionClosed()
        self.state = RUNNING
        return self

    def record_answer(self, question_id, answer):
        if self.state != RUNNING:
            raise SessionClosed()
        self.answers[str(question_id)] = answer

    def tick(self, seconds=1):
        if self.state != RUNNING or seconds <= 0:
            return self.state
        self.elapsed += seconds
        if self.time_limit is None:
            return self.state

        self.remaining = max(0, self.remaining - seconds)
        if self.remaining == 0:
            self.state = EXPIRED
            self._finish(AUTO_SUBMITTED, 'auto')
        return self.state

    def submit(self):
        """Manual submission. A timer that already produced an attempt returns it again."""
        if self.state in FINISHED_STATES:
            return self.result
        if self.state != RUNNING:
            raise SessionClosed()
        return self._finish(SUBMITTED, 'manual')

    def cancel(self):
        """Navigation away: drop the recorded answers without producing an attempt."""
        if self.state != RUNNING:
            return self.state
        self.answers = {}
        self.state = CANCELLED
        return self.state

    def _finish(self, final_state, submission_type):
        time_taken = self.elapsed
        if self.time_limit is not None:
            time_taken = min(time_taken, self.time_limit)
        self.result = self._on_submit(dict(self.answers), time_taken, submission_type)
        self.state = final_state
        return self.result


class SessionClock:
    """Wall-clock view of a stored AttemptSession."""

    def __init__(self, session, tolerance=None):
        self.session = session
        self.tolerance = time_tolerance() if tolerance is None else tolerance

    @staticmethod
    def deadline_for(assessment, started_at):
        if not assessment.time_limit:
            return None
        return started_at + timedelta(seconds=assessment.time_limit)

    @property
    def time_limit(self):
        return self.session.assessment.time_limit

    def elapsed_seconds(self, now=None):
        now = now or timezone.now()
        return max(0, int((now - self.session.started_at).total_seconds()))

    def remaining_seconds(self, now=None):
        if self.session.deadline is None:
            return None
        now = now or timezone.now()
        return max(0, int((self.session.deadline - now).total_seconds()))

    def is_overdue(self, now=None):
        """True from the moment the deadline plus the grace period is reached."""
        if self.session.deadline is None:
            return False
        now = now or timezone.now()
        return now >= self.session.deadline + timedelta(seconds=self.tolerance)

    def timer(self, on_submit, now=None):
        """
        Rebuild the running timer for the session and catch it up with real time.
        If the grace period is over the returned timer has already auto-submitted.
        """
        limit = self.time_limit + self.tolerance if self.time_limit else None
        timer = AttemptTimer(limit, on_submit, answers=self.session.answers).start()
        timer.tick(self.elapsed_seconds(now))
        return timer


def expire_overdue_sessions(now=None, dry_run=False):
    """
    Auto-submit every running session whose deadline and grace period have passed.

    Returns:
        list of AttemptSession ids that were (or, with dry_run, would be) expired
    """
    from trainee.models import AttemptSession
    from trainee.services.attempts import AttemptManager

    now = now or timezone.now()
    cutoff = now - timedelta(seconds=time_tolerance())
    overdue = list(
        AttemptSession.objects.filter(status='running', deadline__isnull=False, deadline__lte=cutoff)
        .values_list('id', flat=True)
    )
    logger.info(f"[EXPIRE_SESSIONS] {len(overdue)} overdue session(s) found (dry_run={dry_run})")
    if dry_run:
        return overdue

    for session_id in overdue:
        AttemptManager.auto_submit_session(session_id, now=now)
    return overdue
