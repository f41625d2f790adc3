"""
Session controller: runs the pure state machine and performs the I/O its
transitions call for (status reads/writes, result persistence, notifications).
"""

import asyncio
import inspect
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence

from .collaborator import Collaborator
from .config import PortalSettings
from .errors import PersistenceError, PreconditionViolation
from .host import Host, HostEvents
from .question_bank import get_questions
from .schemas import CandidateProfile, Question, TestResult
from .scoring import calculate_score, freeze_answers
from .session import (
    AutoSubmit, CancelTest, Event, Phase, ReturnToWaiting, ShowWarning, Start, Step, Submitted,
    TabHidden, TestSession, Tick, start_blocker, time_until_end, time_until_start, transition,
)
from .timing import seconds_between, utcnow

logger = logging.getLogger(__name__)

LEAVE_PROMPT = "Are you sure you want to leave? Your test progress will be lost."

ResultListener = Callable[[TestResult], object]


class TestSessionController(HostEvents):
    __test__ = False

    def __init__(self, collaborator: Collaborator, profile: CandidateProfile, settings: PortalSettings,
                 questions: Optional[Sequence[Question]] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.collaborator = collaborator
        self.profile = profile
        self.settings = settings
        self.questions = tuple(questions) if questions is not None else get_questions()
        self._clock = clock

        self.session = TestSession.create(profile.id, settings, clock())
        self.selections: Dict[str, int] = {}
        self.result: Optional[TestResult] = None
        self.warning_until: Optional[datetime] = None
        self.last_error: Optional[str] = None

        self._submitting = False
        self._pending: Optional[TestResult] = None
        self._auto_submit_tried = False
        self._deferred_switches: Optional[int] = None
        self._listeners: List[ResultListener] = []

    # --- Wiring ---
    def add_listener(self, listener: ResultListener) -> None:
        self._listeners.append(listener)

    def attach(self, host: Host) -> None:
        host.subscribe(self)

    def detach(self, host: Host) -> None:
        host.unsubscribe(self)

    async def _notify(self, result: TestResult) -> None:
        for listener in list(self._listeners):
            outcome = listener(result)
            if inspect.isawaitable(outcome):
                await outcome

    def _commit(self, step: Step) -> Step:
        if step.session.phase is not self.session.phase:
            logger.info(f"Session {self.profile.id}: {self.session.phase.value} -> {step.session.phase.value}")
        self.session = step.session
        return step

    def _apply(self, event: Event) -> Step:
        return self._commit(transition(self.session, event, self.settings))

    def _now(self, now: Optional[datetime]) -> datetime:
        return now or self._clock()

    # --- Read-only views ---
    @property
    def phase(self) -> Phase:
        return self.session.phase

    @property
    def is_submitting(self) -> bool:
        return self._submitting

    @property
    def has_pending_result(self) -> bool:
        """An appended result is waiting for its status write; answers are frozen."""
        return self._pending is not None

    @property
    def answered_count(self) -> int:
        return len(self.selections)

    def seconds_until_start(self, now: Optional[datetime] = None) -> int:
        return time_until_start(self._now(now), self.settings)

    def seconds_left(self, now: Optional[datetime] = None) -> int:
        return time_until_end(self._now(now), self.settings)

    def start_blocker(self, now: Optional[datetime] = None) -> Optional[str]:
        return start_blocker(self.session, self._now(now))

    def warning_visible(self, now: Optional[datetime] = None) -> bool:
        return self.warning_until is not None and self._now(now) < self.warning_until

    # --- Lifecycle ---
    async def load(self) -> TestSession:
        """Re-derive the session from the stored status, creating the status on first visit."""
        status = await self.collaborator.ensure_status(self.profile.id)
        self.session = TestSession.create(self.profile.id, self.settings, self._clock(), status)
        logger.info(f"Loaded session {self.profile.id} in phase {self.session.phase.value}")
        return self.session

    async def tick(self, now: Optional[datetime] = None) -> Phase:
        now = self._now(now)
        step = self._apply(Tick(now))
        if any(isinstance(e, AutoSubmit) for e in step.effects) and not self._auto_submit_tried:
            self._auto_submit_tried = True
            logger.info(f"⏳ Time is up for {self.profile.id}, auto-submitting")
            await self.submit(now)
        return self.session.phase

    async def run(self, interval: float = 1.0) -> None:
        """Tick until the session ends or an auto-submit has been attempted."""
        while not self.session.is_terminal and not self._auto_submit_tried:
            try:
                await self.tick()
            except PreconditionViolation as e:
                logger.warning(f"Auto-submit refused for {self.profile.id}: {e.reason}")
            except PersistenceError as e:
                logger.error(f"Auto-submit failed for {self.profile.id}: {e}")
                self.last_error = e.message
            if self.session.is_terminal or self._auto_submit_tried:
                break
            await asyncio.sleep(interval)

    async def start(self, now: Optional[datetime] = None) -> TestSession:
        now = self._now(now)
        status = await self.collaborator.get_status(self.profile.id)
        if status is not None and self.session.phase is not Phase.IN_PROGRESS:
            self.session = TestSession.create(self.profile.id, self.settings, now, status)

        step = transition(self.session, Start(now), self.settings)
        await self.collaborator.update_status(self.profile.id, last_activity=now)
        self._commit(step)

        self.selections.clear()
        self.result = None
        self.last_error = None
        self._auto_submit_tried = False
        logger.info(f"🚀 Candidate {self.profile.id} started the test")
        return self.session

    def return_to_waiting(self, now: Optional[datetime] = None) -> TestSession:
        self._apply(ReturnToWaiting(self._now(now)))
        self.selections.clear()
        return self.session

    # --- Answering ---
    def select_answer(self, question_id: str, option_index: int) -> None:
        if self.session.phase is not Phase.IN_PROGRESS or self._submitting or self._pending is not None:
            raise PreconditionViolation("Answers can only be changed while the test is in progress.")
        question = next((q for q in self.questions if q.id == question_id), None)
        if question is None:
            raise ValueError(f"Unknown question: {question_id}")
        if not 0 <= option_index < len(question.options):
            raise ValueError(f"Option {option_index} out of range for question {question_id}")
        self.selections[question_id] = option_index

    def _build_result(self, now: datetime) -> TestResult:
        answers = freeze_answers(self.questions, self.selections)
        score, percentage = calculate_score(answers)
        started = self.session.started_at
        return TestResult(
            user_id=self.profile.id,
            user_name=self.profile.name,
            user_email=self.profile.email,
            admission_number=self.profile.admission_number,
            branch=self.profile.branch,
            score=score,
            total_questions=len(self.questions),
            percentage=percentage,
            time_spent=seconds_between(started, now) if started else 0,
            answers=answers,
            completed_at=now,
            status="completed",
        )

    async def _check_not_finished(self, now: datetime) -> None:
        status = await self.collaborator.get_status(self.profile.id)
        if status is None:
            return
        stored = TestSession.create(self.profile.id, self.settings, now, status)
        if stored.is_terminal:
            self.session = stored
            self.selections.clear()
            raise PreconditionViolation(start_blocker(stored, now))

    async def submit(self, now: Optional[datetime] = None) -> Optional[TestResult]:
        """
        Freeze, score and persist the attempt.

        Returns None without side effects when a submit is already in flight or
        the session is not in progress. The stored status is re-read first; if
        another session already finished the test, PreconditionViolation is
        raised and nothing is appended. A PersistenceError propagates so the
        candidate can retry; a retry reuses the already appended result.
        """
        if self._submitting:
            logger.warning(f"Submit for {self.profile.id} ignored: already in flight")
            return None
        if self.session.phase is not Phase.IN_PROGRESS:
            logger.warning(f"Submit for {self.profile.id} ignored in phase {self.session.phase.value}")
            return None

        self._submitting = True
        try:
            now = self._now(now)
            result = self._pending or self._build_result(now)
            if result.id is None:
                await self._check_not_finished(now)
                result_id = await self.collaborator.add_result(result)
                result = result.model_copy(update={"id": result_id})
                self._pending = result
            await self.collaborator.update_status(
                self.profile.id,
                has_submitted=True,
                submission_date=result.completed_at,
                last_activity=now,
            )
            self._apply(Submitted(result.completed_at))
            self._pending = None
            self.result = result
            self.last_error = None
            logger.info(f"✅ Candidate {self.profile.id} submitted: {result.score}/{result.total_questions}")
        except PersistenceError as e:
            self.last_error = e.message
            self._submitting = False
            await self._settle_deferred_switches()
            raise
        finally:
            self._submitting = False
            self._deferred_switches = None

        await self._notify(result)
        return result

    # --- Supervision (HostEvents) ---
    async def on_hidden(self) -> None:
        if self.session.phase is not Phase.IN_PROGRESS or self._pending is not None:
            return
        count = await self.collaborator.increment_tab_switches(self.profile.id)
        logger.warning(f"Candidate {self.profile.id} left the test page ({count}/{self.settings.max_tab_switches})")
        if self._submitting:
            # Judged once the submit settles; a successful submit makes it moot
            self._deferred_switches = max(count, self._deferred_switches or 0)
            return
        await self._judge_switch(count)

    async def _judge_switch(self, count: int) -> None:
        now = self._clock()
        step = self._apply(TabHidden(count))
        for effect in step.effects:
            if isinstance(effect, ShowWarning):
                self.warning_until = now + timedelta(seconds=self.settings.warning_seconds)
            elif isinstance(effect, CancelTest):
                await self._cancel(now)

    async def _settle_deferred_switches(self) -> None:
        count, self._deferred_switches = self._deferred_switches, None
        if count is None or self._pending is not None or self.session.phase is not Phase.IN_PROGRESS:
            return
        await self._judge_switch(count)

    async def _cancel(self, now: datetime) -> None:
        started = self.session.started_at
        abandoned = TestResult(
            user_id=self.profile.id,
            user_name=self.profile.name,
            user_email=self.profile.email,
            admission_number=self.profile.admission_number,
            branch=self.profile.branch,
            score=0,
            total_questions=len(self.questions),
            percentage=0,
            time_spent=seconds_between(started, now) if started else 0,
            answers=[],
            completed_at=now,
            status="abandoned",
        )
        self.result = abandoned
        self.selections.clear()
        logger.warning(f"❌ Test cancelled for {self.profile.id} after {self.session.tab_switch_count} tab switches")
        try:
            await self.collaborator.update_status(self.profile.id, is_test_cancelled=True, last_activity=now)
        finally:
            await self._notify(abandoned)

    def on_suspend_attempt(self) -> Optional[str]:
        if self.session.phase is Phase.IN_PROGRESS and not self._submitting:
            return LEAVE_PROMPT
        return None
