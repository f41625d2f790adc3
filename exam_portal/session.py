"""
Test session state machine.

Every function here is pure: the controller samples ``now`` once per tick,
feeds events through :func:`transition` and performs whatever I/O the returned
effects ask for. Waiting/Available/Expired are recomputed from the clock;
Submitted and Cancelled are terminal and re-derived from the stored status.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import NamedTuple, Optional, Tuple, Union

from .config import PortalSettings
from .errors import PreconditionViolation
from .schemas import UserTestStatus
from .timing import seconds_between


class Phase(str, Enum):
    WAITING = "waiting"
    AVAILABLE = "available"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    CANCELLED = "cancelled"
    EXPIRED = "expired_unanswered"


TERMINAL_PHASES = frozenset({Phase.SUBMITTED, Phase.CANCELLED})


@dataclass(frozen=True)
class TestSession:
    __test__ = False

    candidate_id: str
    test_start_time: datetime
    duration: timedelta
    phase: Phase = Phase.WAITING
    tab_switch_count: int = 0
    cancelled: bool = False
    submitted: bool = False
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None

    @property
    def test_end_time(self) -> datetime:
        return self.test_start_time + self.duration

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    @classmethod
    def create(cls, candidate_id: str, settings: PortalSettings, now: datetime,
               status: Optional[UserTestStatus] = None) -> "TestSession":
        session = cls(
            candidate_id=candidate_id,
            test_start_time=settings.test_start_time,
            duration=settings.duration,
        )
        if status is None:
            return replace(session, phase=phase_at(now, settings))

        session = replace(
            session,
            tab_switch_count=status.tab_switch_count,
            cancelled=status.is_test_cancelled,
            submitted=status.has_submitted,
            submitted_at=status.submission_date,
        )
        if status.has_submitted:
            return replace(session, phase=Phase.SUBMITTED)
        if status.is_test_cancelled or status.tab_switch_count > settings.max_tab_switches:
            return replace(session, phase=Phase.CANCELLED, cancelled=True)
        return replace(session, phase=phase_at(now, settings))


# --- Events ---
@dataclass(frozen=True)
class Tick:
    now: datetime


@dataclass(frozen=True)
class Start:
    now: datetime


@dataclass(frozen=True)
class TabHidden:
    count: int  # durable count after the increment


@dataclass(frozen=True)
class Submitted:
    at: datetime


@dataclass(frozen=True)
class ReturnToWaiting:
    now: datetime


Event = Union[Tick, Start, TabHidden, Submitted, ReturnToWaiting]


# --- Effects ---
@dataclass(frozen=True)
class AutoSubmit:
    pass


@dataclass(frozen=True)
class ShowWarning:
    count: int


@dataclass(frozen=True)
class CancelTest:
    count: int


Effect = Union[AutoSubmit, ShowWarning, CancelTest]


class Step(NamedTuple):
    session: TestSession
    effects: Tuple[Effect, ...] = ()


# --- Clock-derived quantities ---
def _window_phase(now: datetime, start: datetime, end: datetime) -> Phase:
    if now < start:
        return Phase.WAITING
    if now >= end:
        return Phase.EXPIRED
    return Phase.AVAILABLE


def phase_at(now: datetime, settings: PortalSettings) -> Phase:
    return _window_phase(now, settings.test_start_time, settings.test_end_time)


def time_until_start(now: datetime, settings: PortalSettings) -> int:
    return seconds_between(now, settings.test_start_time)


def time_until_end(now: datetime, settings: PortalSettings) -> int:
    return seconds_between(now, settings.test_end_time)


# --- Transitions ---
def start_blocker(session: TestSession, now: datetime) -> Optional[str]:
    """Reason `start` would be refused at `now`, or None if it is allowed."""
    if session.submitted or session.phase is Phase.SUBMITTED:
        return "You have already submitted this test. Reattempts are not allowed."
    if session.cancelled or session.phase is Phase.CANCELLED:
        return "Your test was cancelled due to excessive tab switching."
    if session.phase is Phase.IN_PROGRESS:
        return "The test is already in progress."
    if now < session.test_start_time:
        return "The test has not started yet. Please wait for the countdown."
    if now >= session.test_end_time:
        return "The test window has closed."
    return None


def _on_tick(session: TestSession, event: Tick) -> Step:
    if session.is_terminal:
        return Step(session)
    if session.phase is Phase.IN_PROGRESS:
        if event.now >= session.test_end_time:
            return Step(session, (AutoSubmit(),))
        return Step(session)
    phase = _window_phase(event.now, session.test_start_time, session.test_end_time)
    return Step(replace(session, phase=phase))


def _on_start(session: TestSession, event: Start) -> Step:
    reason = start_blocker(session, event.now)
    if reason:
        raise PreconditionViolation(reason)
    return Step(replace(session, phase=Phase.IN_PROGRESS, started_at=event.now))


def _on_tab_hidden(session: TestSession, event: TabHidden, max_tab_switches: int) -> Step:
    if session.phase is not Phase.IN_PROGRESS:
        return Step(session)

    count = max(session.tab_switch_count, event.count)
    session = replace(session, tab_switch_count=count)
    if count > max_tab_switches:
        return Step(replace(session, phase=Phase.CANCELLED, cancelled=True), (CancelTest(count),))
    if count == 1:
        return Step(session, (ShowWarning(count),))
    return Step(session)


def _on_submitted(session: TestSession, event: Submitted) -> Step:
    if session.phase is not Phase.IN_PROGRESS:
        return Step(session)
    return Step(replace(session, phase=Phase.SUBMITTED, submitted=True, submitted_at=event.at))


def _on_return(session: TestSession, event: ReturnToWaiting) -> Step:
    if session.is_terminal:
        raise PreconditionViolation("A finished test cannot be reopened.")
    phase = _window_phase(event.now, session.test_start_time, session.test_end_time)
    return Step(replace(session, phase=phase, started_at=None))


def transition(session: TestSession, event: Event, settings: PortalSettings) -> Step:
    if isinstance(event, Tick):
        return _on_tick(session, event)
    if isinstance(event, Start):
        return _on_start(session, event)
    if isinstance(event, TabHidden):
        return _on_tab_hidden(session, event, settings.max_tab_switches)
    if isinstance(event, Submitted):
        return _on_submitted(session, event)
    if isinstance(event, ReturnToWaiting):
        return _on_return(session, event)
    raise TypeError(f"Unknown session event: {event!r}")
