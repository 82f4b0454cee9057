from __future__ import annotations

import itertools

import pytest

from hirelane.services.application_lifecycle import (
    APPLICATION_TRANSITIONS,
    INITIAL_APPLICATION_STATUS,
    TERMINAL_APPLICATION_STATUSES,
    ApplicationEvent,
    ApplicationStatus,
    is_terminal,
    next_application_status,
)
from hirelane.services.errors import InvalidTransitionError, TerminalStateViolationError


def test_application_starts_pending() -> None:
    assert INITIAL_APPLICATION_STATUS is ApplicationStatus.PENDING


@pytest.mark.parametrize(
    ("current", "event", "expected"),
    [
        (ApplicationStatus.PENDING, ApplicationEvent.REVIEW, ApplicationStatus.REVIEWED),
        (ApplicationStatus.PENDING, ApplicationEvent.SHORTLIST, ApplicationStatus.SHORTLISTED),
        (ApplicationStatus.REVIEWED, ApplicationEvent.SHORTLIST, ApplicationStatus.SHORTLISTED),
        (ApplicationStatus.PENDING, ApplicationEvent.REJECT, ApplicationStatus.REJECTED),
        (ApplicationStatus.REVIEWED, ApplicationEvent.REJECT, ApplicationStatus.REJECTED),
        (ApplicationStatus.SHORTLISTED, ApplicationEvent.REJECT, ApplicationStatus.REJECTED),
        (ApplicationStatus.SHORTLISTED, ApplicationEvent.HIRE, ApplicationStatus.HIRED),
    ],
)
def test_legal_application_transitions(
    current: ApplicationStatus,
    event: ApplicationEvent,
    expected: ApplicationStatus,
) -> None:
    assert next_application_status(current, event) is expected


def test_hired_and_rejected_are_terminal() -> None:
    assert TERMINAL_APPLICATION_STATUSES == {ApplicationStatus.HIRED, ApplicationStatus.REJECTED}
    assert is_terminal("hired")
    assert not is_terminal("shortlisted")


def test_terminal_states_raise_terminal_violation_for_every_event() -> None:
    for status, event in itertools.product(TERMINAL_APPLICATION_STATUSES, ApplicationEvent):
        with pytest.raises(TerminalStateViolationError):
            next_application_status(status, event)


def test_non_terminal_pairs_outside_the_table_are_invalid() -> None:
    illegal = [
        (status, event)
        for status, event in itertools.product(ApplicationStatus, ApplicationEvent)
        if status not in TERMINAL_APPLICATION_STATUSES and (status, event) not in APPLICATION_TRANSITIONS
    ]
    assert (ApplicationStatus.PENDING, ApplicationEvent.HIRE) in illegal
    assert (ApplicationStatus.SHORTLISTED, ApplicationEvent.SHORTLIST) in illegal

    for status, event in illegal:
        with pytest.raises(InvalidTransitionError) as excinfo:
            next_application_status(status, event)
        assert not isinstance(excinfo.value, TerminalStateViolationError)


def test_hire_requires_shortlist_first() -> None:
    with pytest.raises(InvalidTransitionError):
        next_application_status(ApplicationStatus.REVIEWED, ApplicationEvent.HIRE)
