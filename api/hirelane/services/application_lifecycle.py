from __future__ import annotations

from enum import Enum

from hirelane.services.errors import InvalidTransitionError, TerminalStateViolationError


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    SHORTLISTED = "shortlisted"
    REJECTED = "rejected"
    HIRED = "hired"


class ApplicationEvent(str, Enum):
    REVIEW = "review"
    SHORTLIST = "shortlist"
    REJECT = "reject"
    HIRE = "hire"


APPLICATION_TRANSITIONS: dict[tuple[ApplicationStatus, ApplicationEvent], ApplicationStatus] = {
    (ApplicationStatus.PENDING, ApplicationEvent.REVIEW): ApplicationStatus.REVIEWED,
    (ApplicationStatus.PENDING, ApplicationEvent.SHORTLIST): ApplicationStatus.SHORTLISTED,
    (ApplicationStatus.REVIEWED, ApplicationEvent.SHORTLIST): ApplicationStatus.SHORTLISTED,
    (ApplicationStatus.PENDING, ApplicationEvent.REJECT): ApplicationStatus.REJECTED,
    (ApplicationStatus.REVIEWED, ApplicationEvent.REJECT): ApplicationStatus.REJECTED,
    (ApplicationStatus.SHORTLISTED, ApplicationEvent.REJECT): ApplicationStatus.REJECTED,
    (ApplicationStatus.SHORTLISTED, ApplicationEvent.HIRE): ApplicationStatus.HIRED,
}

INITIAL_APPLICATION_STATUS = ApplicationStatus.PENDING
TERMINAL_APPLICATION_STATUSES = frozenset({ApplicationStatus.HIRED, ApplicationStatus.REJECTED})


def is_terminal(status: ApplicationStatus | str) -> bool:
    return ApplicationStatus(status) in TERMINAL_APPLICATION_STATUSES


def next_application_status(current: ApplicationStatus | str, event: ApplicationEvent | str) -> ApplicationStatus:
    """Resolve the status an event leads to from the committed ``current`` status.

    Callers must pass the status read under the row lock, never the status the client
    last saw, so concurrent reviewers are validated against what actually committed.
    """
    current_status = ApplicationStatus(current)
    application_event = ApplicationEvent(event)
    if current_status in TERMINAL_APPLICATION_STATUSES:
        raise TerminalStateViolationError(
            f"application is {current_status.value} and cannot {application_event.value}"
        )
    target = APPLICATION_TRANSITIONS.get((current_status, application_event))
    if target is None:
        raise InvalidTransitionError(
            f"invalid application transition: {current_status.value} --{application_event.value}-->"
        )
    return target
