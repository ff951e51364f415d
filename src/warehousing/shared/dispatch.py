"""Synchronous command dispatch for the service layer."""

from protean.exceptions import ExpectedVersionError
from protean.utils.globals import current_domain

from warehousing.shared.errors import ConcurrencyConflictError


def dispatch(command):
    """Process a command in its own unit of work and return the handler's result.

    A stale-version write detected while committing is surfaced as
    ConcurrencyConflictError; every other error propagates unchanged.
    """
    try:
        return current_domain.process(command, asynchronous=False)
    except ExpectedVersionError as exc:
        raise ConcurrencyConflictError(
            {"_entity": [f"{command.__class__.__name__} lost a concurrent update; retry the request"]}
        ) from exc
