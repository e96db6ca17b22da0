"""Error taxonomy shared by the stores, the aggregator and the API layer."""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError


class TrackerError(Exception):
    """Base class for all tracker errors."""

    code = "tracker_error"


class TransientIOError(TrackerError):
    """Backing store or host platform unavailable.

    Read paths may degrade to an empty result; write paths must propagate.
    """

    code = "store_unavailable"


class ConstraintViolation(TrackerError):
    """A uniqueness constraint fired, usually because of a concurrent write."""

    code = "constraint_violation"


class InvalidInput(TrackerError):
    """Input rejected before any store call."""

    code = "invalid_input"


class ReportLoadError(TrackerError):
    """A report could not be assembled. Distinct from an empty report."""

    code = "report_load_failed"


class NotAuthenticated(TrackerError):
    code = "not_authenticated"


@contextmanager
def store_errors(action: str) -> Iterator[None]:
    """Translate SQLAlchemy driver errors into the tracker taxonomy."""
    try:
        yield
    except IntegrityError as exc:
        raise ConstraintViolation(f"{action}: {exc.orig}") from exc
    except (OperationalError, InterfaceError) as exc:
        raise TransientIOError(f"{action}: {exc.orig}") from exc
