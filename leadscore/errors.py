"""
Exception hierarchy for the scoring engine.

ValidationError is raised before any I/O. PersistenceError wraps store failures.
ComputationError covers per-lead data problems and is normally downgraded to a
warning by the caller.
"""


class ScoringError(Exception):
    """Base class for everything the engine raises on purpose."""


class ValidationError(ScoringError):
    """Bad input: missing client_id, malformed filter, unknown status, bad weights."""


class PersistenceError(ScoringError):
    """A store read or write failed."""


class ComputationError(ScoringError):
    """A single lead's data could not be used (e.g. unparseable lead_date)."""


class LeadNotFoundError(ScoringError):
    """No live lead with the requested id."""
    def __init__(self, lead_id):
        self.lead_id = lead_id
        super().__init__(f"Lead {lead_id} not found")


class ClientBusyError(ScoringError):
    """Another aggregation job holds the lock for this client."""
    def __init__(self, client_id, waited=None):
        self.client_id = client_id
        self.waited = waited
        msg = f"Another scoring job is already running for client {client_id}"
        if waited is not None:
            msg += f" (waited {waited:.0f}s)"
        super().__init__(msg)


class ConversionEventError(ScoringError):
    """The external conversion-event endpoint rejected or failed the request."""


class StatusConflictError(ScoringError):
    """The lead's status changed between read and conditional write."""
    def __init__(self, lead_id, expected, actual=None):
        self.lead_id = lead_id
        self.expected = expected
        self.actual = actual
        super().__init__(f"Lead {lead_id} status is {actual}, expected {expected}")
