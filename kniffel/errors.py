"""Error kinds raised by the scoresheet services.

Routes translate these into HTTP status codes; services never swallow them.
"""


class KniffelError(Exception):
    """Base class for scoresheet errors."""


class ValidationError(KniffelError):
    """Input rejected before any state change."""


class SheetNotFoundError(KniffelError):
    def __init__(self, sheet_id):
        super().__init__(f'Sheet {sheet_id} not found')
        self.sheet_id = sheet_id


class PersistenceError(KniffelError):
    """A write to the store failed.

    The optimistic local value is left in place; the next remote snapshot
    decides what the sheet ends up holding.
    """

    def __init__(self, message, sheet_id=None):
        super().__init__(message)
        self.sheet_id = sheet_id


class ResolutionError(KniffelError):
    """A player identifier does not resolve to a member or guest."""


class UnresolvableHostError(ResolutionError):
    def __init__(self, guest_id):
        super().__init__(f'Guest {guest_id} has no host member')
        self.guest_id = guest_id


class BillingError(KniffelError):
    """Penalty creation failed. Reported as a warning only."""
