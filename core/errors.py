"""
core/errors.py -- Infrastructure failure types shared by every store.

These are NOT user-recoverable. They propagate out of route handlers and are
turned into a generic 503 response in api/main.py. Anything the user can fix
(bad password, taken username) lives in auth/errors.py instead.

Layer rule: core/ is the kernel. No imports from api/, web/, auth/, or vault/.
"""


class InfrastructureError(Exception):
    """Base class for failures of external collaborators."""


class StoreUnavailable(InfrastructureError):
    """The database could not be reached or rejected the operation."""


class ProviderUnavailable(InfrastructureError):
    """The external identity provider could not be reached."""
