"""Error taxonomy for the execution core."""


class HarnessError(Exception):
    """Base class for errors raised by the execution core."""


class ProvisioningError(HarnessError):
    """Raised when an execution context cannot be created."""


class InteractionTimeout(HarnessError, TimeoutError):
    """Raised when an interaction or navigation exceeds its deadline."""


class AuthenticationError(HarnessError):
    """Raised when the token exchange fails or returns an unusable body."""


class CleanupError(HarnessError):
    """Raised when a tracked resource could not be deleted."""


class TestSkipped(Exception):  # noqa: N818
    """Raised from a test body to mark the case as skipped."""

    __test__ = False


class TestInconclusive(Exception):  # noqa: N818
    """Raised from a test body when the outcome cannot be determined."""

    __test__ = False
