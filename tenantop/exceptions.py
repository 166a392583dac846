"""
This module implements custom exceptions
"""

## Base Error ##################################################################


class TenantOpError(Exception):
    """Base class for all tenantop exceptions"""

    def __init__(self, message: str, is_fatal_error: bool):
        """Construct with a flag indicating whether this is a fatal error. This
        will be a static property of all children.
        """
        super().__init__(message)
        self._is_fatal_error = is_fatal_error

    @property
    def is_fatal_error(self):
        """Property indicating whether or not this error should stop the key
        from being retried
        """
        return self._is_fatal_error


## Fatal Errors ################################################################


class TenantOpFatalError(TenantOpError):
    """A TenantOpFatalError is one that indicates an unexpected, and likely
    unrecoverable, failure during a reconciliation. The key is dropped rather
    than requeued.
    """

    def __init__(self, message: str = ""):
        super().__init__(message=message, is_fatal_error=True)


class ConfigError(TenantOpFatalError):
    """Exception caused during usage of user-provided configuration"""


class ClusterError(TenantOpFatalError):
    """Exception caused when a cluster operation fails in an unexpected way"""


class MalformedKeyError(TenantOpFatalError):
    """Exception raised when a work queue key cannot be decoded"""


## Expected Errors #############################################################


class TenantOpExpectedError(TenantOpError):
    """A TenantOpExpectedError is one that indicates an expected failure
    condition that should cause a reconciliation to terminate, but is expected
    to resolve in a subsequent reconciliation.
    """

    def __init__(self, message: str = ""):
        super().__init__(message=message, is_fatal_error=False)


class PreconditionError(TenantOpExpectedError):
    """Exception caused when an expected precondition is not met"""


## Store Errors ################################################################


class StoreError(TenantOpExpectedError):
    """Transient failure talking to the cluster store. These are retried with
    rate limiting.
    """


class NotFoundError(StoreError):
    """The requested object does not exist"""


class AlreadyExistsError(StoreError):
    """A create was issued for an object that already exists"""


class ConflictError(StoreError):
    """An optimistic-concurrency write was issued with a stale resourceVersion"""


class ResourceExpiredError(StoreError):
    """A watch was requested from a resourceVersion that is no longer
    available. The caller must relist.
    """


## Assertions ##################################################################


def assert_precondition(condition: bool, message: str = ""):
    """Replacement for assert() which will throw a PreconditionError"""
    if not condition:
        raise PreconditionError(message)


def assert_config(condition: bool, message: str = ""):
    """Replacement for assert() which will throw a ConfigError. This should be
    used when the library config or a resource spec is unusable.
    """
    if not condition:
        raise ConfigError(message)


def assert_cluster(condition: bool, message: str = ""):
    """Replacement for assert() which will throw a ClusterError. This should
    be used when an operation in the cluster fails in a way that retrying will
    not fix.
    """
    if not condition:
        raise ClusterError(message)
