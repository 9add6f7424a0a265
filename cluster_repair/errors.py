# errors.py
# Error taxonomy for the ec2 repair pipeline.
#
# Every stage of master_script.run_recovery() either fully succeeds or raises one of these.
# The stage() context manager in utils.py stamps the failing stage name onto the exception so
# the driver can print one diagnostic line and exit non-zero.
#
# AuthenticationSuspectedError is NOT a RecoveryError. The driver treats it as non-retryable
# and exits with its own status.


class RecoveryError(Exception):
    """Base class for every expected failure in a repair run."""

    stage = None

    def __init__(self, message, stage=None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class ConfigurationError(RecoveryError):
    """Missing filter, unsupported provider, malformed setting."""


class InventoryError(RecoveryError):
    """A provider could not list the instances matching the filter."""


class RemoteExecutionError(RecoveryError):
    """A command could not be delivered to a node at all (ssh/gcloud transport failure)."""

    def __init__(self, message, node=None, stage=None):
        super().__init__(message, stage=stage)
        self.node = node


class AddressResolutionError(RecoveryError):
    """An EC2 instance's new public ip could not be resolved."""

    def __init__(self, message, instance_id=None, stage=None):
        super().__init__(message, stage=stage)
        self.instance_id = instance_id


class AliasDiscoveryError(RecoveryError):
    """No usable ec2 aliases were found in the representative node's hosts file."""


class VolumeDiscoveryError(RecoveryError):
    """The gluster volume name could not be read from the representative node."""


class PartialOperationError(RecoveryError):
    """
    Some nodes in a fan-out failed while others succeeded.

    The successful nodes keep their side effects (nothing is rolled back).
    `failed` is a list of (node_name, detail) in the order the nodes were submitted.
    """

    def __init__(self, operation, failed, stage=None):
        self.operation = operation
        self.failed = list(failed)
        names = ", ".join(name for name, _ in self.failed)
        super().__init__(f"{operation} failed on {len(self.failed)} node(s): {names}", stage=stage)

    @property
    def failed_nodes(self):
        return [name for name, _ in self.failed]


class CountMismatchError(RecoveryError):
    """Two collections that are zipped positionally do not have the same length."""


class ValidationError(RecoveryError):
    """An internal consistency check failed before any hosts file was touched."""


class ConvergenceTimeoutError(RecoveryError):
    """`gluster peer status` still reported disconnected peers after the poll budget."""

    def __init__(self, message, attempts=None, disconnected=None, stage=None):
        super().__init__(message, stage=stage)
        self.attempts = attempts
        self.disconnected = disconnected


class FatalRecoveryError(Exception):
    """Non-recoverable condition; the run must stop and must not be retried."""

    stage = None


class AuthenticationSuspectedError(FatalRecoveryError):
    """
    EC2 returned a placeholder ("None") instance name.

    This is what a logged out / unauthenticated AWS session looks like, so continuing would
    mean acting on a session that cannot see the real instances.
    """
