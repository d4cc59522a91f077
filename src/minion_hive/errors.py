"""Error taxonomy for hive operations.

Every public operation either returns a result or raises one of these.
The CLI reports any HiveError as a one-line message and exits non-zero.
"""


class HiveError(Exception):
    """Base class for all hive errors.

    Attributes:
        name: Worker or template the error is about, when there is one.
    """

    def __init__(self, message: str, name: str | None = None):
        super().__init__(message)
        self.name = name


class InvalidNameError(HiveError):
    """Raised when a worker or template name violates the naming rules."""


class AlreadyExistsError(HiveError):
    """Raised when the target name is already taken."""


class NotFoundError(HiveError):
    """Raised when a referenced worker, template or file does not exist."""


class MinionNotFoundError(NotFoundError):
    pass


class DependencyNotFoundError(NotFoundError):
    pass


class SenderNotFoundError(NotFoundError):
    pass


class RecipientNotFoundError(NotFoundError):
    pass


class TemplateNotFoundError(NotFoundError):
    pass


class InvalidTransitionError(HiveError):
    """Raised when the lifecycle status does not allow the operation."""


class NoSandboxError(HiveError):
    """Raised when the operation needs a sandbox handle and there is none."""


class MissingTaskError(HiveError):
    """Raised when a worker has no task content to run."""


class RunningConflictError(HiveError):
    """Raised when a worker still has a live sandbox."""


class AdapterError(HiveError):
    """Raised when a call into the sandbox runtime fails."""


class InvalidAgeFormatError(HiveError):
    """Raised for age strings other than <int>d, <int>h or <int>m."""


class ArchiveFormatError(HiveError):
    """Raised when a workspace archive cannot be imported."""
