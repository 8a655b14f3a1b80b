"""Exception hierarchy for FlowLoom.

Only repository acquisition errors propagate out of the flow service;
everything raised later in the pipeline is caught per entry point and
degrades to a smaller result set.
"""


class FlowLoomError(Exception):
    """Base class for all FlowLoom errors."""


class RepositoryAcquisitionError(FlowLoomError):
    """A repository could not be cloned, updated, or scanned."""

    def __init__(self, message: str, repository_url: str = None):
        super().__init__(message)
        self.repository_url = repository_url


class MissingCredentialsError(RepositoryAcquisitionError):
    """No credentials were supplied for repository access."""


class TraceError(FlowLoomError):
    """An entry point could not be traced (class or method not in the structure)."""

    def __init__(self, message: str, entry_point: str = None):
        super().__init__(message)
        self.entry_point = entry_point
