"""
Exception hierarchy for the resizer.
"""


class ResizerError(Exception):
    """Base exception for resizer errors."""
    pass


class ClusterError(ResizerError):
    """Raised when a Kubernetes API call fails."""
    pass


class ResourceNotFoundError(ClusterError):
    """Raised when a requested object does not exist."""
    pass


class ContainerNotFoundError(ResizerError):
    """Raised when a patch names a container the pod does not have."""
    pass
