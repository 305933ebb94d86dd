"""Terminal conditions of a filtering pass.

Every pass-level failure is raised as one of these types and delivered to the
consumer on the read side of the pipe. A pass that failed is never resumed.
"""


class LayerDedupError(Exception):
    """Base class of all errors raised by a filtering pass."""


class MalformedArchive(LayerDedupError):
    """An archive header could not be decoded."""


class SourceReadFailure(LayerDedupError):
    """The input stream failed or ended before the end-of-archive marker."""


class SinkWriteFailure(LayerDedupError):
    """The consumer stopped draining the output stream."""


class UpstreamResolutionFailure(LayerDedupError):
    """The layer source could not supply the requested content."""


class PassCancelled(LayerDedupError):
    """The pass was cancelled before it completed."""
