class S3FileManagerError(Exception):
    """Base class for every fatal error raised by the tool."""


class UsageError(S3FileManagerError):
    """Invalid command line: no mode, both modes, missing or malformed values."""


class InvalidPath(S3FileManagerError):
    """A glob match has no usable file name."""


class IoFailure(S3FileManagerError):
    """A local file could not be opened or read."""


class RemoteFailure(S3FileManagerError):
    """The storage service rejected or failed a request."""
