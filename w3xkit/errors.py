"""Exception types raised while reading and rewriting map data."""


class W3xError(Exception):
    """Base class for every error raised by this package."""


class ParseError(W3xError):
    """The data is truncated or otherwise cannot be read."""


class InvalidFormatError(W3xError):
    """The data is readable but does not match a supported format."""


class DataNotFoundError(W3xError):
    """A required file or directory could not be found."""