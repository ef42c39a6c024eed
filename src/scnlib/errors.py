"""
Exceptions raised when reading Bio-Rad Image Lab files.
All derive from ValueError so callers may catch them as any other import error.
"""


class FormatError(ValueError):
    """Base class for invalid or unreadable '.scn' data."""


class UnsupportedFormatError(FormatError):
    """The file does not carry the Image Lab banner."""


class MalformedEnvelopeError(FormatError):
    """An envelope header, part body or xml block could not be read.

    Args:
        message: description of the error
        line: the offending header line, if any
        offset: byte offset of the line in the file, if known
    """

    def __init__(
        self, message: str, line: str | None = None, offset: int | None = None
    ):
        if line is not None:
            message = f"{message} '{line}'"
        if offset is not None:
            message = f"{message} at byte {offset}"
        super().__init__(message)
        self.line = line
        self.offset = offset


class MalformedMetadataValueError(FormatError):
    """A mapped xml attribute or text value could not be converted.

    Args:
        tag: name of the xml element
        key: attribute name, None for text content
        value: the unconvertible value
    """

    def __init__(self, tag: str, key: str | None, value: str):
        where = tag if key is None else f"{tag} {key}"
        super().__init__(f"invalid value '{value}' for '{where}'")
        self.tag = tag
        self.key = key
        self.value = value
