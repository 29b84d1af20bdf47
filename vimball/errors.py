from __future__ import annotations


class VimballError(RuntimeError):
    """Base class for vimball errors."""


class FormatError(VimballError):
    """The data does not start with the vimball signature."""


class ParseError(VimballError):
    """A member header or line count could not be parsed."""


class MissingSourceError(VimballError):
    """A recipe member could not be found on disk."""

    def __init__(self, path: str) -> None:
        super().__init__(f"File does not exist: {path}")
        self.path = path


class ConfigError(VimballError):
    pass


class UnsafePathError(VimballError):
    """An archive member would be written outside the install directory."""

    def __init__(self, path: str, root: str) -> None:
        super().__init__(f"Member path escapes {root}: {path!r}")
        self.path = path
        self.root = root
