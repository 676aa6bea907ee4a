"""
Errors — Exception taxonomy for CSS extraction.

Fatal conditions raise one of these. Misconfiguration and protocol misuse
never raise; they emit a warning through the caller's sink instead.

Peer compiler exceptions are NOT wrapped: the original error text is
preserved so consumers can match on dialect-specific messages.
"""

from typing import Optional


class KnightedCssError(Exception):
    """Base class for all knighted_css errors."""


class ResolutionError(KnightedCssError):
    """A specifier could not be mapped to a file and is not marked external."""

    def __init__(self, specifier: str, importer: Optional[str] = None):
        self.specifier = specifier
        self.importer = importer
        if importer:
            message = f'Unable to resolve "{specifier}" imported from {importer}'
        else:
            message = f'Unable to resolve "{specifier}"'
        super().__init__(message)


class MissingPeerError(KnightedCssError):
    """The compiler package for a dialect is not installed."""

    def __init__(self, label: str, name: str):
        self.label = label
        self.name = name
        super().__init__(
            f'Attempted to process {label}, but "{name}" is not installed. '
            f'Please add it to your project.'
        )


class UnsupportedPeerError(KnightedCssError):
    """The peer module exposes none of the expected compile entry points."""

    def __init__(self, name: str, capabilities: str):
        self.name = name
        self.capabilities = capabilities
        super().__init__(f'"{name}" does not expose {capabilities} APIs.')


class CompileError(KnightedCssError):
    """A legacy callback compiler reported a failure that is not an exception."""
