"""
kip - Errors

Every failure the core can report is a KipError. The command-line front end
prints the message and exits non-zero; nothing in the core retries.
"""

from typing import List


class KipError(Exception):
    """Base class for all kip failures."""


class ConfigError(KipError):
    """A configuration value could not be used."""


class InvalidName(KipError):
    """An account name cannot be used as a filename."""


class ResolveError(KipError):
    """A name fragment could not be mapped to exactly one file."""


class NotFound(ResolveError):
    def __init__(self, fragment: str):
        super().__init__(f"File not found: {fragment}")
        self.fragment = fragment


class Ambiguous(ResolveError):
    def __init__(self, message: str, candidates: List[str]):
        super().__init__(message)
        self.candidates = candidates


class InvalidSelection(Ambiguous):
    """The user's answer to 'Did you mean' was not a listed index."""


class MalformedEntry(KipError):
    """Decrypted content has no password or username line."""


class CipherFailure(KipError):
    """Encrypting or decrypting failed."""


class ClipboardFailure(KipError):
    """The password could not be put on the clipboard."""


class IoFailure(KipError):
    """Reading, writing or removing a secret file failed."""
