"""
kip - Entry Module

An Entry is the decrypted content of one account file. On disk (before
encryption) it is three lines:

    password
    username
    notes

Reading joins every line after the username back together without a
separator, so line breaks inside notes do not survive a save/load cycle.
"""

from typing import NamedTuple

from .errors import MalformedEntry


class Entry(NamedTuple):
    password: str
    username: str
    notes: str = ""


def encode(entry: Entry) -> str:
    """Serialize an Entry to its plaintext form (always newline-terminated)."""
    return f"{entry.password}\n{entry.username}\n{entry.notes}\n"


def decode(plaintext: str) -> Entry:
    """
    Parse decrypted plaintext into an Entry.

    Args:
        plaintext: Output of the cipher's decrypt step

    Returns:
        Entry with password (line 1), username (line 2) and notes
        (all remaining lines, concatenated)

    Raises:
        MalformedEntry: If there is no username line
    """
    parts = plaintext.split("\n")
    if len(parts) < 2:
        raise MalformedEntry("Entry needs a password line and a username line")
    return Entry(password=parts[0], username=parts[1], notes="".join(parts[2:]))
