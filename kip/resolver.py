"""
kip - Resolver

Maps what the user typed to exactly one file in the secret directory:

1. Exact filename -> that file, no questions asked
2. Otherwise every (non-hidden) filename containing the text
   - none  -> NotFound
   - one   -> that file (the caller announces the guess)
   - many  -> numbered list, one answer read from the prompt
"""

import os
import logging
from typing import List, Optional

from .errors import NotFound, InvalidSelection

logger = logging.getLogger("kip")


def is_plain_name(name: str) -> bool:
    """True if `name` is a single path component inside a directory."""
    if not name or name in (".", ".."):
        return False
    return os.sep not in name and not (os.altsep and os.altsep in name)


def account_names(secret_dir: str) -> List[str]:
    """All account filenames in `secret_dir`, sorted, hidden files skipped."""
    return sorted(
        name for name in os.listdir(secret_dir)
        if not name.startswith(".") and os.path.isfile(os.path.join(secret_dir, name))
    )


def candidates(secret_dir: str, fragment: str) -> List[str]:
    """Filenames containing `fragment` (case-sensitive), in listing order."""
    return [name for name in account_names(secret_dir) if fragment in name]


def resolve(secret_dir: str, fragment: str, prompt, out) -> str:
    """
    Find the file for `fragment`, asking the user to choose if needed.

    Args:
        secret_dir: Directory holding one file per account
        fragment: Full or partial account name
        prompt: Prompt capability, used only when several files match
        out: Text stream for the "Did you mean" list

    Returns:
        Path of the selected file

    Raises:
        NotFound: Nothing matches
        InvalidSelection: Several match and the answer is not a listed index
    """
    # Only a bare filename can name a file directly; "../x" or "/etc/x"
    # fall through to substring matching, which only sees secret_dir
    if is_plain_name(fragment):
        exact = os.path.join(secret_dir, fragment)
        if os.path.isfile(exact):
            return exact

    matches = candidates(secret_dir, fragment)
    logger.debug("Fuzzy match for %r: %d candidate(s)", fragment, len(matches))

    if not matches:
        raise NotFound(fragment)
    if len(matches) == 1:
        return os.path.join(secret_dir, matches[0])

    return os.path.join(secret_dir, choose(matches, prompt, out))


def choose(options: List[str], prompt, out) -> str:
    """Show a zero-indexed list and read one choice. No retry."""
    print("Did you mean:", file=out)
    for index, option in enumerate(options):
        print(f"{index} - {option}", file=out)
    out.flush()

    answer = prompt.ask("Select a choice ? ").strip()
    try:
        choice = int(answer)
    except ValueError:
        raise InvalidSelection(f"The choice must be a number, not '{answer}'", options)
    if not 0 <= choice < len(options):
        raise InvalidSelection(f"Select a number 0-{len(options) - 1}", options)
    return options[choice]


def list_accounts(secret_dir: str, prefix: Optional[str] = None) -> List[str]:
    """Sorted account names starting with `prefix` (all when no prefix)."""
    names = account_names(secret_dir)
    if prefix:
        names = [name for name in names if name.startswith(prefix)]
    return names
