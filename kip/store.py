"""
kip - Store Module

This file handles the six user commands on top of the secret directory:
- get:  find the file, decrypt, copy (or print) the password
- add:  create a new account file (asks before overwriting)
- edit: change only the fields provided
- del:  remove an account file (asks first)
- list: account names, optionally by prefix
- gen:  a fresh password, printed and copied

Directory layout:
    <secret_dir>/<account name>     ciphertext only, one file per account
    <secret_dir>.lock               advisory lock, held while a command runs

Nothing is remembered between runs; every command re-resolves its name.
"""

import os
import sys
import logging
import tempfile
from contextlib import contextmanager
from typing import Optional

from . import entry as codec
from . import resolver
from .commands import Get, Add, Edit, Del, Gen, List
from .crypto import generate_password
from .entry import Entry
from .errors import InvalidName, IoFailure, KipError, MalformedEntry, ResolveError
from .tools import confirm

logger = logging.getLogger("kip")


def bold(msg: str) -> str:
    """'msg' wrapped in ANSI escape sequence to make it bold."""
    return f"\x1b[1m{msg}\x1b[0m"


def check_name(name: str) -> None:
    """Raise InvalidName unless `name` is usable as a single filename."""
    if not resolver.is_plain_name(name) or name.startswith("."):
        raise InvalidName(f"Not a valid account name: '{name}'")


# =============================================================================
# STORE CLASS
# =============================================================================

class Store:
    """
    Runs kip commands against one secret directory.

    Usage:
        store = Store(config, cipher, clipboard, prompt)
        exit_code = store.run(Get("ebay"))

    Args:
        config: Config (secret_dir, pw_len, charset are used here)
        cipher: Object with encrypt(bytes) / decrypt(bytes)
        clipboard: Object with copy(bytes)
        prompt: Object with ask(msg) / ask_secret(msg)
        out: Stream for normal output (default: sys.stdout)
        err: Stream for "get failed" messages (default: sys.stderr)
    """

    def __init__(self, config, cipher, clipboard, prompt, out=None, err=None):
        self.config = config
        self.cipher = cipher
        self.clipboard = clipboard
        self.prompt = prompt
        self._out = out
        self._err = err

    @property
    def secret_dir(self) -> str:
        return self.config.secret_dir

    @property
    def lock_path(self) -> str:
        """Sibling of secret_dir, so it never shows up as an account."""
        return os.path.normpath(self.secret_dir) + ".lock"

    @property
    def out(self):
        return self._out or sys.stdout

    @property
    def err(self):
        return self._err or sys.stderr

    def run(self, command) -> int:
        """Execute one command. Returns the process exit code."""
        handlers = {
            Get: lambda c: self.get(c.name, c.reveal),
            Add: lambda c: self.add(c.name, c.username, c.reveal, c.prompt_password, c.notes),
            Edit: lambda c: self.edit(c.name, c.username, c.reveal, c.prompt_password, c.notes),
            Del: lambda c: self.delete(c.name),
            Gen: lambda c: self.gen(c.length),
            List: lambda c: self.list(c.prefix),
        }
        handler = handlers.get(type(command))
        if handler is None:
            raise TypeError(f"Unknown command: {command!r}")
        return handler(command)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def get(self, name: str, reveal: bool = False) -> int:
        """
        Show the account matching `name`.

        Prints the username, then copies the password to the clipboard (or
        prints it when `reveal`), then prints the notes. A name that does
        not resolve is reported, not raised; decrypt problems are raised.
        """
        with self._locked(exclusive=False):
            try:
                path = self.find(name)
            except ResolveError as e:
                logger.info("get %r failed: %s", name, e)
                print(f"get failed: {e}", file=self.err)
                return 1
            self.show(path, reveal)
        return 0

    def add(
        self,
        name: str,
        username: Optional[str] = None,
        reveal: bool = False,
        prompt_password: bool = False,
        notes: Optional[str] = None
    ) -> int:
        """
        Create the account file `name`, then show it like get does.

        Asks for the username when not given. The password is typed in
        (prompt_password) or generated. An existing file is only replaced
        after the user answers 'y'.
        """
        check_name(name)
        if username is None:
            username = self.prompt.ask("Username: ")
        if prompt_password:
            password = self.prompt.ask_secret("Password: ")
        else:
            password = generate_password(self.config.charset, self.config.pw_len)

        path = os.path.join(self.secret_dir, name)
        with self._locked(exclusive=True):
            if os.path.exists(path):
                if not confirm(self.prompt, f"{name} already exists. Overwrite? [y/N] "):
                    print("not overwriting", file=self.out)
                    logger.info("add %r: kept existing file", name)
                    return 0

            self.write(path, Entry(password, username, notes or ""))
            logger.info("Added %s", path)
            self.show(path, reveal)
        return 0

    def edit(
        self,
        name: str,
        username: Optional[str] = None,
        reveal: bool = False,
        prompt_password: bool = False,
        notes: Optional[str] = None
    ) -> int:
        """
        Change the fields provided, keep the rest.

        The name must resolve to an existing file; edit never creates one.
        """
        with self._locked(exclusive=True):
            path = self.find(name)
            old = self.extract(path)

            if prompt_password:
                password = self.prompt.ask_secret("Password: ")
            else:
                password = old.password

            new = Entry(
                password=password,
                username=old.username if username is None else username,
                notes=old.notes if notes is None else notes,
            )
            self.write(path, new)
            logger.info("Edited %s", path)

            if reveal:
                self.show(path, reveal)
        return 0

    def delete(self, name: str) -> int:
        """Remove the account file matching `name` after a 'y'."""
        with self._locked(exclusive=True):
            path = self.find(name)
            basename = os.path.basename(path)
            if not confirm(self.prompt, f"Delete {basename}? [y/N] "):
                print("not deleted", file=self.out)
                return 0
            try:
                os.remove(path)
            except OSError as e:
                raise IoFailure(f"Could not delete {path}: {e}") from e
            logger.info("Deleted %s", path)
            print(f"Deleted {basename}", file=self.out)
        return 0

    def list(self, prefix: Optional[str] = None) -> int:
        """Print account names, sorted, optionally only those starting with `prefix`."""
        try:
            names = resolver.list_accounts(self.secret_dir, prefix)
        except OSError as e:
            raise IoFailure(f"Could not list {self.secret_dir}: {e}") from e
        if not names:
            print("No entries.", file=self.out)
        for name in names:
            print(name, file=self.out)
        return 0

    def gen(self, length: Optional[int] = None) -> int:
        """Generate a password, copy it and print it. Nothing is stored."""
        if length is None:
            length = self.config.pw_len
        try:
            password = generate_password(self.config.charset, length)
        except ValueError as e:
            raise KipError(str(e)) from e
        self.clipboard.copy(password.encode("utf-8"))
        print(password, file=self.out)
        return 0

    # ------------------------------------------------------------------
    # Building blocks
    # ------------------------------------------------------------------

    def find(self, name: str) -> str:
        """Resolve `name` to a path, announcing any guess."""
        try:
            path = resolver.resolve(self.secret_dir, name, self.prompt, self.out)
        except OSError as e:
            raise IoFailure(f"Could not read {self.secret_dir}: {e}") from e
        basename = os.path.basename(path)
        if basename != name:
            print(f"Guessing {bold(basename)}", file=self.out)
        return path

    def show(self, path: str, reveal: bool) -> Entry:
        """Display username, password (clipboard unless `reveal`) and notes."""
        entry = self.extract(path)
        print(bold(entry.username), file=self.out)
        if reveal:
            print(entry.password, file=self.out)
        else:
            self.clipboard.copy(entry.password.encode("utf-8"))
        print(entry.notes, file=self.out)
        return entry

    def extract(self, path: str) -> Entry:
        """Read, decrypt and decode one account file."""
        try:
            with open(path, "rb") as f:
                ciphertext = f.read()
        except OSError as e:
            raise IoFailure(f"Could not read {path}: {e}") from e

        plaintext = self.cipher.decrypt(ciphertext)
        try:
            return codec.decode(plaintext.decode("utf-8"))
        except UnicodeDecodeError as e:
            raise MalformedEntry(f"{os.path.basename(path)} is not UTF-8 text") from e

    def write(self, path: str, new: Entry) -> None:
        """
        Encrypt `new` and replace `path` with it.

        The ciphertext goes to a hidden temp file in the same directory
        which is then renamed over the target.
        """
        ciphertext = self.cipher.encrypt(codec.encode(new).encode("utf-8"))
        directory = os.path.dirname(path)
        try:
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".kip-")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(ciphertext)
                os.replace(tmp_path, path)
            except BaseException:
                os.unlink(tmp_path)
                raise
        except OSError as e:
            raise IoFailure(f"Could not write {path}: {e}") from e

    @contextmanager
    def _locked(self, exclusive: bool):
        """
        Hold an advisory lock on <secret_dir>.lock for the block.

        Only one writer at a time; readers share. No-op without fcntl.
        """
        if sys.platform == "win32":
            yield
            return

        import fcntl

        lock_path = self.lock_path
        try:
            fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o600)
        except OSError as e:
            raise IoFailure(f"Could not open lock file {lock_path}: {e}") from e
        try:
            fcntl.flock(fd, fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH)
            yield
        finally:
            os.close(fd)
