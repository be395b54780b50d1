"""
kip - External Tools

The store never encrypts, copies or reads the terminal itself. It is handed
three small capabilities:

    Cipher     encrypt(bytes) -> bytes, decrypt(bytes) -> bytes
    Clipboard  copy(bytes)
    Prompt     ask(message) -> str, ask_secret(message) -> str

Real implementations shell out (gpg, xclip, pbcopy...) or use pyperclip;
tests pass in fakes with the same methods.
"""

import os
import shlex
import getpass
import logging
import subprocess
from typing import List

import pyperclip

from . import crypto
from .errors import CipherFailure, ClipboardFailure, ConfigError

logger = logging.getLogger("kip")

PASSPHRASE_ENV = "KIP_PASSPHRASE"


# =============================================================================
# Subprocess helper
# =============================================================================

def run_tool(cmd: str, data: bytes, capture: bool, failure) -> bytes:
    """
    Run `cmd` with `data` on stdin.

    Args:
        cmd: Command line, split shell-style (no shell is involved)
        data: Bytes to feed on stdin
        capture: Return stdout if True, discard it otherwise
        failure: KipError subclass raised on any problem

    Returns:
        The command's stdout (b"" when not captured)
    """
    argv: List[str] = shlex.split(cmd)
    if not argv:
        raise failure("No command configured")

    logger.debug("Running %s", argv[0])
    try:
        proc = subprocess.run(
            argv,
            input=data,
            check=True,
            stdout=subprocess.PIPE if capture else subprocess.DEVNULL,
            stderr=subprocess.PIPE,
        )
    except FileNotFoundError:
        raise failure(f"Command not found: {argv[0]}")
    except subprocess.CalledProcessError as e:
        err = (e.stderr or b"").decode("utf-8", "replace").strip()
        raise failure(f"Command failed: {cmd} (exit {e.returncode}) {err}".rstrip())
    except OSError as e:
        raise failure(f"Could not run {argv[0]}: {e}") from e

    return proc.stdout if capture else b""


# =============================================================================
# Cipher
# =============================================================================

class CommandCipher:
    """Encrypt/decrypt by piping through external commands (gpg by default)."""

    def __init__(self, encrypt_cmd: str, decrypt_cmd: str):
        self.encrypt_cmd = encrypt_cmd
        self.decrypt_cmd = decrypt_cmd

    def encrypt(self, plaintext: bytes) -> bytes:
        return run_tool(self.encrypt_cmd, plaintext, True, CipherFailure)

    def decrypt(self, ciphertext: bytes) -> bytes:
        return run_tool(self.decrypt_cmd, ciphertext, True, CipherFailure)


class PassphraseCipher:
    """
    Built-in AES-256-GCM cipher keyed by a passphrase.

    Args:
        passphrase: Secret the file keys are derived from
        scrypt_n: scrypt cost parameter (defaults to crypto.SCRYPT_N)
    """

    def __init__(self, passphrase: str, scrypt_n: int = crypto.SCRYPT_N):
        if not passphrase:
            raise CipherFailure("Passphrase is empty")
        self._passphrase = passphrase
        self._n = scrypt_n

    def encrypt(self, plaintext: bytes) -> bytes:
        return crypto.seal(self._passphrase, plaintext, self._n)

    def decrypt(self, ciphertext: bytes) -> bytes:
        try:
            return crypto.unseal(self._passphrase, ciphertext, self._n)
        except ValueError as e:
            raise CipherFailure(str(e)) from e


# =============================================================================
# Clipboard
# =============================================================================

class CommandClipboard:
    """Copy by feeding the text to a command such as xclip or pbcopy."""

    def __init__(self, cmd: str):
        self.cmd = cmd

    def copy(self, text: bytes) -> None:
        run_tool(self.cmd, text, False, ClipboardFailure)


class PyperclipClipboard:
    """Copy through pyperclip, which picks the platform's clipboard tool."""

    def copy(self, text: bytes) -> None:
        try:
            pyperclip.copy(text.decode("utf-8"))
        except pyperclip.PyperclipException as e:
            raise ClipboardFailure(f"Clipboard unavailable: {e}") from e


# =============================================================================
# Prompt
# =============================================================================

class ConsolePrompt:
    """Interactive questions on the terminal. End of input counts as ""."""

    def ask(self, message: str) -> str:
        try:
            return input(message)
        except EOFError:
            return ""

    def ask_secret(self, message: str) -> str:
        try:
            return getpass.getpass(message)
        except EOFError:
            return ""


def confirm(prompt, message: str) -> bool:
    """True only for an answer of 'y' or 'Y'."""
    return prompt.ask(message).lower() == "y"


# =============================================================================
# Factories
# =============================================================================

def build_cipher(config, prompt):
    """Cipher selected by `[cipher] backend`."""
    if config.cipher_backend == "command":
        return CommandCipher(config.encrypt_cmd, config.decrypt_cmd)
    if config.cipher_backend == "passphrase":
        passphrase = os.environ.get(PASSPHRASE_ENV) or prompt.ask_secret("Passphrase: ")
        return PassphraseCipher(passphrase)
    raise ConfigError(f"Unknown cipher backend: {config.cipher_backend}")


def build_clipboard(config):
    """pyperclip unless `[tools] clip` names a command."""
    if config.clip_cmd == "pyperclip":
        return PyperclipClipboard()
    return CommandClipboard(config.clip_cmd)
