"""
kip - Self-Tests (building blocks)

Run with: python test_simple.py   (or: pytest)

Covers the pieces the store is built from:
- Entry format (including the notes newline collapse)
- Password generator
- Built-in passphrase cipher (round trip, tampering, wrong passphrase)
- Resolver (exact, guess, "Did you mean", not found)
- Layered configuration
"""

import io
import os
import logging
import tempfile
import configparser

from kip import crypto
from kip.config import Config, DEFAULT_CONFIG, load_config, merge_layers, from_parser, setup_logging
from kip.entry import Entry, encode, decode
from kip.errors import CipherFailure, ClipboardFailure, ConfigError, InvalidSelection, MalformedEntry, NotFound
from kip.resolver import resolve, list_accounts
from kip.tools import CommandCipher, CommandClipboard, PassphraseCipher, build_cipher, build_clipboard, confirm

FAST_N = 2**10  # scrypt cost for tests only


class ScriptedPrompt:
    """Answers questions from a list, in order."""

    def __init__(self, answers=(), secrets=()):
        self.answers = list(answers)
        self.secrets = list(secrets)
        self.asked = []

    def ask(self, message):
        self.asked.append(message)
        return self.answers.pop(0)

    def ask_secret(self, message):
        self.asked.append(message)
        return self.secrets.pop(0)


def make_dir(names):
    """Temp directory with one (dummy) file per name."""
    d = tempfile.mkdtemp()
    for name in names:
        with open(os.path.join(d, name), "wb") as f:
            f.write(b"ciphertext")
    return d


# =============================================================================
# Entry
# =============================================================================

def test_entry_format():
    """Entry is written as three newline-terminated lines."""
    print("Testing Entry format...")

    assert encode(Entry("pw", "alice", "some notes")) == "pw\nalice\nsome notes\n"
    # Empty notes still get their own (empty) line
    assert encode(Entry("pw", "alice", "")) == "pw\nalice\n\n"
    print("  [OK] Encoding works")

    e = decode("pw\nalice\nsome notes\n")
    assert e == Entry("pw", "alice", "some notes")
    print("  [OK] Decoding works")


def test_entry_notes_collapse():
    """Line breaks inside notes are dropped on the way back in."""
    print("Testing notes collapse...")

    original = Entry("s3cret", "bob@example.com", "line one\nline two\nthree")
    e = decode(encode(original))
    assert e.password == original.password
    assert e.username == original.username
    assert e.notes == "line oneline twothree", "Notes lines should be joined"
    print("  [OK] Password/username kept, notes collapsed")


def test_entry_malformed():
    print("Testing malformed entries...")

    try:
        decode("only-a-password")
        assert False, "Should reject content without a username line"
    except MalformedEntry:
        print("  [OK] Missing username line rejected")

    try:
        decode("")
        assert False, "Should reject empty content"
    except MalformedEntry:
        print("  [OK] Empty content rejected")

    # A username line may be empty
    assert decode("pw\n") == Entry("pw", "", "")


# =============================================================================
# Password Generation
# =============================================================================

def test_password_generation():
    print("Testing Password Generation...")

    pwd = crypto.generate_password("abcdef0123", 19)
    assert len(pwd) == 19, "Should generate requested length"
    assert all(c in "abcdef0123" for c in pwd), "Only charset characters"
    print(f"  Generated: {pwd}")

    assert crypto.generate_password("abc", 0) == "", "Length 0 gives empty string"
    assert crypto.generate_password("", 0) == ""
    assert crypto.generate_password("x", 5) == "xxxxx"
    print("  [OK] Length and charset respected")

    try:
        crypto.generate_password("", 4)
        assert False, "Empty charset cannot produce characters"
    except ValueError:
        print("  [OK] Empty charset rejected")


def test_password_no_positional_bias():
    """Every position should see each character about equally often."""
    print("Testing positional bias...")

    runs = 2000
    length = 8
    first = [0] * length
    for _ in range(runs):
        pwd = crypto.generate_password("ab", length)
        for i, c in enumerate(pwd):
            if c == "a":
                first[i] += 1

    for count in first:
        share = count / runs
        assert 0.40 < share < 0.60, f"Position bias detected: {share:.2f}"
    print("  [OK] No positional bias")


class OrderedRandom:
    """Picks characters in charset order; shuffle reverses and is recorded."""

    def __init__(self):
        self.picks = 0
        self.shuffled = []

    def choice(self, seq):
        c = seq[self.picks % len(seq)]
        self.picks += 1
        return c

    def shuffle(self, items):
        self.shuffled.append(list(items))
        items.reverse()


def test_password_is_shuffled():
    """The picked characters are shuffled before they are joined."""
    print("Testing shuffle step...")

    rng = OrderedRandom()
    assert crypto.generate_password("abcd", 4, rng) == "dcba"
    assert rng.shuffled == [["a", "b", "c", "d"]], "Shuffle must see every pick"
    print("  [OK] Picks are shuffled")


# =============================================================================
# Built-in cipher
# =============================================================================

def test_passphrase_cipher():
    print("Testing passphrase cipher...")

    cipher = PassphraseCipher("correct horse", scrypt_n=FAST_N)
    plaintext = b"pw\nalice\nnotes\n"
    blob = cipher.encrypt(plaintext)

    assert blob.startswith(crypto.MAGIC)
    assert plaintext not in blob, "Plaintext must not appear in ciphertext"
    assert cipher.decrypt(blob) == plaintext
    print("  [OK] Round trip works")

    # Fresh salt and nonce every time
    assert cipher.encrypt(plaintext) != blob
    print("  [OK] Ciphertexts differ per write")

    tampered = bytearray(blob)
    tampered[-1] ^= 1
    try:
        cipher.decrypt(bytes(tampered))
        assert False, "Should have detected tampering"
    except CipherFailure:
        print("  [OK] Tampering detection works")

    try:
        PassphraseCipher("wrong", scrypt_n=FAST_N).decrypt(blob)
        assert False, "Should fail with wrong passphrase"
    except CipherFailure:
        print("  [OK] Wrong passphrase detection works")

    try:
        cipher.decrypt(b"-----BEGIN PGP MESSAGE-----")
        assert False, "Should reject foreign files"
    except CipherFailure:
        print("  [OK] Foreign file rejected")


def test_kdf():
    print("Testing KDF...")

    salt = os.urandom(16)
    key1 = crypto.derive_key("pass", salt, FAST_N)
    key2 = crypto.derive_key("pass", salt, FAST_N)
    assert key1 == key2, "KDF should be deterministic"
    assert len(key1) == 32, "Key should be 32 bytes"
    assert crypto.derive_key("other", salt, FAST_N) != key1
    print("  [OK] KDF works correctly")


# =============================================================================
# External tools
# =============================================================================

def test_command_tools():
    print("Testing command-backed tools...")

    # cat hands stdin straight back
    cipher = CommandCipher("cat", "cat")
    assert cipher.encrypt(b"pw\nuser\n") == b"pw\nuser\n"
    assert cipher.decrypt(b"abc") == b"abc"
    CommandClipboard("cat").copy(b"secret")
    print("  [OK] Data piped through commands")

    try:
        CommandCipher("false", "false").decrypt(b"x")
        assert False, "Non-zero exit should fail"
    except CipherFailure:
        print("  [OK] Non-zero exit is a CipherFailure")

    try:
        CommandClipboard("no-such-clipboard-tool-kip").copy(b"x")
        assert False, "Missing command should fail"
    except ClipboardFailure:
        print("  [OK] Missing command is a ClipboardFailure")


def test_tool_factories():
    conf = from_parser(merge_layers([parse(DEFAULT_CONFIG)]))
    assert isinstance(build_cipher(conf, ScriptedPrompt()), CommandCipher)
    assert isinstance(build_clipboard(conf._replace(clip_cmd="xclip")), CommandClipboard)

    cipher = build_cipher(conf._replace(cipher_backend="passphrase"), ScriptedPrompt(secrets=["pass"]))
    assert isinstance(cipher, PassphraseCipher)

    try:
        build_cipher(conf._replace(cipher_backend="rot13"), ScriptedPrompt())
        assert False, "Unknown backend should fail"
    except ConfigError:
        pass


# =============================================================================
# Resolver
# =============================================================================

SITES = ["ebay.com", "ebay-shop.com", "amazon.com"]


def test_resolve_exact():
    print("Testing exact match...")

    d = make_dir(SITES)
    prompt = ScriptedPrompt()
    path = resolve(d, "ebay.com", prompt, io.StringIO())
    assert path == os.path.join(d, "ebay.com")
    assert prompt.asked == [], "Exact match must not ask anything"
    print("  [OK] Exact match wins over substring matches")


def test_resolve_single_guess():
    print("Testing single substring match...")

    d = make_dir(SITES)
    path = resolve(d, "amaz", ScriptedPrompt(), io.StringIO())
    assert path == os.path.join(d, "amazon.com")
    print("  [OK] Single candidate selected")


def test_resolve_ambiguous():
    print("Testing ambiguous match...")

    d = make_dir(SITES)
    out = io.StringIO()
    path = resolve(d, "ebay", ScriptedPrompt(["1"]), out)

    # Candidates are listed sorted: ebay-shop.com, ebay.com
    assert out.getvalue() == "Did you mean:\n0 - ebay-shop.com\n1 - ebay.com\n"
    assert path == os.path.join(d, "ebay.com")
    print("  [OK] Choice from numbered list works")

    for answer in ["2", "-1", "x", ""]:
        try:
            resolve(d, "ebay", ScriptedPrompt([answer]), io.StringIO())
            assert False, f"Answer {answer!r} should be rejected"
        except InvalidSelection as e:
            assert e.candidates == ["ebay-shop.com", "ebay.com"]
    print("  [OK] Bad choices rejected without retry")


def test_resolve_not_found():
    print("Testing not found...")

    d = make_dir(SITES)
    try:
        resolve(d, "zzz", ScriptedPrompt(), io.StringIO())
        assert False, "Should not find zzz"
    except NotFound as e:
        assert e.fragment == "zzz"
    print("  [OK] NotFound raised")


def test_resolve_case_sensitive_and_hidden():
    d = make_dir(SITES + [".ebay.swp"])
    try:
        resolve(d, "EBAY", ScriptedPrompt(), io.StringIO())
        assert False, "Match should be case-sensitive"
    except NotFound:
        pass
    # Hidden files never take part in guessing
    try:
        resolve(d, "swp", ScriptedPrompt(), io.StringIO())
        assert False, "Hidden files should be ignored"
    except NotFound:
        pass


def test_list_accounts():
    print("Testing list...")

    d = make_dir(SITES + [".hidden"])
    assert list_accounts(d) == ["amazon.com", "ebay-shop.com", "ebay.com"]
    assert list_accounts(d, "ebay") == ["ebay-shop.com", "ebay.com"]
    assert list_accounts(d, "zzz") == []
    print("  [OK] Listing works")


def test_confirm():
    assert confirm(ScriptedPrompt(["y"]), "?")
    assert confirm(ScriptedPrompt(["Y"]), "?")
    for answer in ["", "n", "yes", "no"]:
        assert not confirm(ScriptedPrompt([answer]), "?"), answer


# =============================================================================
# Configuration
# =============================================================================

def parse(text):
    p = configparser.ConfigParser(interpolation=None)
    p.read_string(text)
    return p


def test_config_defaults():
    print("Testing config defaults...")

    conf = from_parser(merge_layers([parse(DEFAULT_CONFIG)]))
    assert isinstance(conf, Config)
    assert conf.secret_dir == os.path.expanduser("~/.kip/passwords")
    assert conf.pw_len == 19
    assert conf.decrypt_cmd == "gpg --quiet --decrypt"
    assert conf.clip_cmd == "pyperclip"
    assert conf.cipher_backend == "command"
    assert len(conf.charset) == 62
    print("  [OK] Built-in defaults loaded")


def test_config_layers():
    print("Testing config layering...")

    system = parse("[passwords]\nlen = 25\n[tools]\nclip = xclip\n")
    user = parse("[passwords]\nlen = 30\ncharset = ab%$\n[tools]\nclip =\n")
    conf = from_parser(merge_layers([parse(DEFAULT_CONFIG), system, user]))

    assert conf.pw_len == 30, "Later layer wins"
    assert conf.charset == "ab%$", "No interpolation of %"
    assert conf.clip_cmd == "pyperclip", "Empty value falls back to default"
    print("  [OK] Layers merge key by key")


def test_config_bad_len():
    try:
        from_parser(merge_layers([parse(DEFAULT_CONFIG), parse("[passwords]\nlen = many\n")]))
        assert False, "Non-numeric len should fail"
    except ConfigError:
        pass
    try:
        from_parser(merge_layers([parse(DEFAULT_CONFIG), parse("[passwords]\nlen = -3\n")]))
        assert False, "Negative len should fail"
    except ConfigError:
        pass


def test_load_config_file():
    d = tempfile.mkdtemp()
    path = os.path.join(d, "kip.conf")
    with open(path, "w") as f:
        f.write(f"[passwords]\nhome = {d}/pw\nlen = 7\n")

    conf = load_config([path])
    assert conf.secret_dir == f"{d}/pw"
    assert conf.pw_len == 7

    # Missing files are skipped
    load_config([os.path.join(d, "missing.conf")])


def test_setup_logging():
    d = tempfile.mkdtemp()
    log_file = os.path.join(d, "logs", "kip.log")
    logger = logging.getLogger("kip")
    saved = list(logger.handlers)
    for h in saved:
        logger.removeHandler(h)
    try:
        setup_logging(log_file)
        setup_logging(log_file)
        assert len(logger.handlers) == 1, "No duplicate handlers"
        logger.info("hello")
        assert os.path.exists(log_file)
    finally:
        for h in list(logger.handlers):
            logger.removeHandler(h)
            h.close()
        for h in saved:
            logger.addHandler(h)


def run_all_tests():
    """Run all tests."""
    print("=" * 70)
    print("kip - Building Block Tests")
    print("=" * 70)
    print()

    tests = [
        test_entry_format,
        test_entry_notes_collapse,
        test_entry_malformed,
        test_password_generation,
        test_password_no_positional_bias,
        test_password_is_shuffled,
        test_passphrase_cipher,
        test_kdf,
        test_command_tools,
        test_tool_factories,
        test_resolve_exact,
        test_resolve_single_guess,
        test_resolve_ambiguous,
        test_resolve_not_found,
        test_resolve_case_sensitive_and_hidden,
        test_list_accounts,
        test_confirm,
        test_config_defaults,
        test_config_layers,
        test_config_bad_len,
        test_load_config_file,
        test_setup_logging,
    ]

    failed = []

    for test in tests:
        try:
            test()
            print()
        except Exception as e:
            print(f"  [FAIL] TEST FAILED: {e}")
            failed.append((test.__name__, e))
            print()

    print("=" * 70)
    if not failed:
        print("[OK] ALL TESTS PASSED!")
    else:
        print(f"[FAIL] {len(failed)} TESTS FAILED:")
        for name, error in failed:
            print(f"  - {name}: {error}")
    print("=" * 70)

    return len(failed) == 0


if __name__ == "__main__":
    import sys
    success = run_all_tests()
    sys.exit(0 if success else 1)
