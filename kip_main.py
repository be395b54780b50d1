"""
kip - Command-line interface

    kip ebay.com               Same as: kip get ebay.com
    kip get ebay --print       Show the password instead of copying it
    kip add ebay.com -u graham_king -n 'And some notes'
    kip edit ebay.com --prompt Type a new password, keep the rest
    kip del ebay.com
    kip list [prefix]
    kip gen [--length N]
"""

import os
import sys
import argparse
import logging

from kip import __version__
from kip.commands import Get, Add, Edit, Del, Gen, List
from kip.config import load_config, setup_logging
from kip.errors import KipError
from kip.store import Store
from kip.tools import ConsolePrompt, build_cipher, build_clipboard

logger = logging.getLogger("kip")

COMMANDS = ("get", "add", "edit", "del", "list", "gen")


def non_negative_int(text: str) -> int:
    """argparse type: an integer >= 0."""
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: '{text}'")
    if value < 0:
        raise argparse.ArgumentTypeError(f"cannot be negative: {value}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kip",
        description="Password manager: one gpg-encrypted file per account.",
    )
    parser.add_argument("--version", action="version", version=f"kip {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log debug output to stderr")
    parser.add_argument("--config", metavar="FILE", action="append", default=[],
                        help="Extra config file, read after ~/.kip/kip.conf")

    sub = parser.add_subparsers(dest="cmd", metavar="command")

    def with_print(p):
        p.add_argument("--print", dest="is_print", action="store_true",
                       help="Display password instead of copying to clipboard")

    p = sub.add_parser("get", help="Copy password to clipboard, show username and notes")
    p.add_argument("filepart", help="Filename to act on, or part thereof")
    with_print(p)

    for name, text in (
        ("add", "Create an account file with a generated (or typed) password"),
        ("edit", "Change details in an account file. Only changes the part you provide"),
    ):
        p = sub.add_parser(name, help=text)
        p.add_argument("filepart", help="Filename to act on, or part thereof")
        p.add_argument("-u", "--username",
                       help="Username to store. Will prompt if not given (add)")
        p.add_argument("-p", "--prompt", dest="is_prompt", action="store_true",
                       help="Prompt for password on command line instead of generating it")
        p.add_argument("-n", "--notes", help="Notes - anything you want")
        with_print(p)

    p = sub.add_parser("list", help="List accounts")
    p.add_argument("filepart", nargs="?", help="Prefix to limit list")

    p = sub.add_parser("del", help="Delete an account file")
    p.add_argument("filepart", help="Filename to act on, or part thereof")

    p = sub.add_parser("gen", help="Generate and print a password, and copy it to clipboard")
    p.add_argument("--length", type=non_negative_int, help="Password length (default: [passwords] len)")

    return parser


def normalize_argv(argv):
    """'kip ebay.com ...' means 'kip get ebay.com ...'."""
    argv = list(argv)
    for i, arg in enumerate(argv):
        if arg == "--config":
            continue
        if i > 0 and argv[i - 1] == "--config":
            continue
        if arg.startswith("-"):
            continue
        if arg not in COMMANDS:
            argv.insert(i, "get")
        break
    return argv


def to_command(args):
    """Turn parsed arguments into a Command value."""
    if args.cmd == "get":
        return Get(args.filepart, args.is_print)
    if args.cmd == "add":
        return Add(args.filepart, args.username, args.is_print, args.is_prompt, args.notes)
    if args.cmd == "edit":
        return Edit(args.filepart, args.username, args.is_print, args.is_prompt, args.notes)
    if args.cmd == "del":
        return Del(args.filepart)
    if args.cmd == "list":
        return List(args.filepart)
    if args.cmd == "gen":
        return Gen(args.length)
    raise ValueError(f"unknown command: {args.cmd}")


def ensure_secret_dir(path: str) -> None:
    if not os.path.exists(path):
        os.makedirs(path, mode=0o700, exist_ok=True)
        logger.info("Created %s", path)


def main(argv=None) -> int:
    parser = build_parser()
    argv = normalize_argv(sys.argv[1:] if argv is None else argv)
    if not argv:
        parser.print_help()
        return 2
    args = parser.parse_args(argv)
    if args.cmd is None:
        parser.print_help()
        return 2

    try:
        conf = load_config(args.config)
        setup_logging(conf.log_file, args.verbose)
        ensure_secret_dir(conf.secret_dir)

        prompt = ConsolePrompt()
        # list, gen and del never touch ciphertext
        cipher = None if args.cmd in ("list", "gen", "del") else build_cipher(conf, prompt)
        store = Store(
            conf,
            cipher=cipher,
            clipboard=build_clipboard(conf),
            prompt=prompt,
        )
        return store.run(to_command(args))
    except (KipError, OSError) as e:
        logger.error("%s failed: %s", args.cmd, e)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print(file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
