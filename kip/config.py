"""
kip - Configuration and logging

Settings come from INI files layered on top of each other:

    built-in defaults  ->  /etc/kip/kip.conf  ->  ~/.kip/kip.conf  ->  --config FILE

Later files override earlier ones key by key; a key set to an empty value
goes back to the built-in default. The result is a read-only Config built
once at startup and passed to the store.
"""

import os
import string
import logging
import configparser
from logging.handlers import RotatingFileHandler
from typing import Iterable, NamedTuple

from .errors import ConfigError

APP_NAME = "kip"

SYSTEM_CONFIG = "/etc/kip/kip.conf"
USER_CONFIG = os.path.join("~", ".kip", "kip.conf")

DEFAULT_CHARSET = string.ascii_letters + string.digits

DEFAULT_CONFIG = f"""
[gnupg]
encrypt_cmd = gpg --quiet --encrypt --sign --default-recipient-self --armor
decrypt_cmd = gpg --quiet --decrypt

[passwords]
home = ~/.kip/passwords
len = 19
charset = {DEFAULT_CHARSET}

[tools]
clip = pyperclip

[cipher]
backend = command

[log]
file = ~/.kip/kip.log
"""


class Config(NamedTuple):
    secret_dir: str
    encrypt_cmd: str
    decrypt_cmd: str
    clip_cmd: str
    pw_len: int
    charset: str
    cipher_backend: str
    log_file: str


def _parser() -> configparser.ConfigParser:
    # No interpolation: '%' is a perfectly good password character
    return configparser.ConfigParser(interpolation=None)


def merge_layers(layers: Iterable[configparser.ConfigParser]) -> configparser.ConfigParser:
    """
    Merge parsed INI layers, first one being the defaults.

    Empty values in a later layer drop that layer's override.
    """
    layers = list(layers)
    merged = _parser()
    merged.read_dict(layers[0])
    for layer in layers[1:]:
        for section in layer.sections():
            if not merged.has_section(section):
                merged.add_section(section)
            for key, value in layer.items(section):
                if value:
                    merged.set(section, key, value)
                elif layers[0].has_option(section, key):
                    merged.set(section, key, layers[0].get(section, key))
                else:
                    merged.remove_option(section, key)
    return merged


def load_config(extra_paths: Iterable[str] = ()) -> Config:
    """
    Build the Config from defaults plus any config files that exist.

    Args:
        extra_paths: Files read after the system and user files

    Returns:
        Config with `~` expanded in every value

    Raises:
        ConfigError: If a file can't be parsed or a value is invalid
    """
    defaults = _parser()
    defaults.read_string(DEFAULT_CONFIG)
    layers = [defaults]

    for path in [SYSTEM_CONFIG, USER_CONFIG, *extra_paths]:
        path = os.path.expanduser(path)
        if not os.path.isfile(path):
            continue
        layer = _parser()
        try:
            layer.read(path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigError(f"Cannot parse {path}: {e}")
        layers.append(layer)

    return from_parser(merge_layers(layers))


def from_parser(parser: configparser.ConfigParser) -> Config:
    """Turn merged INI values into a Config."""
    def get(section: str, key: str) -> str:
        try:
            value = parser.get(section, key)
        except (configparser.NoSectionError, configparser.NoOptionError):
            raise ConfigError(f"Missing setting [{section}] {key}")
        return os.path.expanduser(value) if value.startswith("~") else value

    try:
        pw_len = int(get("passwords", "len"))
    except ValueError:
        raise ConfigError(f"[passwords] len must be a number, not {parser.get('passwords', 'len')!r}")
    if pw_len < 0:
        raise ConfigError(f"[passwords] len cannot be negative: {pw_len}")

    return Config(
        secret_dir=get("passwords", "home"),
        encrypt_cmd=get("gnupg", "encrypt_cmd"),
        decrypt_cmd=get("gnupg", "decrypt_cmd"),
        clip_cmd=get("tools", "clip"),
        pw_len=pw_len,
        charset=get("passwords", "charset"),
        cipher_backend=get("cipher", "backend"),
        log_file=get("log", "file"),
    )


def setup_logging(log_file: str, verbose: bool = False) -> logging.Logger:
    """
    Configure the application logger.

    The log rotates at 2 MB and keeps up to 3 backup files. Duplicate
    handlers are avoided if called more than once.
    """
    logger = logging.getLogger(APP_NAME)
    logger.setLevel(logging.DEBUG)

    if not logger.handlers:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        handler = RotatingFileHandler(
            log_file,
            maxBytes=2_000_000,
            backupCount=3,
            encoding="utf-8",
        )
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s: %(message)s")
        )
        logger.addHandler(handler)

        if verbose:
            console = logging.StreamHandler()
            console.setLevel(logging.DEBUG)
            console.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
            logger.addHandler(console)

    return logger
