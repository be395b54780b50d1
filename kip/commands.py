"""
kip - Commands

One value per user intent. The command-line front end builds exactly one of
these per run and hands it to Store.run().
"""

from typing import NamedTuple, Optional


class Get(NamedTuple):
    name: str
    reveal: bool = False


class Add(NamedTuple):
    name: str
    username: Optional[str] = None
    reveal: bool = False
    prompt_password: bool = False
    notes: Optional[str] = None


class Edit(NamedTuple):
    name: str
    username: Optional[str] = None
    reveal: bool = False
    prompt_password: bool = False
    notes: Optional[str] = None


class Del(NamedTuple):
    name: str


class Gen(NamedTuple):
    length: Optional[int] = None    # None: use the configured length


class List(NamedTuple):
    prefix: Optional[str] = None
