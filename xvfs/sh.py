"""Parser for shell command lines.

A line is parsed into a tree of commands: plain commands with their
arguments, redirections, pipelines, sequences (``;``) and background
jobs (``&``), with parentheses for grouping.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Tuple, Union

from .sysfile import OpenMode

MAXARGS = 10

WHITESPACE = " \t\r\n\v"
SYMBOLS = "<|>&;()"


class ParseError(Exception):
    """Raised for a command line that cannot be parsed."""


@dataclass
class ExecCmd:
    """A program name followed by its arguments."""

    argv: List[str] = field(default_factory=list)


@dataclass
class RedirCmd:
    """Run ``cmd`` with descriptor ``fd`` opened on ``file`` in ``mode``."""

    cmd: "Command"
    file: str
    mode: OpenMode
    fd: int


@dataclass
class PipeCmd:
    """Output of ``left`` feeds the input of ``right``."""

    left: "Command"
    right: "Command"


@dataclass
class ListCmd:
    """Run ``left``, wait for it, then run ``right``."""

    left: "Command"
    right: "Command"


@dataclass
class BackCmd:
    """Run ``cmd`` without waiting for it."""

    cmd: "Command"


Command = Union[ExecCmd, RedirCmd, PipeCmd, ListCmd, BackCmd]


def _skip_space(s: str, pos: int) -> int:
    while pos < len(s) and s[pos] in WHITESPACE:
        pos += 1
    return pos


def gettoken(s: str, pos: int = 0) -> Tuple[str, str, int]:
    """Read the token starting at or after ``pos``.

    Returns ``(kind, text, newpos)``.  ``kind`` is ``""`` at the end of the
    line, the symbol itself for ``| ( ) ; & < >``, ``"+"`` for ``>>`` and
    ``"a"`` for a word.  ``newpos`` lies past any whitespace that follows.
    """
    pos = _skip_space(s, pos)
    start = pos
    if pos >= len(s):
        kind = ""
    else:
        c = s[pos]
        if c in "|();&<":
            kind = c
            pos += 1
        elif c == ">":
            kind = ">"
            pos += 1
            if pos < len(s) and s[pos] == ">":
                kind = "+"
                pos += 1
        else:
            kind = "a"
            while pos < len(s) and s[pos] not in WHITESPACE and s[pos] not in SYMBOLS:
                pos += 1
    text = s[start:pos]
    return kind, text, _skip_space(s, pos)


class _Parser:
    def __init__(self, line: str) -> None:
        self.s = line
        self.pos = 0

    def peek(self, toks: str) -> bool:
        self.pos = _skip_space(self.s, self.pos)
        return self.pos < len(self.s) and self.s[self.pos] in toks

    def next(self) -> Tuple[str, str]:
        kind, text, self.pos = gettoken(self.s, self.pos)
        return kind, text

    def line(self) -> Command:
        cmd = self.pipe()
        while self.peek("&"):
            self.next()
            cmd = BackCmd(cmd)
        if self.peek(";"):
            self.next()
            cmd = ListCmd(cmd, self.line())
        return cmd

    def pipe(self) -> Command:
        cmd = self.exec()
        if self.peek("|"):
            self.next()
            cmd = PipeCmd(cmd, self.pipe())
        return cmd

    def redirs(self, cmd: Command) -> Command:
        while self.peek("<>"):
            kind, _ = self.next()
            file_kind, file = self.next()
            if file_kind != "a":
                raise ParseError("missing file for redirection")
            if kind == "<":
                cmd = RedirCmd(cmd, file, OpenMode.RDONLY, 0)
            else:
                cmd = RedirCmd(cmd, file, OpenMode.WRONLY | OpenMode.CREATE, 1)
        return cmd

    def block(self) -> Command:
        if not self.peek("("):
            raise ParseError("parseblock")
        self.next()
        cmd = self.line()
        if not self.peek(")"):
            raise ParseError("syntax - missing )")
        self.next()
        return self.redirs(cmd)

    def exec(self) -> Command:
        if self.peek("("):
            return self.block()
        ecmd = ExecCmd()
        ret: Command = self.redirs(ecmd)
        while not self.peek("|)&;"):
            kind, text = self.next()
            if kind == "":
                break
            if kind != "a":
                raise ParseError("syntax")
            ecmd.argv.append(text)
            if len(ecmd.argv) >= MAXARGS:
                raise ParseError("too many args")
            ret = self.redirs(ret)
        return ret


def parse_command(line: str) -> Command:
    """Parse a whole command line into a command tree."""
    parser = _Parser(line)
    cmd = parser.line()
    parser.peek("")
    if parser.pos != len(line):
        raise ParseError(f"leftovers: {line[parser.pos:]}")
    return cmd