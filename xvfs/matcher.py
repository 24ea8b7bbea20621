"""Simple grep supporting the ^ . * $ operators."""

from __future__ import annotations

import sys
from typing import Iterator, List, Optional, TextIO

_BUFSIZE = 1024


def match(pattern: str, text: str) -> bool:
    """Return True if ``pattern`` matches anywhere in ``text``."""
    if pattern.startswith("^"):
        return _matchhere(pattern, 1, text, 0)
    return any(_matchhere(pattern, 0, text, i) for i in range(len(text) + 1))


def _matchhere(pattern: str, pi: int, text: str, ti: int) -> bool:
    if pi == len(pattern):
        return True
    if pi + 1 < len(pattern) and pattern[pi + 1] == "*":
        return _matchstar(pattern[pi], pattern, pi + 2, text, ti)
    if pattern[pi] == "$" and pi + 1 == len(pattern):
        return ti == len(text)
    if ti < len(text) and pattern[pi] in (".", text[ti]):
        return _matchhere(pattern, pi + 1, text, ti + 1)
    return False


def _matchstar(c: str, pattern: str, pi: int, text: str, ti: int) -> bool:
    while True:
        if _matchhere(pattern, pi, text, ti):
            return True
        if ti < len(text) and (text[ti] == c or c == "."):
            ti += 1
        else:
            return False


def grep(pattern: str, stream: TextIO) -> Iterator[str]:
    """Yield the newline-terminated lines of ``stream`` that match ``pattern``.

    Reads through a fixed buffer: a read that holds no newline is dropped,
    and a final line without a newline is never reported.
    """
    buf = ""
    while True:
        chunk = stream.read(_BUFSIZE - 1 - len(buf))
        if not chunk:
            break
        buf += chunk
        *lines, rest = buf.split("\n")
        for line in lines:
            if match(pattern, line):
                yield line + "\n"
        buf = rest if lines else ""


def main(argv: Optional[List[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        sys.stderr.write("usage: grep pattern [file ...]\n")
        return 1
    pattern, *paths = args
    if not paths:
        sys.stdout.writelines(grep(pattern, sys.stdin))
        return 0
    for path in paths:
        try:
            f = open(path, encoding="utf-8", errors="replace", newline="")
        except OSError:
            sys.stdout.write(f"grep: cannot open {path}\n")
            return 1
        with f:
            sys.stdout.writelines(grep(pattern, f))
    return 0