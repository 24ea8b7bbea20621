"""Decoder turning PC keyboard scan codes into character codes."""

from __future__ import annotations

from typing import Dict, List

SHIFT = 1 << 0
CTL = 1 << 1
ALT = 1 << 2
CAPSLOCK = 1 << 3
NUMLOCK = 1 << 4
SCROLLLOCK = 1 << 5
E0ESC = 1 << 6

KEY_HOME = 0xE0
KEY_END = 0xE1
KEY_UP = 0xE2
KEY_DN = 0xE3
KEY_LF = 0xE4
KEY_RT = 0xE5
KEY_PGUP = 0xE6
KEY_PGDN = 0xE7
KEY_INS = 0xE8
KEY_DEL = 0xE9


def _ctl(ch: str) -> int:
    return (ord(ch) - ord("@")) & 0xFF


def _table(base: List[int], extra: Dict[int, int]) -> List[int]:
    table = base + [0] * (256 - len(base))
    for code, value in extra.items():
        table[code] = value
    return table


_KEYPAD_TAIL = "\0" * 7 + "789-456+1" + "230." + "\0" * 4

_NORMAL = (
    "\0\x1b1234567890-=\b\t"
    "qwertyuiop[]\n\0as"
    "dfghjkl;'`\0\\zxcv"
    "bnm,./\0*\0 " + "\0" * 6 + _KEYPAD_TAIL
)
_SHIFTED = (
    "\0\x1b!@#$%^&*()_+\b\t"
    "QWERTYUIOP{}\n\0AS"
    'DFGHJKL:"~\0|ZXCV'
    "BNM<>?\0*\0 " + "\0" * 6 + _KEYPAD_TAIL
)
_CONTROL = "QWERTYUIOP\0\0\r\0ASDFGHJKL\0\0\0\0\\ZXCVBNM\0\0/\0\0"

_SPECIAL = {
    0xC8: KEY_UP,
    0xD0: KEY_DN,
    0xC9: KEY_PGUP,
    0xD1: KEY_PGDN,
    0xCB: KEY_LF,
    0xCD: KEY_RT,
    0x97: KEY_HOME,
    0xCF: KEY_END,
    0xD2: KEY_INS,
    0xD3: KEY_DEL,
}

NORMALMAP = _table([ord(c) for c in _NORMAL], {0x9C: ord("\n"), 0xB5: ord("/"), **_SPECIAL})
SHIFTMAP = _table([ord(c) for c in _SHIFTED], {0x9C: ord("\n"), 0xB5: ord("/"), **_SPECIAL})
CTLMAP = _table(
    [0] * 0x10 + [0 if c == "\0" else 13 if c == "\r" else _ctl(c) for c in _CONTROL],
    {0x9C: ord("\r"), 0xB5: _ctl("/"), **_SPECIAL},
)

SHIFTCODE = _table([], {0x1D: CTL, 0x2A: SHIFT, 0x36: SHIFT, 0x38: ALT, 0x9D: CTL, 0xB8: ALT})
TOGGLECODE = _table([], {0x3A: CAPSLOCK, 0x45: NUMLOCK, 0x46: SCROLLLOCK})

_CHARCODE = (NORMALMAP, SHIFTMAP, CTLMAP, CTLMAP)


class KeyboardDecoder:
    """Tracks modifier state across scan codes."""

    def __init__(self) -> None:
        self._shift = 0

    def feed(self, data: int) -> int:
        """Consume one scan code; return the character code, or 0 for none."""
        if not 0 <= data <= 0xFF:
            raise ValueError("scan code must be a byte")
        if data == 0xE0:
            self._shift |= E0ESC
            return 0
        if data & 0x80:
            data = data if self._shift & E0ESC else data & 0x7F
            self._shift &= ~(SHIFTCODE[data] | E0ESC)
            return 0
        if self._shift & E0ESC:
            data |= 0x80
            self._shift &= ~E0ESC

        self._shift |= SHIFTCODE[data]
        self._shift ^= TOGGLECODE[data]
        c = _CHARCODE[self._shift & (CTL | SHIFT)][data]
        if self._shift & CAPSLOCK:
            if ord("a") <= c <= ord("z"):
                c -= ord("a") - ord("A")
            elif ord("A") <= c <= ord("Z"):
                c += ord("a") - ord("A")
        return c