"""Minimal formatted output understanding %d, %x, %p, %s, %c and %%."""

from __future__ import annotations

_DIGITS = "0123456789ABCDEF"
_MASK32 = 0xFFFFFFFF


def format_int(value: int, base: int = 10, signed: bool = True) -> str:
    """Render a 32-bit integer in ``base``, as signed or unsigned."""
    if not 2 <= base <= 16:
        raise ValueError("base must be between 2 and 16")
    x = value & _MASK32
    neg = False
    if signed and x >= 1 << 31:
        neg = True
        x = (1 << 32) - x
    digits = []
    while True:
        x, r = divmod(x, base)
        digits.append(_DIGITS[r])
        if x == 0:
            break
    if neg:
        digits.append("-")
    return "".join(reversed(digits))


def sprintf(fmt: str, *args) -> str:
    """Format ``args`` into ``fmt``; unknown sequences are printed as is."""
    remaining = iter(args)
    out = []

    def next_arg():
        try:
            return next(remaining)
        except StopIteration:
            raise ValueError("not enough arguments for format") from None

    in_spec = False
    for c in fmt:
        if not in_spec:
            if c == "%":
                in_spec = True
            else:
                out.append(c)
            continue
        if c == "d":
            out.append(format_int(next_arg(), 10, True))
        elif c in ("x", "p"):
            out.append(format_int(next_arg(), 16, False))
        elif c == "s":
            s = next_arg()
            out.append("(null)" if s is None else str(s))
        elif c == "c":
            ch = next_arg()
            out.append(chr(ch & 0xFF) if isinstance(ch, int) else str(ch)[:1])
        elif c == "%":
            out.append("%")
        else:
            out.append("%" + c)
        in_spec = False
    return "".join(out)