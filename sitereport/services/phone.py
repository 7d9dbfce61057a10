import re

REPORTER_KEY_WIDTH = 10

_NON_DIGITS = re.compile(r"\D")


def normalize_reporter_key(raw: str | None) -> str:
    """Collapse a phone-number-like identifier into a fixed-width reporter key.

    Keeps the last 10 digits and left-pads with zeros, so "+905325630299",
    "05325630299" and "5325630299" all map to "5325630299". Numbers sharing
    the same 10-digit suffix collide.
    """
    digits = _NON_DIGITS.sub("", (raw or "").lstrip("+"))
    return digits[-REPORTER_KEY_WIDTH:].rjust(REPORTER_KEY_WIDTH, "0")
