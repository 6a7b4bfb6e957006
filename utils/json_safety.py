"""Repair steps for untrusted model text that should contain one JSON object.

Each step is a pure ``str -> str`` function. Every step is idempotent and
leaves already-valid JSON byte-identical, so steps can be appended to
``REPAIR_STEPS`` without re-checking the others.
"""

import json
import re
from typing import Callable, Tuple

from utils.logging import logger

FENCE_LINE_RE = re.compile(r"^[ \t]*```[A-Za-z0-9_-]*[ \t]*$\n?", re.MULTILINE)
LEADING_FENCE_RE = re.compile(r"^\s*```[A-Za-z0-9_-]*")
TRAILING_FENCE_RE = re.compile(r"```\s*$")


def strip_fences(txt: str) -> str:
    """Remove Markdown code-fence delimiters.

    A line holding only a fence, or a fence glued to the start or end of the
    text, cannot occur in valid JSON, so valid input is returned unchanged.
    """
    if "```" not in (txt or ""):
        return txt or ""
    out = FENCE_LINE_RE.sub("", txt)
    out = LEADING_FENCE_RE.sub("", out)
    out = TRAILING_FENCE_RE.sub("", out)
    return out.strip() if out != txt else txt


def _is_json(txt: str) -> bool:
    try:
        json.loads(txt)
    except ValueError:
        return False
    return True


def _scan_number(txt: str, i: int) -> Tuple[str, int]:
    """Read a numeric literal at *i*, dropping commas between digit runs."""
    n = len(txt)
    buf = []
    j = i
    while True:
        while j < n and (txt[j].isdigit() or txt[j] in "-+.eE"):
            buf.append(txt[j])
            j += 1
        if j + 1 < n and txt[j] == "," and txt[j + 1].isdigit():
            j += 1
            continue
        return "".join(buf), j


def collapse_thousands_separators(txt: str) -> str:
    """Turn ``"votes": 805,374`` into ``"votes": 805374``.

    Only numbers in object value position are touched: there a comma followed
    by a digit is never a legal separator. Commas inside strings and between
    array elements (``[1,2,3]``) are left alone. Text before the first ``{``
    is copied verbatim so stray quotes in chatter do not derail the scan.
    """
    start = txt.find("{")
    if start == -1 or _is_json(txt):
        return txt
    out = [txt[:start]]
    stack: list[str] = []
    in_string = escaped = False
    after_colon = False
    i, n = start, len(txt)
    while i < n:
        ch = txt[i]
        if in_string:
            out.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            i += 1
            continue
        if (ch.isdigit() or ch == "-") and after_colon and stack and stack[-1] == "{":
            number, i = _scan_number(txt, i)
            out.append(number)
            after_colon = False
            continue
        if ch == '"':
            in_string = True
            after_colon = False
        elif ch in "{[":
            stack.append(ch)
            after_colon = False
        elif ch in "}]":
            if stack:
                stack.pop()
            after_colon = False
        elif ch == ":":
            after_colon = True
        elif not ch.isspace():
            after_colon = False
        out.append(ch)
        i += 1
    return "".join(out)


def strip_trailing_commas(txt: str) -> str:
    """Drop a comma that directly precedes ``}`` or ``]`` (whitespace allowed)."""
    out = []
    in_string = escaped = False
    n = len(txt)
    for i, ch in enumerate(txt):
        if in_string:
            out.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == ",":
            j = i + 1
            while j < n and txt[j].isspace():
                j += 1
            if j < n and txt[j] in "}]":
                continue
        out.append(ch)
    return "".join(out)


def _matching_brace(txt: str, start: int) -> int:
    """Index of the ``}`` closing the object opened at *start*, or -1."""
    depth = 0
    in_string = escaped = False
    for i in range(start, len(txt)):
        ch = txt[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return -1


def trim_to_object(txt: str) -> str:
    """Cut chatter before the first ``{`` and after its matching ``}``.

    Surrounding whitespace is kept when there is nothing else to cut, and a
    top-level array is returned untouched.
    """
    head = txt.lstrip()
    if not head or head[0] == "[":
        return txt
    if _is_json(txt):
        return txt
    start = txt.find("{")
    if start == -1:
        return txt
    out = txt if not txt[:start].strip() else txt[start:]
    start = out.find("{")
    end = _matching_brace(out, start)
    if end == -1:
        end = out.rfind("}")
    if end != -1 and out[end + 1 :].strip():
        out = out[: end + 1]
    return out


REPAIR_STEPS: Tuple[Callable[[str], str], ...] = (
    strip_fences,
    collapse_thousands_separators,
    strip_trailing_commas,
    trim_to_object,
)


def repair_text(raw: str) -> str:
    """Apply every repair step in order."""
    txt = raw or ""
    for step in REPAIR_STEPS:
        txt = step(txt)
    if txt != raw:
        logger.info("json_repair engaged before=%d after=%d", len(raw or ""), len(txt))
    return txt
