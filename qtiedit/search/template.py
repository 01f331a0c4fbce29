r"""
Replacement templates for regex search/replace.

Two forms are recognized, scanning left to right:

  \$    a literal "$" (the backslash is consumed)
  $N    capture group N; $0 is the whole match. A group that did not take
        part in the match, or that the pattern does not have, expands to "".

Everything else, including a "$" not followed by a digit, is copied as is.
"""
from __future__ import annotations

import re
from typing import List, Union

from qtiedit.errors import InvalidPattern

DIGITS = "0123456789"


def group_text(match: re.Match, index: int) -> str:
    if index > match.re.groups:
        return ""
    return match.group(index) or ""

def expand_template(match: re.Match, template: str) -> str:
    out: List[str] = []
    i = 0
    n = len(template)
    while i < n:
        ch = template[i]
        if ch == "\\" and i + 1 < n and template[i + 1] == "$":
            out.append("$")
            i += 2
            continue
        if ch == "$" and i + 1 < n and template[i + 1] in DIGITS:
            j = i + 1
            while j < n and template[j] in DIGITS:
                j += 1
            out.append(group_text(match, int(template[i + 1:j])))
            i = j
            continue
        out.append(ch)
        i += 1
    return "".join(out)

def compile_pattern(pattern: str, case_sensitive: bool = True) -> re.Pattern:
    try:
        return re.compile(pattern, 0 if case_sensitive else re.IGNORECASE)
    except re.error as e:
        raise InvalidPattern(pattern, str(e)) from e

def replace_with_template(text: str, pattern: Union[str, re.Pattern], template: str) -> str:
    regex = compile_pattern(pattern) if isinstance(pattern, str) else pattern
    return regex.sub(lambda m: expand_template(m, template), text)
