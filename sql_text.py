"""Quote- and comment-aware scanning helpers for MySQL dump text."""

from __future__ import annotations

import re

_DELIMITER_RE = re.compile(r"DELIMITER[ \t]+(\S+)[ \t]*(?:\r?\n|$)", flags=re.I)
_LEADING_COMMENT_RE = re.compile(r"\A(?:\s+|--(?=\s|\Z)[^\n]*(?:\n|\Z)|#[^\n]*(?:\n|\Z)|/\*(?!!).*?\*/)", flags=re.S)

IDENTIFIER_PATTERN = r"(?:`(?:[^`]|``)+`|\"[^\"]+\"|[\w$]+)"
QUALIFIED_NAME_PATTERN = rf"{IDENTIFIER_PATTERN}(?:\s*\.\s*{IDENTIFIER_PATTERN})?"


def split_statements(text: str) -> list[str]:
    """Split dump text into statements on the active delimiter.

    Delimiters inside quoted strings, quoted identifiers and comments are not
    split points. ``DELIMITER xx`` lines switch the delimiter and are not
    statements themselves. Leading comments are stripped from every
    statement and comment-only fragments are dropped.
    """
    statements: list[str] = []
    delimiter = ";"
    start = 0
    idx = 0
    length = len(text)
    at_line_start = True

    def emit(end: int) -> None:
        stmt = strip_leading_comments(text[start:end]).strip()
        if stmt:
            statements.append(stmt)

    while idx < length:
        ch = text[idx]

        # DELIMITER is a client directive, only honoured where a statement starts.
        if at_line_start and ch in "dD" and not strip_leading_comments(text[start:idx]).strip():
            m = _DELIMITER_RE.match(text, idx)
            if m:
                delimiter = m.group(1)
                idx = m.end()
                start = idx
                continue

        if ch in " \t\r":
            idx += 1
            continue
        if ch == "\n":
            at_line_start = True
            idx += 1
            continue
        at_line_start = False

        if ch in "'\"`":
            idx = skip_quoted(text, idx)
            continue
        end = skip_comment(text, idx)
        if end != idx:
            idx = end
            continue
        if text.startswith(delimiter, idx):
            emit(idx)
            idx += len(delimiter)
            start = idx
            continue
        idx += 1

    emit(length)
    return statements


def skip_quoted(text: str, idx: int) -> int:
    """Return the index just past the quoted run starting at ``idx``."""
    quote = text[idx]
    pos = idx + 1
    length = len(text)
    while pos < length:
        ch = text[pos]
        if ch == "\\" and quote != "`":
            pos += 2
            continue
        if ch == quote:
            if pos + 1 < length and text[pos + 1] == quote:
                pos += 2
                continue
            return pos + 1
        pos += 1
    return length


def skip_comment(text: str, idx: int) -> int:
    """Index just past a comment starting at ``idx``, or ``idx`` when none does.

    ``-- `` and ``#`` comments end before their newline. ``/*! ... */``
    conditional comments hold executable SQL and are not skipped.
    """
    length = len(text)
    if text.startswith("#", idx) or (text.startswith("--", idx) and (idx + 2 >= length or text[idx + 2] in " \t\r\n")):
        nl = text.find("\n", idx)
        return length if nl < 0 else nl
    if text.startswith("/*", idx) and not text.startswith("/*!", idx):
        end = text.find("*/", idx + 2)
        return length if end < 0 else end + 2
    return idx


def strip_leading_comments(text: str) -> str:
    while True:
        m = _LEADING_COMMENT_RE.match(text)
        if not m or not m.group(0):
            return text
        text = text[m.end():]


def strip_comments(text: str) -> str:
    """Remove comments outside quoted text, keeping conditional comments."""
    out: list[str] = []
    start = 0
    idx = 0
    length = len(text)
    while idx < length:
        if text[idx] in "'\"`":
            idx = skip_quoted(text, idx)
            continue
        end = skip_comment(text, idx)
        if end != idx:
            out.append(text[start:idx].rstrip(" \t"))
            out.append(" ")
            idx = start = end
            continue
        idx += 1
    out.append(text[start:])
    return "".join(out)


def mask_literals(text: str) -> str:
    """Blank out quoted literals and comments, keeping offsets intact.

    Conditional comments are blanked too.
    """
    out: list[str] = []
    idx = 0
    length = len(text)
    while idx < length:
        ch = text[idx]
        if ch in "'\"`":
            end = skip_quoted(text, idx)
        elif ch == "/" and text.startswith("/*", idx):
            end = text.find("*/", idx + 2)
            end = length if end < 0 else end + 2
        else:
            end = skip_comment(text, idx)
        if end != idx:
            out.append(" " * (end - idx))
            idx = end
            continue
        out.append(ch)
        idx += 1
    return "".join(out)


def is_balanced(text: str) -> bool:
    depth = 0
    for ch in mask_literals(text):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                return False
    return depth == 0


def find_closing_paren(text: str, open_idx: int) -> int:
    """Index of the parenthesis closing the one at ``open_idx``, or -1."""
    depth = 0
    idx = open_idx
    length = len(text)
    while idx < length:
        ch = text[idx]
        if ch in "'\"`":
            idx = skip_quoted(text, idx)
            continue
        end = skip_comment(text, idx)
        if end != idx:
            idx = end
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return idx
        idx += 1
    return -1


def split_sql_list(expr: str) -> list[str]:
    """Split on commas outside parentheses, quoted text and comments."""
    expr = expr.strip()
    if not expr:
        return []

    out: list[str] = []
    buf_start = 0
    depth = 0
    idx = 0
    length = len(expr)
    while idx < length:
        ch = expr[idx]
        if ch in "'\"`":
            idx = skip_quoted(expr, idx)
            continue
        end = skip_comment(expr, idx)
        if end != idx:
            idx = end
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(0, depth - 1)
        elif ch == "," and depth == 0:
            token = expr[buf_start:idx].strip()
            if token:
                out.append(token)
            buf_start = idx + 1
        idx += 1

    token = expr[buf_start:].strip()
    if token:
        out.append(token)
    return out


def unquote_identifier(name: str) -> str:
    name = name.strip()
    if len(name) >= 2 and name[0] == name[-1] and name[0] in "`\"'":
        inner = name[1:-1]
        return inner.replace(name[0] * 2, name[0])
    return name


def unquote_qualified(name: str) -> str:
    """Table name of a possibly schema-qualified identifier."""
    parts = re.findall(IDENTIFIER_PATTERN, name)
    if not parts:
        return unquote_identifier(name)
    return unquote_identifier(parts[-1])


def quote_identifier(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


def parse_identifier_list(expr: str) -> tuple[str, ...]:
    """Column names of a key column list such as ``(`a`(10), `b` DESC)``."""
    expr = expr.strip()
    if expr.startswith("(") and expr.endswith(")"):
        expr = expr[1:-1]
    names: list[str] = []
    for item in split_sql_list(expr):
        m = re.match(IDENTIFIER_PATTERN, item.strip())
        if m:
            names.append(unquote_identifier(m.group(0)))
    return tuple(names)
