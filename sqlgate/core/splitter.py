"""Quote- and comment-aware splitting of SQL scripts into statements.

The splitter is a single left-to-right scan over the script. It never parses
SQL; it only tracks enough lexical state to know whether a ``;`` ends a
statement:

- ``'...'`` and ``"..."`` literals, where a doubled quote (``''`` / ``""``)
  is an escaped quote rather than a terminator.
- ```...``` identifiers, which toggle on every backtick.
- ``-- ...`` line comments (closed by the next newline) and ``/* ... */``
  block comments (not nested; the first ``*/`` closes).

Comment text is kept verbatim in the emitted statements; SQLite ignores it at
execute time. Unterminated quotes or comments never raise: whatever has been
buffered when the input ends becomes the final statement.
"""

from __future__ import annotations

from enum import Enum


class LexState(Enum):
    """Exactly one of these is active at every character position."""

    NORMAL = "normal"
    SINGLE_QUOTE = "single_quote"
    DOUBLE_QUOTE = "double_quote"
    BACKTICK = "backtick"
    LINE_COMMENT = "line_comment"
    BLOCK_COMMENT = "block_comment"


_QUOTE_STATES = {
    "'": LexState.SINGLE_QUOTE,
    '"': LexState.DOUBLE_QUOTE,
}


def _flush(buffer: list[str], statements: list[str]) -> None:
    statement = "".join(buffer).strip()
    if statement:
        statements.append(statement)
    buffer.clear()


def split_sql_statements(script: str) -> list[str]:
    """Split *script* on top-level semicolons.

    Returns the trimmed, non-empty statements in script order. Empty segments
    such as ``;;`` are dropped.
    """

    statements: list[str] = []
    buffer: list[str] = []
    state = LexState.NORMAL
    length = len(script)
    index = 0

    while index < length:
        char = script[index]
        following = script[index + 1] if index + 1 < length else ""

        if state is LexState.LINE_COMMENT:
            buffer.append(char)
            if char == "\n":
                state = LexState.NORMAL
            index += 1
            continue

        if state is LexState.BLOCK_COMMENT:
            buffer.append(char)
            if char == "*" and following == "/":
                buffer.append(following)
                index += 1
                state = LexState.NORMAL
            index += 1
            continue

        if state is LexState.NORMAL:
            if char == "-" and following == "-":
                buffer.append("--")
                index += 2
                state = LexState.LINE_COMMENT
                continue
            if char == "/" and following == "*":
                buffer.append("/*")
                index += 2
                state = LexState.BLOCK_COMMENT
                continue

        quote_state = _QUOTE_STATES.get(char)
        if quote_state is not None and state in (LexState.NORMAL, quote_state):
            buffer.append(char)
            if state is quote_state and following == char:
                # Doubled quote inside a literal is an escaped quote.
                buffer.append(following)
                index += 2
                continue
            state = LexState.NORMAL if state is quote_state else quote_state
            index += 1
            continue

        if char == "`" and state in (LexState.NORMAL, LexState.BACKTICK):
            buffer.append(char)
            state = LexState.NORMAL if state is LexState.BACKTICK else LexState.BACKTICK
            index += 1
            continue

        if char == ";" and state is LexState.NORMAL:
            _flush(buffer, statements)
            index += 1
            continue

        buffer.append(char)
        index += 1

    _flush(buffer, statements)
    return statements
