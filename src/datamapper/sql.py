"""
SQL text processing for named parameter markers.

Command text names its parameters with `@name`, `:name` or `$name`
markers. Drivers disagree on which of those they accept, so the dialect
strategies rewrite markers through this module:

    SQL → Tokenize → Rewrite markers → Driver SQL

Markers inside string literals and comments are left alone, as is the
PostgreSQL `::` cast operator.
"""
import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum, auto

from datamapper.exceptions import QueryError


class TokenType(Enum):
    """Token types identified during SQL parsing."""
    SQL_TEXT = auto()
    STRING_LITERAL = auto()
    COMMENT = auto()
    CAST = auto()
    MARKER = auto()


@dataclass(slots=True)
class Token:
    """Token from SQL parsing."""
    type: TokenType
    text: str
    name: str | None = None


_TOKENIZE = re.compile(r"""
    (?P<string>'(?:[^']|'')*'|"(?:[^"]|"")*")
    |(?P<comment>--[^\n]*|/\*.*?\*/)
    |(?P<cast>::)
    |(?P<sysvar>@@\w+)
    |(?P<marker>[@:$](?P<name>[A-Za-z_][A-Za-z0-9_]*))
""", re.VERBOSE | re.DOTALL)

_PROCEDURE_NAME = re.compile(r'^[A-Za-z_][A-Za-z0-9_$]*(\.[A-Za-z_][A-Za-z0-9_$]*)*$')


def tokenize_sql(sql: str) -> list[Token]:
    """Split SQL into text, literal, comment, cast and marker tokens.

    Concatenating the token texts gives back the original SQL.
    """
    tokens = []
    last_end = 0

    for match in _TOKENIZE.finditer(sql):
        start, end = match.span()
        if start > last_end:
            tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:start]))

        if match.group('string'):
            tokens.append(Token(TokenType.STRING_LITERAL, match.group(0)))
        elif match.group('comment'):
            tokens.append(Token(TokenType.COMMENT, match.group(0)))
        elif match.group('cast'):
            tokens.append(Token(TokenType.CAST, match.group(0)))
        elif match.group('sysvar'):
            tokens.append(Token(TokenType.SQL_TEXT, match.group(0)))
        else:
            tokens.append(Token(TokenType.MARKER, match.group(0), match.group('name')))
        last_end = end

    if last_end < len(sql):
        tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:]))

    return tokens


def find_markers(sql: str) -> list[str]:
    """Names of the parameter markers in SQL, in order of appearance.
    """
    return [t.name for t in tokenize_sql(sql) if t.type == TokenType.MARKER]


def rewrite_markers(sql: str, replace: Callable[[str], str | None],
                    escape_percent: bool = False) -> str:
    """Rewrite parameter markers.

    Parameters
        sql: SQL text with `@name` / `:name` / `$name` markers
        replace: called with each marker name; returns the replacement text,
            or None to keep the marker as written
        escape_percent: double every `%` outside markers, comments included
            (pyformat drivers scan the whole text)

    Returns
        Rewritten SQL
    """
    parts = []
    for token in tokenize_sql(sql):
        if token.type == TokenType.MARKER:
            replacement = replace(token.name)
            if replacement is not None:
                parts.append(replacement)
                continue
        text = token.text
        if escape_percent:
            text = text.replace('%', '%%')
        parts.append(text)
    return ''.join(parts)


def validate_procedure_name(name: str) -> str:
    """Check a stored procedure name is a plain, optionally qualified identifier.
    """
    name = (name or '').strip()
    if not _PROCEDURE_NAME.match(name):
        raise QueryError(f'Invalid stored procedure name: {name!r}')
    return name
