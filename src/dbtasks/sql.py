"""
SQL text processing for ``@name`` parameters.

Commands are written with ``@name`` placeholders; psycopg expects
``%(name)s``. Rewriting happens in a single tokenizing pass so placeholders
inside string literals, quoted identifiers, dollar-quoted bodies and
comments are left alone, as are Postgres operators that contain ``@``
(``@>``, ``<@``, ``@@``).

Main entry points:
- `prepare_sql(sql, names)` - rewrite known ``@name`` placeholders for psycopg
- `find_parameter_names(sql)` - ``@name`` placeholders outside literals
- `infer_parameter_name(sql)` - first ``@`` token, single-parameter helper
- `procedure_call(name, keys)` - ``CALL`` text for a stored procedure
"""
import re
from dataclasses import dataclass
from enum import Enum, auto

__all__ = [
    'tokenize_sql',
    'prepare_sql',
    'find_parameter_names',
    'infer_parameter_name',
    'procedure_call',
    'quote_identifier',
]


class TokenType(Enum):
    """Token types identified during SQL parsing."""
    SQL_TEXT = auto()
    QUOTED = auto()             # literals, identifiers, dollar quotes, comments
    NAMED_PH = auto()           # @name
    PERCENT = auto()


@dataclass(slots=True)
class Token:
    """Token from SQL parsing."""
    type: TokenType
    text: str
    start: int
    end: int
    name: str | None = None


_TOKENIZE = re.compile(r"""
    (?P<quoted>
        '(?:[^']|'')*'
        |"(?:[^"]|"")*"
        |\$(?P<tag>[A-Za-z_]\w*|)\$.*?\$(?P=tag)\$
        |--[^\n]*
        |/\*.*?\*/
    )
    |(?P<named>(?<![\w@$])@(?P<pname>[A-Za-z_]\w*))
    |(?P<percent>%)
""", re.VERBOSE | re.DOTALL)

_LEADING_NAME = re.compile(r'@[A-Za-z_]\w*')


def tokenize_sql(sql: str) -> list[Token]:
    """Parse SQL into tokens in a single pass.

    Parameters
        sql: SQL query string

    Returns
        List of tokens preserving all SQL text
    """
    tokens = []
    last_end = 0

    for match in _TOKENIZE.finditer(sql):
        start, end = match.span()

        if start > last_end:
            tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:start], last_end, start))

        if match.group('quoted') is not None:
            tokens.append(Token(TokenType.QUOTED, match.group(0), start, end))
        elif match.group('named'):
            tokens.append(Token(TokenType.NAMED_PH, match.group(0), start, end,
                                name=match.group('pname')))
        else:
            tokens.append(Token(TokenType.PERCENT, match.group(0), start, end))
        last_end = end

    if last_end < len(sql):
        tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:], last_end, len(sql)))

    return tokens


def prepare_sql(sql: str, names: set[str] | frozenset[str]) -> str:
    """Rewrite ``@name`` placeholders to psycopg's ``%(name)s`` style.

    Only placeholders whose name (without ``@``) is in ``names`` are
    rewritten. When there are names to bind, every literal ``%`` is doubled
    because psycopg reads the whole query text as a format string.

    >>> prepare_sql("select * from t where a = @a and b like 'x%'", {'a'})
    "select * from t where a = %(a)s and b like 'x%%'"
    """
    if not names:
        return sql

    result = []
    for token in tokenize_sql(sql):
        if token.type == TokenType.NAMED_PH and token.name in names:
            result.append(f'%({token.name})s')
        else:
            result.append(token.text.replace('%', '%%'))
    return ''.join(result)


def find_parameter_names(sql: str) -> list[str]:
    """Return ``@name`` placeholders outside literals, in order, without repeats.
    """
    seen: list[str] = []
    for token in tokenize_sql(sql):
        if token.type == TokenType.NAMED_PH and f'@{token.name}' not in seen:
            seen.append(f'@{token.name}')
    return seen


def infer_parameter_name(sql: str) -> str:
    """Return the first whitespace-separated token that starts with ``@``.

    Only meant for single-parameter statements. The split is purely on
    whitespace, so a ``@`` inside a string literal or an operator such as
    ``@>`` written without spaces will be picked up. Trailing punctuation
    (``;``, ``,``, ``)``) is dropped.

    Raises
        ValueError: If no token starts with ``@``
    """
    for word in sql.split():
        if word.startswith('@'):
            match = _LEADING_NAME.match(word)
            if match:
                return match.group(0)
    raise ValueError(f'No @parameter found in SQL: {sql!r}')


def quote_identifier(identifier: str) -> str:
    """Safely quote a database identifier.

    Dotted names are quoted per part: ``app.add_user`` -> ``"app"."add_user"``.
    """
    return '.'.join('"' + part.replace('"', '""') + '"' for part in identifier.split('.'))


def procedure_call(name: str, keys: list[str]) -> str:
    """Build ``CALL`` text for a stored procedure with named placeholders.

    >>> procedure_call('app.add_user', ['name', 'age'])
    'CALL "app"."add_user"(%(name)s, %(age)s)'
    """
    placeholders = ', '.join(f'%({key})s' for key in keys)
    return f'CALL {quote_identifier(name)}({placeholders})'
