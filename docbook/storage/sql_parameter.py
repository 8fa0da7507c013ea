"""
SQL Parameter Binder for parameterized SQL execution.

This module provides the ParameterBinder class which converts
PostgreSQL-style $N placeholders to SQLAlchemy named binds (:pN) and
builds the bind dictionary for safe query execution. Values are always
sent to the driver out-of-band; statement text is never interpolated.
"""

import re
from typing import Any, Sequence

from .errors import QueryError


class ParameterError(QueryError):
    """Placeholder/parameter mismatch detected before execution."""
    pass


class ParameterBinder:
    """
    Converts PostgreSQL-style $N placeholders to SQLAlchemy :pN binds.

    PostgreSQL uses $1, $2, $3 (1-indexed, can be reused)
    SQLAlchemy text() uses :name (named, can be reused)

    Example:
        >>> binder = ParameterBinder()
        >>> query, params = binder.bind(
        ...     "SELECT * FROM users WHERE email = $1 AND role = $2",
        ...     ["alice@example.com", "doctor"]
        ... )
        >>> query
        'SELECT * FROM users WHERE email = :p1 AND role = :p2'
        >>> params
        {'p1': 'alice@example.com', 'p2': 'doctor'}
    """

    # $N placeholders (group 1), or a quoted literal/identifier to skip.
    # Comments and dollar-quoted bodies are not skipped.
    PLACEHOLDER_PATTERN: re.Pattern[str] = re.compile(
        r"'(?:[^']|'')*'"
        r'|"(?:[^"]|"")*"'
        r"|\$(\d+)"
    )

    def bind(
        self,
        query: str,
        params: Sequence[Any] = (),
    ) -> tuple[str, dict[str, Any]]:
        """
        Convert $N placeholders to :pN binds.

        Args:
            query: SQL query with $1, $2, $3 placeholders
            params: Positional parameter values ($1 refers to params[0])

        Returns:
            Tuple of (query, bind_dict). Reused placeholders map to the
            same bind name, so each value is sent once.

        Raises:
            ParameterError: If $0 is used or a placeholder has no value
        """
        placeholders = self.extract_placeholders(query)

        if not placeholders:
            return query, {}

        self._check(placeholders, params)

        # Escaped so text() does not read "$1::uuid" as the bind ":p1:"
        bound_query = query.replace("::", "\\:\\:")
        bound_query = self.PLACEHOLDER_PATTERN.sub(self._substitute, bound_query)
        bind_params = {
            f"p{number}": params[number - 1]
            for number in sorted(set(placeholders))
        }
        return bound_query, bind_params

    def extract_placeholders(self, query: str) -> list[int]:
        """
        Extract $N placeholder numbers outside quoted literals.

        Example:
            >>> ParameterBinder().extract_placeholders("x = $2 AND y = $1")
            [2, 1]
        """
        return [
            int(match.group(1))
            for match in self.PLACEHOLDER_PATTERN.finditer(query)
            if match.group(1) is not None
        ]

    @staticmethod
    def _substitute(match: re.Match) -> str:
        if match.group(1) is None:
            return match.group(0)
        return f":p{int(match.group(1))}"

    def _check(self, placeholders: list[int], params: Sequence[Any]) -> None:
        if 0 in placeholders:
            raise ParameterError(
                "Placeholder $0 is invalid. Placeholders start at $1.",
                details={"invalid_placeholder": 0},
            )

        max_placeholder = max(placeholders)
        if max_placeholder > len(params):
            raise ParameterError(
                f"Query uses ${max_placeholder} but only "
                f"{len(params)} params provided",
                details={
                    "max_placeholder": max_placeholder,
                    "params_provided": len(params),
                },
            )
