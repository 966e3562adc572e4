"""
sap_odata.odata.query - OData query options
============================================

Fluent builder for OData v2 system query options.
"""

from __future__ import annotations

from typing import Dict, Sequence


def escape_odata_literal(value: str) -> str:
    """
    Escape a string value for use in OData $filter expressions.

    Examples
    --------
    >>> escape_odata_literal("O'Brien")
    "O''Brien"
    """
    return value.replace("'", "''")


def _join_csv(items: Sequence[str]) -> str:
    """Join items as comma-separated values, stripping whitespace."""
    return ",".join([s.strip() for s in items if s and s.strip()])


class QueryOptions:
    """
    Builder for ``$filter``, ``$select``, ``$top`` and friends.

    Examples
    --------
    >>> opts = QueryOptions().select(["Material", "MatType"]).top(5)
    >>> opts.build()
    {'$select': 'Material,MatType', '$top': '5'}
    """

    def __init__(self) -> None:
        self._params: Dict[str, str] = {}

    def format(self, fmt: str) -> "QueryOptions":
        self._params["$format"] = fmt
        return self

    def filter(self, expr: str) -> "QueryOptions":
        self._params["$filter"] = expr
        return self

    def select(self, fields: Sequence[str]) -> "QueryOptions":
        self._params["$select"] = _join_csv(fields)
        return self

    def expand(self, navigations: Sequence[str]) -> "QueryOptions":
        self._params["$expand"] = _join_csv(navigations)
        return self

    def order_by(self, field: str, asc: bool = True) -> "QueryOptions":
        """Add an ordering clause; repeated calls append."""
        clause = f"{field} {'asc' if asc else 'desc'}"
        current = self._params.get("$orderby")
        self._params["$orderby"] = f"{current},{clause}" if current else clause
        return self

    def top(self, n: int) -> "QueryOptions":
        self._params["$top"] = str(int(n))
        return self

    def skip(self, n: int) -> "QueryOptions":
        self._params["$skip"] = str(int(n))
        return self

    def inline_count(self, all_pages: bool = True) -> "QueryOptions":
        self._params["$inlinecount"] = "allpages" if all_pages else "none"
        return self

    def custom(self, key: str, value: str) -> "QueryOptions":
        """Set a non-system query option, e.g. ``custom("search", "pump")``."""
        self._params[key] = value
        return self

    def build(self) -> Dict[str, str]:
        return dict(self._params)
