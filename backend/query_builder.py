"""
Query Builder Module
====================
Query construction for Flask endpoints with dynamic filtering.

Usage:
    qb = QueryBuilder("SELECT * FROM jobs")
    qb.add_filter("user_id = ?", user_id)
    qb.add_filter("status = ?", request.args.get("status"))
    qb.add_search(["title", "company", "description"], request.args.get("q"))
    qb.order_by("created_at DESC")
    query, params = qb.build()
    conn.execute(query, params)
"""

from typing import Any, List, Optional, Tuple


class QueryBuilder:
    """
    Fluent builder for SELECT statements with optional WHERE clauses.

    Filters whose value is None or "" are skipped, so request arguments can be
    passed straight through.
    """

    def __init__(self, base_query: str):
        self.base_query = base_query.rstrip()
        self.filters: List[Tuple[str, Any]] = []
        self._order_clause: Optional[str] = None
        self._limit: Optional[int] = None

    def add_filter(
        self,
        condition: str,
        value: Any,
        skip_none: bool = True,
        skip_empty: bool = True,
    ) -> "QueryBuilder":
        """
        Add a WHERE condition if value is present.

        Args:
            condition: SQL condition with one ? placeholder (e.g., "status = ?")
            value: The parameter value.

        Returns:
            self for method chaining
        """
        if skip_none and value is None:
            return self
        if skip_empty and value == "":
            return self
        self.filters.append((condition, value))
        return self

    def add_in_filter(self, column: str, values: Optional[List[Any]]) -> "QueryBuilder":
        """Add `column IN (...)`; skipped when values is empty."""
        if not values:
            return self
        placeholders = ", ".join("?" for _ in values)
        self.filters.append((f"{column} IN ({placeholders})", tuple(values)))
        return self

    def add_search(self, columns: List[str], term: Optional[str]) -> "QueryBuilder":
        """
        Case-insensitive substring match across several columns (OR-ed).

        Returns:
            self for method chaining
        """
        if not term or not term.strip():
            return self
        pattern = f"%{term.strip().lower()}%"
        condition = "(" + " OR ".join(f"LOWER({c}) LIKE ?" for c in columns) + ")"
        self.filters.append((condition, tuple(pattern for _ in columns)))
        return self

    def order_by(self, clause: str) -> "QueryBuilder":
        """ORDER BY clause without the keyword (e.g., "created_at DESC")."""
        self._order_clause = clause
        return self

    def limit(self, n: Optional[int]) -> "QueryBuilder":
        self._limit = n
        return self

    def build(self) -> Tuple[str, List[Any]]:
        """
        Build the final query string and parameter list.

        Returns:
            (query_string, params_list) ready for execute()
        """
        parts = [self.base_query]
        params: List[Any] = []

        if self.filters:
            parts.append("WHERE 1=1")
            for condition, value in self.filters:
                parts.append(f"AND {condition}")
                # Multi-placeholder conditions carry a tuple of values
                if isinstance(value, tuple):
                    params.extend(value)
                else:
                    params.append(value)

        if self._order_clause:
            parts.append(f"ORDER BY {self._order_clause}")

        if self._limit is not None:
            parts.append(f"LIMIT {int(self._limit)}")

        return " ".join(parts), params
