"""
SQL helpers shared by the engine services.

COUNT(*) through SQLModel may come back as a plain int or as a 1-tuple/Row
depending on the SQLAlchemy version; scalar_int() accepts both.
"""
from typing import Any

from sqlmodel import Session, func, select


def scalar_int(x: Any) -> int:
    """Coerce an aggregate result (int, Row or 1-tuple) to int."""
    try:
        return int(x[0])
    except (TypeError, IndexError):
        return int(x)


def count_where(session: Session, column: Any, *criteria: Any) -> int:
    """SELECT COUNT(column) ... WHERE criteria."""
    return scalar_int(session.exec(select(func.count(column)).where(*criteria)).one())
