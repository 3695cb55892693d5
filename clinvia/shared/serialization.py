"""Row serialization for JSON responses"""

from typing import Any

from sqlalchemy import inspect


def to_dict(row: Any) -> dict[str, Any]:
    """Column values of an ORM row keyed by attribute name"""
    return {attr.key: getattr(row, attr.key) for attr in inspect(row).mapper.column_attrs}
