"""
Domain enums shared by the query contract, the backends and the factory.
"""

from enum import Enum


class ProviderType(str, Enum):
    """Backend discriminator read from the provider configuration."""

    LOCAL = "local"
    RELATIONAL = "relational"


class SortOrder(str, Enum):
    """Sort direction for list queries."""

    ASC = "ASC"
    DESC = "DESC"


class SearchPolicy(str, Enum):
    """
    How free-text search combines with the caller's filter.

    REPLACE: the search OR-clause replaces the filter-derived constraints.
    AND: both must hold.

    Reference constraints (get_many_reference target) always apply.
    """

    REPLACE = "replace"
    AND = "and"


class Operation(str, Enum):
    """The nine operations of the query contract."""

    GET_LIST = "get_list"
    GET_ONE = "get_one"
    GET_MANY = "get_many"
    GET_MANY_REFERENCE = "get_many_reference"
    CREATE = "create"
    UPDATE = "update"
    UPDATE_MANY = "update_many"
    DELETE = "delete"
    DELETE_MANY = "delete_many"


READ_OPERATIONS = frozenset(
    op.value
    for op in (
        Operation.GET_LIST,
        Operation.GET_ONE,
        Operation.GET_MANY,
        Operation.GET_MANY_REFERENCE,
    )
)

WRITE_OPERATIONS = frozenset(op.value for op in Operation) - READ_OPERATIONS
