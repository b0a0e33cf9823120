"""MySQL client and national park repository."""

from .client import check_connection, execute_query, get_connection, get_cursor
from .repository import (
    NationalPark,
    NationalParkRepository,
    ParkIdentity,
    UniquenessPolicy,
    park_row_from_outcome,
)

__all__ = [
    # Client
    "get_connection",
    "get_cursor",
    "execute_query",
    "check_connection",
    # Repository
    "NationalPark",
    "NationalParkRepository",
    "ParkIdentity",
    "UniquenessPolicy",
    "park_row_from_outcome",
]
