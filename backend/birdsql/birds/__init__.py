"""
The ``birds`` table: the Bird record, its queries, and the tour stages.

Usage:
    from birdsql.birds import Bird, insert_bird, query_rows
    from birdsql.db import pool_scope

    with pool_scope() as db:
        insert_bird(db, Bird(species="rooster", description="wakes you up in the morning"))
        for bird in query_rows(db):
            print(bird)
"""

from birdsql.birds.models import Bird, scan_birds
from birdsql.birds.queries import (
    delete_bird,
    find_bird,
    find_birds_prepared,
    insert_bird,
    query_row,
    query_rows,
    query_with_deadline,
    sleep,
)

__all__ = [
    "Bird",
    "scan_birds",
    "query_row",
    "query_rows",
    "find_bird",
    "insert_bird",
    "delete_bird",
    "find_birds_prepared",
    "query_with_deadline",
    "sleep",
]
