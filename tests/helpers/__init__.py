"""Test helper utilities for gigmatch tests."""

from .factories import (
    FakeTransport,
    FixedClock,
    make_listing,
    make_notification,
    make_saved_query,
    make_user,
    memory_database,
    seed_listing,
    seed_user,
)

__all__ = [
    "FakeTransport",
    "FixedClock",
    "make_listing",
    "make_notification",
    "make_saved_query",
    "make_user",
    "memory_database",
    "seed_listing",
    "seed_user",
]
