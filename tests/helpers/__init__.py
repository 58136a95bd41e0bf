"""Test helper utilities for the authentication test suite."""

from tests.helpers.factories import (
    NEW_PASSWORD,
    ORGANIZATION_ID,
    TEST_PASSWORD,
    create_test_user,
    fast_hasher,
    make_settings,
)
from tests.helpers.fake_redis import FakeRedis

__all__ = [
    "FakeRedis",
    "NEW_PASSWORD",
    "ORGANIZATION_ID",
    "TEST_PASSWORD",
    "create_test_user",
    "fast_hasher",
    "make_settings",
]
