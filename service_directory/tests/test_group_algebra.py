"""
Unit tests for GroupAlgebra.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_directory.app.cache import DirectoryLookupService
from service_directory.app.groups import GroupAlgebra
from shared.errors import InvalidArgumentError
from shared.test_helpers import DirectoryUser, FakeDirectoryConnector


class TestGroupAlgebra:
    """Test cases for GroupAlgebra."""

    @pytest.fixture
    def connector(self):
        return FakeDirectoryConnector()

    @pytest.fixture
    def lookup(self, connector):
        return DirectoryLookupService(connector)

    @pytest.fixture
    def algebra(self, lookup):
        """Create GroupAlgebra instance."""
        return GroupAlgebra(lookup)

    @pytest.mark.asyncio
    async def test_available_groups_sorted_and_cached(self, algebra, connector):
        """Test the catalogue is fetched once and returned sorted."""
        first = await algebra.get_available_groups()
        second = await algebra.get_available_groups()

        # Assertions
        assert first == ["A", "Admins", "Analysts", "B", "C", "GIS-Editors"]
        assert second == first
        assert connector.count("find_groups") == 1
        assert ("find_groups", "CN=*") in connector.calls

    @pytest.mark.asyncio
    async def test_available_groups_returns_snapshot(self, algebra, lookup):
        """Test callers cannot mutate the cached catalogue."""
        groups = await algebra.get_available_groups()
        groups.append("Injected")

        # Assertions
        assert "Injected" not in lookup.store.groups

    @pytest.mark.asyncio
    async def test_available_groups_refetched_after_flush(self, algebra, lookup, connector):
        """Test a flush empties the catalogue."""
        await algebra.get_available_groups()
        lookup.flush_stores()
        await algebra.get_available_groups()

        # Assertions
        assert connector.count("find_groups") == 2

    @pytest.mark.asyncio
    async def test_catalogue_fetched_across_flush_not_cached(self, algebra, lookup, connector):
        """Test a catalogue fetch that straddles a flush is returned but not stored."""
        fetch_groups = connector.find_groups

        async def find_groups_then_flush(query="CN=*"):
            groups = await fetch_groups(query)
            lookup.flush_stores()
            return groups

        connector.find_groups = find_groups_then_flush
        groups = await algebra.get_available_groups()

        # Assertions
        assert "Admins" in groups
        assert lookup.store.groups == set()

    @pytest.mark.asyncio
    async def test_available_groups_failure_not_cached(self, algebra, lookup, connector):
        """Test a failed catalogue fetch returns nothing and is retried next time."""
        connector.fail = True
        assert await algebra.get_available_groups() == []
        assert lookup.store.groups == set()

        connector.fail = False

        # Assertions
        assert "Admins" in await algebra.get_available_groups()

    @pytest.mark.asyncio
    async def test_common_groups(self, algebra):
        """Test the intersection of two users' groups."""
        assert await algebra.find_common_groups_for_users(["u1", "u2"]) == ["B"]

    @pytest.mark.asyncio
    async def test_common_groups_single_user(self, algebra):
        """Test one user's groups are their own intersection."""
        assert await algebra.find_common_groups_for_users(["jdoe"]) == ["Analysts", "GIS-Editors"]

    @pytest.mark.asyncio
    async def test_common_groups_across_three_users(self):
        """Test the intersection narrows with every additional user."""
        connector = FakeDirectoryConnector([
            DirectoryUser("a", "a@corp.example.com", "A", ["Zeta", "Alpha", "Mid"]),
            DirectoryUser("b", "b@corp.example.com", "B", ["Mid", "Zeta", "Alpha", "Other"]),
            DirectoryUser("c", "c@corp.example.com", "C", ["Alpha", "Zeta"]),
        ])
        algebra = GroupAlgebra(DirectoryLookupService(connector))

        # Assertions
        assert await algebra.find_common_groups_for_users(["a", "b", "c"]) == ["Alpha", "Zeta"]
        assert await algebra.find_common_groups_for_users(["a", "b"]) == ["Alpha", "Mid", "Zeta"]

    @pytest.mark.asyncio
    async def test_common_groups_with_unknown_user_is_empty(self, algebra):
        """Test an unknown user has no groups in common with anyone."""
        assert await algebra.find_common_groups_for_users(["jdoe", "ghost"]) == []

    @pytest.mark.asyncio
    async def test_common_groups_reuses_memoized_membership(self, algebra, connector):
        """Test repeated identities share the membership lookup."""
        await algebra.find_common_groups_for_users(["jdoe", "jsmith", "jdoe"])

        # Assertions
        assert connector.count("get_group_membership_for_user") == 2

    @pytest.mark.asyncio
    async def test_common_groups_requires_users(self, algebra):
        """Test an empty input is rejected."""
        with pytest.raises(InvalidArgumentError):
            await algebra.find_common_groups_for_users([])
