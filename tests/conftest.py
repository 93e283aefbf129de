"""Pytest configuration and shared fixtures."""
import asyncio

import pytest

from addresscascade import CascadeStateStore, HierarchyEntry, HierarchyLevel, LevelChain


ADDRESS_LEVELS = (
    HierarchyLevel('country', 'Country', required=True),
    HierarchyLevel('stateProvince', 'State', required=True),
    HierarchyLevel('countyDistrict', 'District'),
    HierarchyLevel('cityVillage', 'City'),
    HierarchyLevel('postalCode', 'Pincode'),
)


class FakeHierarchySearch:
    """Scripted stand-in for the hierarchy search endpoint.

    Records every call. Results are looked up by query; a query can be gated
    on an asyncio.Event to control when its response "arrives".
    """

    def __init__(self):
        self.calls = []
        self.results = {}
        self.errors = {}
        self._gates = {}

    def gate(self, query):
        """Hold responses for query until the returned event is set (call inside the loop)."""
        event = asyncio.Event()
        self._gates[query] = event
        return event

    async def __call__(self, level_key, query, limit, parent_stable_id=None):
        self.calls.append((level_key, query, limit, parent_stable_id))
        gate = self._gates.get(query)
        if gate is not None:
            await gate.wait()
        if query in self.errors:
            raise self.errors[query]
        return list(self.results.get(query, []))

    @property
    def queries(self):
        return [call[1] for call in self.calls]


async def eventually(predicate, timeout=2.0):
    """Yield to the loop until predicate() is true."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.001)


@pytest.fixture
def levels():
    """Five-level hierarchy, root first."""
    return LevelChain(ADDRESS_LEVELS)


@pytest.fixture
def store(levels):
    return CascadeStateStore(levels)


@pytest.fixture
def fake_search():
    return FakeHierarchySearch()


@pytest.fixture
def wait_until():
    return eventually


@pytest.fixture
def mumbai_entry():
    """A city entry with a complete ancestor chain."""
    return HierarchyEntry(
        name='Mumbai',
        stable_id='city-uuid-1',
        parent=HierarchyEntry(
            name='Mumbai District',
            stable_id='district-uuid-1',
            parent=HierarchyEntry(
                name='Maharashtra',
                stable_id='state-uuid-1',
                parent=HierarchyEntry(name='India', stable_id='country-uuid-1'),
            ),
        ),
    )
