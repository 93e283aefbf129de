"""Tests for debounced, per-field suggestion sessions.

Each test drives its scenario with asyncio.run and a short debounce window;
the fake search records calls and can hold responses back.
"""
import asyncio

import pytest

from addresscascade import HierarchyEntry, SuggestionCoordinator, UnknownFieldError, resolve_strictness

DEBOUNCE = 0.02


def make_coordinator(levels, fake_search, **kwargs):
    strictness = resolve_strictness(levels, 'countyDistrict')
    return SuggestionCoordinator(levels, strictness, fake_search, debounce_seconds=DEBOUNCE, **kwargs)


def names(entries):
    return [entry.name for entry in entries]


class TestDebounce:
    def test_rapid_typing_issues_one_search(self, levels, fake_search):
        """T, Te, Tes, Test within the window -> exactly one lookup with 'Test'."""
        fake_search.results['Test'] = [HierarchyEntry(name='Testville', stable_id='d-1')]
        coordinator = make_coordinator(levels, fake_search)

        async def scenario():
            for query in ('T', 'Te', 'Tes', 'Test'):
                coordinator.search('countyDistrict', query)
                await asyncio.sleep(0)
            await coordinator.wait_idle()

        asyncio.run(scenario())

        assert fake_search.calls == [('countyDistrict', 'Test', 20, None)]
        assert names(coordinator.get_suggestions('countyDistrict')) == ['Testville']

    def test_search_waits_for_debounce_window(self, levels, fake_search, wait_until):
        coordinator = make_coordinator(levels, fake_search)

        async def scenario():
            coordinator.search('stateProvince', 'Ma')
            await asyncio.sleep(0)
            assert fake_search.calls == []
            await wait_until(lambda: fake_search.calls)

        asyncio.run(scenario())

        assert fake_search.queries == ['Ma']

    def test_each_keystroke_issues_new_token(self, levels, fake_search):
        coordinator = make_coordinator(levels, fake_search)

        async def scenario():
            coordinator.search('country', 'I')
            first = coordinator.get_token('country')
            coordinator.search('country', 'In')
            second = coordinator.get_token('country')
            await coordinator.wait_idle()
            return first, second

        first, second = asyncio.run(scenario())

        assert second > first
        assert coordinator.get_session('country').committed is True

    def test_limit_and_parent_id_are_passed(self, levels, fake_search):
        coordinator = make_coordinator(levels, fake_search, limit=5, parent_id_provider=lambda key: f'parent-of-{key}')

        async def scenario():
            coordinator.search('countyDistrict', 'Pu')
            await coordinator.wait_idle()

        asyncio.run(scenario())

        assert fake_search.calls == [('countyDistrict', 'Pu', 5, 'parent-of-countyDistrict')]


class TestStaleResults:
    def test_last_issued_wins_over_late_response(self, levels, fake_search, wait_until):
        """'A' answers after 'AB': the list must show 'AB' results, never 'A'."""
        fake_search.results['A'] = [HierarchyEntry(name='Assam', stable_id='s-1')]
        fake_search.results['AB'] = [HierarchyEntry(name='Abhayapuri', stable_id='s-2')]
        coordinator = make_coordinator(levels, fake_search)

        async def scenario():
            release_a = fake_search.gate('A')
            coordinator.search('stateProvince', 'A')
            await wait_until(lambda: fake_search.queries == ['A'])

            coordinator.search('stateProvince', 'AB')
            await wait_until(lambda: coordinator.get_suggestions('stateProvince'))
            assert names(coordinator.get_suggestions('stateProvince')) == ['Abhayapuri']

            release_a.set()
            await coordinator.wait_idle()

        asyncio.run(scenario())

        assert fake_search.queries == ['A', 'AB']
        assert names(coordinator.get_suggestions('stateProvince')) == ['Abhayapuri']

    def test_fields_do_not_interfere(self, levels, fake_search):
        fake_search.results['In'] = [HierarchyEntry(name='India', stable_id='c-1')]
        fake_search.results['Ma'] = [HierarchyEntry(name='Maharashtra', stable_id='s-1')]
        coordinator = make_coordinator(levels, fake_search)

        async def scenario():
            coordinator.search('country', 'In')
            coordinator.search('stateProvince', 'Ma')
            await coordinator.wait_idle()

        asyncio.run(scenario())

        assert sorted(fake_search.queries) == ['In', 'Ma']
        assert names(coordinator.get_suggestions('country')) == ['India']
        assert names(coordinator.get_suggestions('stateProvince')) == ['Maharashtra']

    def test_invalidated_in_flight_result_is_dropped(self, levels, fake_search, wait_until):
        fake_search.results['Ma'] = [HierarchyEntry(name='Maharashtra', stable_id='s-1')]
        coordinator = make_coordinator(levels, fake_search)

        async def scenario():
            release = fake_search.gate('Ma')
            coordinator.search('stateProvince', 'Ma')
            await wait_until(lambda: fake_search.calls)
            coordinator.invalidate('stateProvince')
            release.set()
            await coordinator.wait_idle()

        asyncio.run(scenario())

        assert coordinator.get_suggestions('stateProvince') == ()


class TestEmptyQuery:
    def test_empty_query_clears_immediately_without_search(self, levels, fake_search):
        fake_search.results['Ma'] = [HierarchyEntry(name='Maharashtra', stable_id='s-1')]
        cleared = []
        coordinator = make_coordinator(levels, fake_search, on_query_cleared=cleared.append)

        async def scenario():
            coordinator.search('stateProvince', 'Ma')
            await coordinator.wait_idle()
            assert coordinator.get_suggestions('stateProvince')

            coordinator.search('stateProvince', '')
            assert coordinator.get_suggestions('stateProvince') == ()
            assert cleared == ['stateProvince']
            await coordinator.wait_idle()

        asyncio.run(scenario())

        assert fake_search.queries == ['Ma']

    def test_empty_query_cancels_pending_search(self, levels, fake_search):
        coordinator = make_coordinator(levels, fake_search)

        async def scenario():
            coordinator.search('stateProvince', 'Ma')
            coordinator.search('stateProvince', '   ')
            await coordinator.wait_idle()
            await asyncio.sleep(DEBOUNCE * 2)

        asyncio.run(scenario())

        assert fake_search.calls == []


class TestScope:
    def test_free_text_fields_never_search(self, levels, fake_search):
        coordinator = make_coordinator(levels, fake_search)

        async def scenario():
            coordinator.search('postalCode', '4110')
            await coordinator.wait_idle()

        asyncio.run(scenario())

        assert fake_search.calls == []
        assert coordinator.get_session('postalCode') is None

    def test_unknown_field_raises(self, levels, fake_search):
        coordinator = make_coordinator(levels, fake_search)
        with pytest.raises(UnknownFieldError):
            coordinator.search('planet', 'Ea')

    def test_lookup_failure_is_absorbed(self, levels, fake_search):
        fake_search.errors['Ma'] = ConnectionError("backend down")
        coordinator = make_coordinator(levels, fake_search)

        async def scenario():
            coordinator.search('stateProvince', 'Ma')
            await coordinator.wait_idle()

        asyncio.run(scenario())

        assert coordinator.get_suggestions('stateProvince') == ()

    def test_server_dicts_are_parsed(self, levels, fake_search):
        fake_search.results['Pu'] = [
            {'name': 'Pune', 'uuid': 'd-1', 'userGeneratedId': None, 'parent': {'name': 'Maharashtra', 'uuid': 's-1'}},
        ]
        coordinator = make_coordinator(levels, fake_search)

        async def scenario():
            coordinator.search('countyDistrict', 'Pu')
            await coordinator.wait_idle()

        asyncio.run(scenario())

        (entry,) = coordinator.get_suggestions('countyDistrict')
        assert entry.stable_id == 'd-1'
        assert entry.label == 'Pune, Maharashtra'


class TestClearedDescendants:
    def test_clear_descendant_suggestions(self, levels, fake_search):
        fake_search.results['In'] = [HierarchyEntry(name='India', stable_id='c-1')]
        fake_search.results['Ma'] = [HierarchyEntry(name='Maharashtra', stable_id='s-1')]
        fake_search.results['Pu'] = [HierarchyEntry(name='Pune', stable_id='d-1')]
        coordinator = make_coordinator(levels, fake_search)

        async def scenario():
            for key, query in (('country', 'In'), ('stateProvince', 'Ma'), ('countyDistrict', 'Pu')):
                coordinator.search(key, query)
            await coordinator.wait_idle()
            coordinator.clear_descendant_suggestions('country')

        asyncio.run(scenario())

        assert names(coordinator.get_suggestions('country')) == ['India']
        assert coordinator.get_suggestions('stateProvince') == ()
        assert coordinator.get_suggestions('countyDistrict') == ()
        assert coordinator.is_cleared('stateProvince')

    def test_cleared_field_ignores_late_results_until_unmarked(self, levels, fake_search, wait_until):
        fake_search.results['Pu'] = [HierarchyEntry(name='Pune', stable_id='d-1')]
        coordinator = make_coordinator(levels, fake_search)

        async def scenario():
            coordinator.clear_descendant_suggestions('stateProvince')
            coordinator.search('countyDistrict', 'Pu')
            await coordinator.wait_idle()
            assert coordinator.get_suggestions('countyDistrict') == ()

            coordinator.search('countyDistrict', 'Pu')
            coordinator.unmark_cleared('countyDistrict')
            await coordinator.wait_idle()

        asyncio.run(scenario())

        assert names(coordinator.get_suggestions('countyDistrict')) == ['Pune']


class TestReset:
    def test_reset_invalidates_all_sessions(self, levels, fake_search, wait_until):
        fake_search.results['In'] = [HierarchyEntry(name='India', stable_id='c-1')]
        fake_search.results['Ma'] = [HierarchyEntry(name='Maharashtra', stable_id='s-1')]
        coordinator = make_coordinator(levels, fake_search)

        async def scenario():
            coordinator.search('country', 'In')
            await coordinator.wait_idle()
            release = fake_search.gate('Ma')
            coordinator.search('stateProvince', 'Ma')
            await wait_until(lambda: 'Ma' in fake_search.queries)

            coordinator.reset()
            release.set()
            await coordinator.wait_idle()

        asyncio.run(scenario())

        assert dict(coordinator.suggestions) == {}

    def test_aclose_cancels_in_flight_lookups(self, levels, fake_search, wait_until):
        coordinator = make_coordinator(levels, fake_search)

        async def scenario():
            fake_search.gate('Ma')
            coordinator.search('stateProvince', 'Ma')
            await wait_until(lambda: fake_search.calls)
            await coordinator.aclose()
            return coordinator.get_session('stateProvince')

        assert asyncio.run(scenario()) is None

    def test_on_change_notified(self, levels, fake_search):
        fake_search.results['In'] = [HierarchyEntry(name='India', stable_id='c-1')]
        coordinator = make_coordinator(levels, fake_search)
        seen = []
        coordinator.on_change(lambda suggestions: seen.append(dict(suggestions)))

        async def scenario():
            coordinator.search('country', 'In')
            await coordinator.wait_idle()

        asyncio.run(scenario())

        assert len(seen) == 1
        assert names(seen[0]['country']) == ['India']
