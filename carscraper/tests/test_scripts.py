from carscraper.scripts import run_collect, reset_state
from carscraper.listingminer.scheduler import STATE_KEY
from carscraper.listingminer.state_store import open_store


def test_run_collect_passes_overrides(monkeypatch):
    seen = {}

    def fake_collect(scrape_input):
        seen['input'] = scrape_input
        return {'status': 'ok', 'listings_saved': 0}

    monkeypatch.setattr(run_collect, 'collect_listings', fake_collect)
    assert run_collect.main(['--current-page', '7', '--max-results', '5']) == 0
    assert seen['input'].current_page == 7
    assert seen['input'].max_results == 5
    assert seen['input'].max_pages == 73


def test_run_collect_exit_code_on_error(monkeypatch):
    monkeypatch.setattr(run_collect, 'collect_listings', lambda scrape_input: {'status': 'error'})
    assert run_collect.main([]) == 1


def test_reset_state_clears_store(fast_settings, monkeypatch, capsys):
    monkeypatch.setattr(reset_state, 'SETTINGS', fast_settings)
    store = open_store(fast_settings.state_store_name, fast_settings.store_dir)
    store.set_value(STATE_KEY, {'nextPage': 9, 'lastScrapedDate': '2025-11-13'})
    reset_state.main([])
    assert '"nextPage": 9' in capsys.readouterr().out
    reset_state.main(['--clear'])
    assert 'Cleared state' in capsys.readouterr().out
    assert store.get_value(STATE_KEY) is None
    reset_state.main([])
    assert 'No stored run state' in capsys.readouterr().out
