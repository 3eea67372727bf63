from pathlib import Path
import argparse, json, sys

ROOT = Path(__file__).resolve().parent.parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from carscraper.listingminer.settings import SETTINGS
from carscraper.listingminer.state_store import open_store
from carscraper.listingminer.scheduler import PaginationScheduler
from carscraper.listingminer.history import read_history


def show_state(scheduler: PaginationScheduler):
    state = scheduler.load()
    if state is None:
        print("No stored run state (next run starts at page 1)")
        return
    print(json.dumps(state.to_wire(), indent=2))


def show_history(limit: int):
    for rec in read_history(SETTINGS.history_path, limit=limit):
        print(f"{rec.get('timestamp_utc')}\t{rec.get('status')}\tpages={rec.get('pages_planned')}\tsaved={rec.get('listings_saved', 0)}")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Inspect or clear the persisted pagination state")
    parser.add_argument('--clear', action='store_true', help='Delete the stored state so the next run starts at page 1')
    parser.add_argument('--history', type=int, metavar='N', help='Also print the last N run summaries')
    args = parser.parse_args(argv)
    store = open_store(SETTINGS.state_store_name, SETTINGS.store_dir)
    # max_pages is irrelevant for inspection
    scheduler = PaginationScheduler(store, max_pages=1)
    if args.clear:
        if scheduler.reset():
            print(f"Cleared state in {store.path}")
        else:
            print("Nothing to clear")
    else:
        show_state(scheduler)
    if args.history:
        show_history(args.history)

if __name__ == '__main__':
    main()
