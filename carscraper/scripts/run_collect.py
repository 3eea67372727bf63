from pathlib import Path
import sys
import argparse
import logging

# Ensure project root is on path when executing this file directly
ROOT = Path(__file__).resolve().parent.parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from carscraper.listingminer.collector import collect_listings, load_scrape_input
from carscraper.listingminer.logging_config import setup_logging


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description='Collect one window of result pages, resuming from the stored state')
    ap.add_argument('--debug', action='store_true', help='Enable debug logging')
    ap.add_argument('--input', type=Path, help='YAML/JSON scrape input (default: carscraper/config/input.yml)')
    ap.add_argument('--radius', type=int, help='Search radius in km (50000 = nationwide)')
    ap.add_argument('--current-page', type=int, help='Start at this page, ignoring the stored state')
    ap.add_argument('--max-pages', type=int, help='Last result page to visit')
    ap.add_argument('--max-results', type=int, help='Max listings processed per page')
    args = ap.parse_args(argv)
    setup_logging(debug=args.debug)
    logger = logging.getLogger('collector')
    scrape_input = load_scrape_input(args.input, overrides={
        'searchRadius': args.radius,
        'currentPage': args.current_page,
        'maxPages': args.max_pages,
        'maxResults': args.max_results,
    })
    logger.info('Starting listing collector with UI filters...')
    summary = collect_listings(scrape_input)
    logger.info(f"Run finished status={summary['status']} saved={summary.get('listings_saved', 0)}")
    return 1 if summary['status'] == 'error' else 0


if __name__ == '__main__':
    sys.exit(main())
