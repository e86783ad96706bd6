"""
Triathlon Series Results Scraper
================================
Pulls every year's results for one race series from the results
provider and writes one CSV per year.

How it works:
  1. The event group page embeds its data as a Next.js __NEXT_DATA__
     JSON island. props.pageProps.subevents lists one entry per year.
  2. Each sub-event's results come from the provider's JSON API:
       {API_BASE}/api/results?wtc_eventid=<uuid>
  3. Records are flattened to a fixed 33-column schema (normalizer.py)
     and saved as {base_name}_{year}.csv.

Usage:
  # Interactive: prompts for the URL and a base name
  python -m tri_results.results_scraper

  # Non-interactive
  python -m tri_results.results_scraper \\
      --url=https://www.ironman.com/races/im-louisville/results --name=louisville

  # Only some years, plus one combined file
  python -m tri_results.results_scraper --years=2017-2023 --combine

  # Page blocks plain HTTP clients: render it in headless Chromium
  python -m tri_results.results_scraper --mode=playwright
"""

import argparse
import asyncio
import json
import re
import sys
from pathlib import Path
from typing import NamedTuple, Optional

import pandas as pd
import requests

try:
    from playwright.async_api import async_playwright
except ImportError:
    async_playwright = None

from tri_results.errors import (
    FetchError,
    InputError,
    ParseError,
    ResultsScraperError,
    StructureError,
)
from tri_results.normalizer import (
    lookup,
    normalize_results,
    sanitize_base_name,
    to_csv,
    year_from_name,
)

# ─────────────────────────────────────────────────────────────────────────────
# CONFIGURATION
# ─────────────────────────────────────────────────────────────────────────────
API_BASE        = "https://labs-v2.competitor.com"
RESULTS_PATH    = "/api/results"
EVENT_ID_PARAM  = "wtc_eventid"

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/100.0.4896.127 Safari/537.36"
)

OUTPUT_DIR      = Path(".")
REQUEST_TIMEOUT = None   # None = leave it to requests
BROWSER_TIMEOUT_MS = 30000
# ─────────────────────────────────────────────────────────────────────────────

NEXT_DATA_RE = re.compile(
    r'<script id="__NEXT_DATA__" type="application/json">(.*?)</script>',
    re.DOTALL,
)


class SubEvent(NamedTuple):
    identifier: str
    year: str
    name: str = ""


def _http(session):
    return session if session is not None else requests


def _is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


def _decode_html(resp) -> str:
    """Decode a page body. Next.js pages are UTF-8 unless the server says otherwise."""
    encoding = requests.utils.get_encoding_from_headers(resp.headers)
    if not encoding or encoding.upper() == "ISO-8859-1":
        encoding = "utf-8"
    try:
        return resp.content.decode(encoding, errors="replace")
    except LookupError:
        # unknown charset label
        return resp.content.decode("utf-8", errors="replace")


# ══════════════════════════════════════════════════════════════════════════════
# PAGE LOADER
# Fetches the event group page and pulls out the __NEXT_DATA__ document.
# ══════════════════════════════════════════════════════════════════════════════

def fetch_page_html(url: str, session=None, timeout=REQUEST_TIMEOUT) -> str:
    resp = _http(session).get(
        url,
        headers={"User-Agent": USER_AGENT},
        timeout=timeout,
    )
    if not _is_success(resp.status_code):
        raise FetchError(f"Failed to fetch URL. Status: {resp.status_code}")
    return _decode_html(resp)


async def fetch_page_html_playwright(url: str, timeout=REQUEST_TIMEOUT) -> str:
    """Render the page in headless Chromium and return the resulting HTML."""
    if async_playwright is None:
        print("ERROR: playwright not installed.")
        print("  Run: pip install playwright && playwright install chromium")
        raise FetchError("playwright is required for --mode=playwright")

    timeout_ms = int(timeout * 1000) if timeout else BROWSER_TIMEOUT_MS

    async with async_playwright() as pw:
        browser = await pw.chromium.launch(headless=True)
        try:
            page = await browser.new_page(user_agent=USER_AGENT)
            response = await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
            if response is not None and not response.ok:
                raise FetchError(f"Failed to fetch URL. Status: {response.status}")
            return await page.content()
        finally:
            await browser.close()


def extract_next_data(html: str):
    """
    Pull the __NEXT_DATA__ JSON island out of a page and parse it.

    Raises:
        ParseError: no __NEXT_DATA__ script tag in the page
        json.JSONDecodeError: the tag is there but its body is not JSON
    """
    match = NEXT_DATA_RE.search(html or "")
    if not match or not match.group(1):
        raise ParseError("Could not find __NEXT_DATA__ script tag in the fetched HTML.")

    print("Found JSON data. Parsing...")
    return json.loads(match.group(1))


def fetch_next_data(url: str, session=None, timeout=REQUEST_TIMEOUT, mode: str = "direct"):
    print(f"Fetching main event group data from: {url}")
    if mode == "playwright":
        html = asyncio.run(fetch_page_html_playwright(url, timeout=timeout))
    else:
        html = fetch_page_html(url, session=session, timeout=timeout)
    return extract_next_data(html)


# ══════════════════════════════════════════════════════════════════════════════
# EVENT ENUMERATOR
# ══════════════════════════════════════════════════════════════════════════════

def extract_subevents(next_data) -> list[SubEvent]:
    """
    List the yearly sub-events of an event group, in page order.

    Entries without an event id or without a 20xx year in their name are
    skipped with a warning. Raises StructureError when there is no
    subevents list at all.
    """
    found = lookup(next_data, ("props", "pageProps", "subevents"))
    raw_events = found.value if found.present else None
    if not isinstance(raw_events, list) or not raw_events:
        raise StructureError(
            'Could not find "subevents" in the JSON data. Cannot find list of events.'
        )

    print(f"Found {len(raw_events)} total events to scrape.")

    events = []
    for raw in raw_events:
        if not isinstance(raw, dict):
            raw = {}
        event_id = raw.get("wtc_eventid")
        name = raw.get("wtc_name") or raw.get("wtc_externaleventname") or ""
        year = year_from_name(name)

        if not event_id or not year:
            print(f"Found an event with missing uuid or year. Skipping. (Name: {raw.get('wtc_name')})")
            continue

        events.append(SubEvent(str(event_id), year, str(name)))

    return events


# ══════════════════════════════════════════════════════════════════════════════
# RESULT FETCHER
# ══════════════════════════════════════════════════════════════════════════════

def fetch_results_for_event(event_id: str, session=None, api_base: str = API_BASE,
                            timeout=REQUEST_TIMEOUT) -> list:
    """
    Fetch the raw result records for one sub-event.

    Returns:
        The resultsJson.value list (may be empty)

    Raises:
        FetchError: non-2xx status
        ValueError: body is not JSON
        StructureError: body has no resultsJson.value list
    """
    print(f"Fetching results from API for event: {event_id}")
    resp = _http(session).get(
        api_base.rstrip("/") + RESULTS_PATH,
        params={EVENT_ID_PARAM: event_id},
        headers={
            "User-Agent": USER_AGENT,
            "Accept": "application/json",
        },
        timeout=timeout,
    )
    if not _is_success(resp.status_code):
        raise FetchError(f"API request failed with status: {resp.status_code}")

    data = resp.json()
    found = lookup(data, ("resultsJson", "value"))
    if not found.present or not isinstance(found.value, list):
        raise StructureError('API response did not contain "resultsJson.value".')
    return found.value


# ══════════════════════════════════════════════════════════════════════════════
# EXPORT
# ══════════════════════════════════════════════════════════════════════════════

def output_path_for(base_name: str, year: str, output_dir=OUTPUT_DIR) -> Path:
    return Path(output_dir) / f"{base_name}_{year}.csv"


def write_csv_text(text: str, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="", encoding="utf-8") as f:
        f.write(text)
    return path


def process_subevent(event: SubEvent, base_name: str, output_dir=OUTPUT_DIR,
                     session=None, api_base: str = API_BASE,
                     timeout=REQUEST_TIMEOUT) -> Optional[Path]:
    """
    Fetch, normalize and save one year. Returns the written path, or None
    when the API had no results for that year.
    """
    raw_results = fetch_results_for_event(
        event.identifier, session=session, api_base=api_base, timeout=timeout
    )
    if not raw_results:
        print(f"No results found for {event.year}. Skipping.")
        return None

    rows = normalize_results(raw_results)
    path = write_csv_text(to_csv(rows), output_path_for(base_name, event.year, output_dir))
    print(f"  ✓ Saved {len(rows):,} results → {path}")
    return path


def combine_yearly(year_paths: list, output_path: Path) -> Path:
    """
    Stack the per-year CSVs into one file with a leading Year column.

    Args:
        year_paths: [(year, path), ...] in the order they should appear
        output_path: Where to write the combined CSV
    """
    frames = []
    for year, path in year_paths:
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
        df.insert(0, "Year", str(year))
        frames.append(df)

    combined = pd.concat(frames, ignore_index=True)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    combined.to_csv(output_path, index=False, encoding="utf-8", lineterminator="\n")
    print(f"[Export] {len(combined):,} results across {len(frames)} years → {output_path}")
    return output_path


# ══════════════════════════════════════════════════════════════════════════════
# MAIN
# ══════════════════════════════════════════════════════════════════════════════

class Console:
    """Line-based prompt I/O. Passed into run() so tests can script answers."""

    def __init__(self, input_fn=input):
        self._input = input_fn

    def ask(self, prompt: str) -> str:
        try:
            return self._input(prompt)
        except EOFError:
            return ""

    def close(self):
        # input() holds no resources
        pass


def parse_years(text: Optional[str]) -> Optional[list]:
    """"2017-2025" -> [2017, ..., 2025]; "2024" -> [2024]; None -> None."""
    if not text:
        return None
    if "-" in text:
        start, end = (int(part) for part in text.split("-", 1))
        if start > end:
            raise ValueError(f"year range is reversed: {text}")
        return list(range(start, end + 1))
    return [int(text)]


def run(console, url: Optional[str] = None, base_name: Optional[str] = None,
        output_dir=OUTPUT_DIR, mode: str = "direct", years: Optional[list] = None,
        api_base: str = API_BASE, timeout=REQUEST_TIMEOUT, combine: bool = False,
        session=None) -> int:
    """
    Scrape every year of one event group.

    Page-level failures abort with exit code 1 and no files written.
    A failure for one year is logged and the next year is attempted.
    """
    try:
        if url is None:
            url = console.ask("Please paste the main event group URL: ")
        url = url.strip()
        if not url.startswith("http"):
            raise InputError("Invalid URL.")

        if base_name is None:
            base_name = console.ask("Enter a base name for the event (e.g., louisville): ")
        base_name = sanitize_base_name(base_name)

        print(f"\nTriathlon Series Results Scraper")
        print(f"Mode:   {mode}")
        print(f"Output: {Path(output_dir) / (base_name + '_<year>.csv')}")
        if years is not None:
            print(f"Years:  {years[0]}–{years[-1]}" if years else "Years:  (none)")
        print("=" * 60 + "\n")

        next_data = fetch_next_data(url, session=session, timeout=timeout, mode=mode)
        events = extract_subevents(next_data)
    except (ResultsScraperError, requests.RequestException, ValueError) as e:
        print(f"An error occurred: {e}", file=sys.stderr)
        return 1
    finally:
        console.close()

    written = []
    for event in events:
        if years is not None and int(event.year) not in years:
            print(f"Skipping {event.year} (outside --years).")
            continue

        print(f"--- Processing Event: {event.year} ---")
        try:
            path = process_subevent(
                event, base_name, output_dir=output_dir,
                session=session, api_base=api_base, timeout=timeout,
            )
        except (ResultsScraperError, requests.RequestException, ValueError, OSError) as e:
            print(
                f"Failed to process {event.year} (UUID: {event.identifier}). Error: {e}",
                file=sys.stderr,
            )
            continue
        if path is not None:
            written.append((event.year, path))

    if combine:
        if written:
            try:
                combine_yearly(written, Path(output_dir) / f"{base_name}_all_years.csv")
            except (OSError, ValueError) as e:
                print(f"[Export] Failed to write combined file. Error: {e}", file=sys.stderr)
        else:
            print("[Export] No yearly files written, nothing to combine.")

    print(f"\nDone. {len(written)} of {len(events)} years saved.")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Triathlon Series Results Scraper",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m tri_results.results_scraper
  python -m tri_results.results_scraper --url=https://... --name=louisville
  python -m tri_results.results_scraper --years=2017-2023 --combine
  python -m tri_results.results_scraper --mode=playwright
        """
    )
    parser.add_argument("--url", type=str, default=None,
                        help="Event group results URL (prompted for if omitted)")
    parser.add_argument("--name", type=str, default=None,
                        help="Base name for output files, e.g. louisville (prompted for if omitted)")
    parser.add_argument("--output-dir", type=Path, default=OUTPUT_DIR,
                        help="Directory for the CSV files (default: current directory)")
    parser.add_argument(
        "--mode",
        choices=["direct", "playwright"],
        default="direct",
        help="direct=plain HTTP GET for the group page | playwright=render it in Chromium"
    )
    parser.add_argument("--years", type=str, default=None,
                        help="Only these years: range (2017-2025) or single year (2024)")
    parser.add_argument("--api-base", type=str, default=API_BASE,
                        help=f"Results API host (default: {API_BASE})")
    parser.add_argument("--timeout", type=float, default=REQUEST_TIMEOUT,
                        help="HTTP timeout in seconds (default: none)")
    parser.add_argument("--combine", action="store_true",
                        help="Also write {name}_all_years.csv with every saved year")
    args = parser.parse_args(argv)

    try:
        years = parse_years(args.years)
    except ValueError:
        parser.error(f"invalid --years value: {args.years}")

    return run(
        Console(),
        url=args.url,
        base_name=args.name,
        output_dir=args.output_dir,
        mode=args.mode,
        years=years,
        api_base=args.api_base,
        timeout=args.timeout,
        combine=args.combine,
    )


def cli():
    sys.exit(main())


if __name__ == "__main__":
    cli()
