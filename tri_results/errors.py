"""
errors.py
=========
Exception types raised by the results scraper.

Page-level failures (bad URL, page fetch, __NEXT_DATA__ parse, missing
subevents) abort the run. Per-year failures are caught by the runner and
logged, and the loop moves on to the next year.
"""


class ResultsScraperError(Exception):
    """Base class for every error the scraper raises itself."""


class InputError(ResultsScraperError):
    """User input (URL, base name) is unusable."""


class FetchError(ResultsScraperError):
    """An HTTP request returned a non-success status."""


class ParseError(ResultsScraperError):
    """The expected JSON island is missing from the page."""


class StructureError(ResultsScraperError):
    """Valid JSON, but an expected key or list is missing."""
