"""
normalizer.py
=============
Field mapping and CSV rendering for triathlon result records.

Kept free of network code so the column table can be tested on its own
and reused by anything that already holds raw API records.
"""

import csv
import io
import json
import re
from typing import Any, Callable, NamedTuple, Optional


class Lookup(NamedTuple):
    """Outcome of a nested lookup: whether the path resolved, and to what."""
    present: bool
    value: Any = None


MISSING = Lookup(False)


class FieldSpec(NamedTuple):
    """One output column and where its value comes from."""
    column: str
    path: tuple = ()
    fallback: Optional[tuple] = None
    derive: Optional[Callable[[dict], Any]] = None


def _status(record: dict) -> str:
    if _usable(lookup(record, ("wtc_dnf",))):
        return "DNF"
    if _usable(lookup(record, ("wtc_dq",))):
        return "DQ"
    return "FIN"


# Output schema for every yearly CSV. Order here is the column order on disk.
FIELDS = (
    FieldSpec("Bib",           ("bib",)),
    FieldSpec("Name",          ("athlete",)),
    FieldSpec("Gender",        ("wtc_ContactId", "gendercode_formatted")),
    FieldSpec("City",          ("wtc_ContactId", "address1_city")),
    FieldSpec("State",         ("wtc_ContactId", "address1_stateorprovince")),
    FieldSpec("Country",       ("countryiso2",)),
    FieldSpec("AgeGroup",      ("wtc_AgeGroupId", "wtc_agegroupname"),
              fallback=("wtc_DivisionId", "wtc_name")),
    FieldSpec("Status",        derive=_status),
    FieldSpec("FinishTime",    ("wtc_finishtimeformatted",)),
    FieldSpec("Swim",          ("wtc_swimtimeformatted",)),
    FieldSpec("T1",            ("wtc_transition1timeformatted",)),
    FieldSpec("Bike",          ("wtc_biketimeformatted",)),
    FieldSpec("T2",            ("wtc_transitiontime2formatted",)),
    FieldSpec("Run",           ("wtc_runtimeformatted",)),
    FieldSpec("OverallRank",   ("wtc_finishrankoverall",)),
    FieldSpec("GenderRank",    ("wtc_finishrankgender",)),
    FieldSpec("DivRank",       ("wtc_finishrankgroup",)),
    FieldSpec("Points",        ("wtc_points",)),
    FieldSpec("SwimOvrRank",   ("wtc_swimrankoverall",)),
    FieldSpec("SwimGenRank",   ("wtc_swimrankgender",)),
    FieldSpec("SwimDivRank",   ("wtc_swimrankgroup",)),
    FieldSpec("BikeOvrRank",   ("wtc_bikerankoverall",)),
    FieldSpec("BikeGenRank",   ("wtc_bikerankgender",)),
    FieldSpec("BikeDivRank",   ("wtc_bikerankgroup",)),
    FieldSpec("RunOvrRank",    ("wtc_runrankoverall",)),
    FieldSpec("RunGenRank",    ("wtc_runrankgender",)),
    FieldSpec("RunDivRank",    ("wtc_runrankgroup",)),
    FieldSpec("FinishTimeSec", ("wtc_finishtime",)),
    FieldSpec("SwimTimeSec",   ("wtc_swimtime",)),
    FieldSpec("T1TimeSec",     ("wtc_transition1time",)),
    FieldSpec("BikeTimeSec",   ("wtc_biketime",)),
    FieldSpec("T2TimeSec",     ("wtc_transition2time",)),
    FieldSpec("RunTimeSec",    ("wtc_runtime",)),
)

HEADERS = [f.column for f in FIELDS]

YEAR_RE = re.compile(r"\b(20\d{2})\b", re.ASCII)


# ─────────────────────────────────────────────────────────────────────────────
# Accessors
# ─────────────────────────────────────────────────────────────────────────────

def lookup(data: Any, path) -> Lookup:
    """
    Walk a key path through nested dicts.

    Args:
        data: Parsed JSON (usually a dict)
        path: Tuple of keys, or a dotted string ("props.pageProps")

    Returns:
        Lookup(True, value) if every step resolved, otherwise MISSING.
        A step through None, a list or a scalar counts as missing.
    """
    if isinstance(path, str):
        path = tuple(path.split(".")) if path else ()

    current = data
    for key in path:
        if not isinstance(current, dict) or key not in current:
            return MISSING
        current = current[key]
    return Lookup(True, current)


def _usable(found: Lookup) -> bool:
    return found.present and bool(found.value)


def _first(record: dict, paths: list) -> Any:
    """Return the first present, truthy value among several paths."""
    for path in paths:
        if path is None:
            continue
        found = lookup(record, path)
        if _usable(found):
            return found.value
    return None


def _clean(value: Any) -> str:
    """Render a raw JSON value as CSV cell text. Falsy values become ''."""
    if not value:
        return ""
    if value is True:
        return "true"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return str(value)


# ─────────────────────────────────────────────────────────────────────────────
# Record normalization
# ─────────────────────────────────────────────────────────────────────────────

def normalize_result(raw: dict, fields=FIELDS) -> dict:
    """
    Map one raw API result record onto the fixed column schema.

    Every column is always present in the output; anything the record
    does not carry comes out as an empty string.
    """
    if not isinstance(raw, dict):
        raw = {}

    row = {}
    for field in fields:
        if field.derive is not None:
            value = field.derive(raw)
        else:
            value = _first(raw, [field.path, field.fallback])
        row[field.column] = _clean(value)
    return row


def normalize_results(raw_list: list, fields=FIELDS) -> list[dict]:
    """Normalize every record, keeping input order and count."""
    return [normalize_result(raw, fields) for raw in raw_list]


def to_csv(rows: list[dict], headers=HEADERS) -> str:
    """
    Render normalized rows as CSV text.

    The header line is plain comma-joined column names. Every data field
    is double-quoted with embedded quotes doubled. Lines are joined with
    '\\n' and there is no trailing newline.
    """
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for row in rows:
        writer.writerow([row.get(h, "") for h in headers])

    lines = [",".join(headers)]
    body = buf.getvalue()
    if body:
        lines.append(body[:-1])  # drop the final lineterminator
    return "\n".join(lines)


# ─────────────────────────────────────────────────────────────────────────────
# Names and years
# ─────────────────────────────────────────────────────────────────────────────

def year_from_name(name: Optional[str]) -> Optional[str]:
    """Return the first standalone 20xx year in an event name, or None."""
    if not name:
        return None
    m = YEAR_RE.search(str(name))
    return m.group(1) if m else None


def sanitize_base_name(text: str) -> str:
    """
    Turn free text into a safe file name stem.

    "Ironman Louisville!" -> "ironman_louisville"
    """
    name = (text or "").lower()
    name = re.sub(r"\s+", "_", name)
    return re.sub(r"[^a-z0-9_]", "", name)
