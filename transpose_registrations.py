#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
transpose_registrations.py

Deterministic per-module rosters from a per-attendee registration export.

Input:
- One delimited text file with a header row (default: ./registrations.csv),
  one row per attendee, as exported by Indico.
- "Choice of modules" holds the modules an attendee picked, separated by ';'.
- "Registration date" holds an ISO 8601 date-time with UTC offset.

Output (stdout, or --output):
- A Markdown report: one section per module, ordered by the start date/time
  parsed from the module title, each listing its attendees in registration
  order.

Logs:
- stderr (+ optional --log-file)

Module dates rules:
- Titles look like "Intro to Rust (15/01 + mercredi 17/01, 9h30)"
- Only the first day/month and the hour/minute are used; the year is
  --year, or the year of the earliest registration (moved to the next
  year when that would put the module before the first registration)
- Titles without a usable date are warned about and listed last

Dependencies:
- pandas
"""

from __future__ import annotations

import argparse
import logging
import re
import sys
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd


# --------------
# Input columns
# --------------

COLUMNS = {
    "id": "ID",
    "name": "Name",
    "email": "Email Address",
    "affiliation": "Affiliation",
    "modules": "Choice of modules",
    "registered_at": "Registration date",
    "state": "Registration state",
    "checked_in": "Checked in",
}

# Must be present in the header row
REQUIRED_COLUMNS = ["name", "email", "modules", "registered_at"]

# Must be non-empty on every row
REQUIRED_VALUES = ["name", "modules", "registered_at"]

MODULE_SEPARATOR = ";"

DEFAULT_INPUT = "registrations.csv"
DEFAULT_TITLE = "Registrations"

LOGGER_NAME = "registration_transpose"

# "15/01, 9h30", "15/01 + mercredi 17/01, 9h30", "15/01 + mercredi, 17/01, 9h30", "15/01, 09:30"
MODULE_START_REGEX = re.compile(
    r"(?P<day>\d{1,2})/(?P<month>\d{1,2})"
    r"(?:\s*\+\s*[^\d]*?\d{1,2}/\d{1,2})?"
    r"\s*,\s*(?P<hour>\d{1,2})\s*[:h]\s*(?P<minute>\d{1,2})"
)

# Official lab names -> short label used in rosters
AFFILIATION_ALIASES = {
    "IJCLab": "IJCLab",
    "IJCLab (Laboratoire de Physique des 2 Infinis Irène Joliot-Curie)": "IJCLab",
    "Laboratoire de Physique des 2 Infinis Irène Joliot-Curie": "IJCLab",
    "Laboratoire de Physique des 2 Infinis Irene Joliot-Curie": "IJCLab",
    "Irène Joliot-Curie Laboratoire de Physique des 2 Infinis": "IJCLab",
    "Irène Joliot-Curie Laboratory of Physics of the 2 Infinities": "IJCLab",
    "CNRS/IN2P3/IJCLab": "IJCLab",
}

logger = logging.getLogger(LOGGER_NAME)


# -------------
# Data classes
# -------------

@dataclass(frozen=True, eq=False)
class Identity:
    name: str
    email: str
    affiliation: str = ""


@dataclass(frozen=True)
class Person:
    identity: Identity
    modules: Tuple[int, ...]
    registered_at: datetime


@dataclass(frozen=True)
class Module:
    id: int
    name: str
    # None when the title carries no usable date/time
    start: Optional[datetime]

    def sort_key(self) -> Tuple[bool, datetime, int]:
        return (self.start is None, self.start or datetime.min, self.id)


@dataclass
class DecodedRow:
    row_number: int
    identity: Identity
    titles: List[str]
    registered_at: datetime


class RegistrationDecodeError(ValueError):
    """A required field of the export is missing or malformed."""

    def __init__(self, message: str, row_number: Optional[int] = None, column: Optional[str] = None):
        self.row_number = row_number
        self.column = column
        if row_number is not None:
            message = f"row {row_number}: {message}"
        super().__init__(message)


# ----------
# Logging
# ----------

def setup_logging(debug: bool, log_file: Optional[Path] = None) -> logging.Logger:
    log = logging.getLogger(LOGGER_NAME)
    log.setLevel(logging.DEBUG)

    if log.handlers:
        return log

    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # stdout is reserved for the report
    sh = logging.StreamHandler(sys.stderr)
    sh.setLevel(logging.DEBUG if debug else logging.INFO)
    sh.setFormatter(fmt)
    log.addHandler(sh)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(logging.DEBUG if debug else logging.INFO)
        fh.setFormatter(fmt)
        log.addHandler(fh)

    return log


# -------------
# Input reading
# -------------

def read_registrations(file_path: Path, delimiter: str = ",") -> List[Dict[str, str]]:
    """
    Read the export as a list of {header: value} dicts, all values strings.
    Raises FileNotFoundError / RegistrationDecodeError.
    """
    if not file_path.exists():
        raise FileNotFoundError(f"Input file not found: {file_path}")

    try:
        df = pd.read_csv(
            file_path,
            sep=delimiter,
            dtype=str,
            keep_default_na=False,
            encoding="utf-8-sig",
        )
    except pd.errors.EmptyDataError as e:
        raise RegistrationDecodeError(f"{file_path.name} is empty (no header row)") from e
    except pd.errors.ParserError as e:
        raise RegistrationDecodeError(f"malformed delimited text in {file_path.name}: {e}") from e
    except UnicodeDecodeError as e:
        raise RegistrationDecodeError(f"{file_path.name} is not valid UTF-8: {e}") from e
    df.columns = [str(c).strip() for c in df.columns]

    missing = [COLUMNS[k] for k in REQUIRED_COLUMNS if COLUMNS[k] not in df.columns]
    if missing:
        raise RegistrationDecodeError(f"missing required column(s) {missing} in {file_path.name}")

    logger.debug(f"{file_path.name}: columns={list(df.columns)} rows={len(df)}")
    return df.to_dict(orient="records")


# -------------------
# Identity formatting
# -------------------

def canonical_affiliation(affiliation: str) -> str:
    a = (affiliation or "").strip()
    return AFFILIATION_ALIASES.get(a, a)


def format_identity(identity: Identity) -> str:
    text = f"{identity.name} ({identity.email})"
    affiliation = canonical_affiliation(identity.affiliation)
    if affiliation:
        text += f" from {affiliation}"
    return text


# -----------------
# Module resolution
# -----------------

def parse_module_start(title: str, year: int) -> Optional[datetime]:
    """
    Best-effort start date/time of a module, from its human-written title.

    Returns None when the title has no day/month + hour/minute pattern, or
    when the numbers it has do not make a valid calendar date and time.
    """
    m = MODULE_START_REGEX.search(title or "")
    if m is None:
        return None
    try:
        return datetime(
            year,
            int(m.group("month")),
            int(m.group("day")),
            int(m.group("hour")),
            int(m.group("minute")),
        )
    except ValueError:
        return None


class ModuleResolver:
    """
    Gives each distinct (trimmed) module title a sequential id, creating the
    Module on first sighting.

    With `not_before`, a start that would fall on an earlier day is moved to
    the next year (December registrations for January modules).
    """

    def __init__(self, year: int, not_before: Optional[date] = None):
        self.year = year
        self.not_before = not_before
        self.modules: List[Module] = []
        self._ids: Dict[str, int] = {}

    def module_start(self, title: str) -> Optional[datetime]:
        if self.not_before is None:
            return parse_module_start(title, self.year)

        fallback = None
        for year in (self.year, self.year + 1):
            start = parse_module_start(title, year)
            if start is None:
                continue
            if start.date() >= self.not_before:
                return start
            fallback = fallback or start
        return fallback

    def resolve(self, title: str) -> int:
        title = title.strip()
        known = self._ids.get(title)
        if known is not None:
            return known

        start = self.module_start(title)
        if start is None:
            logger.warning(f"Could not parse a start date/time from module title: '{title}'")

        module_id = len(self.modules)
        self.modules.append(Module(id=module_id, name=title, start=start))
        self._ids[title] = module_id
        logger.debug(f"Registered module #{module_id}: {title} (start={start})")
        return module_id


# --------------------
# Registration digest
# --------------------

def _cell(row: Mapping[str, object], key: str) -> str:
    v = row.get(COLUMNS[key])
    if v is None or (not isinstance(v, str) and pd.isna(v)):
        return ""
    return str(v).strip()


def parse_registration_date(value: str) -> datetime:
    """ISO 8601 date-time with an explicit UTC offset."""
    try:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValueError(f"invalid registration date '{value}'") from e
    if ts.tzinfo is None:
        raise ValueError(f"registration date '{value}' has no UTC offset")
    return ts


def split_module_titles(choice: str) -> List[str]:
    titles = [t.strip() for t in (choice or "").split(MODULE_SEPARATOR)]
    return [t for t in titles if t]


def decode_row(row: Mapping[str, object], row_number: int) -> DecodedRow:
    values = {k: _cell(row, k) for k in COLUMNS}

    for key in REQUIRED_VALUES:
        if not values[key]:
            raise RegistrationDecodeError(
                f"empty '{COLUMNS[key]}'", row_number=row_number, column=COLUMNS[key]
            )

    try:
        registered_at = parse_registration_date(values["registered_at"])
    except ValueError as e:
        raise RegistrationDecodeError(
            str(e), row_number=row_number, column=COLUMNS["registered_at"]
        ) from e

    titles = split_module_titles(values["modules"])
    if not titles:
        raise RegistrationDecodeError(
            f"no module title in '{values['modules']}'", row_number=row_number, column=COLUMNS["modules"]
        )

    decoded = DecodedRow(
        row_number=row_number,
        identity=Identity(
            name=values["name"],
            email=values["email"],
            affiliation=values["affiliation"],
        ),
        titles=titles,
        registered_at=registered_at,
    )
    logger.debug(f"Decoded row {row_number}: {decoded}")
    return decoded


def digest(
    rows: Iterable[Mapping[str, object]],
    reference_year: Optional[int] = None,
) -> Tuple[List[Person], List[Module]]:
    """
    Turn raw export rows into persons and deduplicated modules.

    Every row is decoded before any module is resolved, so a bad row aborts
    the run before anything else happens. Module ids follow first occurrence
    across the whole input.
    """
    decoded = [decode_row(row, i) for i, row in enumerate(rows, start=1)]

    not_before: Optional[date] = None
    if reference_year is None:
        if decoded:
            # wall-clock date of the first registration, in its own offset
            not_before = min(d.registered_at for d in decoded).date()
            reference_year = not_before.year
        else:
            reference_year = datetime.now().year
    logger.debug(f"Reference year for module dates: {reference_year} (not before {not_before})")

    resolver = ModuleResolver(reference_year, not_before)
    persons: List[Person] = []
    for d in decoded:
        module_ids = tuple(resolver.resolve(t) for t in d.titles)
        persons.append(Person(identity=d.identity, modules=module_ids, registered_at=d.registered_at))

    logger.info(f"Digested {len(persons)} registration(s) into {len(resolver.modules)} module(s)")
    return persons, resolver.modules


# ---------
# Ordering
# ---------

def order(
    persons: Sequence[Person],
    modules: Sequence[Module],
) -> Tuple[List[int], Dict[int, List[int]]]:
    """
    Returns (module ids by start time, {module id: person ids by registration time}).

    Ties keep input order for persons and first-seen order for modules;
    modules with an unknown start come last.
    """
    person_ids = sorted(range(len(persons)), key=lambda i: persons[i].registered_at)

    members_by_module: Dict[int, List[int]] = {m.id: [] for m in modules}
    for pid in person_ids:
        for mid in persons[pid].modules:
            members_by_module[mid].append(pid)

    ordered_module_ids = [m.id for m in sorted(modules, key=Module.sort_key)]
    return ordered_module_ids, members_by_module


# ----------
# Rendering
# ----------

def render(
    ordered_module_ids: Sequence[int],
    members_by_module: Mapping[int, Sequence[int]],
    modules: Sequence[Module],
    persons: Sequence[Person],
    title: str = DEFAULT_TITLE,
) -> str:
    lines: List[str] = [f"# {title}", ""]
    for mid in ordered_module_ids:
        lines.append(f"## {modules[mid].name}")
        lines.append("")
        for rank, pid in enumerate(members_by_module.get(mid, []), start=1):
            lines.append(f"{rank}. {format_identity(persons[pid].identity)}")
        lines.append("")
    return "\n".join(lines).rstrip("\n") + "\n"


def transpose(
    rows: Iterable[Mapping[str, object]],
    reference_year: Optional[int] = None,
    title: str = DEFAULT_TITLE,
) -> str:
    persons, modules = digest(rows, reference_year)
    ordered_module_ids, members_by_module = order(persons, modules)
    return render(ordered_module_ids, members_by_module, modules, persons, title)


# -----
# Main
# -----

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Translate per-attendee registrations into per-module rosters."
    )
    parser.add_argument("input", nargs="?", default=DEFAULT_INPUT, help=f"Registration export (default: {DEFAULT_INPUT})")
    parser.add_argument("--debug", action="store_true", help="Enable DEBUG logging (echo decoded rows and modules)")
    parser.add_argument("--year", type=int, default=None, help="Year of the module dates (default: on or after the earliest registration)")
    parser.add_argument("--delimiter", default=",", help="Field delimiter of the export (default: ,)")
    parser.add_argument("--title", default=DEFAULT_TITLE, help=f"Report heading (default: {DEFAULT_TITLE})")
    parser.add_argument("-o", "--output", default="-", help="Output Markdown file, '-' for stdout (default: -)")
    parser.add_argument("--log-file", default=None, help="Also write logs to this file")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = build_parser().parse_args(argv)

    setup_logging(args.debug, Path(args.log_file) if args.log_file else None)

    input_path = Path(args.input)
    try:
        rows = read_registrations(input_path, args.delimiter)
        report = transpose(rows, reference_year=args.year, title=args.title)
    except FileNotFoundError:
        logger.error(f"Input file not found: {input_path.resolve()}")
        sys.exit(2)
    except OSError as e:
        logger.error(f"Cannot read input file {input_path.resolve()}: {e}")
        sys.exit(2)
    except RegistrationDecodeError as e:
        logger.error(f"{input_path.name}: {e}")
        sys.exit(2)

    if args.output == "-":
        sys.stdout.write(report)
    else:
        out_path = Path(args.output)
        out_path.write_text(report, encoding="utf-8")
        logger.info(f"Wrote rosters: {out_path.resolve()}")


if __name__ == "__main__":
    main()
