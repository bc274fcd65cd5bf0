"""Shared fixtures for registration transpose tests."""
import logging

import pytest

from transpose_registrations import LOGGER_NAME


HEADER = "ID,Name,Email Address,Affiliation,Choice of modules,Registration date,Registration state,Checked in"


def make_row(name, modules, registered_at, email=None, affiliation=""):
    """Build a raw export row the way read_registrations returns it."""
    return {
        "ID": "",
        "Name": name,
        "Email Address": email if email is not None else f"{name.lower()}@example.org",
        "Affiliation": affiliation,
        "Choice of modules": modules,
        "Registration date": registered_at,
        "Registration state": "Complete",
        "Checked in": "No",
    }


@pytest.fixture
def example_rows():
    """Alice, Bob and Carol registering to two dated modules."""
    return [
        make_row("Alice", "Intro (10/01, 9h00)", "2024-01-05T09:00:00+01:00"),
        make_row("Bob", "Intro (10/01, 9h00);Lab (11/01, 14h00)", "2024-01-05T08:00:00+01:00",
                 affiliation="Laboratoire de Physique des 2 Infinis Irène Joliot-Curie"),
        make_row("Carol", "Lab (11/01, 14h00)", "2024-01-05T10:00:00+01:00"),
    ]


@pytest.fixture
def write_export(tmp_path):
    """Write CSV lines (header included) to a temporary export file."""
    def _write(lines, name="registrations.csv"):
        path = tmp_path / name
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path
    return _write


@pytest.fixture(autouse=True)
def reset_logger():
    """Drop handlers and the level installed by main() so tests stay independent."""
    yield
    log = logging.getLogger(LOGGER_NAME)
    for handler in list(log.handlers):
        log.removeHandler(handler)
        handler.close()
    log.setLevel(logging.NOTSET)
