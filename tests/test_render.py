"""Unit tests for the Markdown roster report."""
from conftest import make_row
from transpose_registrations import digest, order, render, transpose


EXPECTED_EXAMPLE = (
    "# Registrations\n"
    "\n"
    "## Intro (10/01, 9h00)\n"
    "\n"
    "1. Bob (bob@example.org) from IJCLab\n"
    "2. Alice (alice@example.org)\n"
    "\n"
    "## Lab (11/01, 14h00)\n"
    "\n"
    "1. Bob (bob@example.org) from IJCLab\n"
    "2. Carol (carol@example.org)\n"
)


class TestRender:
    """Test report layout."""

    def test_example_report(self, example_rows):
        """Test the full report for the example rows."""
        persons, modules = digest(example_rows)
        ordered_module_ids, members = order(persons, modules)
        assert render(ordered_module_ids, members, modules, persons) == EXPECTED_EXAMPLE

    def test_custom_title(self, example_rows):
        """Test the heading can be changed."""
        assert transpose(example_rows, title="Formations").startswith("# Formations\n\n## Intro")

    def test_empty_report(self):
        """Test an export without rows renders only the heading."""
        assert render([], {}, [], []) == "# Registrations\n"

    def test_undated_module_placed_last(self):
        """Test a module without a date is still rendered, after the others."""
        rows = [
            make_row("Alice", "Workshop, TBD;Intro (10/01, 9h00)", "2024-01-05T09:00:00+01:00"),
        ]
        report = transpose(rows)
        assert report.index("## Intro (10/01, 9h00)") < report.index("## Workshop, TBD")
        assert report.endswith("## Workshop, TBD\n\n1. Alice (alice@example.org)\n")


class TestTranspose:
    """Test the whole pipeline on in-memory rows."""

    def test_output_is_deterministic(self, example_rows):
        """Test two runs produce identical reports."""
        assert transpose(example_rows) == transpose(list(example_rows))

    def test_matches_step_by_step(self, example_rows):
        """Test transpose chains digest, order and render."""
        assert transpose(example_rows) == EXPECTED_EXAMPLE
