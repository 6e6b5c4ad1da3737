"""Tests for the atopview application."""

import json

import pytest

from atopview.app import ReportApp, build_parser, default_template, main, read_template
from atopview.models import DisplayConfig, RankBy, ViewType
from atopview.template import find_section


class TestDefaultTemplate:
    """Tests for the built-in templates."""

    @pytest.mark.parametrize("view", list(ViewType))
    def test_has_process_section(self, view):
        """Test every view lists processes."""
        assert find_section(default_template(view), "PRSUMMARY") is not None

    def test_views_differ(self):
        """Test the memory view shows memory columns."""
        memory = default_template(ViewType.MEMORY)
        row = find_section(memory, "PRSUMMARY")
        assert "{membusy}" in row.children[0].markup


class TestReadTemplate:
    """Tests for reading template files."""

    def test_template_document(self, tmp_path):
        """Test a template is taken from its holder element."""
        path = tmp_path / "atop.html"
        path.write_text(
            '<html><body><script type="text/html" id="tpl_disk">'
            '<div class="report">{date}</div></script></body></html>'
        )
        assert read_template(path, "tpl_disk").classes == ("report",)

    def test_bare_markup(self, tmp_path):
        """Test a file without holder element is the template itself."""
        path = tmp_path / "report.html"
        path.write_text('<section class="report">{date}</section>')
        assert read_template(path).tag == "section"


def test_parser_defaults():
    """Test the command line defaults match the display defaults."""
    args = build_parser().parse_args([])
    defaults = DisplayConfig()

    assert args.procs == defaults.proc
    assert args.disks == defaults.disk
    assert args.view == ViewType.GENERIC.value
    assert not args.threads


class TestMain:
    """Tests for the command line entry point."""

    def test_print(self, sample, tmp_path, capsys):
        """Test a sample file is rendered to stdout."""
        path = tmp_path / "sample.json"
        path.write_text(json.dumps(sample))

        assert main(["--sample", str(path), "--print"]) == 0

        out = capsys.readouterr().out
        assert "ATOP -" in out
        assert '<div class="PRSUMMARY">2  ' in out

    def test_print_with_template(self, sample, tmp_path, capsys):
        """Test a template file replaces the built-in one."""
        sample_path = tmp_path / "sample.json"
        sample_path.write_text(json.dumps(sample))
        template_path = tmp_path / "report.html"
        template_path.write_text('<p>busy {cpubusy}<b class="CPU">{cpubusy}</b></p>')

        assert main(["--sample", str(sample_path), "--template", str(template_path), "--print"]) == 0
        assert '<b class="CPU">15.0%</b>' in capsys.readouterr().out

    def test_malformed_sample(self, sample, tmp_path, capsys):
        """Test a sample without CPU record is reported, not raised."""
        del sample["CPU"]
        path = tmp_path / "sample.json"
        path.write_text(json.dumps(sample))

        assert main(["--sample", str(path), "--print"]) == 2
        assert "error:" in capsys.readouterr().err

    def test_sample_not_a_record(self, tmp_path, capsys):
        """Test a JSON list is refused."""
        path = tmp_path / "sample.json"
        path.write_text("[]")

        assert main(["--sample", str(path), "--print"]) == 2

    def test_missing_file(self, tmp_path, capsys):
        """Test a missing sample file is reported."""
        assert main(["--sample", str(tmp_path / "nope.json"), "--print"]) == 2

    def test_negative_cap(self, sample, tmp_path, capsys):
        """Test a negative cap is refused."""
        path = tmp_path / "sample.json"
        path.write_text(json.dumps(sample))

        assert main(["--sample", str(path), "--procs", "-1", "--print"]) == 2


@pytest.mark.asyncio
async def test_app_creation(sample):
    """Test ReportApp can be instantiated."""
    app = ReportApp(sample)
    assert app.title == "atopview"
    assert app.sub_title == "atop sample report"
    assert app.current_view == ViewType.GENERIC
    assert app.effective_config is None


@pytest.mark.asyncio
async def test_app_view_sets_ranking(sample):
    """Test the first view decides the process ordering."""
    app = ReportApp(sample, view=ViewType.DISK)
    assert app.display_config.rank_by == RankBy.DISK


@pytest.mark.asyncio
async def test_app_compose(sample):
    """Test ReportApp composes correctly."""
    app = ReportApp(sample)
    async with app.run_test() as pilot:
        assert pilot.app.query_one("#report") is not None
        assert pilot.app.query_one("#report-scroll") is not None


@pytest.mark.asyncio
async def test_app_renders_on_mount(sample):
    """Test the report is rendered when the app starts."""
    app = ReportApp(sample)
    async with app.run_test() as pilot:
        assert pilot.app.effective_config.proc == 3
        assert pilot.app.sub_title == "generic view"
        assert "PRC | #proc 4" in pilot.app.report_text()


@pytest.mark.asyncio
async def test_app_quit_binding(sample):
    """Test that 'q' binding triggers quit."""
    app = ReportApp(sample)
    async with app.run_test() as pilot:
        await pilot.press("q")
        # App should be exiting
        assert pilot.app._exit


@pytest.mark.asyncio
async def test_app_view_bindings(sample):
    """Test view keys switch the view and the ordering."""
    app = ReportApp(sample)
    async with app.run_test() as pilot:
        await pilot.press("m")
        assert pilot.app.current_view == ViewType.MEMORY
        assert pilot.app.display_config.rank_by == RankBy.MEM
        assert "MEM  CMD" in pilot.app.report_text()

        await pilot.press("d")
        assert pilot.app.display_config.rank_by == RankBy.DISK

        await pilot.press("c")
        assert pilot.app.current_view == ViewType.COMMAND_LINE
        assert pilot.app.display_config.rank_by == RankBy.DISK

        await pilot.press("g")
        assert pilot.app.current_view == ViewType.GENERIC
        assert pilot.app.display_config.rank_by == RankBy.CPU


@pytest.mark.asyncio
async def test_app_thread_binding(sample):
    """Test 'y' lists threads next to processes."""
    app = ReportApp(sample)
    async with app.run_test() as pilot:
        assert not pilot.app.display_config.show_threads

        await pilot.press("y")

        assert pilot.app.display_config.show_threads
        assert pilot.app.effective_config.proc == 4


@pytest.mark.asyncio
async def test_app_malformed_sample(sample):
    """Test a malformed sample is shown as an error instead of crashing."""
    del sample["MEM"]
    app = ReportApp(sample)
    async with app.run_test() as pilot:
        assert pilot.app.effective_config is None
        assert pilot.app.is_running
