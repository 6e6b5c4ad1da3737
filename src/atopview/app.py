"""atopview - report viewer and command-line entry point."""

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any

from textual.app import App, ComposeResult
from textual.containers import VerticalScroll
from textual.widgets import Footer, Static

from atopview.errors import AtopviewError, MalformedInputError, TemplateError
from atopview.expander import expand
from atopview.models import DisplayConfig, ViewType
from atopview.normalizer import normalize_sample
from atopview.sampler import collect_sample
from atopview.template import Element, load_template, parse_template, text_content

logger = logging.getLogger(__name__)

_HEADER = """\
<div class="report">ATOP - {date}
<div class="HPRC">PRC | #proc {proc_count} | #trun {running_count} | #tslpi {sleep_interrupt_count} \
| #tslpu {sleep_uninterrupt_count} | #zombie {zombie_count} | #exit {exit_count} \
| sys {stime_unit_time} | user {utime_unit_time}
</div><div class="CPU">CPU | sys {stime} | user {utime} | irq {Itime} | idle {itime} \
| wait {wtime} | steal {steal} | busy {cpubusy}
</div><div class="cpu">cpu{cpuid} | sys {stime} | user {utime} | idle {itime} \
| wait {wtime} | {freq}
</div><div class="CPL">CPL | avg1 {lavg1} | avg5 {lavg5} | avg15 {lavg15}
</div><div class="MEM">MEM | tot {physmem} | free {freemem} | cache {cachemem} \
| buff {buffermem} | slab {slabmem}
</div><div class="SWP">SWP | tot {totswap} | free {freeswap}
</div><div class="DSK">DSK | {dskname} | busy {diskbusy} | read {nread} | write {nwrite} \
| MBr/s {MBr/s} | MBw/s {MBw/s} | avio {avio} ms
</div><div class="NET">NET | {name} | pcki {rpack} | pcko {spack} | si {rbyte} \
| so {sbyte} | speed {speed}
</div>
"""

_PROCESS_LINES = {
    ViewType.GENERIC: (
        "PID  SYSCPU  USRCPU  VGROW  RGROW  RDDSK  WRDSK  S  CPU  CMD",
        "{pid}  {stime_unit_time}  {utime_unit_time}  {vgrow}  {rgrow}  {rsz}  {wsz}  "
        "{state}  {cpubusy}  {name}",
    ),
    ViewType.MEMORY: (
        "PID  VSTEXT  VSLIBS  VDATA  VSIZE  RSIZE  PSIZE  VGROW  RGROW  MEM  CMD",
        "{pid}  {vexec}  {vlibs}  {vdata}  {vmem}  {rmem}  {pmem}  {vgrow}  {rgrow}  "
        "{membusy}  {name}",
    ),
    ViewType.DISK: (
        "PID  RDDSK  WRDSK  WCANCL  DSK  CMD",
        "{pid}  {rsz}  {wsz}  {cwsz}  {diskbusy}  {name}",
    ),
    ViewType.COMMAND_LINE: (
        "PID  TID  S  CPU  MEM  COMMAND-LINE",
        "{pid}  {tid}  {state}  {cpubusy}  {membusy}  {cmdline}",
    ),
}


def default_template(view: ViewType) -> Element:
    """Build the built-in plain-text template for a view."""
    heading, row = _PROCESS_LINES[view]
    markup = f'{_HEADER}\n{heading}\n<div class="PRSUMMARY">{row}\n</div></div>'
    return parse_template(markup)


def read_template(path: Path, element_id: str = "tpl_general") -> Element:
    """
    Read a template file.

    The file may be a template document holding the template inside the
    element with ``element_id``, or the bare template markup.
    """
    document = path.read_text(encoding="utf-8")
    try:
        return load_template(document, element_id)
    except TemplateError:
        logger.debug("no element %r in %s, using the whole file", element_id, path)
        return parse_template(document)


def read_sample(path: Path) -> dict[str, Any]:
    """Read a sample document from a JSON file."""
    with path.open(encoding="utf-8") as fh:
        sample = json.load(fh)
    if not isinstance(sample, dict):
        raise MalformedInputError(f"{path} does not hold a sample record")
    return sample


def render(
    sample: dict[str, Any],
    template: Element,
    config: DisplayConfig,
) -> tuple[str, DisplayConfig]:
    """Render a sample, returning the markup and the effective configuration."""
    document, effective = normalize_sample(sample, config)
    return expand(template, [document]), effective


class ReportApp(App):
    """Viewer showing one rendered sample as text."""

    TITLE = "atopview"
    SUB_TITLE = "atop sample report"

    CSS = """
    #report-scroll {
        height: 1fr;
    }

    #report {
        padding: 0 1;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("g", "view('generic')", "Generic"),
        ("m", "view('memory')", "Memory"),
        ("d", "view('disk')", "Disk"),
        ("c", "view('command_line')", "Command"),
        ("y", "toggle_threads", "Threads"),
    ]

    def __init__(
        self,
        sample: dict[str, Any],
        templates: dict[ViewType, Element] | None = None,
        config: DisplayConfig | None = None,
        view: ViewType = ViewType.GENERIC,
    ) -> None:
        """
        Initialize the ReportApp.

        Args:
            sample: Raw sample document to show.
            templates: Template per view; built-in templates fill the gaps.
            config: Display settings; the ranking follows the current view.
            view: View shown first.
        """
        super().__init__()
        self._sample = sample
        self._templates = {v: default_template(v) for v in ViewType}
        self._templates.update(templates or {})
        self._current_view = view
        self._display_config = (config or DisplayConfig()).for_view(view)
        self._effective: DisplayConfig | None = None

    @property
    def current_view(self) -> ViewType:
        """Get the current view."""
        return self._current_view

    @property
    def display_config(self) -> DisplayConfig:
        """Get the requested display settings."""
        return self._display_config

    @property
    def effective_config(self) -> DisplayConfig | None:
        """Get the settings in effect for the last rendered report."""
        return self._effective

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        with VerticalScroll(id="report-scroll"):
            yield Static("", id="report", markup=False)
        yield Footer()

    def on_mount(self) -> None:
        """Render the sample when the app is mounted."""
        self.refresh_report()

    def report_text(self) -> str:
        """Render the current view as plain text."""
        template = self._templates[self._current_view]
        markup, self._effective = render(self._sample, template, self._display_config)
        return text_content(markup)

    def refresh_report(self) -> None:
        """Render the sample and show it."""
        try:
            text = self.report_text()
        except MalformedInputError as exc:
            logger.warning("cannot render sample: %s", exc)
            text = f"Cannot render sample: {exc}"
            self.notify(str(exc), severity="error")
        self.query_one("#report", Static).update(text)
        self.sub_title = f"{self._current_view.value} view"

    def action_view(self, name: str) -> None:
        """Switch to another view and its process ordering."""
        self._current_view = ViewType(name)
        self._display_config = self._display_config.for_view(self._current_view)
        self.refresh_report()

    def action_toggle_threads(self) -> None:
        """Toggle whether threads are listed next to processes."""
        config = self._display_config
        self._display_config = replace(config, show_threads=not config.show_threads)
        self.refresh_report()
        self.notify(f"Threads: {'shown' if self._display_config.show_threads else 'hidden'}")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="atopview", description="Render an atop sample through a template."
    )
    p.add_argument("--sample", type=Path, help="Sample document (JSON), collected when omitted")
    p.add_argument("--template", type=Path, help="Template file, built-in when omitted")
    p.add_argument("--template-id", default="tpl_general", help="Id of the template element")
    p.add_argument(
        "--view",
        choices=[v.value for v in ViewType],
        default=ViewType.GENERIC.value,
        help="Report view (sets the process ordering)",
    )
    p.add_argument("--interval", type=float, default=1.0, help="Seconds between local readings")
    p.add_argument("--procs", type=int, default=DisplayConfig().proc)
    p.add_argument("--cpus", type=int, default=DisplayConfig().cpu)
    p.add_argument("--disks", type=int, default=DisplayConfig().disk)
    p.add_argument("--interfaces", type=int, default=DisplayConfig().interface)
    p.add_argument("--threads", action="store_true", help="List threads next to processes")
    p.add_argument("--print", action="store_true", help="Write the rendered markup to stdout")
    p.add_argument("-v", "--verbose", action="store_true", help="Log debug messages")
    return p


def main(argv: list[str] | None = None) -> int:
    """Entry point for atopview."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    view = ViewType(args.view)
    try:
        config = DisplayConfig(
            proc=args.procs,
            cpu=args.cpus,
            disk=args.disks,
            interface=args.interfaces,
            show_threads=args.threads,
        ).for_view(view)
        sample = read_sample(args.sample) if args.sample else collect_sample(args.interval)
        templates = {}
        if args.template:
            templates = dict.fromkeys(ViewType, read_template(args.template, args.template_id))
    except (AtopviewError, OSError, ValueError) as exc:
        sys.stderr.write(f"error: {exc}\n")
        return 2

    if args.print:
        template = templates.get(view) or default_template(view)
        try:
            markup, effective = render(sample, template, config)
        except MalformedInputError as exc:
            sys.stderr.write(f"error: {exc}\n")
            return 2
        logger.info("rendered %d processes", effective.proc)
        sys.stdout.write(markup + "\n")
        return 0

    ReportApp(sample, templates, config, view).run()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
