"""Field-name driven formatting of scalar sample values."""

import math
from collections.abc import Callable
from enum import Enum
from typing import Any

from atopview.models import FormatContext


class FieldFormat(Enum):
    """Formatting rules a scalar field can be rendered with."""

    CPU_TICKS = "cpu_ticks"
    PSI_PERCENT = "psi_percent"
    FREQUENCY = "frequency"
    DURATION = "duration"
    BYTES = "bytes"
    BANDWIDTH = "bandwidth"
    COUNT = "count"
    PERCENT = "percent"
    PLAIN = "plain"


def _table(rule: FieldFormat, *names: str) -> dict[str, FieldFormat]:
    return dict.fromkeys(names, rule)


FIELD_FORMATS: dict[str, FieldFormat] = {
    **_table(
        FieldFormat.CPU_TICKS,
        "stime", "utime", "ntime", "itime", "wtime", "Itime", "Stime", "steal", "guest",
    ),
    **_table(FieldFormat.PSI_PERCENT, "cpusome", "memsome", "memfull", "iosome", "iofull"),
    **_table(FieldFormat.FREQUENCY, "freq"),
    **_table(FieldFormat.DURATION, "stime_unit_time", "utime_unit_time", "rundelay", "blkdelay"),
    **_table(
        FieldFormat.BYTES,
        "buffermem", "cachedrt", "cachemem", "commitlim", "committed", "freemem",
        "freeswap", "filepage", "physmem", "rgrow", "rsz", "shmrss", "slabmem",
        "swcac", "totmem", "totswap", "vexec", "vdata", "vgrow", "vlibs", "vlock",
        "vmem", "vstack", "wsz", "rmem", "pmem", "vswap",
    ),
    **_table(FieldFormat.BANDWIDTH, "rbyte", "sbyte", "speed"),
    **_table(FieldFormat.COUNT, "minflt", "majflt"),
    **_table(FieldFormat.PERCENT, "cpubusy", "membusy", "diskbusy"),
}


def plain(value: Any) -> str:
    """Stringify a scalar, dropping the fraction of whole floats."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from negative infinity."""
    return math.floor(value + 0.5)


def format_cpu_ticks(value: float, context: FormatContext) -> str:
    """Format a tick counter as a share of one CPU's ticks."""
    return f"{round_half_up(value * 100 / context.per_cpu_total)}%"


def format_psi_percent(value: float, context: FormatContext) -> str:
    """Format a pressure-stall ratio."""
    return f"{round_half_up(value)}%"


def format_frequency(value: float, context: FormatContext) -> str:
    """Format a CPU frequency given in MHz."""
    if value < 1000:
        return f"{plain(value)}MHz"

    scaled = value / 1000
    prefix = "G"
    if scaled >= 1000:
        prefix = "T"
        scaled = scaled / 1000

    if scaled < 10:
        return f"{scaled:.2f}{prefix}Hz"
    if scaled < 100:
        return f"{scaled:.1f}{prefix}Hz"
    return f"{scaled:.0f}{prefix}Hz"


def format_duration(value: float, context: FormatContext) -> str:
    """
    Format a tick count as a duration.

    Below 100 seconds the result is seconds with centiseconds ("2.50s"),
    then minutes and seconds ("12m5s"), hours and minutes ("3h20m") and
    finally days and hours ("4d2h").
    """
    msecs = int(value * 1000 / context.hertz)
    if msecs < 100_000:
        return f"{msecs // 1000}.{msecs % 1000 // 10:02d}s"

    secs = (msecs + 500) // 1000
    if secs < 6000:
        return f"{secs // 60}m{secs % 60}s"

    mins = (secs + 30) // 60
    if mins < 6000:
        return f"{mins // 60}h{mins % 60}m"

    hours = (mins + 30) // 60
    return f"{hours // 24}d{hours % 24}h"


def format_bytes(size: float, context: FormatContext | None = None) -> str:
    """Format bytes as human-readable string."""
    if size < 0:
        return "-" + format_bytes(-size)
    if size < 1024:
        return f"{plain(size)}B"
    for unit in ["KB", "MB", "G"]:
        size = size / 1024
        if size < 1024:
            return f"{size:.1f}{unit}"
    return f"{size / 1024:.1f}T"


def format_bandwidth(rate: float, context: FormatContext | None = None) -> str:
    """Format a transfer rate given in Kbps."""
    if rate < 1000:
        return f"{plain(rate)} Kbps"
    for unit in ["Mbps", "Gbps"]:
        rate = rate / 1000
        if rate < 1000:
            return f"{rate:.2f} {unit}"
    return f"{rate / 1000:.2f} Tbps"


def format_count(value: Any, context: FormatContext) -> str:
    # Page fault counts are shown as collected.
    return plain(value)


def format_percent(value: Any, context: FormatContext) -> str:
    """Format a busy percentage with one decimal."""
    return f"{value:.1f}%"


def format_plain(value: Any, context: FormatContext) -> str:
    return plain(value)


_FORMATTERS: dict[FieldFormat, Callable[[Any, FormatContext], str]] = {
    FieldFormat.CPU_TICKS: format_cpu_ticks,
    FieldFormat.PSI_PERCENT: format_psi_percent,
    FieldFormat.FREQUENCY: format_frequency,
    FieldFormat.DURATION: format_duration,
    FieldFormat.BYTES: format_bytes,
    FieldFormat.BANDWIDTH: format_bandwidth,
    FieldFormat.COUNT: format_count,
    FieldFormat.PERCENT: format_percent,
    FieldFormat.PLAIN: format_plain,
}

_NUMERIC_FORMATS = frozenset(
    {
        FieldFormat.CPU_TICKS,
        FieldFormat.PSI_PERCENT,
        FieldFormat.FREQUENCY,
        FieldFormat.DURATION,
        FieldFormat.BYTES,
        FieldFormat.BANDWIDTH,
    }
)


def field_format(name: str) -> FieldFormat:
    """Get the formatting rule for a field name."""
    return FIELD_FORMATS.get(name, FieldFormat.PLAIN)


def format_field(name: str, value: Any, context: FormatContext | None = None) -> str:
    """
    Format a scalar field for display.

    Args:
        name: Field name, used to select the formatting rule.
        value: The scalar value.
        context: Per-core tick total and clock rate of the sample.

    Values that do not fit a numeric rule (for example "-" placeholders)
    are shown as they are.
    """
    if context is None:
        context = FormatContext()

    rule = field_format(name)
    if rule in _NUMERIC_FORMATS and (
        isinstance(value, bool) or not isinstance(value, (int, float))
    ):
        return plain(value)

    try:
        return _FORMATTERS[rule](value, context)
    except (ArithmeticError, TypeError, ValueError):
        return plain(value)
