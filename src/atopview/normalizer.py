"""
Sample normalization for atopview.

Turns one raw sample document into the derived document the templates are
expanded against: busy percentages and rates are computed, per-category
lists are ranked and cut to their caps, and the four per-process lists are
joined into one process summary.
"""

import copy
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from atopview.errors import MalformedInputError
from atopview.formatting import round_half_up
from atopview.models import DisplayConfig
from atopview.ranking import (
    PROCESS_COMPARATORS,
    Comparator,
    Record,
    compare_by_cpu,
    compare_by_disk_io_ms,
    compare_by_gpu,
    compare_by_infiniband,
    compare_by_network,
    compare_by_nfs,
    net_write_size,
    top_n,
)

logger = logging.getLogger(__name__)

CPU_COUNTERS = ("stime", "utime", "ntime", "itime", "wtime", "Itime", "Stime", "steal")
PROCESS_SECTIONS = ("PRC", "PRM", "PRD", "PRG")
DISK_SECTIONS = ("DSK", "LVM", "MDD")

# Process memory sizes arrive in KiB, process disk sizes in 512-byte sectors.
PROCESS_KIB_FIELDS = (
    "vexec", "vlibs", "vdata", "vstack", "vlock", "vmem",
    "rmem", "pmem", "vgrow", "rgrow", "vswap",
)
PROCESS_SECTOR_FIELDS = ("rsz", "wsz", "cwsz")

PSI_TOTALS = {
    "cpusome": "cstot",
    "memsome": "mstot",
    "memfull": "mftot",
    "iosome": "iostot",
    "iofull": "ioftot",
}
PSI_AVERAGES = {"cs": "cs", "ms": "ms", "mf": "mf", "is": "ios", "if": "iof"}

THREAD_COUNTERS = ("nthrrun", "nthrslpi", "nthrslpu")

NAME_LIMIT = 15
_PARENS = re.compile(r"[()]")


@dataclass(slots=True, frozen=True)
class SampleTotals:
    """Sample-wide values every derivation is measured against."""

    cpu_total: float
    per_cpu_total: float
    ms_total: float
    hertz: int
    nrcpu: int
    elapsed: float
    available_memory: float


def _number(record: Record, name: str) -> float:
    value = record[name]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{name} is not a number: {value!r}")
    return value


def _section(document: dict[str, Any], key: str, kind: type) -> Any:
    value = document.get(key)
    if not isinstance(value, kind):
        if value is not None:
            logger.debug("ignoring section %s of type %s", key, type(value).__name__)
        return None
    return value


def _records_with(records: list[Any], section: str, names: tuple[str, ...]) -> list[Record]:
    """Keep the records that carry every named numeric field."""
    valid = []
    for record in records:
        try:
            if not isinstance(record, dict):
                raise TypeError(f"record is a {type(record).__name__}")
            for name in names:
                _number(record, name)
        except (KeyError, TypeError) as exc:
            logger.debug("dropping %s record: %s", section, exc)
            continue
        valid.append(record)
    return valid


def sample_totals(document: dict[str, Any]) -> SampleTotals:
    """
    Compute the sample-wide CPU, time and memory totals.

    Raises:
        MalformedInputError: A required aggregate field is missing or invalid.
    """
    cpu = document.get("CPU")
    mem = document.get("MEM")
    if not isinstance(cpu, dict):
        raise MalformedInputError("sample has no CPU record")
    if not isinstance(mem, dict):
        raise MalformedInputError("sample has no MEM record")

    try:
        counters = {name: _number(cpu, name) for name in CPU_COUNTERS}
        nrcpu = _number(cpu, "nrcpu")
        hertz = _number(cpu, "hertz")
        physmem = _number(mem, "physmem")
        elapsed = _number(document, "elapsed")
    except (KeyError, TypeError) as exc:
        raise MalformedInputError(f"sample aggregate field invalid: {exc}") from exc

    if nrcpu <= 0 or hertz <= 0 or physmem <= 0 or elapsed <= 0:
        raise MalformedInputError(
            f"sample aggregates must be positive: nrcpu={nrcpu} hertz={hertz} "
            f"physmem={physmem} elapsed={elapsed}"
        )

    cpu_total = sum(counters.values()) or 1
    return SampleTotals(
        cpu_total=cpu_total,
        per_cpu_total=cpu_total / nrcpu,
        ms_total=cpu_total * 1000 / hertz / nrcpu,
        hertz=hertz,
        nrcpu=nrcpu,
        elapsed=elapsed,
        available_memory=physmem / 1024,
    )


def _rank_section(
    document: dict[str, Any],
    key: str,
    comparator: Comparator | None,
    cap: int,
    required: tuple[str, ...] = (),
) -> int:
    records = _section(document, key, list)
    if records is None:
        return 0
    records = _records_with(records, key, required) if required else records
    document[key], effective = top_n(records, comparator, cap)
    return effective


def _format_date(timestamp: Any) -> str | None:
    try:
        return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")
    except (OverflowError, OSError, TypeError, ValueError):
        logger.debug("sample timestamp %r is not usable", timestamp)
        return None


def _derive_cpu(document: dict[str, Any], totals: SampleTotals) -> None:
    cpu = document["CPU"]
    cpu["cpubusy"] = round(
        (totals.cpu_total - cpu["itime"] - cpu["wtime"]) / totals.per_cpu_total * 100, 1
    )

    cpl = _section(document, "CPL", dict)
    if cpl is not None:
        cpl["nrcpu"] = totals.nrcpu


def _derive_numa(document: dict[str, Any], cap: int) -> int:
    nodes = _section(document, "NUM", list)
    if nodes is None:
        return 0

    document["MEM"]["numanode"] = len(nodes)
    for index, node in enumerate(nodes):
        if isinstance(node, dict):
            node["numanodeId"] = index
    return _rank_section(document, "NUM", None, cap)


def _derive_psi(document: dict[str, Any], totals: SampleTotals) -> None:
    psi = _section(document, "PSI", dict)
    if psi is None:
        return

    for field, total in PSI_TOTALS.items():
        try:
            ratio = _number(psi, total) / (totals.elapsed * 10000)
        except (KeyError, TypeError):
            continue
        psi[field] = min(100, max(0, ratio))

    for field, prefix in PSI_AVERAGES.items():
        try:
            averages = [_number(psi, f"{prefix}{window}") for window in (10, 60, 300)]
        except (KeyError, TypeError):
            continue
        psi[field] = "/".join(str(round_half_up(value)) for value in averages)


def _derive_disks(document: dict[str, Any], totals: SampleTotals, cap: int) -> int:
    required = ("io_ms", "nread", "nwrite", "nrsect", "nwsect")
    effective = 0
    for key in DISK_SECTIONS:
        disks = _section(document, key, list)
        if disks is None:
            continue
        disks = _records_with(disks, key, required)
        for disk in disks:
            iotot = disk["nread"] + disk["nwrite"]
            disk["avio"] = round(disk["io_ms"] / iotot, 2) if iotot else 0.0
            disk["diskbusy"] = round(disk["io_ms"] / totals.ms_total, 2) if totals.ms_total else 0
            disk["MBr/s"] = round(disk["nrsect"] / 2 / 1024 / totals.elapsed, 1)
            disk["MBw/s"] = round(disk["nwsect"] / 2 / 1024 / totals.elapsed, 1)
        document[key], kept = top_n(disks, compare_by_disk_io_ms, cap)
        if key == "DSK":
            effective = kept
    return effective


def _by_pid(records: list[Any] | None, section: str) -> dict[Any, Record]:
    mapping: dict[Any, Record] = {}
    for record in records or []:
        if not isinstance(record, dict) or "pid" not in record:
            logger.debug("dropping %s record without pid", section)
            continue
        pid = record["pid"]
        if isinstance(pid, bool) or not isinstance(pid, (int, str)):
            logger.debug("dropping %s record with pid %r", section, pid)
            continue
        mapping[pid] = record
    return mapping


def _thread_counter(record: Record, name: str) -> float:
    if record.get(name) is None:
        return 0
    return _number(record, name)


def _process_counts(generic: list[Record]) -> dict[str, Any]:
    """Count process states from the generic process records."""
    hprc = {
        "proc_count": 0,
        "running_count": 0,
        "sleep_count": 0,
        "sleep_interrupt_count": 0,
        "sleep_uninterrupt_count": 0,
        "zombie_count": 0,
        "exit_count": 0,
        "stime_unit_time": 0,
        "utime_unit_time": 0,
    }
    for record in generic:
        if record.get("isproc") != 1:
            continue
        if record.get("state") == "E":
            hprc["exit_count"] += 1
            continue
        if record.get("state") == "Z":
            hprc["zombie_count"] += 1
        hprc["sleep_interrupt_count"] += _thread_counter(record, "nthrslpi")
        hprc["sleep_uninterrupt_count"] += _thread_counter(record, "nthrslpu")
        hprc["running_count"] += _thread_counter(record, "nthrrun")
        hprc["proc_count"] += 1
    hprc["sleep_count"] = hprc["sleep_interrupt_count"] + hprc["sleep_uninterrupt_count"]
    return hprc


def _disk_activity(record: Record) -> float:
    return _number(record, "rsz") + net_write_size(record)


def _clean(text: Any) -> str:
    return _PARENS.sub("", str(text))


def _summarize(
    prc: Record,
    prm: Record,
    prd: Record,
    prg: Record,
    totals: SampleTotals,
    disk_total: float,
) -> Record:
    """Merge the four per-process records into one derived summary record."""
    cpu = dict(prc)
    stime, utime = _number(cpu, "stime"), _number(cpu, "utime")
    cpu["cpubusy"] = round((stime + utime) / totals.per_cpu_total * 100, 1)
    cpu["stime_unit_time"] = stime
    cpu["utime_unit_time"] = utime
    cpu["curcpu"] = cpu.get("curcpu") or "-"

    memory = dict(prm)
    membusy = round(_number(memory, "rmem") * 100 / totals.available_memory, 1)
    memory["membusy"] = 100 if membusy > 100 else membusy
    for name in PROCESS_KIB_FIELDS:
        if name in memory:
            memory[name] = _number(memory, name) * 1024

    disk = dict(prd)
    _number(disk, "rio")
    activity = _disk_activity(disk)
    diskbusy = round(activity * 100 / disk_total, 1) if disk_total else 0.0
    disk["diskbusy"] = 100 if diskbusy > 100 else diskbusy
    for name in PROCESS_SECTOR_FIELDS:
        disk[name] = _number(disk, name) * 512

    generic = dict(prg)
    name = _clean(generic["name"])[:NAME_LIMIT]
    cmdline = _clean(generic.get("cmdline") or "")
    generic["name"] = name
    generic["cmdline"] = cmdline or name
    generic["exitcode"] = generic.get("exitcode") or "-"
    generic["tid"] = "-" if generic.get("isproc") == 1 else generic.get("tgid", "-")

    return {**cpu, **memory, **disk, **generic}


def _derive_processes(
    document: dict[str, Any],
    totals: SampleTotals,
    config: DisplayConfig,
) -> int:
    raw = {key: document.pop(key, None) for key in PROCESS_SECTIONS}
    for key, records in raw.items():
        if not isinstance(records, list):
            logger.debug("sample has no %s list", key)
            raw[key] = []

    prc = _by_pid(raw["PRC"], "PRC")
    prm = _by_pid(raw["PRM"], "PRM")
    prd = _by_pid(raw["PRD"], "PRD")
    prg = _by_pid(raw["PRG"], "PRG")
    for pid, generic in list(prg.items()):
        try:
            for name in THREAD_COUNTERS:
                _thread_counter(generic, name)
        except TypeError as exc:
            logger.debug("dropping pid %s: %s", pid, exc)
            del prg[pid]

    hprc = _process_counts(list(prg.values()))

    joined = [pid for pid in prc if pid in prm and pid in prd and pid in prg]
    disk_total = 0
    for pid in joined:
        try:
            disk_total += _disk_activity(prd[pid])
        except (KeyError, TypeError):
            continue

    summaries: list[Record] = []
    for pid in prc:
        if pid not in prm or pid not in prd or pid not in prg:
            logger.debug("dropping pid %s: incomplete process records", pid)
            continue

        generic = prg[pid]
        if generic.get("isproc") != 1 and not config.show_threads:
            continue
        if generic.get("state") == "E":
            continue

        try:
            summary = _summarize(prc[pid], prm[pid], prd[pid], generic, totals, disk_total)
        except (KeyError, TypeError, ValueError, ArithmeticError) as exc:
            logger.debug("dropping pid %s: %s", pid, exc)
            continue

        hprc["stime_unit_time"] += summary["stime_unit_time"]
        hprc["utime_unit_time"] += summary["utime_unit_time"]
        summaries.append(summary)

    comparator = PROCESS_COMPARATORS.get(config.rank_by, compare_by_cpu)
    document["PRSUMMARY"], effective = top_n(summaries, comparator, config.proc)
    document["HPRC"] = hprc
    return effective


def normalize_sample(
    sample: dict[str, Any],
    config: DisplayConfig | None = None,
) -> tuple[dict[str, Any], DisplayConfig]:
    """
    Derive the displayable document from a raw sample.

    Args:
        sample: Raw sample document. It is not modified.
        config: Caps, ranking and thread settings for this call.

    Returns:
        The derived document and the effective configuration, whose caps
        are clamped to the number of entries that were available.

    Raises:
        MalformedInputError: The CPU or memory aggregates are missing or invalid.
    """
    if config is None:
        config = DisplayConfig()
    if not isinstance(sample, dict):
        raise MalformedInputError(f"sample must be a record, got {type(sample).__name__}")

    document = copy.deepcopy(sample)
    totals = sample_totals(document)

    date = _format_date(document.get("timestamp"))
    if date is not None:
        document["date"] = date

    _derive_cpu(document, totals)
    _derive_psi(document, totals)

    caps = {
        "cpu": _rank_section(document, "cpu", compare_by_cpu, config.cpu, ("stime", "utime")),
        "numa": _derive_numa(document, config.numa),
        "disk": _derive_disks(document, totals, config.disk),
        "interface": _rank_section(
            document, "NET", compare_by_network, config.interface, ("rpack", "spack")
        ),
        "gpu": _rank_section(document, "GPU", compare_by_gpu, config.gpu, ("gpupercnow",)),
        "infiniband": _rank_section(
            document, "IFB", compare_by_infiniband, config.infiniband, ("rcvb", "sndb")
        ),
        "nfs": _rank_section(
            document, "NFM", compare_by_nfs, config.nfs, ("bytestotread", "bytestotwrite")
        ),
        "container": _rank_section(document, "CGR", None, config.container),
        "llc": _rank_section(document, "LLC", None, config.llc),
    }

    document["EXTRA"] = {
        "mstot": totals.ms_total,
        "percputot": totals.per_cpu_total,
        "availmem": totals.available_memory,
    }

    caps["proc"] = _derive_processes(document, totals, config)

    effective = config.with_caps(**caps)
    logger.debug("normalized sample with caps %s", caps)
    return document, effective


def normalize(sample: dict[str, Any], config: DisplayConfig | None = None) -> dict[str, Any]:
    """Derive the displayable document from a raw sample."""
    document, _ = normalize_sample(sample, config)
    return document
