"""Local sample collection for atopview."""

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any

import psutil

from atopview.models import DEFAULT_HERTZ

logger = logging.getLogger(__name__)

# atop counter name -> psutil cpu_times attribute
CPU_TIME_FIELDS = {
    "stime": "system",
    "utime": "user",
    "ntime": "nice",
    "itime": "idle",
    "wtime": "iowait",
    "Itime": "irq",
    "Stime": "softirq",
    "steal": "steal",
    "guest": "guest",
}

# psutil status -> atop state letter
PROCESS_STATES = {
    psutil.STATUS_RUNNING: "R",
    psutil.STATUS_SLEEPING: "S",
    psutil.STATUS_DISK_SLEEP: "D",
    psutil.STATUS_STOPPED: "T",
    psutil.STATUS_TRACING_STOP: "t",
    psutil.STATUS_ZOMBIE: "Z",
    psutil.STATUS_DEAD: "E",
    psutil.STATUS_IDLE: "I",
}

PROCESS_ATTRS = [
    "pid",
    "ppid",
    "name",
    "status",
    "cmdline",
    "num_threads",
    "cpu_times",
    "memory_info",
    "nice",
]


def clock_ticks() -> int:
    """Get the kernel clock tick rate, falling back to 100 Hz."""
    try:
        return os.sysconf("SC_CLK_TCK")
    except (AttributeError, ValueError, OSError):
        return DEFAULT_HERTZ


@dataclass(slots=True)
class ProcessReading:
    """Counters of one process at one point in time."""

    pid: int
    name: str
    state: str
    cmdline: str
    ppid: int
    threads: int
    nice: int
    curcpu: int | None
    stime: float
    utime: float
    rss: int
    vms: int
    text: int
    lib: int
    data: int
    read_count: int = 0
    write_count: int = 0
    read_bytes: int = 0
    write_bytes: int = 0


@dataclass(slots=True)
class Reading:
    """One set of cumulative system counters."""

    taken_at: float
    cpu: Any
    per_cpu: list[Any]
    disks: dict[str, Any] = field(default_factory=dict)
    nics: dict[str, Any] = field(default_factory=dict)
    processes: dict[int, ProcessReading] = field(default_factory=dict)


def _read_process(proc: psutil.Process) -> ProcessReading:
    info = proc.info
    cpu_times = info.get("cpu_times")
    mem_info = info.get("memory_info")

    cmdline = info.get("cmdline") or []
    reading = ProcessReading(
        pid=info["pid"],
        name=info.get("name") or "",
        state=PROCESS_STATES.get(info.get("status"), "S"),
        cmdline=" ".join(cmdline),
        ppid=info.get("ppid") or 0,
        threads=info.get("num_threads") or 1,
        nice=info.get("nice") or 0,
        curcpu=None,
        stime=cpu_times.system if cpu_times else 0.0,
        utime=cpu_times.user if cpu_times else 0.0,
        rss=mem_info.rss if mem_info else 0,
        vms=mem_info.vms if mem_info else 0,
        text=getattr(mem_info, "text", 0),
        lib=getattr(mem_info, "lib", 0),
        data=getattr(mem_info, "data", 0),
    )

    if hasattr(proc, "cpu_num"):
        try:
            reading.curcpu = proc.cpu_num()
        except psutil.AccessDenied:
            pass
    if hasattr(proc, "io_counters"):
        try:
            io = proc.io_counters()
        except psutil.AccessDenied:
            pass
        else:
            reading.read_count = io.read_count
            reading.write_count = io.write_count
            reading.read_bytes = io.read_bytes
            reading.write_bytes = io.write_bytes
    return reading


def read_processes() -> dict[int, ProcessReading]:
    """
    Read the counters of all running processes.

    Processes that exit, deny access or turn into zombies while being read
    are skipped.
    """
    readings: dict[int, ProcessReading] = {}
    for proc in psutil.process_iter(attrs=PROCESS_ATTRS):
        try:
            with proc.oneshot():
                reading = _read_process(proc)
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
        readings[reading.pid] = reading
    return readings


def take_reading() -> Reading:
    """Read the cumulative CPU, disk, network and process counters."""
    return Reading(
        taken_at=time.monotonic(),
        cpu=psutil.cpu_times(),
        per_cpu=psutil.cpu_times(percpu=True),
        disks=psutil.disk_io_counters(perdisk=True) or {},
        nics=psutil.net_io_counters(pernic=True) or {},
        processes=read_processes(),
    )


def cpu_ticks(before: Any, after: Any, hertz: int) -> dict[str, int]:
    """Convert the growth of psutil CPU times into atop tick counters."""
    record = {}
    for name, attr in CPU_TIME_FIELDS.items():
        delta = getattr(after, attr, 0.0) - getattr(before, attr, 0.0)
        record[name] = max(0, round(delta * hertz))
    return record


def _cpu_frequencies() -> list[float]:
    try:
        freqs = psutil.cpu_freq(percpu=True) or []
    except (AttributeError, NotImplementedError, OSError):
        return []
    return [freq.current for freq in freqs]


def _memory() -> tuple[dict[str, Any], dict[str, Any]]:
    mem = psutil.virtual_memory()
    swap = psutil.swap_memory()
    memory = {
        "physmem": mem.total,
        "freemem": mem.free,
        "cachemem": getattr(mem, "cached", 0),
        "buffermem": getattr(mem, "buffers", 0),
        "slabmem": getattr(mem, "slab", 0),
        "shmem": getattr(mem, "shared", 0),
    }
    swap_record = {"totswap": swap.total, "freeswap": swap.free}
    return memory, swap_record


def _disks(before: Reading, after: Reading) -> list[dict[str, Any]]:
    disks = []
    for name, now in after.disks.items():
        then = before.disks.get(name)
        if then is None:
            continue
        busy = getattr(now, "busy_time", None)
        if busy is not None:
            io_ms = busy - then.busy_time
        else:
            io_ms = (now.read_time + now.write_time) - (then.read_time + then.write_time)
        disks.append(
            {
                "dskname": name,
                "io_ms": max(0, io_ms),
                "nread": now.read_count - then.read_count,
                "nrsect": (now.read_bytes - then.read_bytes) // 512,
                "nwrite": now.write_count - then.write_count,
                "nwsect": (now.write_bytes - then.write_bytes) // 512,
            }
        )
    return disks


def _interfaces(before: Reading, after: Reading) -> list[dict[str, Any]]:
    try:
        stats = psutil.net_if_stats()
    except OSError:
        stats = {}

    interfaces = []
    for name, now in after.nics.items():
        then = before.nics.get(name)
        if then is None:
            continue
        nic_stats = stats.get(name)
        interfaces.append(
            {
                "name": name,
                "rpack": now.packets_recv - then.packets_recv,
                "spack": now.packets_sent - then.packets_sent,
                "rbyte": now.bytes_recv - then.bytes_recv,
                "sbyte": now.bytes_sent - then.bytes_sent,
                "speed": nic_stats.speed if nic_stats else 0,
                "duplex": int(nic_stats.duplex == psutil.NIC_DUPLEX_FULL) if nic_stats else 0,
            }
        )
    return interfaces


def _thread_states(reading: ProcessReading) -> tuple[int, int, int]:
    running = 1 if reading.state == "R" else 0
    if reading.state == "D":
        return running, 0, reading.threads
    return running, max(0, reading.threads - running), 0


def _processes(before: Reading, after: Reading, hertz: int) -> dict[str, list[dict[str, Any]]]:
    sections: dict[str, list[dict[str, Any]]] = {"PRG": [], "PRC": [], "PRM": [], "PRD": []}
    for pid, now in after.processes.items():
        then = before.processes.get(pid, now)
        nthrrun, nthrslpi, nthrslpu = _thread_states(now)

        sections["PRG"].append(
            {
                "pid": pid,
                "name": now.name,
                "state": now.state,
                "cmdline": now.cmdline,
                "ppid": now.ppid,
                "tgid": pid,
                "isproc": 1,
                "nthr": now.threads,
                "nthrrun": nthrrun,
                "nthrslpi": nthrslpi,
                "nthrslpu": nthrslpu,
                "exitcode": 0,
            }
        )
        sections["PRC"].append(
            {
                "pid": pid,
                "stime": max(0, round((now.stime - then.stime) * hertz)),
                "utime": max(0, round((now.utime - then.utime) * hertz)),
                "nice": now.nice,
                "curcpu": now.curcpu,
            }
        )
        # Memory sizes in KiB.
        sections["PRM"].append(
            {
                "pid": pid,
                "vmem": now.vms // 1024,
                "rmem": now.rss // 1024,
                "pmem": now.rss // 1024,
                "vexec": now.text // 1024,
                "vlibs": now.lib // 1024,
                "vdata": now.data // 1024,
                "vgrow": (now.vms - then.vms) // 1024,
                "rgrow": (now.rss - then.rss) // 1024,
            }
        )
        # Disk sizes in 512-byte sectors.
        sections["PRD"].append(
            {
                "pid": pid,
                "rio": max(0, now.read_count - then.read_count),
                "rsz": max(0, now.read_bytes - then.read_bytes) // 512,
                "wio": max(0, now.write_count - then.write_count),
                "wsz": max(0, now.write_bytes - then.write_bytes) // 512,
                "cwsz": 0,
            }
        )
    return sections


def build_sample(before: Reading, after: Reading, hertz: int) -> dict[str, Any]:
    """Build a sample document from two readings."""
    frequencies = _cpu_frequencies()
    per_cpu = []
    for cpuid, (then, now) in enumerate(zip(before.per_cpu, after.per_cpu)):
        record = {"cpuid": cpuid, **cpu_ticks(then, now, hertz)}
        if cpuid < len(frequencies):
            record["freq"] = round(frequencies[cpuid])
        per_cpu.append(record)

    cpu = {
        "hertz": hertz,
        "nrcpu": len(after.per_cpu) or 1,
        **cpu_ticks(before.cpu, after.cpu, hertz),
    }
    memory, swap = _memory()

    sample = {
        "timestamp": int(time.time()),
        "elapsed": max(after.taken_at - before.taken_at, 0.001),
        "CPU": cpu,
        "cpu": per_cpu,
        "CPL": {},
        "MEM": memory,
        "SWP": swap,
        "DSK": _disks(before, after),
        "NET": _interfaces(before, after),
        **_processes(before, after, hertz),
    }
    try:
        sample["CPL"].update(
            zip(("lavg1", "lavg5", "lavg15"), (round(v, 2) for v in psutil.getloadavg()))
        )
    except OSError:
        pass
    return sample


def collect_sample(interval: float = 1.0) -> dict[str, Any]:
    """
    Collect one sample document from the local system.

    Args:
        interval: Seconds between the two readings the sample is built from.
    """
    hertz = clock_ticks()
    before = take_reading()
    time.sleep(max(0.0, interval))
    after = take_reading()
    sample = build_sample(before, after, hertz)
    logger.debug(
        "collected sample: %d cpus, %d processes", sample["CPU"]["nrcpu"], len(sample["PRG"])
    )
    return sample
