"""Shared fixtures for atopview tests."""

import pytest


def build_sample() -> dict:
    """
    Build a small raw sample.

    One CPU with 1000 ticks in total, 10 seconds elapsed, 1024 KiB of
    memory. Process 3 is a thread, process 4 has exited, process 6 has no
    disk record.
    """
    return {
        "timestamp": 1700000000,
        "elapsed": 10,
        "CPU": {
            "hertz": 100,
            "nrcpu": 1,
            "stime": 100,
            "utime": 50,
            "ntime": 0,
            "itime": 800,
            "wtime": 50,
            "Itime": 0,
            "Stime": 0,
            "steal": 0,
            "guest": 0,
        },
        "cpu": [
            {"cpuid": 0, "stime": 40, "utime": 10, "itime": 400, "wtime": 0, "freq": 2400},
            {"cpuid": 1, "stime": 60, "utime": 40, "itime": 400, "wtime": 50, "freq": 2400},
        ],
        "CPL": {"lavg1": 0.5, "lavg5": 0.25, "lavg15": 0.1},
        "MEM": {"physmem": 1048576, "freemem": 524288, "cachemem": 2097152},
        "SWP": {"totswap": 0, "freeswap": 0},
        "PSI": {
            "cstot": 50000,
            "mstot": 0,
            "mftot": 0,
            "iostot": 2_000_000_000,
            "ioftot": 0,
            "cs10": 1.4,
            "cs60": 2.5,
            "cs300": 3.6,
            "ms10": 0.0,
            "ms60": 0.0,
            "ms300": 0.0,
            "ios10": 10.0,
            "ios60": 5.0,
            "ios300": 1.0,
        },
        "DSK": [
            {"dskname": "sda", "io_ms": 30, "nread": 10, "nwrite": 5, "nrsect": 2048, "nwsect": 0},
            {"dskname": "sdb", "io_ms": 90, "nread": 0, "nwrite": 0, "nrsect": 0, "nwsect": 10240},
        ],
        "NET": [
            {"name": "lo", "rpack": 10, "spack": 10, "rbyte": 500, "sbyte": 500, "speed": 0},
            {"name": "eth0", "rpack": 100, "spack": 50, "rbyte": 1500000, "sbyte": 2000, "speed": 1000},
        ],
        "NUM": [{"frag": 0.1}, {"frag": 0.2}],
        "PRG": [
            _generic(1, "(systemd)", "S", "", nthrslpi=1),
            _generic(2, "postgres-writer-process", "R", "postgres: (writer)",
                     nthr=3, nthrrun=1, nthrslpi=1, nthrslpu=1),
            _generic(3, "worker", "S", "worker --thread", isproc=0, tgid=2),
            _generic(4, "gone", "E", "gone", exitcode=1),
            _generic(5, "zombie", "Z", ""),
            _generic(6, "orphan", "S", "orphan", nthrslpi=1),
        ],
        "PRC": [
            {"pid": 1, "stime": 10, "utime": 5, "nice": 0, "curcpu": 0},
            {"pid": 2, "stime": 300, "utime": 200, "nice": 0, "curcpu": 1},
            {"pid": 3, "stime": 20, "utime": 20, "nice": 0, "curcpu": 1},
            {"pid": 4, "stime": 1, "utime": 1, "nice": 0, "curcpu": 0},
            {"pid": 5, "stime": 0, "utime": 0, "nice": 0, "curcpu": 0},
            {"pid": 6, "stime": 7, "utime": 7, "nice": 0, "curcpu": 0},
        ],
        "PRM": [
            {"pid": 1, "vmem": 4096, "rmem": 100, "pmem": 80, "vexec": 10, "vgrow": 0, "rgrow": -2,
             "minflt": 3, "majflt": 0},
            {"pid": 2, "vmem": 8192, "rmem": 512, "pmem": 400, "vexec": 20, "vgrow": 4, "rgrow": 4,
             "minflt": 9, "majflt": 1},
            {"pid": 3, "vmem": 8192, "rmem": 0, "pmem": 0, "vexec": 20, "vgrow": 0, "rgrow": 0,
             "minflt": 0, "majflt": 0},
            {"pid": 4, "vmem": 0, "rmem": 0, "pmem": 0, "vexec": 0, "vgrow": 0, "rgrow": 0,
             "minflt": 0, "majflt": 0},
            {"pid": 5, "vmem": 0, "rmem": 0, "pmem": 0, "vexec": 0, "vgrow": 0, "rgrow": 0,
             "minflt": 0, "majflt": 0},
            {"pid": 6, "vmem": 100, "rmem": 10, "pmem": 10, "vexec": 1, "vgrow": 0, "rgrow": 0,
             "minflt": 0, "majflt": 0},
        ],
        "PRD": [
            {"pid": 1, "rio": 4, "rsz": 100, "wio": 2, "wsz": 50, "cwsz": 10},
            {"pid": 2, "rio": 1, "rsz": 0, "wio": 3, "wsz": 60, "cwsz": 80},
            {"pid": 3, "rio": 0, "rsz": 60, "wio": 0, "wsz": 0, "cwsz": 0},
            {"pid": 4, "rio": 0, "rsz": 0, "wio": 0, "wsz": 0, "cwsz": 0},
            {"pid": 5, "rio": 0, "rsz": 0, "wio": 0, "wsz": 0, "cwsz": 0},
        ],
    }


def _generic(pid, name, state, cmdline, isproc=1, tgid=None, exitcode=0,
             nthr=1, nthrrun=0, nthrslpi=0, nthrslpu=0):
    return {
        "pid": pid,
        "name": name,
        "state": state,
        "cmdline": cmdline,
        "isproc": isproc,
        "tgid": pid if tgid is None else tgid,
        "exitcode": exitcode,
        "nthr": nthr,
        "nthrrun": nthrrun,
        "nthrslpi": nthrslpi,
        "nthrslpu": nthrslpu,
    }


@pytest.fixture
def sample() -> dict:
    """A fresh raw sample for each test."""
    return build_sample()
