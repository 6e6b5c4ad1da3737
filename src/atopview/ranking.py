"""Ordering predicates for sample records."""

from collections.abc import Callable, Sequence
from functools import cmp_to_key
from typing import Any

from atopview.models import RankBy

Record = dict[str, Any]
Comparator = Callable[[Record, Record], int]


def _descending(a_value: float, b_value: float) -> int:
    if a_value > b_value:
        return -1
    if a_value < b_value:
        return 1
    return 0


def cpu_ticks(record: Record) -> float:
    """System plus user ticks of a CPU or process record."""
    return record["stime"] + record["utime"]


def net_write_size(record: Record) -> float:
    """Written size minus cancelled writes, never negative."""
    if record["wsz"] > record["cwsz"]:
        return record["wsz"] - record["cwsz"]
    return 0


def compare_by_cpu(a: Record, b: Record) -> int:
    return _descending(cpu_ticks(a), cpu_ticks(b))


def compare_by_disk(a: Record, b: Record) -> int:
    """Order processes by read I/O plus net written size, then by CPU."""
    result = _descending(a["rio"] + net_write_size(a), b["rio"] + net_write_size(b))
    if result:
        return result
    return compare_by_cpu(a, b)


def compare_by_disk_io_ms(a: Record, b: Record) -> int:
    return _descending(a["io_ms"], b["io_ms"])


def compare_by_memory(a: Record, b: Record) -> int:
    return _descending(a["rmem"], b["rmem"])


def compare_by_network(a: Record, b: Record) -> int:
    # Both sides sum received and sent packets.
    return _descending(a["rpack"] + a["spack"], b["rpack"] + b["spack"])


def compare_by_gpu(a: Record, b: Record) -> int:
    return _descending(a["gpupercnow"], b["gpupercnow"])


def compare_by_infiniband(a: Record, b: Record) -> int:
    return _descending(a["rcvb"] + a["sndb"], b["rcvb"] + b["sndb"])


def compare_by_nfs(a: Record, b: Record) -> int:
    return _descending(
        a["bytestotread"] + a["bytestotwrite"],
        b["bytestotread"] + b["bytestotwrite"],
    )


PROCESS_COMPARATORS: dict[RankBy, Comparator] = {
    RankBy.CPU: compare_by_cpu,
    RankBy.DISK: compare_by_disk,
    RankBy.MEM: compare_by_memory,
}


def top_n(
    records: Sequence[Record],
    comparator: Comparator | None,
    cap: int,
) -> tuple[list[Record], int]:
    """
    Rank records and keep the first ``cap`` of them.

    Args:
        records: Records to rank.
        comparator: Ordering predicate, or None to keep document order.
        cap: Requested number of records.

    Returns:
        The retained records and the effective cap, ``min(cap, len(records))``.
    """
    effective = max(0, min(cap, len(records)))
    if comparator is None:
        ranked = list(records)
    else:
        ranked = sorted(records, key=cmp_to_key(comparator))
    return ranked[:effective], effective
