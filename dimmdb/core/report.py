"""Text dump of the DIMM error database."""

import enum
from typing import TextIO

from dimmdb.core.bucket import BucketConfig, LeakyBucketAccountant
from dimmdb.core.registry import DimmRecord, DimmRegistry, ErrorCounter


class DumpFlags(enum.Flag):
    """Verbosity flags for dump()."""

    NONE = 0
    ALL = enum.auto()
    BIOS = enum.auto()


def sort_records(registry: DimmRegistry) -> list[DimmRecord]:
    """Snapshot the registry ordered by socket, channel, slot."""
    return sorted(registry, key=lambda record: record.key)


def _dump_errtype(
    name: str,
    counter: ErrorCounter,
    config: BucketConfig,
    accountant: LeakyBucketAccountant,
    show_all: bool,
) -> list[str]:
    lines = []
    active = not accountant.is_idle(counter.state)

    if counter.total_count or active or show_all:
        lines.append(f"{name}:")
    if counter.total_count or show_all:
        lines.append(f"\t{counter.total_count} total")
    if active or show_all:
        lines.append(f"\t{accountant.summarize(config, counter.state)}")
    return lines


def _dump_bios(record: DimmRecord) -> list[str]:
    parts = []
    if record.name is not None:
        parts.append(f'DMI_NAME "{record.name}"')
    if record.location is not None:
        parts.append(f'DMI_LOCATION "{record.location}"')
    return [" ".join(parts)] if parts else []


def format_dimm(
    record: DimmRecord,
    flags: DumpFlags,
    ce_config: BucketConfig,
    uc_config: BucketConfig,
    accountant: LeakyBucketAccountant,
) -> list[str]:
    """
    Lines describing one DIMM, or an empty list if it is filtered out.

    A DIMM without errors is only shown with DumpFlags.ALL.
    """
    show_all = bool(flags & DumpFlags.ALL)
    if not (record.ce.total_count + record.uc.total_count > 0 or show_all):
        return []

    channel = "unknown" if record.channel == -1 else str(record.channel)
    slot = "unknown" if record.slot == -1 else str(record.slot)
    lines = [f"SOCKET {record.socket_id} CHANNEL {channel} DIMM {slot}"]

    if flags & DumpFlags.BIOS:
        lines.extend(_dump_bios(record))
    lines.extend(
        _dump_errtype("corrected memory errors", record.ce, ce_config, accountant, show_all)
    )
    lines.extend(
        _dump_errtype("uncorrected memory errors", record.uc, uc_config, accountant, show_all)
    )
    return lines


def dump(
    registry: DimmRegistry,
    sink: TextIO,
    flags: DumpFlags,
    ce_config: BucketConfig,
    uc_config: BucketConfig,
    accountant: LeakyBucketAccountant,
) -> None:
    """
    Write all DIMMs to sink, sorted, one block per DIMM.

    Blocks are separated by one blank line.
    """
    blocks = []
    for record in sort_records(registry):
        lines = format_dimm(record, flags, ce_config, uc_config, accountant)
        if lines:
            blocks.append("".join(f"{line}\n" for line in lines))
    sink.write("\n".join(blocks))
