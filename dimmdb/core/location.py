"""Human readable DIMM locations."""

from dimmdb.core.registry import DimmRecord


def _number(value: int) -> str:
    return "?" if value == -1 else str(value)


def format_location(record: DimmRecord) -> str:
    """
    Format a DIMM location.

    Example: "SOCKET:0 CHANNEL:1 DIMM:? [NODE 0 CHANNEL 1 DIMM 0 DIMM_A1]"
    """
    label = " ".join(part for part in (record.location, record.name) if part is not None)
    return (
        f"SOCKET:{record.socket_id} CHANNEL:{_number(record.channel)} "
        f"DIMM:{_number(record.slot)} [{label}]"
    )
