"""Firmware (SMBIOS/DMI) memory device inventory."""

import re
import subprocess
from dataclasses import dataclass, field

from dimmdb.core.context import Context


class DMIError(Exception):
    """Firmware inventory could not be read."""

    pass


# SMBIOS structure type for memory devices
MEMORY_DEVICE_TYPE = 17

HANDLE_PATTERN = re.compile(r"^Handle (0x[0-9A-Fa-f]+), DMI type (\d+)")

# Scanned from the first underscore of a bank locator
BANK_LOCATOR_PATTERN = re.compile(r"_Node(\d+)_Channel(\d+)_Dimm(\d+)")


@dataclass
class MemoryDevice:
    """One SMBIOS memory device entry."""

    handle: str
    locator: str | None = None
    bank_locator: str | None = None
    fields: dict[str, str] = field(default_factory=dict)


def parse_dmidecode(content: str) -> list[MemoryDevice]:
    """
    Parse ``dmidecode -t 17`` output.

    Args:
        content: Raw dmidecode output

    Returns:
        Memory devices in the order dmidecode listed them
    """
    devices = []
    current = None

    for line in content.split("\n"):
        match = HANDLE_PATTERN.match(line)
        if match:
            current = None
            if int(match.group(2)) == MEMORY_DEVICE_TYPE:
                current = MemoryDevice(handle=match.group(1))
                devices.append(current)
            continue

        if current is None or not line.startswith("\t") or ":" not in line:
            continue
        # Nested list items are indented twice
        if line.startswith("\t\t"):
            continue

        key, value = line.strip().split(":", 1)
        value = value.strip()
        current.fields[key] = value
        if key == "Locator":
            current.locator = value
        elif key == "Bank Locator":
            current.bank_locator = value

    return devices


def open_dmi(context: Context | None = None) -> list[MemoryDevice]:
    """
    Read the firmware memory device inventory.

    Args:
        context: Execution context (for testing)

    Returns:
        Memory devices reported by the firmware

    Raises:
        DMIError: If dmidecode is missing, cannot run or exits non-zero
    """
    if context is None:
        context = Context()

    if not context.check_tool("dmidecode"):
        raise DMIError("dmidecode not available")

    cmd = ["dmidecode", "-t", str(MEMORY_DEVICE_TYPE)]
    try:
        result = context.run(cmd, check=True)
    except subprocess.CalledProcessError as e:
        raise DMIError(f"dmidecode exited with status {e.returncode}") from e
    except (subprocess.SubprocessError, OSError) as e:
        raise DMIError(f"Cannot run dmidecode: {e}") from e

    return parse_dmidecode(result.stdout)


def parse_bank_locator(bank_locator: str | None) -> tuple[int, int, int] | None:
    """
    Extract (socket, channel, dimm) from a bank locator.

    The vendor prefix before the first underscore is skipped, e.g.
    "A1_Node0_Channel2_Dimm1" gives (0, 2, 1).

    Returns:
        The three numbers, or None when the locator does not match
    """
    if not bank_locator:
        return None
    start = bank_locator.find("_")
    if start < 0:
        return None
    match = BANK_LOCATOR_PATTERN.match(bank_locator, start)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2)), int(match.group(3))
