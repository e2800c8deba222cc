"""In-memory DIMM error database.

Memory errors reported by the machine check decoder are recorded per DIMM.
Each DIMM keeps separate corrected (CE) and uncorrected (UC) totals plus a
leaky bucket per class. When a bucket overflows, the configured trigger
program for that class is started with a description of the DIMM in its
environment.
"""

from typing import TextIO

from dimmdb.core.bucket import LeakyBucketAccountant
from dimmdb.core.config import DimmConfig, load_layered_config, resolve_dimm_config
from dimmdb.core.context import Context
from dimmdb.core.dmi import DMIError, open_dmi, parse_bank_locator
from dimmdb.core.logging import DiagnosticLogger
from dimmdb.core.registry import DimmRecord, DimmRegistry
from dimmdb.core.report import DumpFlags, dump as dump_records
from dimmdb.core.trigger import dispatch

# Present when the kernel has EDAC memory controller drivers loaded
EDAC_MC_PATH = "/sys/devices/system/edac/mc"

LOST_MESSAGE = "Lost DIMM memory error count {} exceeded threshold"
UC_MESSAGE = "Uncorrected DIMM memory error count exceeded threshold"
CE_MESSAGE = "Corrected DIMM memory error count exceeded threshold"


class MemoryErrorDB:
    """
    DIMM registry plus the policy for recording errors against it.

    Configuration is resolved once, on first use. Firmware prefill also
    happens once, before the first recorded error or dump.
    """

    def __init__(
        self,
        config: DimmConfig | None = None,
        context: Context | None = None,
        logger: DiagnosticLogger | None = None,
        memory_error_support: bool | None = None,
    ):
        """
        Args:
            config: Resolved settings (default: load from config files)
            context: Execution context (for testing)
            logger: Diagnostic logger (default: JSONL log "memdb")
            memory_error_support: Hardware capability, used when the config
                does not set dimm-tracking-enabled (default: check for EDAC)
        """
        self.context = context or Context()
        self.logger = logger or DiagnosticLogger("memdb")
        self.accountant = LeakyBucketAccountant(clock=self.context.time)
        self.registry = DimmRegistry(state_factory=self.accountant.init_state)
        self.config = config
        self.memory_error_support = memory_error_support
        self.enabled = False
        self.prefill_missed = 0
        self._configured = False
        self._prefilled = False

    def configure(self) -> None:
        """Resolve configuration and the tracking switch. Runs once."""
        if self._configured:
            return
        if self.config is None:
            self.config = resolve_dimm_config(load_layered_config())

        if self.config.tracking_enabled is not None:
            self.enabled = self.config.tracking_enabled
        else:
            if self.memory_error_support is None:
                self.memory_error_support = self.context.file_exists(EDAC_MC_PATH)
            self.enabled = self.memory_error_support
        self._configured = True

    def record_error(
        self,
        socket_id: int,
        channel: int,
        slot: int,
        uncorrected: bool,
        lost_count: int = 0,
        event_time: int = 0,
    ) -> None:
        """
        Record a memory error and run triggers if a threshold is crossed.

        Args:
            socket_id: CPU socket that reported the error
            channel: Memory channel, -1 if unknown
            slot: DIMM on the channel, -1 if unknown
            uncorrected: True for an uncorrected error
            lost_count: Hardware corrected-error count carried by the event;
                n means n - 1 further corrected errors were not reported
            event_time: Event timestamp in epoch seconds, 0 for now
        """
        self.configure()
        if not self.enabled:
            return
        self.prefill()

        t = event_time or self.context.time()
        record = self.registry.get_or_create(socket_id, channel, slot)

        lost = lost_count - 1 if lost_count > 0 else 0
        if lost > 0:
            # Lost errors are assumed to be corrected ones
            record.ce.total_count += lost
            if self.accountant.account(self.config.ce, record.ce.state, lost, t):
                self._trigger(LOST_MESSAGE.format(lost), record, None, uncorrected=False)

        if uncorrected:
            record.uc.total_count += 1
            if self.accountant.account(self.config.uc, record.uc.state, 1, t):
                self._trigger(UC_MESSAGE, record, t, uncorrected=True)
        else:
            record.ce.total_count += 1
            if self.accountant.account(self.config.ce, record.ce.state, 1, t):
                self._trigger(CE_MESSAGE, record, t, uncorrected=False)

    def _trigger(
        self,
        message: str,
        record: DimmRecord,
        event_time: int | None,
        uncorrected: bool,
    ) -> None:
        counter, conf = (record.uc, self.config.uc) if uncorrected else (record.ce, self.config.ce)
        dispatch(
            message,
            record,
            event_time,
            counter,
            conf,
            self.accountant,
            context=self.context,
            logger=self.logger,
        )

    def prefill(self) -> None:
        """
        Prepopulate DIMMs from the firmware memory device inventory.

        Best effort: an unreadable inventory skips prefill, and entries that
        cannot be parsed are counted and reported once.
        """
        if self._prefilled:
            return
        self.configure()
        if not self.enabled:
            return
        self._prefilled = True
        if not self.config.prepopulate:
            return

        try:
            devices = open_dmi(self.context)
        except DMIError:
            return

        missed = 0
        for device in devices:
            ids = parse_bank_locator(device.bank_locator)
            if ids is None:
                missed += 1
                continue

            record = self.registry.get_or_create(*ids)
            if record.memdev is not None:
                # Duplicate locator, likely a parse error
                missed += 1
                continue
            record.memdev = device
            record.location = device.bank_locator
            record.name = device.locator

        self.prefill_missed = missed
        if missed:
            self.logger.warning(
                "failed to prefill DIMM database from DMI data",
                missed=missed,
                devices=len(devices),
            )

    def dump(self, sink: TextIO, flags: DumpFlags = DumpFlags.NONE) -> None:
        """Write the sorted DIMM report to sink."""
        self.configure()
        self.prefill()
        dump_records(self.registry, sink, flags, self.config.ce, self.config.uc, self.accountant)
