"""Run the configured trigger program when an error threshold is crossed."""

from typing import TYPE_CHECKING

from dimmdb.core.bucket import BucketConfig, LeakyBucketAccountant
from dimmdb.core.location import format_location
from dimmdb.core.registry import DimmRecord, ErrorCounter

if TYPE_CHECKING:
    from dimmdb.core.context import Context
    from dimmdb.core.logging import DiagnosticLogger


DEFAULT_PATH = "/sbin:/usr/sbin:/bin:/usr/bin"

# Upper bound on the trigger environment size
MAX_ENV = 20


def build_trigger_env(
    message: str,
    record: DimmRecord,
    event_time: int | None,
    counter: ErrorCounter,
    config: BucketConfig,
    accountant: LeakyBucketAccountant,
    path: str | None = None,
    summary: str | None = None,
    location: str | None = None,
) -> list[str]:
    """
    Build the environment handed to a trigger program.

    Args:
        message: Alert message
        record: DIMM that crossed the threshold
        event_time: Time of the triggering event, None for lost events
        counter: The counter that crossed (ce or uc)
        config: Bucket config of that counter's class
        accountant: Threshold accountant owning the bucket
        path: Inherited PATH, DEFAULT_PATH when None
        summary: Precomputed accountant summary
        location: Precomputed formatted location

    Returns:
        Ordered list of "KEY=VALUE" strings
    """
    if summary is None:
        summary = accountant.summarize(config, counter.state)
    if location is None:
        location = format_location(record)

    env = [
        f"PATH={path or DEFAULT_PATH}",
        f"THRESHOLD={summary}",
        f"TOTALCOUNT={counter.total_count}",
        f"LOCATION={location}",
    ]
    if record.location is not None:
        env.append(f"DMI_LOCATION={record.location}")
    if record.name is not None:
        env.append(f"DMI_NAME={record.name}")
    if record.slot != -1:
        env.append(f"DIMM={record.slot}")
    if record.channel != -1:
        env.append(f"CHANNEL={record.channel}")
    env.append(f"SOCKETID={record.socket_id}")
    env.append(f"CECOUNT={record.ce.total_count}")
    env.append(f"UCCOUNT={record.uc.total_count}")
    if event_time:
        env.append(f"LASTEVENT={event_time}")
    env.append(f"AGETIME={config.agetime}")
    env.append(f"MESSAGE={message}")
    env.append(f"THRESHOLD_COUNT={accountant.threshold_count(counter.state)}")

    assert len(env) < MAX_ENV, f"trigger environment too large: {len(env)}"
    return env


def dispatch(
    message: str,
    record: DimmRecord,
    event_time: int | None,
    counter: ErrorCounter,
    config: BucketConfig,
    accountant: LeakyBucketAccountant,
    context: "Context",
    logger: "DiagnosticLogger",
) -> None:
    """
    Report a threshold crossing and start the trigger program, if any.

    The crossing is always logged. The trigger runs detached; its outcome
    is not observed.
    """
    summary = accountant.summarize(config, counter.state)
    location = format_location(record)

    logger.warning(f"{message}: {summary}", location=location)
    logger.warning(f"Location {location}")
    if config.trigger is None:
        return

    env = build_trigger_env(
        message,
        record,
        event_time,
        counter,
        config,
        accountant,
        path=context.get_env("PATH"),
        summary=summary,
        location=location,
    )
    try:
        context.spawn(config.trigger, env)
    except OSError as e:
        logger.error(f"Cannot run trigger {config.trigger}: {e}")
