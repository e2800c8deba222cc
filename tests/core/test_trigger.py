"""Tests for threshold trigger dispatch."""

import pytest

from dimmdb.core.bucket import BucketConfig, LeakyBucketAccountant
from dimmdb.core.registry import DimmRegistry
from dimmdb.core.trigger import DEFAULT_PATH, MAX_ENV, build_trigger_env, dispatch
from tests.conftest import DEFAULT_NOW, read_log


@pytest.fixture
def accountant():
    return LeakyBucketAccountant(clock=lambda: DEFAULT_NOW)


@pytest.fixture
def record(accountant):
    registry = DimmRegistry(state_factory=accountant.init_state)
    record = registry.get_or_create(1, 2, 3)
    record.ce.total_count = 7
    record.uc.total_count = 1
    return record


def env_dict(env):
    return dict(item.split("=", 1) for item in env)


class TestBuildTriggerEnv:
    """Tests for build_trigger_env."""

    def test_full_order(self, record, accountant):
        """All facts present, in fixed order."""
        conf = BucketConfig(capacity=10, agetime=86400, trigger="/bin/true")
        record.location = "_Node1_Channel2_Dimm3"
        record.name = "DIMM_C3"
        record.ce.state.excess = 10
        record.ce.state.count = 2

        env = build_trigger_env("msg", record, 1700000000, record.ce, conf, accountant, path="/usr/bin")

        assert [item.split("=", 1)[0] for item in env] == [
            "PATH",
            "THRESHOLD",
            "TOTALCOUNT",
            "LOCATION",
            "DMI_LOCATION",
            "DMI_NAME",
            "DIMM",
            "CHANNEL",
            "SOCKETID",
            "CECOUNT",
            "UCCOUNT",
            "LASTEVENT",
            "AGETIME",
            "MESSAGE",
            "THRESHOLD_COUNT",
        ]
        values = env_dict(env)
        assert values["PATH"] == "/usr/bin"
        assert values["THRESHOLD"] == "12 in 1d"
        assert values["TOTALCOUNT"] == "7"
        assert values["LOCATION"] == "SOCKET:1 CHANNEL:2 DIMM:3 [_Node1_Channel2_Dimm3 DIMM_C3]"
        assert values["DIMM"] == "3"
        assert values["CHANNEL"] == "2"
        assert values["SOCKETID"] == "1"
        assert values["CECOUNT"] == "7"
        assert values["UCCOUNT"] == "1"
        assert values["LASTEVENT"] == "1700000000"
        assert values["AGETIME"] == "86400"
        assert values["MESSAGE"] == "msg"
        assert values["THRESHOLD_COUNT"] == "12"
        assert len(env) < MAX_ENV

    def test_optional_facts_omitted(self, accountant):
        """Unknown channel/slot, no firmware labels and no event time are left out."""
        record = DimmRegistry(state_factory=accountant.init_state).get_or_create(0, -1, -1)
        conf = BucketConfig(capacity=1, agetime=3600)

        values = env_dict(build_trigger_env("lost", record, None, record.ce, conf, accountant))

        for key in ("DMI_LOCATION", "DMI_NAME", "DIMM", "CHANNEL", "LASTEVENT"):
            assert key not in values
        assert values["LOCATION"] == "SOCKET:0 CHANNEL:? DIMM:? []"

    def test_default_path(self, record, accountant):
        """Falls back to a standard PATH."""
        conf = BucketConfig(capacity=1)

        env = build_trigger_env("m", record, 0, record.uc, conf, accountant)

        assert env[0] == f"PATH={DEFAULT_PATH}"
        assert "LASTEVENT" not in env_dict(env)
        assert env_dict(env)["TOTALCOUNT"] == "1"


class TestDispatch:
    """Tests for dispatch."""

    def test_logs_without_trigger(self, record, accountant, mock_context, diag_logger, log_path):
        """Crossings are logged even with no trigger configured."""
        ctx = mock_context()
        conf = BucketConfig(capacity=10, agetime=86400)

        dispatch("Corrected DIMM memory error count exceeded threshold", record,
                 DEFAULT_NOW, record.ce, conf, accountant, context=ctx, logger=diag_logger)

        entries = read_log(log_path)
        assert [e["message"] for e in entries] == [
            "Corrected DIMM memory error count exceeded threshold: 0 in 1d",
            "Location SOCKET:1 CHANNEL:2 DIMM:3 []",
        ]
        assert all(e["level"] == "warning" for e in entries)
        assert ctx.spawned == []

    def test_spawns_trigger(self, record, accountant, mock_context, diag_logger):
        """Configured trigger is started with the fact set."""
        ctx = mock_context(env={"PATH": "/opt/bin:/usr/bin"})
        conf = BucketConfig(capacity=10, agetime=86400, trigger="/etc/dimmdb/ce-trigger")

        dispatch("boom", record, DEFAULT_NOW, record.ce, conf, accountant,
                 context=ctx, logger=diag_logger)

        assert len(ctx.spawned) == 1
        path, env = ctx.spawned[0]
        assert path == "/etc/dimmdb/ce-trigger"
        assert env[0] == "PATH=/opt/bin:/usr/bin"
        assert env_dict(env)["MESSAGE"] == "boom"
        assert env_dict(env)["LASTEVENT"] == str(DEFAULT_NOW)

    def test_spawn_failure_logged(self, record, accountant, mock_context, diag_logger, log_path):
        """A trigger that cannot start is logged, not raised."""
        ctx = mock_context(spawn_error=FileNotFoundError("no such file"))
        conf = BucketConfig(capacity=10, trigger="/missing/trigger")

        dispatch("boom", record, DEFAULT_NOW, record.ce, conf, accountant,
                 context=ctx, logger=diag_logger)

        entries = read_log(log_path)
        assert entries[-1]["level"] == "error"
        assert "/missing/trigger" in entries[-1]["message"]
