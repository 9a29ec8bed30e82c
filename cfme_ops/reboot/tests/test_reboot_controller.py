"""Reboot decision, dispatch and port waits against the fake fleet."""

from unittest.mock import patch

import pytest

from cfme_ops.common.errors import HostTimeoutError, RemoteCommandError
from cfme_ops.common.models import Host, HostState
from cfme_ops.reboot import (
    ProbeVerdict,
    RebootAction,
    RebootConfig,
    classify_probe,
    decide_and_reboot,
)


def _cfg(**overrides):
    values = dict(force=False, probe_command="needs-restarting -r", dispatch_delay_s=5, port=22,
                  down_timeout_s=1, up_timeout_s=1, up_delay_s=0, poll_interval_s=0)
    values.update(overrides)
    return RebootConfig(**values)


def port_states(*states):
    """Probe answering True (open) / False (closed) in order, repeating the last answer."""
    calls = []

    async def probe(host, port, timeout):
        calls.append(port)
        return states[min(len(calls) - 1, len(states) - 1)]

    probe.calls = calls
    return probe


# open, then drops, stays down once, comes back
REBOOT_CYCLE = (True, False, False, True)


@pytest.fixture
def appliance(fleet):
    return fleet.add("10.0.0.3")


class TestClassifyProbe:
    def test_zero_is_clean(self):
        assert classify_probe(0) == ProbeVerdict.CLEAN

    def test_one_advises_restart(self):
        assert classify_probe(1) == ProbeVerdict.RESTART_ADVISED

    @pytest.mark.parametrize("rc", [2, 127, -1])
    def test_other_codes_mean_tool_unavailable(self, rc):
        assert classify_probe(rc) == ProbeVerdict.TOOL_UNAVAILABLE


class TestDecideAndReboot:
    @pytest.mark.asyncio
    async def test_clean_host_is_left_alone(self, fleet, appliance, ops_cfg):
        probe = port_states(True)
        outcome = await decide_and_reboot("10.0.0.3", cfg=_cfg(), ops_cfg=ops_cfg,
                                          connector=fleet.connector, probe=probe)
        assert outcome.action == RebootAction.SKIPPED
        assert not outcome.rebooted
        assert appliance.detached == []
        assert probe.calls == []

    @pytest.mark.asyncio
    async def test_restart_advised_reboots_and_waits(self, fleet, appliance, ops_cfg):
        appliance.needs_restarting_rc = 1
        probe = port_states(*REBOOT_CYCLE)
        outcome = await decide_and_reboot("10.0.0.3", cfg=_cfg(), ops_cfg=ops_cfg,
                                          connector=fleet.connector, probe=probe)
        assert outcome.rebooted
        assert outcome.verdict == ProbeVerdict.RESTART_ADVISED
        assert outcome.probe_rc == 1
        assert appliance.detached == ["( /bin/sleep 5 ; shutdown -r now )"]
        assert len(probe.calls) == 4
        assert set(probe.calls) == {22}

    @pytest.mark.asyncio
    async def test_probe_is_silenced(self, fleet, appliance, ops_cfg):
        await decide_and_reboot("10.0.0.3", cfg=_cfg(), ops_cfg=ops_cfg,
                                connector=fleet.connector, probe=port_states(True))
        assert appliance.commands == ["needs-restarting -r > /dev/null"]

    @pytest.mark.asyncio
    async def test_force_reboots_clean_host(self, fleet, appliance, ops_cfg):
        outcome = await decide_and_reboot("10.0.0.3", force=True, cfg=_cfg(), ops_cfg=ops_cfg,
                                          connector=fleet.connector, probe=port_states(*REBOOT_CYCLE))
        assert outcome.rebooted
        assert outcome.forced
        assert outcome.verdict == ProbeVerdict.CLEAN

    @pytest.mark.asyncio
    async def test_force_defaults_from_config(self, fleet, appliance, ops_cfg):
        outcome = await decide_and_reboot("10.0.0.3", cfg=_cfg(force=True), ops_cfg=ops_cfg,
                                          connector=fleet.connector, probe=port_states(*REBOOT_CYCLE))
        assert outcome.rebooted

    @pytest.mark.asyncio
    async def test_missing_tool_still_reboots(self, fleet, appliance, ops_cfg):
        appliance.needs_restarting_rc = 127
        outcome = await decide_and_reboot("10.0.0.3", cfg=_cfg(), ops_cfg=ops_cfg,
                                          connector=fleet.connector, probe=port_states(*REBOOT_CYCLE))
        assert outcome.rebooted
        assert outcome.verdict == ProbeVerdict.TOOL_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_host_state_tracks_the_cycle(self, fleet, appliance, ops_cfg):
        appliance.needs_restarting_rc = 1
        host = Host("10.0.0.3")
        await decide_and_reboot(host, cfg=_cfg(), ops_cfg=ops_cfg,
                                connector=fleet.connector, probe=port_states(*REBOOT_CYCLE))
        assert host.state == HostState.UP

    @pytest.mark.asyncio
    async def test_dispatch_failure_aborts_before_waiting(self, fleet, appliance, ops_cfg):
        appliance.needs_restarting_rc = 1
        appliance.fail_on = "shutdown"
        probe = port_states(True)
        with pytest.raises(RemoteCommandError):
            await decide_and_reboot("10.0.0.3", cfg=_cfg(), ops_cfg=ops_cfg,
                                    connector=fleet.connector, probe=probe)
        assert probe.calls == []

    @pytest.mark.asyncio
    async def test_host_that_never_goes_down_times_out(self, fleet, appliance, ops_cfg):
        appliance.needs_restarting_rc = 1
        host = Host("10.0.0.3")
        with pytest.raises(HostTimeoutError) as excinfo:
            await decide_and_reboot(host, cfg=_cfg(down_timeout_s=0.05, poll_interval_s=0.01),
                                    ops_cfg=ops_cfg, connector=fleet.connector, probe=port_states(True))
        assert excinfo.value.state == "stopped"
        assert host.state == HostState.UNKNOWN

    @pytest.mark.asyncio
    async def test_host_that_never_returns_times_out(self, fleet, appliance, ops_cfg):
        appliance.needs_restarting_rc = 1
        host = Host("10.0.0.3")
        with pytest.raises(HostTimeoutError) as excinfo:
            await decide_and_reboot(host, cfg=_cfg(up_timeout_s=0.05, poll_interval_s=0.01),
                                    ops_cfg=ops_cfg, connector=fleet.connector,
                                    probe=port_states(True, False))
        assert excinfo.value.state == "started"
        assert host.state == HostState.DOWN

    @pytest.mark.asyncio
    async def test_unreachable_host_raises(self, fleet, appliance, ops_cfg):
        appliance.unreachable = True
        with pytest.raises(OSError):
            await decide_and_reboot("10.0.0.3", cfg=_cfg(), ops_cfg=ops_cfg,
                                    connector=fleet.connector, probe=port_states(True))

    @pytest.mark.asyncio
    async def test_audit_trail(self, fleet, appliance, ops_cfg):
        appliance.needs_restarting_rc = 1
        with patch("cfme_ops.reboot.controller.audit_event") as audit:
            await decide_and_reboot("10.0.0.3", cfg=_cfg(), ops_cfg=ops_cfg,
                                    connector=fleet.connector, probe=port_states(*REBOOT_CYCLE))
        events = [c.args[1] for c in audit.call_args_list]
        assert events == ["reboot_started", "reboot_complete"]

    @pytest.mark.asyncio
    async def test_failed_dispatch_is_audited(self, fleet, appliance, ops_cfg):
        appliance.needs_restarting_rc = 1
        appliance.fail_on = "shutdown"
        with patch("cfme_ops.reboot.controller.audit_event") as audit:
            with pytest.raises(RemoteCommandError):
                await decide_and_reboot("10.0.0.3", cfg=_cfg(), ops_cfg=ops_cfg,
                                        connector=fleet.connector, probe=port_states(True))
        events = [c.args[1] for c in audit.call_args_list]
        assert events == ["reboot_failed"]
        assert "shutdown" in audit.call_args.args[2]["error"]

    @pytest.mark.asyncio
    async def test_unreachable_host_is_audited(self, fleet, appliance, ops_cfg):
        appliance.unreachable = True
        with patch("cfme_ops.reboot.controller.audit_event") as audit:
            with pytest.raises(OSError):
                await decide_and_reboot("10.0.0.3", cfg=_cfg(), ops_cfg=ops_cfg,
                                        connector=fleet.connector, probe=port_states(True))
        assert [c.args[1] for c in audit.call_args_list] == ["reboot_failed"]
