"""
Tests for the CA service bootstrapper — configure, start, wait, TLS root.
"""

import pytest

from fabprov.core.errors import ReadinessTimeout, ServiceStartFailure
from fabprov.core.models.settings import ReadinessBudget
from fabprov.core.services.ca_bootstrap import (
    await_tls_root,
    bring_up_ca,
    ca_listening,
    ca_running,
    ensure_ca_ready,
    load_certificate,
    write_ca_configs,
)


class TestWriteConfigs:
    def test_first_write(self, ctx):
        written = write_ca_configs(ctx)
        assert written == [ctx.layout.ca_server_config, ctx.layout.ca_compose_file]
        assert ctx.layout.ca_server_data.is_dir()
        assert ctx.layout.peer_org_dir.is_dir()

    def test_existing_configs_kept(self, ctx):
        write_ca_configs(ctx)
        ctx.layout.ca_server_config.write_text("port: 9999\n")
        assert write_ca_configs(ctx) == []
        assert ctx.layout.ca_server_config.read_text() == "port: 9999\n"


class TestBringUpCA:
    def test_ready(self, ctx):
        assert not ca_running(ctx)
        receipt = bring_up_ca(ctx)
        assert receipt.ok
        assert receipt.metadata["attempts"] == 1
        assert ca_running(ctx)
        assert ctx.layout.ca_tls_certfile.is_file()
        assert ctx.registry.containers.call_log[0] == ("up", ["docker-compose-ca.yaml"])

    def test_running_check_is_exact(self, ctx):
        ctx.registry.containers.running_containers.add("ca-org10")
        assert not ca_running(ctx)

    def test_listener_on_other_port_is_not_ready(self, ctx):
        ctx.registry.containers.set_logs("ca-org1", "Listening on https://0.0.0.0:70540")
        assert not ca_listening(ctx)
        ctx.registry.containers.set_logs("ca-org1", "[INFO] Listening on http://0.0.0.0:7054")
        assert ca_listening(ctx)

    def test_start_failure(self, ctx):
        ctx.registry.containers.set_failure("up", "pull access denied")
        with pytest.raises(ServiceStartFailure) as exc:
            bring_up_ca(ctx)
        assert "pull access denied" in exc.value.message
        assert exc.value.hint.startswith("docker compose -f ")

    def test_timeout_tears_down(self, ctx, sleeps):
        ctx.settings.readiness = ReadinessBudget(initial_delay=5, retries=4, interval=6)
        # the container comes up but never logs its listener
        ctx.registry.containers.set_logs("ca-org1", "[INFO] Starting server")

        with pytest.raises(ReadinessTimeout) as exc:
            bring_up_ca(ctx)

        assert exc.value.hint == "docker logs ca-org1"
        assert "4 attempts" in exc.value.message
        assert exc.value.message.endswith("(last blocked on: log)")
        assert sleeps == [5, 6, 6, 6]
        assert [op for op, _ in ctx.registry.containers.call_log] == ["up", "down"]
        assert not ca_running(ctx)

    def test_port_never_open(self, ctx):
        ctx.registry.containers.set_logs("ca-org1", "Listening on https://0.0.0.0:7054")
        ctx.registry.containers.on_up(lambda document: ctx.registry.containers.published_ports.clear())
        with pytest.raises(ReadinessTimeout) as exc:
            bring_up_ca(ctx)
        assert exc.value.message.endswith("(last blocked on: port)")
        assert ctx.registry.network.call_log == [("localhost", 7054)] * 3


class TestTLSRoot:
    def test_load_certificate(self, ca_ctx, tmp_path):
        assert load_certificate(ca_ctx.layout.ca_tls_certfile) is not None
        assert load_certificate(tmp_path / "missing.pem") is None
        garbage = tmp_path / "garbage.pem"
        garbage.write_text("not a certificate")
        assert load_certificate(garbage) is None

    def test_await_root(self, ca_ctx):
        cert = await_tls_root(ca_ctx)
        assert "ca-org1" in cert.subject.rfc4514_string()

    def test_invalid_root_times_out(self, ca_ctx, sleeps):
        ca_ctx.layout.ca_tls_certfile.write_text("-----BEGIN CERTIFICATE-----\ntruncated")
        with pytest.raises(ReadinessTimeout, match="not a PEM certificate"):
            await_tls_root(ca_ctx)
        assert sleeps == [0]

    def test_ensure_ready_skips_initial_delay(self, ca_ctx, sleeps):
        ca_ctx.settings.readiness = ReadinessBudget(initial_delay=5, retries=2, interval=1)
        ensure_ca_ready(ca_ctx)
        assert sleeps == []

    def test_ensure_ready_when_ca_stopped(self, ca_ctx):
        layout = ca_ctx.layout
        ca_ctx.registry.containers.down([layout.ca_compose_file], cwd=layout.setup_dir)
        with pytest.raises(ReadinessTimeout, match="not answering"):
            ensure_ca_ready(ca_ctx)
