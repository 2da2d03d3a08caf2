"""ConntrackExporter 오케스트레이터와 CLI 테스트."""

from __future__ import annotations

import logging

import pytest

from conntrack_exporter.__main__ import build_parser, main
from conntrack_exporter.app import ConntrackExporter
from conntrack_exporter.utils.config import Config
from conntrack_exporter.utils.network import bind_socket
from conntrack_exporter.utils.sysctl import NF_CONNTRACK_ACCT


class TestCheckAccounting:
    def test_warns_when_disabled(self, config, procfs_root, caplog):
        (procfs_root / NF_CONNTRACK_ACCT).write_text("0\n")
        with caplog.at_level(logging.WARNING, logger="conntrack_exporter.app"):
            ConntrackExporter(config).check_accounting()
        assert "nf_conntrack_acct is disabled" in caplog.text

    def test_configures_when_requested(self, tmp_path, procfs_root):
        (procfs_root / NF_CONNTRACK_ACCT).write_text("0\n")
        config_file = tmp_path / "c.yaml"
        config_file.write_text("")
        config = Config.load(
            config_file,
            overrides={
                "path.procfs": str(procfs_root),
                "collector.configure_nf_conntrack_acct": True,
            },
        )
        ConntrackExporter(config).check_accounting()
        assert (procfs_root / NF_CONNTRACK_ACCT).read_text() == "1\n"

    def test_missing_sysctl_is_not_fatal(self, config, procfs_root, caplog):
        (procfs_root / NF_CONNTRACK_ACCT).unlink()
        with caplog.at_level(logging.WARNING, logger="conntrack_exporter.app"):
            ConntrackExporter(config).check_accounting()
        assert "Failed to read nf_conntrack_acct" in caplog.text


def test_exporter_metrics_can_be_disabled(tmp_path):
    config_file = tmp_path / "c.yaml"
    config_file.write_text("web:\n  disable_exporter_metrics: true\n")
    exporter = ConntrackExporter(Config.load(config_file))
    names = {family.name for family in exporter.registry.collect()}
    assert "conntrack_sent_packets" in names
    assert "conntrack_exporter_cycles" not in names


@pytest.mark.asyncio
async def test_bind_failure_exits_with_error(tmp_path, procfs_root):
    taken = bind_socket("127.0.0.1", 0)
    try:
        port = taken.getsockname()[1]
        config_file = tmp_path / "c.yaml"
        config_file.write_text("")
        config = Config.load(
            config_file,
            overrides={
                "path.procfs": str(procfs_root),
                "web.listen_addresses": [f"127.0.0.1:{port}"],
            },
        )
        exporter = ConntrackExporter(config)
        try:
            assert await exporter.run() == 1
        finally:
            root = logging.getLogger("conntrack_exporter")
            for handler in list(root.handlers):
                root.removeHandler(handler)
                handler.close()
        assert not exporter.collector.is_running
    finally:
        taken.close()


class TestCli:
    def test_dotted_flags_map_to_config_keys(self):
        args = vars(build_parser().parse_args([
            "--collector.interval", "30",
            "--path.procfs", "/host/proc",
            "--web.listen-address", ":9100",
            "--web.listen-address", "[::1]:9101",
            "--web.disable-exporter-metrics",
            "--log.format", "json",
        ]))
        assert args["collector.interval"] == 30.0
        assert args["path.procfs"] == "/host/proc"
        assert args["web.listen_addresses"] == [":9100", "[::1]:9101"]
        assert args["web.disable_exporter_metrics"] is True
        assert args["logging.format"] == "json"
        assert args["collector.configure_nf_conntrack_acct"] is None

    def test_invalid_interval_exits_with_status_2(self, tmp_path, capsys):
        config_file = tmp_path / "c.yaml"
        config_file.write_text("")
        assert main(["-c", str(config_file), "--collector.interval", "0"]) == 2
        assert "collector.interval" in capsys.readouterr().err

    def test_missing_config_exits_with_status_2(self, tmp_path):
        assert main(["-c", str(tmp_path / "absent.yaml")]) == 2

    def test_version_flag(self, capsys):
        with pytest.raises(SystemExit) as exc:
            build_parser().parse_args(["--version"])
        assert exc.value.code == 0
        assert "conntrack-exporter" in capsys.readouterr().out
