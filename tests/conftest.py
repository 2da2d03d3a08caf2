"""Shared fixtures for conntrack-exporter tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from conntrack_exporter.utils.config import Config
from conntrack_exporter.utils.procfs import ProcFS

from tests.samples import SAMPLE_LINE


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch):
    """테스트 환경에서 CONNTRACK_EXPORTER_* 환경변수 오버라이드를 제거한다."""
    for name in (
        "CONNTRACK_EXPORTER_CONFIG",
        "CONNTRACK_EXPORTER_INTERVAL",
        "CONNTRACK_EXPORTER_PROCFS",
        "CONNTRACK_EXPORTER_LISTEN_ADDRESS",
        "CONNTRACK_EXPORTER_TELEMETRY_PATH",
        "CONNTRACK_EXPORTER_LOG_LEVEL",
        "CONNTRACK_EXPORTER_LOG_FORMAT",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def procfs_root(tmp_path: Path) -> Path:
    """nf_conntrack과 sysctl 파일 레이아웃을 갖춘 가짜 procfs 디렉터리."""
    root = tmp_path / "proc"
    (root / "net").mkdir(parents=True)
    (root / "sys" / "net" / "netfilter").mkdir(parents=True)
    (root / "net" / "nf_conntrack").write_text(SAMPLE_LINE + "\n")
    (root / "sys" / "net" / "netfilter" / "nf_conntrack_acct").write_text("1\n")
    return root


@pytest.fixture
def procfs(procfs_root: Path) -> ProcFS:
    return ProcFS(procfs_root)


@pytest.fixture
def config(tmp_path: Path, procfs_root: Path) -> Config:
    """Config pointing to the fake procfs."""
    yaml_content = f"""
conntrack_exporter:
  collector:
    interval: 5
    read_timeout: 2
  path:
    procfs: "{procfs_root}"
  web:
    listen_addresses: ["127.0.0.1:0"]
    telemetry_path: "/metrics"
    max_requests: 2
  logging:
    level: debug
    format: text
"""
    config_file = tmp_path / "test_config.yaml"
    config_file.write_text(yaml_content)
    return Config.load(config_file)
