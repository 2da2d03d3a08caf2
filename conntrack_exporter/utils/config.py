"""기본값 병합 기능을 갖춘 YAML 설정 로더."""

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Callable

import yaml
from dotenv import load_dotenv

DEFAULTS: dict[str, Any] = {
    "collector": {
        "interval": 60,
        "read_timeout": 10,
        "configure_nf_conntrack_acct": False,
    },
    "path": {
        "procfs": "/proc",
    },
    "web": {
        "listen_addresses": [":9100"],
        "telemetry_path": "/metrics",
        "disable_exporter_metrics": False,
        "max_requests": 40,
    },
    "logging": {
        "level": "info",
        "format": "logfmt",
        "directory": None,
        "max_bytes": 10_485_760,
        "backup_count": 5,
    },
}

LOG_FORMATS = ("text", "logfmt", "json")


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


# 환경변수 → Config 경로 매핑
_ENV_OVERRIDES: list[tuple[str, str, Callable[[str], Any]]] = [
    ("CONNTRACK_EXPORTER_INTERVAL", "collector.interval", float),
    ("CONNTRACK_EXPORTER_PROCFS", "path.procfs", str),
    ("CONNTRACK_EXPORTER_LISTEN_ADDRESS", "web.listen_addresses", _split_csv),
    ("CONNTRACK_EXPORTER_TELEMETRY_PATH", "web.telemetry_path", str),
    ("CONNTRACK_EXPORTER_LOG_LEVEL", "logging.level", str),
    ("CONNTRACK_EXPORTER_LOG_FORMAT", "logging.format", str),
]


def _deep_merge(base: dict, override: dict) -> dict:
    """override를 base에 재귀적으로 병합하여 새 dict를 반환한다."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _set_nested(data: dict, dotted_key: str, value: Any) -> None:
    """점 표기법을 사용하여 중첩 dict에 값을 설정한다."""
    keys = dotted_key.split(".")
    current = data
    for key in keys[:-1]:
        if key not in current or not isinstance(current[key], dict):
            current[key] = {}
        current = current[key]
    current[keys[-1]] = value


def _apply_env_overrides(data: dict) -> None:
    """환경변수가 설정되어 있으면 YAML 값을 오버라이드한다."""
    for env_var, config_path, cast in _ENV_OVERRIDES:
        value = os.environ.get(env_var)
        if value is not None:
            _set_nested(data, config_path, cast(value))


def _validate(data: dict) -> None:
    """시작 시점에 복구 불가능한 설정 오류를 검출한다."""
    collector = data.get("collector", {})
    for name in ("interval", "read_timeout"):
        value = collector.get(name)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise ValueError(f"collector.{name} must be a positive number of seconds, got {value!r}")

    max_requests = data.get("web", {}).get("max_requests")
    if isinstance(max_requests, bool) or not isinstance(max_requests, int) or max_requests < 0:
        raise ValueError(f"web.max_requests must be a non-negative integer, got {max_requests!r}")

    addresses = data.get("web", {}).get("listen_addresses")
    if not isinstance(addresses, list) or not addresses:
        raise ValueError("web.listen_addresses must be a non-empty list")

    log_format = data.get("logging", {}).get("format")
    if log_format not in LOG_FORMATS:
        raise ValueError(f"logging.format must be one of {list(LOG_FORMATS)}, got {log_format!r}")


class Config:
    """YAML 파일에서 로드된 불변 설정 컨테이너."""

    def __init__(self, data: dict[str, Any], config_path: str | Path | None = None) -> None:
        self._data = data
        self.config_path: str | None = str(config_path) if config_path else None

    @classmethod
    def load(
        cls,
        config_path: str | Path | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> Config:
        """YAML 파일에서 설정을 로드한다.

        우선순위: 내장 기본값 < YAML < 환경변수 < overrides(CLI 플래그).
        환경변수 CONNTRACK_EXPORTER_CONFIG로 경로를 오버라이드할 수 있다.
        명시한 경로가 없으면 오류, 기본 경로(config/default.yaml)가 없으면
        내장 기본값만 사용한다. .env 파일이 존재하면 자동으로 로드한다.
        """
        load_dotenv()

        if config_path is None:
            config_path = os.environ.get("CONNTRACK_EXPORTER_CONFIG")

        data: dict[str, Any] = {}
        if config_path is None:
            project_root = Path(__file__).resolve().parent.parent.parent
            default_path = project_root / "config" / "default.yaml"
            if default_path.exists():
                config_path = default_path

        if config_path is not None:
            config_path = Path(config_path)
            if not config_path.exists():
                raise FileNotFoundError(f"Config file not found: {config_path}")
            with open(config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}

        inner = _deep_merge(copy.deepcopy(DEFAULTS), data.get("conntrack_exporter", data))
        _apply_env_overrides(inner)
        for dotted_key, value in (overrides or {}).items():
            if value is not None:
                _set_nested(inner, dotted_key, value)

        _validate(inner)
        return cls(inner, config_path=config_path)

    def get(self, dotted_key: str, default: Any = None) -> Any:
        """점 표기법으로 값을 조회한다: 'web.max_requests' -> config['web']['max_requests']."""
        keys = dotted_key.split(".")
        current = self._data
        for key in keys:
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return default
        return current

    def section(self, key: str) -> dict[str, Any]:
        """주어진 최상위 키에 대한 하위 dict를 반환한다."""
        return self._data.get(key, {})

    @property
    def raw(self) -> dict[str, Any]:
        """설정 데이터의 원본 dict를 반환한다."""
        return self._data
