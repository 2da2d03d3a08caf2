"""로테이팅 파일 핸들러와 선택적 logfmt/JSON 포맷을 지원하는 로깅 설정."""

from __future__ import annotations

import json as json_mod
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from conntrack_exporter.utils.config import Config

LOG_FORMAT  = "%(asctime)s [%(levelname)-8s] %(name)-40s %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

ROOT_LOGGER = "conntrack_exporter"


class JSONFormatter(logging.Formatter):
    """기계 파싱 가능한 출력을 위한 구조화된 JSON 로그 포매터."""

    def format(self, record: logging.LogRecord) -> str:
        """로그 레코드를 JSON 문자열로 포맷한다."""
        log_obj = {
            "ts": self.formatTime(record, DATE_FORMAT),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_obj["exception"] = self.formatException(record.exc_info)
        return json_mod.dumps(log_obj, ensure_ascii=False)


def _logfmt_value(value: str) -> str:
    """공백, 따옴표, '='가 있으면 따옴표로 감싼다."""
    if value == "":
        return '""'
    if any(ch in value for ch in ' \t\n"='):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
        return f'"{escaped}"'
    return value


class LogfmtFormatter(logging.Formatter):
    """Prometheus 익스포터 관례를 따르는 logfmt 포매터."""

    def format(self, record: logging.LogRecord) -> str:
        """로그 레코드를 key=value 한 줄로 포맷한다."""
        pairs = [
            ("ts", self.formatTime(record, DATE_FORMAT)),
            ("level", record.levelname.lower()),
            ("logger", record.name),
            ("msg", record.getMessage()),
        ]
        if record.exc_info and record.exc_info[0] is not None:
            pairs.append(("exception", self.formatException(record.exc_info)))
        return " ".join(f"{key}={_logfmt_value(value)}" for key, value in pairs)


def build_formatter(log_format: str) -> logging.Formatter:
    """설정된 포맷 이름에 해당하는 포매터를 반환한다."""
    if log_format == "json":
        return JSONFormatter()
    if log_format == "logfmt":
        return LogfmtFormatter()
    return logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)


def setup_logging(config: Config) -> logging.Logger:
    """콘솔 (+ 선택적 로테이팅 파일) 핸들러로 루트 로거를 설정한다."""
    level_str    = str(config.get("logging.level", "info"))
    log_dir      = config.get("logging.directory")
    max_bytes    = config.get("logging.max_bytes", 10_485_760)
    backup_count = config.get("logging.backup_count", 5)
    formatter    = build_formatter(config.get("logging.format", "logfmt"))

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(getattr(logging, level_str.upper(), logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    # 콘솔 핸들러
    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    root.addHandler(console)

    # 로테이팅 파일 핸들러
    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path / "conntrack-exporter.log",
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    return root
