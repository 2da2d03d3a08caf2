"""메인 오케스트레이터: sysctl 점검, 수집 루프, 웹 서버 통합 관리."""

from __future__ import annotations

import asyncio
import logging
import signal
import socket

import uvicorn

from conntrack_exporter.services.collector_service import ConntrackCollectorService
from conntrack_exporter.utils.config import Config
from conntrack_exporter.utils.logging_setup import setup_logging
from conntrack_exporter.utils.network import bind_socket, parse_listen_address
from conntrack_exporter.utils.procfs import ProcFS
from conntrack_exporter.utils.sysctl import configure_nf_conntrack_acct, read_nf_conntrack_acct
from conntrack_exporter.web.metrics import ConntrackMetrics, build_registry
from conntrack_exporter.web.server import create_app

logger = logging.getLogger("conntrack_exporter.app")


class ConntrackExporter:
    """최상위 애플리케이션 오케스트레이터.

    수집은 ConntrackCollectorService에, HTTP 노출은 uvicorn 서버에 위임하며,
    컴포넌트 연결, 시작 순서 제어, 정상 종료만 담당한다.
    """

    def __init__(self, config: Config, version: str = "dev") -> None:
        self.config  = config
        self.version = version
        self.procfs  = ProcFS(config.get("path.procfs", "/proc"))
        self.metrics = ConntrackMetrics()
        self.registry = build_registry(
            self.metrics,
            exporter_metrics=not config.get("web.disable_exporter_metrics", False),
        )
        self.collector = ConntrackCollectorService(
            procfs=self.procfs,
            metrics=self.metrics,
            interval=config.get("collector.interval", 60),
            read_timeout=config.get("collector.read_timeout", 10),
        )

    def check_accounting(self) -> None:
        """nf_conntrack_acct를 (선택적으로) 설정하고 비활성 상태면 경고한다."""
        if self.config.get("collector.configure_nf_conntrack_acct", False):
            try:
                configure_nf_conntrack_acct(self.procfs)
                logger.info("Configured nf_conntrack_acct=1")
            except (OSError, ValueError) as exc:
                logger.warning("Failed to configure nf_conntrack_acct: %s", exc)

        try:
            acct = read_nf_conntrack_acct(self.procfs)
        except (OSError, ValueError) as exc:
            logger.warning("Failed to read nf_conntrack_acct: %s", exc)
            return
        if acct == 0:
            logger.warning(
                "nf_conntrack_acct is disabled; packets/bytes will be missing "
                "and reported as 0 in nf_conntrack"
            )

    def _bind_sockets(self) -> list[tuple[str, socket.socket]]:
        """모든 리슨 주소를 미리 바인딩한다. 하나라도 실패하면 OSError를 전파한다."""
        bound: list[tuple[str, socket.socket]] = []
        try:
            for address in self.config.get("web.listen_addresses", [":9100"]):
                host, port = parse_listen_address(address)
                bound.append((address, bind_socket(host, port)))
        except (OSError, ValueError):
            for _, sock in bound:
                sock.close()
            raise
        return bound

    async def run(self) -> int:
        """메인 진입점: 모든 컴포넌트를 시작하고 종료 시그널까지 대기한다.

        Returns:
            프로세스 종료 코드. 리슨 주소 바인딩 실패 시 1.
        """
        loop = asyncio.get_running_loop()

        setup_logging(self.config)
        logger.info("Conntrack exporter %s starting (procfs=%s)", self.version, self.procfs.root)

        self.check_accounting()

        # ── 리슨 소켓 (바인딩 실패는 치명적) ──────────────────────────────
        try:
            bound = self._bind_sockets()
        except (OSError, ValueError) as exc:
            logger.error("Failed to bind listen address: %s", exc)
            return 1

        # ── 웹 서버 ───────────────────────────────────────────────────────
        app = create_app(
            config=self.config,
            registry=self.registry,
            collector=self.collector,
            version=self.version,
        )
        telemetry_path = self.config.get("web.telemetry_path", "/metrics")

        servers: list[uvicorn.Server] = []
        for address, _ in bound:
            uvi_config = uvicorn.Config(app, log_level="warning", loop="none", lifespan="off")
            servers.append(uvicorn.Server(uvi_config))
            logger.info("HTTP server listening on %s (path=%s)", address, telemetry_path)

        # ── 시그널 처리 ─────────────────────────────────────────────────
        stop_event = asyncio.Event()

        def _signal_handler() -> None:
            logger.info("Shutdown signal received")
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _signal_handler)

        # ── 백그라운드 서비스 시작 ────────────────────────────────────────
        await self.collector.start()
        server_tasks = [
            asyncio.create_task(server.serve(sockets=[sock]))
            for server, (_, sock) in zip(servers, bound)
        ]
        logger.info(
            "Conntrack exporter ready (interval=%.0fs)", self.collector.interval,
        )

        stop_task = asyncio.create_task(stop_event.wait())
        done, _ = await asyncio.wait(
            [stop_task, *server_tasks], return_when=asyncio.FIRST_COMPLETED,
        )

        exit_code = 0
        for task in server_tasks:
            if task in done and task.exception() is not None:
                logger.error("HTTP server error: %s", task.exception())
                exit_code = 1

        # ── 종료 ──────────────────────────────────────────────────────────
        logger.info("Shutting down...")
        stop_task.cancel()
        await self.collector.stop()
        for server in servers:
            server.should_exit = True
        await asyncio.gather(*server_tasks, return_exceptions=True)
        for _, sock in bound:
            sock.close()
        logger.info("Conntrack exporter stopped")
        return exit_code
