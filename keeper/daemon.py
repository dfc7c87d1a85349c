"""Keeper daemon: runs keeper cycles on a fixed poll interval.

Usage:
    python -m keeper run               # dry-run (default)
    python -m keeper run --live        # broadcast transactions
    python -m keeper stop              # stop a running daemon
"""

import asyncio
import json
import logging
import os
import signal
import sys
import time
from datetime import UTC, datetime
from pathlib import Path

from keeper.config.schema import KeeperConfig
from keeper.metrics_server import MetricsServer, create_app
from keeper.pipeline.keeper_cycle import KeeperCycle
from keeper.reporting.metrics import KeeperMetrics

logger = logging.getLogger(__name__)

MAX_BACKOFF = 60.0  # seconds, after repeated cycle failures
PID_DIR = Path("data")
PID_FILE = PID_DIR / "keeper.pid"
STATE_FILE = PID_DIR / "keeper_state.json"


class KeeperDaemon:
    """Cooperative poll loop with crash recovery and signal handling.

    Shutdown is only observed between cycles, so every submission started
    in a cycle reaches a result and a ledger record before the loop exits.
    """

    def __init__(
        self, config: KeeperConfig, cycle: KeeperCycle, metrics: KeeperMetrics | None = None
    ):
        self.config = config
        self.cycle = cycle
        self.metrics = metrics or KeeperMetrics(config.mode)
        self._metrics_server: MetricsServer | None = None
        self.interval = config.ops.poll_interval_ms / 1000.0
        self._stop = asyncio.Event()
        self._consecutive_failures = 0
        self._total_cycles = 0
        self._total_successes = 0
        self._total_failures = 0
        self._started_at: str | None = None

    def stop(self) -> None:
        self._stop.set()

    @property
    def running(self) -> bool:
        return not self._stop.is_set()

    async def run(self) -> None:
        """Start the daemon loop and block until stopped."""
        self._check_not_already_running()
        self._write_pid()
        self._setup_signals()
        self._started_at = datetime.now(UTC).isoformat()

        logger.info(
            "Keeper started: mode=%s interval=%.2fs concurrency=%d pid=%d",
            self.config.mode, self.interval, self.config.ops.max_concurrency, os.getpid(),
        )
        if not self.config.execution.dry_run:
            logger.warning("LIVE MODE: transactions will be broadcast")

        try:
            await self._start_metrics_server()
            await self._loop()
        finally:
            if self._metrics_server is not None:
                await self._metrics_server.stop()
            self._cleanup()

    async def _start_metrics_server(self) -> None:
        settings = self.config.metrics
        if not settings.port:
            return
        app = create_app(self.metrics, self.config.ledger.sqlite_path, settings.stale_after_s)
        self._metrics_server = MetricsServer(app, settings.host, settings.port)
        await self._metrics_server.start()

    async def _loop(self) -> None:
        while self.running:
            cycle_start = time.monotonic()
            success = await self.run_one_cycle()

            if success:
                self._consecutive_failures = 0
                wait = self.interval
            else:
                self._consecutive_failures += 1
                wait = min(self.interval * (2 ** self._consecutive_failures), MAX_BACKOFF)
                logger.warning(
                    "Cycle failed (%d consecutive), backing off %.1fs",
                    self._consecutive_failures, wait,
                )

            self._save_state()

            remaining = max(0.0, wait - (time.monotonic() - cycle_start))
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                pass

    async def run_one_cycle(self) -> bool:
        """Execute a single cycle. Returns True on success."""
        self._total_cycles += 1
        try:
            summary = await self.cycle.run()
        except Exception:
            self._total_failures += 1
            self.metrics.record_cycle(None, ok=False)
            logger.exception("Cycle #%d crashed", self._total_cycles)
            return False

        ok = not summary.errors
        self.metrics.record_cycle(summary, ok=ok)
        if not ok:
            self._total_failures += 1
            logger.error("Cycle #%d completed with errors: %s", self._total_cycles, summary.errors)
            return False
        self._total_successes += 1
        return True

    def _setup_signals(self) -> None:
        """Handle SIGTERM and SIGINT for graceful shutdown."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError):
                # Not available off the main thread or on some platforms.
                logger.debug("Signal handler for %s not installed", sig.name)

    def _on_signal(self, sig: signal.Signals) -> None:
        logger.info("Received %s, finishing current cycle...", sig.name)
        self.stop()

    def _check_not_already_running(self) -> None:
        pid = _read_pid()
        if pid is None:
            return
        alive = _pid_alive(pid)
        if alive is False:
            logger.info("Removing stale PID file (pid %d)", pid)
            PID_FILE.unlink(missing_ok=True)
            return
        if alive is None:
            print(f"Keeper may be running (pid {pid}), cannot verify.")
        else:
            print(f"Keeper already running (pid {pid}). Stop it with: python -m keeper stop")
        sys.exit(1)

    def _write_pid(self) -> None:
        PID_DIR.mkdir(parents=True, exist_ok=True)
        PID_FILE.write_text(str(os.getpid()))

    def _save_state(self) -> None:
        """Persist daemon stats for status reporting."""
        state = {
            "pid": os.getpid(),
            "started_at": self._started_at,
            "interval_s": self.interval,
            "mode": self.config.mode,
            "total_cycles": self._total_cycles,
            "total_successes": self._total_successes,
            "total_failures": self._total_failures,
            "consecutive_failures": self._consecutive_failures,
            "last_update": datetime.now(UTC).isoformat(),
        }
        PID_DIR.mkdir(parents=True, exist_ok=True)
        STATE_FILE.write_text(json.dumps(state, indent=2))

    def _cleanup(self) -> None:
        PID_FILE.unlink(missing_ok=True)
        self._save_state()
        logger.info(
            "Keeper stopped: %d cycles (%d ok, %d failed)",
            self._total_cycles, self._total_successes, self._total_failures,
        )


def _read_pid() -> int | None:
    """PID recorded in the PID file. A corrupt file is removed."""
    if not PID_FILE.exists():
        return None
    try:
        return int(PID_FILE.read_text().strip())
    except ValueError:
        logger.warning("Corrupt PID file %s, removing", PID_FILE)
        PID_FILE.unlink(missing_ok=True)
        return None


def _pid_alive(pid: int) -> bool | None:
    """True if the process exists, False if not, None if we may not signal it."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return None
    return True


def stop_daemon(timeout_s: int = 60) -> int:
    """Ask a running keeper to finish its cycle and exit."""
    pid = _read_pid()
    if pid is None:
        print("No keeper running (no PID file found)")
        return 1
    if _pid_alive(pid) is False:
        print(f"Keeper not running (stale pid {pid}), cleaning up")
        PID_FILE.unlink(missing_ok=True)
        return 0

    print(f"Stopping keeper (pid {pid})...")
    os.kill(pid, signal.SIGTERM)

    # In-flight submissions are allowed to finish; no SIGKILL fallback.
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if _pid_alive(pid) is False:
            print("Keeper stopped")
            PID_FILE.unlink(missing_ok=True)
            return 0
        time.sleep(0.5)

    print(f"Keeper still finishing after {timeout_s}s (pid {pid})")
    return 1


def read_daemon_state() -> dict | None:
    if not STATE_FILE.exists():
        return None
    return json.loads(STATE_FILE.read_text())
