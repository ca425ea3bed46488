"""Refresh daemon: keeps a meteogram SVG on disk up to date.

Runs fetch cycles on the configured refresh interval and writes the
sanitized chart atomically after each one, so a web server or status bar
can read the file at any time.

Usage:
    python -m meteogram daemon --out data/meteogram.svg
    python -m meteogram daemon --interval 15   # every 15 minutes
    python -m meteogram daemon --stop          # stop running daemon
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

from meteogram.config.schema import MeteogramConfig
from meteogram.models.fetch import FetchState
from meteogram.models.status import OutputOrigin, RenderState, WidgetStatus
from meteogram.pipeline.meteogram_pipeline import MeteogramPipeline

logger = logging.getLogger(__name__)

MAX_BACKOFF = 3600  # 1 hour max backoff after repeated failures
PID_DIR = Path("data")
PID_FILE = PID_DIR / "meteogram.pid"
STATE_FILE = PID_DIR / "daemon_state.json"
LOG_DIR = Path("logs")
MAX_LOG_FILES = 100  # Keep last 100 refresh logs


def write_atomic(path: Path, text: str) -> None:
    """Write via a sibling temp file so readers never see a partial chart."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(text)
    os.replace(tmp, path)


class RefreshDaemon:
    """Runs refresh cycles in a loop with backoff and signal handling."""

    def __init__(
        self,
        config: MeteogramConfig,
        out_path: str | Path = "data/meteogram.svg",
        interval_minutes: float | None = None,
    ):
        self.config = config
        self.out_path = Path(out_path)
        minutes = interval_minutes or config.source.refresh_interval_minutes
        self.interval = minutes * 60
        self._running = False
        self._stop_event: asyncio.Event | None = None
        self._pipeline: MeteogramPipeline | None = None
        self._consecutive_failures = 0
        self._total_cycles = 0
        self._total_successes = 0
        self._total_failures = 0
        self._last_origin: str | None = None
        self._started_at: str | None = None

    def start(self) -> None:
        """Start the daemon loop."""
        self._check_not_already_running()
        self._write_pid()
        self._running = True
        self._started_at = datetime.now(UTC).isoformat()

        logger.info(
            "Daemon started: source=%s interval=%ds pid=%d",
            self.config.source.source_url or "(none)", self.interval, os.getpid(),
        )
        print(f"🔄 Meteogram daemon started (pid {os.getpid()}, every {self.interval:.0f}s)")
        print(f"   Chart: {self.out_path}")
        print(f"   Logs: {LOG_DIR}/")
        print("   Stop: python -m meteogram daemon --stop")

        try:
            asyncio.run(self._serve())
        except KeyboardInterrupt:
            logger.info("Daemon interrupted by keyboard")
        finally:
            self._cleanup()

    async def _serve(self) -> None:
        self._stop_event = asyncio.Event()
        self._setup_signals()
        self._pipeline = MeteogramPipeline(self.config)
        try:
            await self._loop()
        finally:
            await self._pipeline.shutdown()

    async def _loop(self) -> None:
        """Main refresh loop with backoff on failures."""
        while self._running:
            cycle_start = time.monotonic()
            success = await self._run_one_cycle()

            if success:
                self._consecutive_failures = 0
                wait = self.interval
            else:
                self._consecutive_failures += 1
                wait = min(
                    self.interval * (2 ** self._consecutive_failures),
                    MAX_BACKOFF,
                )
                wait = max(wait, self.interval)
                logger.warning(
                    "Refresh failed (%d consecutive), backing off %ds",
                    self._consecutive_failures, wait,
                )

            self._save_state()

            remaining = max(0.0, wait - (time.monotonic() - cycle_start))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=remaining)
            except TimeoutError:
                pass

    async def _run_one_cycle(self) -> bool:
        """Execute a single refresh cycle. Returns True on a live chart."""
        self._total_cycles += 1
        timestamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")

        LOG_DIR.mkdir(parents=True, exist_ok=True)
        log_file = LOG_DIR / f"refresh_{timestamp}.log"

        # Per-cycle file handler
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        root_logger = logging.getLogger()
        root_logger.addHandler(file_handler)

        try:
            logger.info("=== Refresh #%d starting ===", self._total_cycles)
            status = await self._pipeline.run_cycle()
            return self._record(status)
        except Exception:
            self._total_failures += 1
            logger.exception("Refresh #%d crashed", self._total_cycles)
            return False
        finally:
            root_logger.removeHandler(file_handler)
            file_handler.close()
            self._rotate_logs()

    def _record(self, status: WidgetStatus) -> bool:
        if status.svg is not None:
            write_atomic(self.out_path, status.svg)
        self._last_origin = status.origin.value if status.origin else None

        if status.state == RenderState.READY and status.origin == OutputOrigin.LIVE:
            self._total_successes += 1
            logger.info("Refresh #%d OK, chart written to %s", self._total_cycles, self.out_path)
            return True
        if status.state == RenderState.READY and status.fetch_state == FetchState.NOT_MODIFIED:
            self._total_successes += 1
            return True

        self._total_failures += 1
        logger.error(
            "Refresh #%d degraded: state=%s origin=%s message=%s",
            self._total_cycles, status.state.value, self._last_origin, status.message,
        )
        return False

    def _rotate_logs(self) -> None:
        """Keep only the most recent log files."""
        if not LOG_DIR.exists():
            return
        logs = sorted(LOG_DIR.glob("refresh_*.log"))
        if len(logs) > MAX_LOG_FILES:
            for old in logs[: len(logs) - MAX_LOG_FILES]:
                old.unlink(missing_ok=True)

    def stop(self) -> None:
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()

    def _setup_signals(self) -> None:
        """Handle SIGTERM and SIGINT for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def _stop(signum: int) -> None:
            sig_name = signal.Signals(signum).name
            logger.info("Received %s, shutting down gracefully...", sig_name)
            print(f"\n⏹️  Received {sig_name}, stopping...")
            self.stop()

        for signum in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(signum, _stop, signum)

    def _check_not_already_running(self) -> None:
        """Prevent duplicate daemons."""
        if PID_FILE.exists():
            try:
                pid = int(PID_FILE.read_text().strip())
                os.kill(pid, 0)
                print(f"❌ Daemon already running (pid {pid}). Stop it first:")
                print("   python -m meteogram daemon --stop")
                sys.exit(1)
            except (ProcessLookupError, ValueError):
                # Stale PID file
                PID_FILE.unlink(missing_ok=True)
            except PermissionError:
                print(f"❌ Daemon may be running (pid {pid}), can't verify.")
                sys.exit(1)

    def _write_pid(self) -> None:
        PID_DIR.mkdir(parents=True, exist_ok=True)
        PID_FILE.write_text(str(os.getpid()))

    def _save_state(self) -> None:
        """Persist daemon stats for status reporting."""
        state = {
            "pid": os.getpid(),
            "started_at": self._started_at,
            "interval": self.interval,
            "source_url": self.config.source.source_url,
            "out_path": str(self.out_path),
            "total_cycles": self._total_cycles,
            "total_successes": self._total_successes,
            "total_failures": self._total_failures,
            "consecutive_failures": self._consecutive_failures,
            "last_origin": self._last_origin,
            "last_update": datetime.now(UTC).isoformat(),
        }
        STATE_FILE.parent.mkdir(parents=True, exist_ok=True)
        STATE_FILE.write_text(json.dumps(state, indent=2))

    def _cleanup(self) -> None:
        """Remove PID file on exit."""
        PID_FILE.unlink(missing_ok=True)
        self._save_state()
        logger.info(
            "Daemon stopped: %d cycles (%d ok, %d failed)",
            self._total_cycles, self._total_successes, self._total_failures,
        )
        print(
            f"⏹️  Daemon stopped: {self._total_cycles} cycles "
            f"({self._total_successes} ok, {self._total_failures} failed)"
        )


def stop_daemon(wait_seconds: int = 60) -> int:
    """Stop a running daemon by sending SIGTERM."""
    if not PID_FILE.exists():
        print("No daemon running (no PID file found)")
        return 1

    try:
        pid = int(PID_FILE.read_text().strip())
    except ValueError:
        print("Corrupt PID file, removing")
        PID_FILE.unlink(missing_ok=True)
        return 1

    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        print(f"Daemon not running (stale pid {pid}), cleaning up")
        PID_FILE.unlink(missing_ok=True)
        STATE_FILE.unlink(missing_ok=True)
        return 0

    print(f"Stopping daemon (pid {pid})...")
    os.kill(pid, signal.SIGTERM)

    for _ in range(wait_seconds):
        time.sleep(1)
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            print("✅ Daemon stopped")
            PID_FILE.unlink(missing_ok=True)
            return 0

    print(f"⚠️  Daemon didn't stop in {wait_seconds}s, sending SIGKILL")
    os.kill(pid, signal.SIGKILL)
    PID_FILE.unlink(missing_ok=True)
    return 0


def daemon_status() -> int:
    """Print daemon status from state file."""
    if not STATE_FILE.exists():
        print("No daemon state found")
        if PID_FILE.exists():
            try:
                pid = int(PID_FILE.read_text().strip())
                os.kill(pid, 0)
                print(f"  (but PID file exists: {pid}, process running)")
            except (ProcessLookupError, ValueError):
                print("  (stale PID file found)")
        return 1

    state = json.loads(STATE_FILE.read_text())
    pid = state.get("pid", "?")

    running = False
    try:
        os.kill(int(pid), 0)
        running = True
    except (ProcessLookupError, ValueError, TypeError):
        pass

    status_icon = "🟢" if running else "🔴"
    print(f"{status_icon} Daemon {'running' if running else 'stopped'}")
    print(f"  PID: {pid}")
    print(f"  Source: {state.get('source_url') or '(none)'}")
    print(f"  Chart: {state.get('out_path', '?')}")
    print(f"  Interval: {state.get('interval', '?')}s")
    print(f"  Started: {state.get('started_at', '?')}")
    print(f"  Total cycles: {state.get('total_cycles', 0)}")
    print(f"  Successes: {state.get('total_successes', 0)}")
    print(f"  Failures: {state.get('total_failures', 0)}")
    print(f"  Consecutive failures: {state.get('consecutive_failures', 0)}")
    print(f"  Last output: {state.get('last_origin') or '-'}")
    print(f"  Last update: {state.get('last_update', '?')}")
    return 0
