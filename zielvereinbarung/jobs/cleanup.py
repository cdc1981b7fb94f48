"""
Cleanup Scheduler

Background loops owned by the application lifespan:
- rate_limit_sweep: drop elapsed rate-limit windows (every 60s)
- session_cleanup: delete dead sessions and stale single-use tokens

Call start() on startup and stop() on shutdown.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from zielvereinbarung.core.config import settings
from zielvereinbarung.core.database import get_db_session
from zielvereinbarung.core.rate_limit import RateLimitStore
from zielvereinbarung.core.utils import utcnow
from zielvereinbarung.services.session_service import SessionService
from zielvereinbarung.services.token_service import (
    EmailVerificationTokenStore,
    PasswordResetTokenStore,
)

logger = logging.getLogger(__name__)


async def run_session_cleanup(session_factory=get_db_session) -> Dict[str, int]:
    """Delete expired/idle sessions plus expired or used tokens."""
    async with session_factory() as db:
        stats = {
            "sessions": await SessionService(db).cleanup_expired_sessions(),
            "password_reset_tokens": await PasswordResetTokenStore(db).cleanup_expired(),
            "email_verification_tokens": await EmailVerificationTokenStore(db).cleanup_expired(),
        }

    if any(stats.values()):
        logger.info(
            f"Session cleanup: removed {stats['sessions']} sessions, "
            f"{stats['password_reset_tokens']} reset tokens, "
            f"{stats['email_verification_tokens']} verification tokens"
        )
    return stats


class CleanupScheduler:
    """Runs periodic cleanup jobs as asyncio tasks."""

    def __init__(
        self,
        rate_limit_store: RateLimitStore,
        session_factory=get_db_session,
        sweep_interval_seconds: Optional[float] = None,
        session_cleanup_interval_seconds: Optional[float] = None,
        session_cleanup_enabled: Optional[bool] = None,
    ):
        self.rate_limit_store = rate_limit_store
        self.session_factory = session_factory
        self.sweep_interval = (
            sweep_interval_seconds
            if sweep_interval_seconds is not None
            else settings.RATE_LIMIT_SWEEP_INTERVAL_SECONDS
        )
        self.session_cleanup_interval = (
            session_cleanup_interval_seconds
            if session_cleanup_interval_seconds is not None
            else settings.SESSION_CLEANUP_INTERVAL_MINUTES * 60
        )
        self.session_cleanup_enabled = (
            settings.SESSION_CLEANUP_ENABLED
            if session_cleanup_enabled is None
            else session_cleanup_enabled
        )
        self._tasks: List[asyncio.Task] = []
        self._running = False
        self.heartbeat: Dict[str, Dict] = {}

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start all scheduled jobs."""
        if self._running:
            logger.warning("Cleanup scheduler already running")
            return

        self._running = True
        self._tasks = [
            asyncio.create_task(self._run_job_loop("rate_limit_sweep", self._sweep_rate_limits, self.sweep_interval)),
        ]
        if self.session_cleanup_enabled:
            self._tasks.append(
                asyncio.create_task(
                    self._run_job_loop("session_cleanup", self._cleanup_sessions, self.session_cleanup_interval)
                )
            )

        logger.info(
            f"Cleanup scheduler started: rate_limit_sweep every {self.sweep_interval}s, "
            f"session_cleanup {'every ' + str(self.session_cleanup_interval) + 's' if self.session_cleanup_enabled else 'DISABLED'}"
        )

    async def stop(self):
        """Stop all scheduled jobs."""
        self._running = False
        for task in self._tasks:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("Cleanup scheduler stopped")

    async def _sweep_rate_limits(self) -> int:
        return self.rate_limit_store.sweep()

    async def _cleanup_sessions(self) -> Dict[str, int]:
        return await run_session_cleanup(self.session_factory)

    async def _run_job_loop(self, name: str, job_func: Callable[[], Awaitable], interval_seconds: float):
        """Run a job on a schedule; the first run happens after one interval."""
        beat = self.heartbeat.setdefault(name, {"last_run": None, "last_success": None, "errors": 0})

        while self._running:
            await asyncio.sleep(interval_seconds)
            beat["last_run"] = utcnow().isoformat()
            try:
                await job_func()
                beat["last_success"] = utcnow().isoformat()
            except Exception as e:
                beat["errors"] += 1
                logger.error(f"Cleanup job {name} failed: {type(e).__name__}: {e}")
