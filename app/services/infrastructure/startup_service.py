"""Background services: trade sync jobs and per-agent Telegram bots."""

import asyncio
import signal
import sys
from typing import Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.backend.abstract import AbstractBackend
from app.config import Config, config
from app.lib.logger import configure_logger
from app.services.agents.registry import AgentRegistry
from app.services.authorization.member_link import build_member_link_signer
from app.services.communication.telegram_bot_service import (
    AgentBotManager,
    TelegramChatGateway,
)
from app.services.integrations.chains.registry import (
    ChainAdapterRegistry,
    build_chain_adapters,
)
from app.services.processing.trade_sync import TradeSyncService

logger = configure_logger(__name__)

shutdown_event = asyncio.Event()


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully."""
    logger.info(
        "Shutdown signal received - initiating graceful shutdown",
        extra={"signal": signum, "event_type": "shutdown_signal"},
    )
    shutdown_event.set()


class StartupService:
    """Wires the worker's collaborators and schedules its jobs."""

    def __init__(
        self,
        scheduler: Optional[AsyncIOScheduler] = None,
        backend: Optional[AbstractBackend] = None,
        chains: Optional[ChainAdapterRegistry] = None,
        app_config: Optional[Config] = None,
    ):
        self.scheduler = scheduler or AsyncIOScheduler()
        self.config = app_config or config
        self.backend = backend
        self.chains = chains
        self.trade_sync: Optional[TradeSyncService] = None
        self.bot_manager: Optional[AgentBotManager] = None

    def initialize(self) -> None:
        if self.backend is None:
            from app.backend.factory import get_backend

            self.backend = get_backend()
        if self.chains is None:
            self.chains = build_chain_adapters(self.config, self.backend)

        agents = AgentRegistry(self.backend)
        gateway = TelegramChatGateway()
        self.trade_sync = TradeSyncService(
            backend=self.backend,
            chains=self.chains,
            agents=agents,
            gateway=gateway,
            start_blocks={"monad": self.config.chain.monad_start_block},
        )
        self.bot_manager = AgentBotManager(
            agents,
            self.config.telegram,
            link_signer=build_member_link_signer(
                self.config.telegram.member_link_secret,
                self.config.telegram.member_link_ttl_seconds,
            ),
        )

    async def run_trade_sync(self, chain_type: str) -> None:
        try:
            await self.trade_sync.sync_chain(chain_type)
        except Exception as e:
            logger.error(
                "Trade sync job failed",
                extra={
                    "event_type": "trade_sync_error",
                    "chain_type": chain_type,
                    "error": str(e),
                },
                exc_info=True,
            )

    async def run_agent_bot_refresh(self) -> None:
        try:
            await self.bot_manager.refresh()
        except Exception as e:
            logger.error(
                "Agent bot refresh failed",
                extra={"event_type": "agent_bot_refresh_error", "error": str(e)},
                exc_info=True,
            )

    def schedule_jobs(self) -> int:
        """Register jobs with the scheduler and return how many were added."""
        scheduled = 0
        settings = self.config.scheduler

        if settings.trade_sync_enabled:
            for chain_type in self.chains.chain_types():
                self.scheduler.add_job(
                    self.run_trade_sync,
                    "interval",
                    seconds=settings.trade_sync_interval_seconds,
                    args=[chain_type],
                    id=f"trade_sync_{chain_type}",
                    max_instances=1,
                    coalesce=True,
                )
                scheduled += 1
        else:
            logger.info(
                "Trade sync disabled", extra={"event_type": "trade_sync_disabled"}
            )

        if settings.agent_bot_refresh_enabled and self.config.telegram.enabled:
            self.scheduler.add_job(
                self.run_agent_bot_refresh,
                "interval",
                seconds=settings.agent_bot_refresh_interval_seconds,
                id="agent_bot_refresh",
                max_instances=1,
                coalesce=True,
            )
            scheduled += 1

        for job in self.scheduler.get_jobs():
            logger.debug(
                "Scheduled job details",
                extra={
                    "job_id": job.id,
                    "event_type": "job_schedule_detail",
                },
            )
        return scheduled

    async def init_background_tasks(self) -> None:
        logger.info("Starting background services", extra={"event_type": "service_startup"})
        try:
            self.initialize()
            if self.schedule_jobs():
                self.scheduler.start()
                logger.info(
                    "Job scheduler started successfully",
                    extra={
                        "active_jobs": len(self.scheduler.get_jobs()),
                        "event_type": "scheduler_started",
                    },
                )
            else:
                logger.warning(
                    "No jobs were scheduled - scheduler will not be started",
                    extra={"event_type": "no_jobs_scheduled"},
                )

            if self.config.telegram.enabled:
                await self.bot_manager.refresh()
            else:
                logger.info(
                    "Telegram bots disabled - skipping initialization",
                    extra={"event_type": "bot_disabled"},
                )
        except Exception as e:
            logger.error(
                "Failed to start background services",
                extra={"error": str(e), "event_type": "service_startup_error"},
                exc_info=True,
            )
            raise

    async def shutdown(self) -> None:
        logger.info("Initiating shutdown sequence", extra={"event_type": "shutdown_start"})
        try:
            if self.scheduler and self.scheduler.running:
                self.scheduler.shutdown()
                logger.info(
                    "Job scheduler stopped", extra={"event_type": "scheduler_stopped"}
                )
            if self.bot_manager:
                await self.bot_manager.shutdown()
            if self.chains:
                await self.chains.close()
        except Exception as e:
            logger.error(
                "Error during shutdown",
                extra={"error": str(e), "event_type": "shutdown_error"},
                exc_info=True,
            )
        logger.info("Shutdown complete", extra={"event_type": "shutdown_complete"})

    def get_health_status(self) -> Dict:
        return {
            "status": "healthy" if self.scheduler.running else "stopped",
            "jobs": [job.id for job in self.scheduler.get_jobs()],
            "agent_bots": self.bot_manager.running_agents if self.bot_manager else [],
        }


# Global instance for the worker entrypoint
startup_service = StartupService()


async def run_standalone():
    """Run background services until a shutdown signal arrives."""
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)
    try:
        await startup_service.init_background_tasks()
        logger.info(
            "Background services running - Press Ctrl+C to stop",
            extra={"event_type": "services_running"},
        )
        await shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info(
            "Received keyboard interrupt", extra={"event_type": "keyboard_interrupt"}
        )
    except Exception as e:
        logger.error(
            "Critical error in standalone mode",
            extra={"error": str(e), "event_type": "critical_error"},
            exc_info=True,
        )
        sys.exit(1)
    finally:
        await startup_service.shutdown()


if __name__ == "__main__":
    asyncio.run(run_standalone())
