"""Application orchestrator - wires all components and manages lifecycle."""

from __future__ import annotations

from pathlib import Path

from agent_bridge.config import AppConfig, BotConfig
from agent_bridge.core.bot_registry import BotRegistry
from agent_bridge.core.handler import BridgeHandler
from agent_bridge.core.orchestrator import ResponseOrchestrator
from agent_bridge.core.tracker import PendingQuestionTracker
from agent_bridge.core.transcript import ClaudeTranscriptSource, TranscriptReader
from agent_bridge.driver.base import AgentDriver
from agent_bridge.log import get_logger
from agent_bridge.messenger.base import MessengerAdapter
from agent_bridge.services.scheduler import SchedulerService
from agent_bridge.storage.session_store import JsonSessionStore

logger = get_logger(__name__)


class AgentBridgeApp:
    """Top-level application orchestrator."""

    def __init__(self, config: AppConfig):
        self.config = config
        self.store = JsonSessionStore(config.storage.sessions_path)
        self.scheduler = SchedulerService(config.scheduler)
        self.tracker = PendingQuestionTracker(
            stale_after=config.questions.stale_after,
            sweep_interval=config.questions.sweep_interval,
        )
        self.reader = TranscriptReader(
            ClaudeTranscriptSource(config.agent.projects_dir, config.agent.working_dir),
            clarification_tool=config.agent.clarification_tool,
        )
        self.driver = self._create_driver()
        self.orchestrator = ResponseOrchestrator(
            driver=self.driver,
            store=self.store,
            reader=self.reader,
            tracker=self.tracker,
            config=config.agent,
        )
        self.bot_registry = BotRegistry()

    async def start(self) -> None:
        """Initialize and start all components."""
        # 1. Sessions from the previous run
        self.store.load()

        # 2. Scheduler and the stale-question sweep
        await self.scheduler.start()
        self.tracker.start(self.scheduler)

        # 3. Bot adapters
        for bot_cfg in self.config.bots:
            try:
                adapter = self._create_adapter(bot_cfg)
                BridgeHandler(adapter=adapter, orchestrator=self.orchestrator, bot_config=bot_cfg).attach()
                self.bot_registry.register(bot_cfg.id, adapter)
                await adapter.start()
                logger.info("bot_started", bot_id=bot_cfg.id, platform=bot_cfg.platform)
            except Exception as e:
                logger.error("bot_start_failed", bot_id=bot_cfg.id, error=str(e))

        logger.info(
            "agent_bridge_started",
            bot_count=len(self.bot_registry.ids()),
            sessions=len(self.store),
            driver=self.config.driver.backend,
        )

    async def stop(self) -> None:
        """Gracefully shut down all components.

        Agent surfaces are left running so sessions resume after a restart.
        """
        for adapter in self.bot_registry.all():
            try:
                await adapter.stop()
            except Exception as e:
                logger.error("bot_stop_error", error=str(e))

        await self.scheduler.stop()
        logger.info("agent_bridge_stopped")

    def _create_driver(self) -> AgentDriver:
        match self.config.driver.backend:
            case "tmux":
                from agent_bridge.driver.tmux import TmuxDriver

                return TmuxDriver(self.config.agent, self.config.driver)
            case "terminal_app":
                from agent_bridge.driver.terminal_app import TerminalAppDriver

                return TerminalAppDriver(self.config.agent, self.config.driver)
            case _:
                raise ValueError(f"Unknown driver backend: {self.config.driver.backend}")

    def _create_adapter(self, cfg: BotConfig) -> MessengerAdapter:
        match cfg.platform:
            case "telegram":
                from agent_bridge.messenger.telegram import TelegramAdapter

                reply_index = Path(self.config.data_dir) / f"telegram_threads_{cfg.id}.json"
                return TelegramAdapter(cfg.id, {**cfg.model_dump(), "reply_index_path": str(reply_index)})
            case "discord":
                from agent_bridge.messenger.discord_adapter import DiscordAdapter

                return DiscordAdapter(cfg.id, cfg.model_dump())
            case _:
                raise ValueError(f"Unknown platform: {cfg.platform}")
