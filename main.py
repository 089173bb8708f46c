"""Main application entry point for Provider Hub"""

import asyncio
import signal
import sys
from typing import Optional

import structlog
import uvicorn
from dotenv import load_dotenv

from provider_hub.api.app import create_app
from provider_hub.config.models import Settings
from provider_hub.monitoring.metrics import start_metrics_server
from provider_hub.supervisor.supervisor import ConnectionSupervisor
from provider_hub.transactions.contracts import AbiRegistry, ContractFactory
from provider_hub.transactions.dispatcher import TransactionDispatcher
from provider_hub.transactions.tracker import PendingTransactionTracker
from provider_hub.utils.logging import setup_logging

# Load environment variables
load_dotenv()

logger = structlog.get_logger()


class Application:
    """Main application orchestrator"""

    def __init__(self):
        """Initialize application components"""
        self.settings: Optional[Settings] = None
        self.supervisor: Optional[ConnectionSupervisor] = None
        self.tracker: Optional[PendingTransactionTracker] = None
        self.dispatcher: Optional[TransactionDispatcher] = None

        # FastAPI app
        self.app = None

        # Shutdown flag
        self._shutdown_event = asyncio.Event()

        self._logger = logger.bind(component="application")

    async def initialize(self) -> None:
        """Initialize all application components"""
        try:
            self.settings = Settings()
            setup_logging(self.settings.log_level)
            self._logger.info(
                "settings_loaded",
                log_level=self.settings.log_level.upper(),
                target_network_id=self.settings.target_network_id,
                bridge_rpc_url=self.settings.bridge_rpc_url,
            )

            network_config = self.settings.get_network_config()

            self._logger.info("initializing_supervisor")
            self.supervisor = ConnectionSupervisor(network_config)

            self.tracker = PendingTransactionTracker()
            self.tracker.follow(self.supervisor)

            self.dispatcher = TransactionDispatcher(
                supervisor=self.supervisor,
                contract_factory=ContractFactory(AbiRegistry(network_config.abi_dir)),
                tracker=self.tracker,
            )

            self._logger.info("creating_fastapi_app")
            self.app = create_app(
                settings=self.settings,
                supervisor=self.supervisor,
                tracker=self.tracker,
            )

            self._logger.info("application_initialized")

        except Exception as e:
            self._logger.error(
                "application_initialization_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

    async def start(self) -> None:
        """Start all application components"""
        self._logger.info("application_starting")

        status = await self.supervisor.initialize()
        if not status.is_active:
            # retried via POST /api/v1/reload or the next lifecycle event
            self._logger.warning(
                "no_provider_available",
                last_error=status.last_error.value if status.last_error else None,
            )

        self._logger.info("starting_metrics_server", port=self.settings.prometheus_port)
        start_metrics_server(port=self.settings.prometheus_port)

        self._logger.info("application_started", state=status.state.value)

    async def stop(self) -> None:
        """Stop all application components gracefully"""
        self._logger.info("application_stopping")

        try:
            if self.supervisor:
                await self.supervisor.shutdown()
            self._logger.info("application_stopped")
        except Exception as e:
            self._logger.error(
                "application_stop_error",
                error=str(e),
                error_type=type(e).__name__,
            )

    def setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown"""
        def signal_handler(signum, frame):
            """Handle shutdown signals"""
            signal_name = signal.Signals(signum).name
            self._logger.info(
                "shutdown_signal_received",
                signal=signal_name,
            )
            self._shutdown_event.set()

        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)

        self._logger.info("signal_handlers_registered")

    async def wait_for_shutdown(self) -> None:
        """Wait for shutdown signal"""
        await self._shutdown_event.wait()


async def main() -> None:
    """Main application entry point"""
    app = Application()

    try:
        await app.initialize()
        app.setup_signal_handlers()
        await app.start()

        config = uvicorn.Config(
            app.app,
            host=app.settings.api_host,
            port=app.settings.api_port,
            log_level=app.settings.log_level.lower(),
            access_log=True,
        )
        server = uvicorn.Server(config)
        server_task = asyncio.create_task(server.serve())

        logger.info(
            "uvicorn_server_started",
            host=app.settings.api_host,
            port=app.settings.api_port,
        )

        await app.wait_for_shutdown()

        logger.info("shutting_down_uvicorn_server")
        server.should_exit = True
        await server_task

        await app.stop()

        logger.info("application_shutdown_complete")

    except KeyboardInterrupt:
        logger.info("keyboard_interrupt_received")
        await app.stop()
    except Exception as e:
        logger.error(
            "application_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        await app.stop()
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
