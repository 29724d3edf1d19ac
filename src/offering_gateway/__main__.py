# src/offering_gateway/__main__.py
import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import List, Optional
from fastapi import FastAPI
from hypercorn.asyncio import serve
from hypercorn.config import Config as HyperConfig
from pydantic import ValidationError
import traceback

from offering_gateway.api.routes import gateway_router
from offering_gateway.core.config_manager import AppConfig, ConfigManager
from offering_gateway.core.form_resolver import Method
from offering_gateway.core.gateway import Gateway
from offering_gateway.core.offering_manager import OfferingManager
from offering_gateway.core.thing_analyzer import ThingAnalyzer
from offering_gateway.models.thing import Thing
from offering_gateway.storage.database import ConnectionPool
from offering_gateway.storage.history_store import HistoryRepository, HistoryStore
from offering_gateway.utils.logging import setup_logging, get_logger
from offering_gateway.utils.exceptions import ConfigurationError, InitializationError


class AppState:
    """Components shared with the API through app.state"""
    def __init__(self, gateway: Gateway, offering_manager: OfferingManager,
                 history_pool: Optional[ConnectionPool] = None):
        self.gateway = gateway
        self.offering_manager = offering_manager
        self.history_pool = history_pool


class APIServer:
    """Handles API server initialization and management"""

    def __init__(self, config: AppConfig, shutdown_event: asyncio.Event):
        self.config = config
        self.shutdown_event = shutdown_event
        self.logger = get_logger("API Server")
        self.app: Optional[FastAPI] = None

    def initialize(self, components: AppState) -> FastAPI:
        """Create the FastAPI application proxying every gateway route"""
        try:
            self.app = FastAPI(
                title="Offering Gateway",
                description="Proxy exposing Web of Things interactions as marketplace Offerings",
                version="0.1.0"
            )
            self.app.state.components = components
            self.app.include_router(gateway_router)
            return self.app
        except Exception:
            raise InitializationError(f"Failed to initialize API server: {traceback.format_exc()}")

    async def start(self):
        """Start the API server"""
        if not self.app:
            raise InitializationError("API server started before initialization")

        hypercorn_config = HyperConfig()
        host = self.config.api.host
        port = self.config.api.port
        hypercorn_config.bind = [f"{host}:{port}"]

        async def shutdown_trigger():
            await self.shutdown_event.wait()

        try:
            self.logger.info(f"Starting API server on {host}:{port}")
            await serve(self.app, hypercorn_config, shutdown_trigger=shutdown_trigger)
        except Exception:
            self.logger.error(f"Failed to start API server: {traceback.format_exc()}")
            raise


def load_things(paths: List[str]) -> List[Thing]:
    """Parse TD JSON files; unreadable or invalid files are skipped"""
    logger = get_logger(__name__)
    things: List[Thing] = []
    for path in paths:
        try:
            with open(path, 'r') as f:
                things.append(Thing.model_validate(json.load(f)))
        except (OSError, ValueError, ValidationError) as e:
            logger.error(f"Could not load Thing Description {path}: {e}")
    return things


class OfferingGatewayApp:
    """Main application class"""

    def __init__(self, config_path: str):
        self.logger = get_logger("Main App")
        try:
            self.config = ConfigManager.load_config(config_path)
            setup_logging(self.config.logging)
        except ConfigurationError:
            self.logger.error(f"Configuration error: {traceback.format_exc()}")
            sys.exit(1)

        self.shutdown_event = asyncio.Event()
        self.api_server = APIServer(self.config, self.shutdown_event)
        self.analyzer = ThingAnalyzer(self.config.gateway)
        self.gateway = Gateway(self.config.gateway)
        self.offering_manager = OfferingManager(self.config.api)
        self.history_pool: Optional[ConnectionPool] = None
        self.history_repository: Optional[HistoryRepository] = None

    async def initialize_components(self):
        """Initialize all application components"""
        try:
            await self.gateway.start()
            if self.config.history.enabled:
                self.history_pool = ConnectionPool(self.config.history.database, self.config.history.max_connections)
                await self.history_pool.initialize()
                self.history_repository = HistoryRepository(self.history_pool)
            await self.register_things(load_things(self.config.things))
            self.api_server.initialize(AppState(self.gateway, self.offering_manager, self.history_pool))
            self.logger.info("All components initialized successfully")
        except InitializationError:
            raise
        except Exception:
            raise InitializationError(f"Failed to initialize components: {traceback.format_exc()}")

    async def register_things(self, things: List[Thing]):
        """Expose each Thing directly when possible, otherwise through gateway routes"""
        options = self.config.gateway
        uses_gateway_features = options.use_merge or options.use_aggregate or self.config.history.enabled

        through_gateway: List[Thing] = []
        for thing in things:
            if not uses_gateway_features and self.analyzer.is_thing_directly_compatible(thing):
                self.offering_manager.add_offerings_for_thing(thing)
            else:
                through_gateway.append(thing)

        if options.use_aggregate:
            groups = self.analyzer.group_identical_things(through_gateway)
        else:
            groups = [[thing] for thing in through_gateway]

        for group in groups:
            for route in self.gateway.add_aggregated_things(group):
                if self.history_repository is not None and route.method == Method.GET:
                    store = HistoryStore(route, self.history_repository,
                                         self.config.history.period, self.config.history.limit)
                    self.gateway.attach_history(route.uri, store)
                    await store.start()
                self.offering_manager.add_offering_for_route(route)

        self.logger.info(
            f"{len(self.gateway.routes)} gateway route(s), "
            f"{len(self.offering_manager.to_register)} offering(s) ready for registration"
        )

    async def shutdown(self):
        """Gracefully shutdown all components"""
        self.logger.info("Initiating shutdown sequence")
        try:
            await self.gateway.close()
            if self.history_pool:
                await self.history_pool.close()
            self.shutdown_event.set()
            self.logger.info("Shutdown completed successfully")
        except Exception:
            self.logger.error(f"Error during shutdown: {traceback.format_exc()}")
            self.shutdown_event.set()

    def handle_signals(self):
        """Set up signal handlers for graceful shutdown"""
        loop = asyncio.get_running_loop()

        def signal_handler(signum):
            self.logger.info(f"Received signal {signum}")
            asyncio.create_task(self.shutdown())

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, signal_handler, sig)

    async def run(self):
        """Main application entry point"""
        try:
            self.handle_signals()
            await self.initialize_components()
            await self.api_server.start()
        except InitializationError:
            self.logger.error(f"Initialization error: {traceback.format_exc()}")
            await self.shutdown()
            sys.exit(1)
        except Exception:
            self.logger.error(f"Unexpected error: {traceback.format_exc()}")
            await self.shutdown()
            sys.exit(1)


def create_default_config(config_path: Path):
    """Create default configuration file if it doesn't exist"""
    if not config_path.exists():
        example_config = """
api:
  host: "0.0.0.0"
  port: 8080
  # public_url: "http://gateway.example.org:8080"

gateway:
  use_merge: false
  use_aggregate: false
  use_property_filters: false
  request_timeout: 10
  more_logs: false

history:
  enabled: false
  period: 60
  limit: 100
  database: "history.db"

things:
  - "config/things/example-sensor.json"

logging:
  level: "INFO"
  file: "logs/offering_gateway.log"
  max_size: 10
  backup_count: 5
  format: "%(asctime)s - %(name)s - [%(levelname)s] - %(message)s"
"""
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(example_config)
        print(f"Created default config at {config_path}")


def main():
    """Application entry point"""
    config_path = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("config/default.yml")
    create_default_config(config_path)

    app = OfferingGatewayApp(str(config_path))
    asyncio.run(app.run())


if __name__ == "__main__":
    main()
