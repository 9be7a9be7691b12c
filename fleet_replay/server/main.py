#!/usr/bin/env python3
"""
Fleet Replay Server - Main Application

Loads the configuration, builds the replay session stack and serves
it over HTTP.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import uvicorn
import yaml

from fleet_replay.server.api.server import create_app
from fleet_replay.server.data.data_source import create_data_source_from_config
from fleet_replay.server.replay.playback import PlaybackConfig, PlaybackController
from fleet_replay.server.replay.replay_engine import ReplayEngine, TransitionPolicy
from fleet_replay.server.replay.session import SessionManager
from fleet_replay.server.storage.checkpoint import (
    CheckpointConfig,
    CheckpointManager,
    create_store_from_config,
)
from fleet_replay.shared.metrics import (
    MetricsRegistry,
    ReplayMetricsCollector,
    create_exporter_from_config,
)

logger = logging.getLogger(__name__)


class FleetReplayServer:
    """Main server application."""

    def __init__(self, config_path: str):
        self.config = self._load_config(config_path)

        # Metrics
        self.metrics_registry = MetricsRegistry()
        self.metrics_collector = ReplayMetricsCollector(registry=self.metrics_registry)
        self.metrics_exporter = create_exporter_from_config(
            self.config.get("metrics", {}),
            registry=self.metrics_registry,
        )

        # Replay
        replay_config = self.config.get("replay", {})
        self.engine = ReplayEngine(
            policy=TransitionPolicy(
                freeze_terminal_trips=replay_config.get("freeze_terminal_trips", False),
                clamp_progress=replay_config.get("clamp_progress", False),
            ),
            metrics_collector=self.metrics_collector,
        )
        self.playback = PlaybackController(
            self.engine,
            config=PlaybackConfig(
                tick_interval_s=replay_config.get("tick_interval_s", 1.0),
                virtual_step_s=replay_config.get("virtual_step_s", 60.0),
            ),
            metrics_collector=self.metrics_collector,
        )

        # Checkpoints
        checkpoint_config = CheckpointConfig(**self.config.get("checkpoint", {}))
        self.checkpoint_manager = CheckpointManager(
            store=create_store_from_config(checkpoint_config),
            key=checkpoint_config.key,
            metrics_collector=self.metrics_collector,
        )

        self.session_manager = SessionManager(
            data_source=create_data_source_from_config(self.config.get("data", {})),
            checkpoint_manager=self.checkpoint_manager,
            engine=self.engine,
            playback=self.playback,
            metrics_collector=self.metrics_collector,
        )

        self.app = create_app(self.session_manager)

    def _load_config(self, config_path: str) -> dict:
        """Load configuration from YAML file."""
        config_file = Path(config_path)

        if not config_file.exists():
            logger.warning(f"Config file not found: {config_path}, using defaults")
            return {}

        with open(config_file) as f:
            config = yaml.safe_load(f) or {}

        logger.info(f"Loaded configuration from {config_path}")
        return config

    async def run_async(self):
        """Serve the API, with the metrics exporter alongside when enabled."""
        server_config = self.config.get("server", {})

        if self.metrics_exporter:
            await self.metrics_exporter.start()

        server = uvicorn.Server(uvicorn.Config(
            self.app,
            host=server_config.get("host", "0.0.0.0"),
            port=server_config.get("port", 5000),
            log_level=self.config.get("logging", {}).get("level", "INFO").lower(),
        ))

        try:
            await server.serve()
        finally:
            if self.metrics_exporter:
                await self.metrics_exporter.stop()

    def run(self):
        """Run the server."""
        logging.basicConfig(
            level=getattr(logging, self.config.get("logging", {}).get("level", "INFO")),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

        logger.info("Starting Fleet Replay Server")
        logger.info(f"  - Tick interval: {self.playback.config.tick_interval_s}s")
        logger.info(f"  - Virtual step: {self.playback.config.virtual_step_s}s")
        logger.info(f"  - Checkpoint key: {self.checkpoint_manager.key}")

        try:
            asyncio.run(self.run_async())
        except KeyboardInterrupt:
            pass

        logger.info("Fleet Replay Server stopped")


def main():
    parser = argparse.ArgumentParser(description="Fleet Replay Server")
    parser.add_argument(
        "-c", "--config",
        default="config/config.yaml",
        help="Path to configuration file",
    )

    args = parser.parse_args()

    try:
        server = FleetReplayServer(args.config)
    except (TypeError, ValueError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    server.run()


if __name__ == "__main__":
    main()
