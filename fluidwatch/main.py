"""
FluidWatch main pipeline: ThingSpeak sync -> events -> balance -> risk/KDIGO -> alerts.
Runs the periodic refresh loop and optionally starts the FastAPI server.
"""

import argparse
import logging
import signal
import threading
import time
from pathlib import Path
from typing import Optional

import yaml

from .alerts import AlertManager
from .api.server import broadcast_alert, create_app
from .balance.calculator import BalanceCalculator
from .db import session as db_session
from .db.repository import BalanceRepository
from .errors import FluidWatchError, UpstreamUnavailable
from .ingest import SensorSync, ThingSpeakClient
from .service import BalanceService
from .severity.scoring import RiskClassifier

logger = logging.getLogger("fluidwatch")

DEFAULTS = {
    "risk_neutral_limit_ml_kg": 10.0,
    "risk_high_limit_ml_kg": 40.0,
    "insensible_intake_ml_kg_h": 0.2,
    "insensible_output_ml_kg_h": 0.5,
    "kdigo_min_observation_hours": 6.0,
    "refresh_interval_seconds": 30.0,
    "thingspeak_base_url": "https://api.thingspeak.com",
    "thingspeak_results": 100,
    "thingspeak_timeout_seconds": 10.0,
    "alert_cooldown_seconds": 300.0,
}


def load_config(path: str = "config.yaml") -> dict:
    config = dict(DEFAULTS)
    cfg_path = Path(path)
    if cfg_path.is_file():
        with open(cfg_path, "r") as f:
            config.update(yaml.safe_load(f) or {})
    else:
        logger.warning("%s not found; using defaults", path)
    return config


def build_components(config: dict, session_factory=None):
    """Wire repository, service, sensor sync and alerts from a config dict."""
    if session_factory is None:
        session_factory = db_session.get_session
    repository = BalanceRepository(session_factory)
    alert_manager = AlertManager(cooldown_seconds=config["alert_cooldown_seconds"])
    service = BalanceService(
        repository,
        calculator=BalanceCalculator(
            intake_coefficient=config["insensible_intake_ml_kg_h"],
            output_coefficient=config["insensible_output_ml_kg_h"],
        ),
        risk_classifier=RiskClassifier(
            neutral_limit=config["risk_neutral_limit_ml_kg"],
            high_limit=config["risk_high_limit_ml_kg"],
        ),
        min_observation_hours=config["kdigo_min_observation_hours"],
        alert_manager=alert_manager,
    )
    client = ThingSpeakClient(
        base_url=config["thingspeak_base_url"],
        results=config["thingspeak_results"],
        timeout=config["thingspeak_timeout_seconds"],
    )
    sensor_sync = SensorSync(repository, client)
    return service, sensor_sync, alert_manager


def refresh_once(service: BalanceService, sensor_sync: Optional[SensorSync]) -> int:
    """One refresh tick: pull sensor data, then re-evaluate every active patient."""
    if sensor_sync is not None:
        try:
            sensor_sync.sync_devices()
        except UpstreamUnavailable as e:
            # stale totals are still evaluated
            logger.error("sensor sync failed: %s", e)
    return len(service.evaluate_all())


def run_pipeline(
    config_path: str = "config.yaml",
    no_server: bool = False,
    port: int = 8000,
    once: bool = False,
) -> None:
    config = load_config(config_path)

    # database setup
    db_session.get_engine()
    db_session.create_tables()

    service, sensor_sync, alert_manager = build_components(config)
    alert_manager.set_ws_broadcast(broadcast_alert)

    if once:
        count = refresh_once(service, sensor_sync)
        logger.info("evaluated %s patients", count)
        db_session.dispose()
        return

    # setup graceful shutdown
    stop = threading.Event()

    def _handle_sig(signum, frame):
        logger.info("received signal %s, stopping", signum)
        stop.set()

    signal.signal(signal.SIGINT, _handle_sig)
    signal.signal(signal.SIGTERM, _handle_sig)

    if not no_server:
        import uvicorn
        app = create_app(service, sensor_sync=sensor_sync, alert_manager=alert_manager)
        server_thread = threading.Thread(
            target=lambda: uvicorn.run(app, host="0.0.0.0", port=port, log_level="warning"),
            daemon=True,
        )
        server_thread.start()
        logger.info("API at http://localhost:%s", port)

    interval = float(config["refresh_interval_seconds"])
    try:
        while not stop.is_set():
            started = time.time()
            try:
                count = refresh_once(service, sensor_sync)
                logger.info("refresh done: %s patients in %.2fs", count, time.time() - started)
            except FluidWatchError as e:
                logger.error("refresh failed, retrying next tick: %s", e)
            stop.wait(interval)
    except KeyboardInterrupt:
        pass
    finally:
        db_session.dispose()
        logger.info("Pipeline stopped.")


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    p = argparse.ArgumentParser(description="FluidWatch - fluid balance and KDIGO monitoring")
    p.add_argument("--config", default="config.yaml", help="YAML configuration file")
    p.add_argument("--no-server", action="store_true", help="Disable the HTTP API")
    p.add_argument("--port", type=int, default=8000, help="API port")
    p.add_argument("--once", action="store_true", help="Run a single refresh pass and exit")
    args = p.parse_args()
    run_pipeline(config_path=args.config, no_server=args.no_server, port=args.port, once=args.once)


if __name__ == "__main__":
    main()
