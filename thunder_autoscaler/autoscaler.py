"""Process entry point: watch a Thunder virtual-server port and scale a Deployment."""

import argparse
import logging
import signal
import sys
import threading

from .config import DEFAULT_CONFIG_PATH, load_config
from .errors import AutoscalerError, ConfigError, ThunderError
from .kube import KubernetesController
from .log import configure_logging
from .scheduler import ControlLoopScheduler
from .thunder import ThunderClient

logger = logging.getLogger("thunder_autoscaler")

EXIT_SIGNAL = 1
EXIT_STARTUP = 2


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="thunder-autoscaler",
        description="Scale a Kubernetes Deployment from A10 Thunder virtual-server throughput.",
    )
    parser.add_argument("--debug", type=int, default=0, help="Debugging level (overrides the config file)")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Configuration file path")
    return parser.parse_args(argv)


def connect(cfg):
    controller = KubernetesController.from_settings(cfg.cluster)
    controller.list_pods()
    logger.info("Connected to Kubernetes cluster")

    username, password = controller.get_secret(cfg.thunder.secret, cfg.thunder.secret_namespace)
    thunder = ThunderClient.from_settings(cfg.thunder, username, password).login()
    logger.info("Connected to Thunder device")
    return controller, thunder


def check_virtual_server(thunder, cfg):
    try:
        servers = thunder.get_virtual_servers()
    except ThunderError as e:
        logger.warning(f"Could not list virtual servers: {e}")
        return False

    for vs in servers:
        if vs.name == cfg.thunder.slb:
            ports = ", ".join(f"{p.port_number}+{p.protocol}" for p in vs.ports)
            logger.info(f"Watching virtual server {vs.name} ({vs.ip}) ports: {ports or 'none'}")
            return True

    logger.warning(f"Virtual server '{cfg.thunder.slb}' not found on Thunder device")
    return False


def install_signal_handlers(stop_event):
    def _handler(signum, frame):
        logger.info(f"Received {signal.Signals(signum).name}, shutting down")
        stop_event.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def log_tick(report):
    line = f"tick {report.tick}: {report.action}"
    if report.target_replicas is not None:
        line += f" (running {report.observed_replicas}, target {report.target_replicas})"
    if report.error:
        line += f": {report.error}"
    logger.debug(line)


def main(argv=None):
    args = parse_args(argv)
    configure_logging(args.debug)
    logger.info("A10 Kubernetes Autoscaler starting...")

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_STARTUP

    # command line overrides the config file's debug level
    if args.debug:
        cfg = cfg.with_debug(args.debug)
    configure_logging(cfg.debug)

    try:
        controller, thunder = connect(cfg)
    except AutoscalerError as e:
        logger.error(f"Startup failed: {e}")
        return EXIT_STARTUP

    check_virtual_server(thunder, cfg)

    stop = threading.Event()
    install_signal_handlers(stop)

    scheduler = ControlLoopScheduler(thunder, controller, on_tick=log_tick)
    try:
        scheduler.start(cfg)
    except AutoscalerError as e:
        logger.error(f"Startup failed: {e}")
        thunder.logoff()
        return EXIT_STARTUP

    try:
        stop.wait()
    finally:
        scheduler.stop(timeout=cfg.cmd_timeout)
        thunder.logoff()
        logger.info("Autoscaler stopped")
    return EXIT_SIGNAL


if __name__ == "__main__":
    sys.exit(main())
