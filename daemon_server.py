from flask import Flask
import argparse
import logging
import os
import sys
from pathlib import Path

from daemon_manager import DaemonManager, DaemonManagerError, ServiceRecord

LOG_FILE = os.environ.get("DAEMON_MANAGER_LOG", "daemon-manager.log")
LOG_LEVEL = os.environ.get("DAEMON_MANAGER_LOG_LEVEL", "INFO")

USAGE_HINT = (
    "Problems with arguments when launching the application.\n"
    " Example: sudo daemon-manager-systemd -port 8080 -name apache2 -path /lib/systemd/system/"
)

logger = logging.getLogger(__name__)


def setup_logging(level="INFO", logfile=None):
    """Send log records to ``logfile``, appending; does nothing if already configured."""
    root = logging.getLogger()
    if root.handlers:
        return

    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    if logfile:
        handler = logging.FileHandler(Path(logfile).resolve(), mode="a", encoding="utf-8")
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root.addHandler(handler)


def text_response(body, status=200):
    return body + "\n", status, {"Content-Type": "text/plain; charset=utf-8"}


def create_app(record: ServiceRecord) -> Flask:
    app = Flask(__name__)
    manager = DaemonManager(record)
    prefix = f"/{record.name}"

    @app.route(f"{prefix}/start", methods=["GET"])
    def start_service():
        logger.info("Starting daemon: %s", record.name)
        try:
            result = manager.start()
        except DaemonManagerError as e:
            logger.error("Error starting daemon %s: %s", record.name, e)
            return text_response(str(e), 500)
        logger.info("Daemon %s started successfully", record.name)
        return text_response(result)

    @app.route(f"{prefix}/stop", methods=["GET"])
    def stop_service():
        logger.info("Stopping daemon: %s", record.name)
        try:
            result = manager.stop()
        except DaemonManagerError as e:
            logger.error("Error stopping daemon %s: %s", record.name, e)
            return text_response(str(e), 500)
        logger.info("Daemon %s stopped successfully", record.name)
        return text_response(result)

    @app.route(f"{prefix}/restart", methods=["GET"])
    def restart_service():
        logger.info("Restarting daemon: %s", record.name)
        try:
            result = manager.restart()
        except DaemonManagerError as e:
            logger.error("Error restarting daemon %s: %s", record.name, e)
            return text_response(str(e), 500)
        logger.info("Daemon %s restarted successfully", record.name)
        return text_response(result)

    @app.route(f"{prefix}/status", methods=["GET"])
    def status():
        logger.info("Checking status of daemon: %s", record.name)
        try:
            result = manager.status()
        except DaemonManagerError as e:
            logger.error("Error checking status of daemon %s: %s", record.name, e)
            return text_response(str(e), 500)
        return text_response(result)

    return app


def build_parser():
    parser = argparse.ArgumentParser(
        prog="daemon-manager-systemd",
        description="Control a systemd unit over HTTP.",
        allow_abbrev=False,
    )
    parser.add_argument("-name", help="unit name without the .service suffix")
    parser.add_argument("-path", help="directory holding the unit file")
    parser.add_argument("-port", help="listen port, ':port', 'host:port' or '[v6]:port'")
    return parser


def parse_listen_address(port):
    """Split ``8080``, ``:8080``, ``host:port`` or ``[v6]:port`` into ``(host, port)``."""
    host, sep, number = port.rpartition(":")
    if not sep:
        host = ""
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    if not number.isdigit() or not 0 < int(number) < 65536:
        raise ValueError(f"invalid port: {port!r}")
    return host or "0.0.0.0", int(number)


def parse_args(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    missing = [flag for flag in ("name", "path", "port") if not getattr(args, flag)]
    if missing:
        logger.error("Problems with arguments when launching the application: missing %s",
                     ", ".join("-" + flag for flag in missing))
        parser.error(USAGE_HINT)

    try:
        args.host, args.port_number = parse_listen_address(args.port)
    except ValueError as e:
        logger.error("Problems with arguments when launching the application: %s", e)
        parser.error(str(e))
    return args


def main(argv=None):
    setup_logging(LOG_LEVEL, LOG_FILE)
    args = parse_args(argv)

    print("name=" + args.name)
    print("path=" + args.path)
    print("port=" + args.port)

    record = ServiceRecord(name=args.name, unit_directory=args.path)
    app = create_app(record)

    print(f"Server listening on port {args.port}...", flush=True)
    logger.info("Serving %s on %s:%d", record.unit_name, args.host, args.port_number)
    try:
        app.run(host=args.host, port=args.port_number, threaded=True)
    except OSError as e:
        logger.critical("Server failed: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
