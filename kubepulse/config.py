"""Command-line settings and logging setup."""

import argparse
import logging
import os
from dataclasses import dataclass
from typing import Optional, Sequence

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class Settings:
    interval: float = 3.0
    kubeconfig: Optional[str] = None
    context: Optional[str] = None
    tail_lines: int = 100
    local_port: int = 8080
    request_timeout: int = 10
    log_file: Optional[str] = None
    verbose: bool = False


def _positive_float(value: str) -> float:
    number = float(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be greater than 0: {value}")
    return number


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: {value}")
    return number


def _positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be greater than 0: {value}")
    return number


def _port(value: str) -> int:
    number = int(value)
    if not 1 <= number <= 65535:
        raise argparse.ArgumentTypeError(f"not a valid port: {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kube-pulse",
        description="Interactive terminal dashboard for Kubernetes pods",
    )
    parser.add_argument(
        "--interval",
        type=_positive_float,
        default=3.0,
        help="Refresh interval in seconds (default: 3.0)",
    )
    parser.add_argument(
        "--kubeconfig",
        default=None,
        help="Path to kubeconfig (default: $KUBECONFIG or kubectl's default)",
    )
    parser.add_argument("--context", default=None, help="Kube context to use")
    parser.add_argument(
        "--tail-lines",
        type=_non_negative_int,
        default=100,
        help="Log lines shown in the log view (default: 100)",
    )
    parser.add_argument(
        "--local-port",
        type=_port,
        default=8080,
        help="Local port for port-forwards (default: 8080)",
    )
    parser.add_argument(
        "--request-timeout",
        type=_positive_int,
        default=10,
        help="Timeout in seconds for kubectl calls (default: 10)",
    )
    parser.add_argument("--log-file", default=None, help="Write debug logs to this file")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log at DEBUG instead of INFO"
    )
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> Settings:
    args = build_parser().parse_args(argv)
    return Settings(
        interval=args.interval,
        kubeconfig=args.kubeconfig or os.environ.get("KUBECONFIG") or None,
        context=args.context,
        tail_lines=args.tail_lines,
        local_port=args.local_port,
        request_timeout=args.request_timeout,
        log_file=args.log_file,
        verbose=args.verbose,
    )


def configure_logging(settings: Settings) -> None:
    """
    The dashboard owns the terminal, so logs only ever go to a file. Without
    --log-file they are discarded.
    """
    root = logging.getLogger("kubepulse")
    root.setLevel(logging.DEBUG if settings.verbose else logging.INFO)
    root.propagate = False
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()
    if settings.log_file:
        handler: logging.Handler = logging.FileHandler(settings.log_file)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
    else:
        handler = logging.NullHandler()
    root.addHandler(handler)
