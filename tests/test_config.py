import logging

import pytest

from kubepulse.config import LOG_FORMAT, Settings, configure_logging, parse_args


@pytest.fixture
def kubepulse_logger():
    logger = logging.getLogger("kubepulse")
    saved = (logger.level, logger.propagate, list(logger.handlers))
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(saved[0])
    logger.propagate = saved[1]
    for handler in saved[2]:
        logger.addHandler(handler)


def test_defaults(monkeypatch) -> None:
    monkeypatch.delenv("KUBECONFIG", raising=False)
    assert parse_args([]) == Settings()


def test_flags(monkeypatch) -> None:
    monkeypatch.delenv("KUBECONFIG", raising=False)
    settings = parse_args(
        [
            "--interval", "1.5",
            "--context", "prod",
            "--tail-lines", "0",
            "--local-port", "9000",
            "--request-timeout", "30",
            "-v",
        ]
    )
    assert settings.interval == 1.5
    assert settings.context == "prod"
    assert settings.tail_lines == 0
    assert settings.local_port == 9000
    assert settings.request_timeout == 30
    assert settings.verbose is True


def test_kubeconfig_env_fallback(monkeypatch) -> None:
    monkeypatch.setenv("KUBECONFIG", "/tmp/env-config")
    assert parse_args([]).kubeconfig == "/tmp/env-config"
    assert parse_args(["--kubeconfig", "/tmp/flag"]).kubeconfig == "/tmp/flag"


@pytest.mark.parametrize(
    "argv",
    [
        ["--interval", "0"],
        ["--interval", "soon"],
        ["--tail-lines", "-1"],
        ["--local-port", "70000"],
        ["--request-timeout", "0"],
    ],
)
def test_invalid_values_exit(argv) -> None:
    with pytest.raises(SystemExit):
        parse_args(argv)


def test_logging_discarded_without_file(kubepulse_logger) -> None:
    configure_logging(Settings())
    assert kubepulse_logger.level == logging.INFO
    assert kubepulse_logger.propagate is False
    assert [type(h) for h in kubepulse_logger.handlers] == [logging.NullHandler]


def test_logging_to_file(kubepulse_logger, tmp_path) -> None:
    path = tmp_path / "kube-pulse.log"
    configure_logging(Settings(log_file=str(path), verbose=True))
    configure_logging(Settings(log_file=str(path), verbose=True))

    assert kubepulse_logger.level == logging.DEBUG
    assert len(kubepulse_logger.handlers) == 1
    handler = kubepulse_logger.handlers[0]
    assert isinstance(handler, logging.FileHandler)
    assert handler.formatter._fmt == LOG_FORMAT

    logging.getLogger("kubepulse.state").debug("hello from the reducer")
    handler.flush()
    assert "kubepulse.state - DEBUG - hello from the reducer" in path.read_text()
