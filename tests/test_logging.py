# tests/test_logging.py
import json
import logging

import pytest

from log_utils import StructuredFormatter, get_logger, log_performance


class _Capture(logging.Handler):
    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.setFormatter(StructuredFormatter())
        self.lines = []

    def emit(self, record):
        self.lines.append(json.loads(self.format(record)))


@pytest.fixture
def captured():
    handler = _Capture()
    base = logging.getLogger("proofnode.test")
    base.setLevel(logging.DEBUG)
    base.addHandler(handler)
    yield handler
    base.removeHandler(handler)


def test_context_fields_are_top_level(captured):
    logger = get_logger("proofnode.test").with_context(slot=100, bank_hash="abc")
    logger.info("Slot finalized", extra={"accounts": 3})

    entry = captured.lines[-1]
    assert entry["message"] == "Slot finalized"
    assert entry["slot"] == 100
    assert entry["bank_hash"] == "abc"
    assert entry["extra"] == {"accounts": 3}


def test_exception_is_serialized(captured):
    logger = get_logger("proofnode.test")
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        logger.exception("Processing failed")
    assert captured.lines[-1]["exception"]["type"] == "RuntimeError"


def test_log_performance_times_and_reraises(captured):
    logger = get_logger("proofnode.test")

    @log_performance(logger, "square")
    def square(x):
        """Square a number"""
        if x < 0:
            raise ValueError("negative")
        return x * x

    assert square(4) == 16
    assert square.__name__ == "square"
    assert captured.lines[-1]["extra"]["status"] == "success"
    assert captured.lines[-1]["duration"] >= 0

    with pytest.raises(ValueError):
        square(-1)
    assert captured.lines[-1]["extra"]["error"] == "negative"


@pytest.mark.asyncio
async def test_log_performance_on_coroutines(captured):
    @log_performance(get_logger("proofnode.test"), "echo")
    async def echo(value):
        return value

    assert await echo("slot") == "slot"
    assert captured.lines[-1]["extra"]["operation"] == "echo"
