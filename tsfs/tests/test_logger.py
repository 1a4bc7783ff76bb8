import logging
import time

import tsfs.logger as logger


def test_summarize_matching_length():
    assert logger.summarize("abc", max_length=3) == "abc"


def test_summarize_exceeding_length():
    assert logger.summarize("abcdef", max_length=5) == "ab..."


def test_summarize_list():
    x = [1, 2, 3, 4, 5]
    assert logger.summarize(x, max_length=6) == "[1,..."


def test_component_prefix(caplog):
    caplog.set_level(logging.INFO, logger="tsfs")

    logger.component_log("connections").info("connected to alice@foo")

    assert "[connections] connected to alice@foo" in caplog.text


def test_elapsed_ms():
    assert logger.elapsed_ms(time.monotonic() - 1.5) >= 1500
