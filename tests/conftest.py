from __future__ import annotations

import logging
from typing import Iterator

import pytest

from chronsync.log import LOGGER_NAME


@pytest.fixture(autouse=True)
def reset_chronsync_logging() -> Iterator[None]:
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
