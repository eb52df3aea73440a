import logging

import pytest


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset the velocity logger before each test."""
    logger = logging.getLogger("velocity")

    original_handlers = logger.handlers[:]
    original_propagate = logger.propagate
    original_level = logger.level

    # caplog listens on the root logger
    logger.handlers.clear()
    logger.propagate = True

    yield

    logger.handlers = original_handlers
    logger.propagate = original_propagate
    logger.setLevel(original_level)
