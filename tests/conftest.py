import os
import warnings

import pytest
from loguru import logger

warnings.filterwarnings("ignore", category=DeprecationWarning, module="aioice.*")

# Set test environment variables
os.environ.update({"DEBUG": "false"})

# Import transport fakes so they are available to all tests
from tests.fixtures.transport_fixtures import *  # noqa: E402, F403


@pytest.fixture
def log_messages():
    """Capture loguru messages emitted during the test."""
    messages: list[str] = []
    handler_id = logger.add(lambda message: messages.append(message.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)
