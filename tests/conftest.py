"""Test configuration for pytest."""

import logging
import os
import pytest


@pytest.fixture(autouse=True)
def configure_test_logging():
    """Configure logging for tests to be minimal."""
    # Set environment variable to ensure minimal logging during tests
    os.environ['FEEDMUTE_LOG_LEVEL'] = 'WARNING'

    # Also configure root logger to be quiet
    logging.getLogger().setLevel(logging.WARNING)

    # The client and oracle log expected failures at warning level
    for logger_name in ['feedmute.client.similarity', 'feedmute.oracle.service']:
        logging.getLogger(logger_name).setLevel(logging.ERROR)
