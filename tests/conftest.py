"""
Pytest configuration for unit tests.
"""
import pytest
import sys
import os

# Ensure project root is in python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from config.configuration import ConfigLoader
from services.auth.cloud_info import CloudInfo

@pytest.fixture(autouse=True)
def reset_config_loader():
    ConfigLoader.reset()
    yield
    ConfigLoader.reset()


@pytest.fixture
def cloud_info():
    """Cloud defaults independent of any config file on disk."""
    return CloudInfo(client_app_id="default-app-id", redirect_uri="http://localhost:8400")
