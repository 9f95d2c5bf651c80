# PATH: tests/conftest.py
"""
Pytest configuration and fixtures for Trace tests.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from core.logging import clear_global_context  # noqa: E402
from core.models import AssetInfo  # noqa: E402
from oracle.registry import AssetRegistry  # noqa: E402
from tests.fakes import APT_FEED, USDC_FEED, FakeHermes, FakeNode  # noqa: E402

def pytest_configure(config):
    """Configure pytest."""
    # Add custom markers
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )

@pytest.fixture(autouse=True)
def reset_log_context():
    """Global log context set by one test (e.g. a CLI run) must not leak into the next."""
    yield
    clear_global_context()

@pytest.fixture
def registry() -> AssetRegistry:
    """APT (coin + FA) and USDC (FA only)."""
    return AssetRegistry([
        AssetInfo(
            symbol="APT",
            decimals=8,
            feed_id=APT_FEED,
            coin_types=("0x1::aptos_coin::AptosCoin",),
            fa_metadata=("0xa",),
        ),
        AssetInfo(
            symbol="USDC",
            decimals=6,
            feed_id=USDC_FEED,
            fa_metadata=("0xbae207659db88bea0cbead6da0ed00aac12edcdda169e591cd41c94180b46f3b",),
        ),
    ])


@pytest.fixture
def node() -> FakeNode:
    return FakeNode()

@pytest.fixture
def hermes() -> FakeHermes:
    fake = FakeHermes()
    fake.set_price(APT_FEED, 500000000)
    return fake
