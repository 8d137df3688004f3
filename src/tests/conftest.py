import pytest
from app import app, limiter
from core.base_utils import BaseUtils, NetworkConfig
from core.config import setting
from core.ledger import Ledger

CHAIN_ID = 8453
BRIDGE = "0x3154Cf16ccdb4C6d922629664174b904d80F2C35"
SENDER = "0x1111111111111111111111111111111111111111"
DEPLOYER = "0x4444444444444444444444444444444444444444"
CONTRACT = "0x5555555555555555555555555555555555555555"
NOW = 1_700_000_000


@pytest.fixture
def network():
    return NetworkConfig(
        name="base-mainnet",
        chain_id=CHAIN_ID,
        bridge_address=BRIDGE,
        rpc_url="https://mainnet.base.org",
    )


@pytest.fixture
def ledger():
    return Ledger(chain_id=CHAIN_ID, gas_price=10**9, genesis={SENDER: 10**18}, clock=lambda: NOW)


@pytest.fixture
def contract(ledger, network):
    return BaseUtils(ledger, CONTRACT, network)


@pytest.fixture
def api_settings(monkeypatch, tmp_path):
    """Point the app at a fresh ledger with a funded sender and deployer."""
    monkeypatch.setattr(setting, "JWT_SECRET_KEY", "test-secret-key-for-the-base-utils-api")
    monkeypatch.setattr(setting, "deployer_address", DEPLOYER)
    monkeypatch.setattr(setting, "genesis_balances", {SENDER: 10**18, DEPLOYER: 10**18})
    monkeypatch.setattr(setting, "deployments_dir", str(tmp_path))
    monkeypatch.setattr(setting, "persist_deployment", False)
    monkeypatch.setattr(limiter, "enabled", False)
    app.state.contract = None
    app.state.deployment = None
    app.state.used_tokens = {}
    yield setting
    app.state.contract = None
    app.state.deployment = None


@pytest.fixture(scope="module")
def anyio_backend():
    return "asyncio"
