import pytest

from lambollama.sale.database import DatabaseManager
from lambollama.sale.token import Token

from tests.sale.helpers import ALICE, BOB, OWNER, ether


@pytest.fixture
async def db_manager():
    """Fresh in-memory ledger for each test."""
    manager = DatabaseManager()
    await manager.initialize()
    yield manager
    await manager.dispose()


@pytest.fixture
async def token(db_manager):
    """Sale token with the whole supply held by the owner."""
    return await Token(db_manager, OWNER, "Lambollama", "LLAMA").deploy(initial_supply=ether(1_000_000))


@pytest.fixture
async def native(db_manager):
    """Native ETH ledger with funded contributors."""
    eth = await Token.native(db_manager, OWNER).deploy()
    await eth.mint(ALICE, ether(100))
    await eth.mint(BOB, ether(100))
    return eth


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """Run with no config files and no LAMBOLLAMA_* variables in reach."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(home))
    for var in (
        "LAMBOLLAMA_DATABASE_URL",
        "LAMBOLLAMA_BONUS_TIERS",
        "LAMBOLLAMA_PRESALE_VESTING_DURATION",
        "LAMBOLLAMA_AIRDROP_VESTING_PERIOD",
    ):
        monkeypatch.delenv(var, raising=False)
    return tmp_path
