import pytest

from rescuer.core.execution import GWEI, LocalSigner, RescueConfig


RECOVERY_KEY = "0x" + "11" * 32
COMPROMISED_KEY = "0x" + "22" * 32
AUTH_KEY = "0x" + "33" * 32
ASSET_CONTRACT = "0x" + "ab" * 20


@pytest.fixture
def recovery_signer() -> LocalSigner:
    return LocalSigner.from_key(RECOVERY_KEY, label="recovery_private_key")


@pytest.fixture
def compromised_signer() -> LocalSigner:
    return LocalSigner.from_key(COMPROMISED_KEY, label="compromised_private_key")


@pytest.fixture
def auth_signer() -> LocalSigner:
    return LocalSigner.from_key(AUTH_KEY, label="flashbots_auth_key")


@pytest.fixture
def rescue_config() -> RescueConfig:
    """Mainnet incident with two units and the fixed sweep."""
    return RescueConfig(
        chain_id=1,
        asset_contract=ASSET_CONTRACT,
        asset_units=(5019, 5419),
        priority_fee_per_gas=20 * GWEI,
        blocks_in_future=2,
    )
