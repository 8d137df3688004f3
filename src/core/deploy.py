from datetime import datetime, timezone
from pathlib import Path

from loguru import logger
from pydantic import BaseModel

from core.base_utils import BaseUtils, NetworkConfig
from core.exceptions import DeploymentError, LedgerError, WrongNetwork
from core.ledger import Ledger
from core.utils import format_ether, log_receipt, to_address


class BaseConstants(BaseModel):
    chain_id: int
    bridge: str
    rpc_url: str


class DeploymentRecord(BaseModel):
    contract_name: str
    address: str
    transaction_hash: str
    block_number: int
    gas_used: int
    gas_price: int
    deployment_cost: str
    network: str
    chain_id: int
    deployer: str
    timestamp: str
    base_constants: BaseConstants


class Deployer:
    def __init__(self, ledger: Ledger, settings, sinks=()):
        self.ledger = ledger
        self.settings = settings
        self.network = NetworkConfig.from_settings(settings)
        self.sinks = sinks

    def deploy(self, deployer_address: str, persist: bool = True) -> tuple[BaseUtils, DeploymentRecord]:
        """
        Create the component on the ledger and describe the result.

        :param deployer_address: Funded account paying for the creation
        :param persist: Write the record to the deployments directory

        :return: The deployed component and its deployment record
        """
        logger.info(f"Starting {BaseUtils.CONTRACT_NAME} deployment to {self.network.name}...")
        logger.info(f"Connected to chain id {self.ledger.chain_id}")
        if self.ledger.chain_id != self.network.chain_id:
            raise WrongNetwork(f"Wrong network! Expected {self.network.chain_id}, got {self.ledger.chain_id}")

        deployer_address = to_address(deployer_address)
        deployer_balance = self.ledger.balance_of(deployer_address)
        logger.info(f"Deployer {deployer_address} balance: {format_ether(deployer_balance)} ETH")
        if deployer_balance < self.settings.min_deployer_balance:
            raise DeploymentError("Insufficient balance for deployment")

        gas_estimate = self.ledger.estimate_create_gas(BaseUtils.CODE_SIZE)
        gas_price = self.ledger.gas_price
        deployment_cost = gas_estimate * gas_price
        logger.info(f"Estimated gas: {gas_estimate}, estimated cost: {format_ether(deployment_cost)} ETH")

        try:
            receipt = self.ledger.create(
                deployer_address,
                BaseUtils.factory(self.network, sinks=self.sinks),
                gas_limit=gas_estimate * self.settings.gas_buffer_percent // 100,
                code_size=BaseUtils.CODE_SIZE,
                gas_price=gas_price,
            )
        except LedgerError as exc:
            raise DeploymentError(f"Deployment transaction failed: {exc}") from exc
        log_receipt(receipt)

        contract = self.ledger.get_code(receipt.contract_address)
        if contract is None:
            raise DeploymentError("Contract deployment failed - no code at address")

        self.smoke_test(contract)

        record = DeploymentRecord(
            contract_name=BaseUtils.CONTRACT_NAME,
            address=receipt.contract_address,
            transaction_hash=receipt.transaction_hash,
            block_number=receipt.block_number,
            gas_used=gas_estimate,
            gas_price=gas_price,
            deployment_cost=format_ether(deployment_cost),
            network=self.network.name,
            chain_id=self.ledger.chain_id,
            deployer=deployer_address,
            timestamp=datetime.now(timezone.utc).isoformat(),
            base_constants=BaseConstants(
                chain_id=self.network.chain_id,
                bridge=self.network.bridge_address,
                rpc_url=self.network.rpc_url,
            ),
        )
        if persist:
            path = self.save(record)
            logger.info(f"Deployment info saved to: {path}")
        logger.info(f"{BaseUtils.CONTRACT_NAME} deployed successfully at {record.address}")
        return contract, record

    def smoke_test(self, contract: BaseUtils) -> bool:
        try:
            info = contract.get_network_info()
            logger.info(f"Chain ID: {info.chain_id}, bridge: {info.bridge}, block: {info.block_number}")
            logger.info(f"Contract balance: {format_ether(contract.get_balance())} ETH")
        except Exception as exc:
            logger.warning(f"Contract test failed: {exc}")
            return False
        return True

    def save(self, record: DeploymentRecord) -> Path:
        deployments_dir = Path(self.settings.deployments_dir)
        deployments_dir.mkdir(parents=True, exist_ok=True)
        path = deployments_dir / f"{record.network}.json"
        path.write_text(record.model_dump_json(indent=2))
        return path


def bootstrap(settings, sinks=()) -> tuple[BaseUtils, DeploymentRecord]:
    """Build a ledger from the settings' genesis balances and deploy the component on it."""
    if not settings.deployer_address:
        raise DeploymentError("DEPLOYER_ADDRESS is not configured")
    ledger = Ledger(
        chain_id=settings.chain_id,
        gas_price=settings.gas_price,
        genesis=settings.genesis_balances,
    )
    return Deployer(ledger, settings, sinks=sinks).deploy(
        settings.deployer_address, persist=settings.persist_deployment
    )
