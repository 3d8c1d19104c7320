import json
from pathlib import Path
from typing import Dict, Any, Optional

from eth_account.signers.local import LocalAccount
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.contract import AsyncContract
from web3.contract.async_contract import AsyncContractFunction
from web3.types import TxReceipt

from liqmanager.utils.env import (
    MAINNET_RPC,
    BASE_RPC,
    LOCAL_RPC,
)

DEFAULT_ABI_PATH = Path(__file__).parent / "abis"
CHAIN_ID_TO_RPC = {
    1: MAINNET_RPC,
    8453: BASE_RPC,
    31337: LOCAL_RPC,
}

class AsyncWeb3Helper:
    """Class acting as web3 base class"""

    def __init__(self) -> None:
        """Initialize web3 helper"""
        self.web3: Optional[AsyncWeb3] = None

    @classmethod
    def make_web3(cls, chain_id: int) -> "AsyncWeb3Helper":
        if chain_id not in CHAIN_ID_TO_RPC:
            raise ValueError(f"Invalid chain id {chain_id}")
        instance = AsyncWeb3Helper()
        instance.web3 = AsyncWeb3(AsyncHTTPProvider(CHAIN_ID_TO_RPC[chain_id]))
        return instance

    def load_abi(self, path: Path) -> Dict[str, Any]:
        """Load an ABI file"""
        if not path.is_file():
            raise ValueError(f"Invalid ABI file path {path}")

        with open(path, "r") as f:
            abi_data = json.load(f)
            if isinstance(abi_data, dict):
                return abi_data.get("abi", abi_data)
            return abi_data

    def make_contract(self, abi_path: Path, addr: str) -> AsyncContract:
        """Make a contract object"""
        if self.web3 is None:
            raise ValueError("Web3 not initialized")
        abi = self.load_abi(abi_path)
        contract = self.web3.eth.contract(address=Web3.to_checksum_address(addr), abi=abi)
        return contract

    def make_contract_by_name(self, name: str, addr: str) -> AsyncContract:
        """Make a contract object"""
        abi_path = DEFAULT_ABI_PATH / f"{name}.json"
        contract = self.make_contract(abi_path, addr)
        return contract

    async def send_transaction(self, fn: AsyncContractFunction, account: LocalAccount) -> TxReceipt:
        """
        Sign a contract call with a local account, send it and wait for the
        receipt.

        Raises:
            ValueError: If the transaction reverted
        """
        if self.web3 is None:
            raise ValueError("Web3 not initialized")

        nonce = await self.web3.eth.get_transaction_count(account.address, "pending")
        tx = await fn.build_transaction({"from": account.address, "nonce": nonce})
        signed = account.sign_transaction(tx)
        tx_hash = await self.web3.eth.send_raw_transaction(signed.raw_transaction)
        receipt = await self.web3.eth.wait_for_transaction_receipt(tx_hash)

        if receipt["status"] != 1:
            raise ValueError(f"Transaction {tx_hash.hex()} reverted")
        return receipt
