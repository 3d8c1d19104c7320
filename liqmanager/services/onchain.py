"""
On-chain collaborator implementations backed by web3.

Read calls go straight to the contracts. State-changing calls are first
simulated with `.call()` so a refusal (e.g. an ERC20 returning false) is
seen before anything is sent, then signed with the local account and
submitted.
"""
import logging
from typing import Callable, Dict, Optional, Tuple

from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.contract import AsyncContract
from web3.contract.async_contract import AsyncContractFunction
from web3.types import TxReceipt

from protocol import (
    Asset,
    Pool,
    PositionCustody,
    PoolState,
    PositionInfo,
    MintParams,
    MintResult,
    IncreaseLiquidityParams,
    LiquidityChange,
    DecreaseLiquidityParams,
    CollectParams,
)
from liqmanager.utils.web3 import AsyncWeb3Helper

logger = logging.getLogger(__name__)


class _SignedContract:
    """Contract wrapper that can send transactions as a fixed local account."""

    def __init__(self, chain_id: int, name: str, address: str, account: Optional[LocalAccount]):
        self.chain_id = chain_id
        self.address = Web3.to_checksum_address(address)
        self.account = account
        self.helper = AsyncWeb3Helper.make_web3(chain_id)
        self.contract: AsyncContract = self.helper.make_contract_by_name(
            name=name,
            addr=address,
        )

    def _require_sender(self, sender: str) -> LocalAccount:
        if self.account is None:
            raise ValueError(f"No signing account configured for {self.address}")
        if self.account.address.lower() != sender.lower():
            raise ValueError(f"Cannot send as {sender}; signing account is {self.account.address}")
        return self.account

    async def _simulate(self, sender: str, fn: AsyncContractFunction):
        account = self._require_sender(sender)
        return await fn.call({"from": account.address})

    async def _send(self, sender: str, fn: AsyncContractFunction) -> TxReceipt:
        account = self._require_sender(sender)
        receipt = await self.helper.send_transaction(fn, account)
        logger.debug(f"Transaction {receipt['transactionHash'].hex()} mined in block {receipt['blockNumber']}")
        return receipt


class Web3Pool(Pool):
    """Read-only view of a Uniswap V3 style pool."""

    def __init__(self, chain_id: int, pool_address: str):
        self.chain_id = chain_id
        self.address = Web3.to_checksum_address(pool_address)
        self.pool: AsyncContract = AsyncWeb3Helper.make_web3(chain_id).make_contract_by_name(
            name="IUniswapV3Pool",
            addr=pool_address,
        )

    async def token0(self) -> str:
        return await self.pool.functions.token0().call()

    async def token1(self) -> str:
        return await self.pool.functions.token1().call()

    async def fee(self) -> int:
        return await self.pool.functions.fee().call()

    async def tick_spacing(self) -> int:
        return await self.pool.functions.tickSpacing().call()

    async def slot0(self) -> PoolState:
        slot0 = await self.pool.functions.slot0().call()
        return PoolState(sqrt_price_x96=slot0[0], tick=slot0[1])


class Web3Asset(_SignedContract, Asset):
    """ERC20 token."""

    def __init__(self, chain_id: int, token_address: str, account: Optional[LocalAccount] = None):
        super().__init__(chain_id, "ERC20", token_address, account)

    async def balance_of(self, account: str) -> int:
        return await self.contract.functions.balanceOf(Web3.to_checksum_address(account)).call()

    async def _execute(self, sender: str, fn: AsyncContractFunction) -> bool:
        if not await self._simulate(sender, fn):
            logger.warning(f"Token {self.address} refused call from {sender}")
            return False
        receipt = await self._send(sender, fn)
        return receipt["status"] == 1

    async def transfer(self, sender: str, to: str, amount: int) -> bool:
        fn = self.contract.functions.transfer(Web3.to_checksum_address(to), amount)
        return await self._execute(sender, fn)

    async def transfer_from(self, sender: str, owner: str, to: str, amount: int) -> bool:
        fn = self.contract.functions.transferFrom(
            Web3.to_checksum_address(owner),
            Web3.to_checksum_address(to),
            amount,
        )
        return await self._execute(sender, fn)

    async def approve(self, sender: str, spender: str, amount: int) -> bool:
        fn = self.contract.functions.approve(Web3.to_checksum_address(spender), amount)
        return await self._execute(sender, fn)


class Web3PositionCustody(_SignedContract, PositionCustody):
    """NonfungiblePositionManager."""

    def __init__(self, chain_id: int, position_manager_address: str, account: Optional[LocalAccount] = None):
        super().__init__(chain_id, "INonfungiblePositionManager", position_manager_address, account)

    def _event_args(self, receipt: TxReceipt, event_name: str) -> Dict:
        events = getattr(self.contract.events, event_name)().process_receipt(receipt)
        if not events:
            raise ValueError(f"No {event_name} event in transaction {receipt['transactionHash'].hex()}")
        return events[0]["args"]

    async def mint(self, sender: str, params: MintParams) -> MintResult:
        fn = self.contract.functions.mint((
            Web3.to_checksum_address(params.token0),
            Web3.to_checksum_address(params.token1),
            params.fee,
            params.tick_lower,
            params.tick_upper,
            params.amount0_desired,
            params.amount1_desired,
            params.amount0_min,
            params.amount1_min,
            Web3.to_checksum_address(params.recipient),
            params.deadline,
        ))
        receipt = await self._send(sender, fn)
        args = self._event_args(receipt, "IncreaseLiquidity")
        return MintResult(
            position_id=args["tokenId"],
            liquidity=args["liquidity"],
            amount0=args["amount0"],
            amount1=args["amount1"],
        )

    async def increase_liquidity(self, sender: str, params: IncreaseLiquidityParams) -> LiquidityChange:
        fn = self.contract.functions.increaseLiquidity((
            params.position_id,
            params.amount0_desired,
            params.amount1_desired,
            params.amount0_min,
            params.amount1_min,
            params.deadline,
        ))
        receipt = await self._send(sender, fn)
        args = self._event_args(receipt, "IncreaseLiquidity")
        return LiquidityChange(
            liquidity=args["liquidity"],
            amount0=args["amount0"],
            amount1=args["amount1"],
        )

    async def decrease_liquidity(self, sender: str, params: DecreaseLiquidityParams) -> Tuple[int, int]:
        fn = self.contract.functions.decreaseLiquidity((
            params.position_id,
            params.liquidity,
            params.amount0_min,
            params.amount1_min,
            params.deadline,
        ))
        receipt = await self._send(sender, fn)
        args = self._event_args(receipt, "DecreaseLiquidity")
        return args["amount0"], args["amount1"]

    async def collect(self, sender: str, params: CollectParams) -> Tuple[int, int]:
        fn = self.contract.functions.collect((
            params.position_id,
            Web3.to_checksum_address(params.recipient),
            params.amount0_max,
            params.amount1_max,
        ))
        receipt = await self._send(sender, fn)
        args = self._event_args(receipt, "Collect")
        return args["amount0"], args["amount1"]

    async def positions(self, position_id: int) -> PositionInfo:
        # (nonce, operator, token0, token1, fee, tickLower, tickUpper, liquidity,
        #  feeGrowthInside0LastX128, feeGrowthInside1LastX128, tokensOwed0, tokensOwed1)
        position_info = await self.contract.functions.positions(position_id).call()
        return PositionInfo(
            position_id=position_id,
            token0=position_info[2],
            token1=position_info[3],
            fee=position_info[4],
            tick_lower=position_info[5],
            tick_upper=position_info[6],
            liquidity=position_info[7],
            tokens_owed0=position_info[10],
            tokens_owed1=position_info[11],
        )

    async def owner_of(self, position_id: int) -> str:
        return await self.contract.functions.ownerOf(position_id).call()


def make_asset_resolver(chain_id: int, account: Optional[LocalAccount] = None) -> Callable[[str], Asset]:
    """Resolve token addresses to Web3Asset instances, one per address."""
    assets: Dict[str, Asset] = {}

    def resolve(token_address: str) -> Asset:
        key = token_address.lower()
        if key not in assets:
            assets[key] = Web3Asset(chain_id, token_address, account)
        return assets[key]

    return resolve
