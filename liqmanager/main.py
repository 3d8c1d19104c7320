"""
Command line entry point for the liquidity manager.

Offers the pure range/liquidity queries and a live read of a position
through web3.
"""
import sys
import json
import asyncio
import logging
import argparse
from typing import List, Optional

from liqmanager.liquidity import calculate_amounts, calculate_liquidity
from liqmanager.models import ManagerConfig
from liqmanager.ranges import calculate_tick_range
from liqmanager.errors import InvalidWidth, LiquidityManagerError
from liqmanager.services.onchain import Web3Pool, Web3PositionCustody

logger = logging.getLogger(__name__)


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler('liqmanager.log'),
            logging.StreamHandler(sys.stderr)
        ]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Concentrated liquidity position manager')
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    range_parser = subparsers.add_parser('range', help='Compute a tick range around a tick')
    range_parser.add_argument('--tick', type=int, required=True, help='Current pool tick')
    range_parser.add_argument('--spacing', type=int, required=True, help='Pool tick spacing')
    range_parser.add_argument('--width', type=int, required=True, help='Range width in basis points')

    liquidity_parser = subparsers.add_parser('liquidity', help='Liquidity for a pair of amounts')
    liquidity_parser.add_argument('--amount0', type=int, required=True, help='Token0 amount in wei')
    liquidity_parser.add_argument('--amount1', type=int, required=True, help='Token1 amount in wei')
    liquidity_parser.add_argument('--sqrt-price', type=int, required=True, help='Current sqrtPriceX96')
    liquidity_parser.add_argument('--tick-lower', type=int, required=True, help='Lower tick')
    liquidity_parser.add_argument('--tick-upper', type=int, required=True, help='Upper tick')

    amounts_parser = subparsers.add_parser('amounts', help='Token amounts for a liquidity')
    amounts_parser.add_argument('--liquidity', type=int, required=True, help='Position liquidity')
    amounts_parser.add_argument('--sqrt-price', type=int, required=True, help='Current sqrtPriceX96')
    amounts_parser.add_argument('--tick-lower', type=int, required=True, help='Lower tick')
    amounts_parser.add_argument('--tick-upper', type=int, required=True, help='Upper tick')

    position_parser = subparsers.add_parser('position', help='Read a live position')
    position_parser.add_argument('--chain-id', type=int, default=8453, help='Chain ID (Base = 8453)')
    position_parser.add_argument('--position-manager', type=str, required=True, help='Position manager address')
    position_parser.add_argument('--position-id', type=int, required=True, help='Position token id')
    position_parser.add_argument('--pool', type=str, help='Pool address, to value the position at the current price')

    return parser


async def read_position(chain_id: int, position_manager: str, position_id: int, pool_address: Optional[str]) -> dict:
    custody = Web3PositionCustody(chain_id, position_manager)
    position, owner = await asyncio.gather(
        custody.positions(position_id),
        custody.owner_of(position_id),
    )
    result = {"owner": owner, **position.model_dump()}

    if pool_address:
        state = await Web3Pool(chain_id, pool_address).slot0()
        amount0, amount1 = calculate_amounts(
            position.liquidity,
            state.sqrt_price_x96,
            position.tick_lower,
            position.tick_upper,
        )
        result.update({"current_tick": state.tick, "amount0": amount0, "amount1": amount1})

    return result


def run(args: argparse.Namespace) -> dict:
    if args.command == 'range':
        config = ManagerConfig()
        if args.width < config.min_width or args.width > config.max_width:
            raise InvalidWidth(args.width, config.min_width, config.max_width)
        return calculate_tick_range(args.tick, args.spacing, args.width).model_dump()

    if args.command == 'liquidity':
        liquidity = calculate_liquidity(
            args.amount0,
            args.amount1,
            args.sqrt_price,
            args.tick_lower,
            args.tick_upper,
        )
        return {"liquidity": liquidity}

    if args.command == 'amounts':
        amount0, amount1 = calculate_amounts(
            args.liquidity,
            args.sqrt_price,
            args.tick_lower,
            args.tick_upper,
        )
        return {"amount0": amount0, "amount1": amount1}

    return asyncio.run(
        read_position(args.chain_id, args.position_manager, args.position_id, args.pool)
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        result = run(args)
    except (LiquidityManagerError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1

    print(json.dumps(result, indent=2))
    return 0


if __name__ == '__main__':
    sys.exit(main())
