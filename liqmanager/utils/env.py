import os
from typing import TypeVar, Type, Optional

from dotenv import load_dotenv

load_dotenv()

T = TypeVar("T")


def get_env_variable(name: str, type_: Type[T], default: Optional[T]) -> T:
    """Type-safe wrapper for `os.getenv`.

    Args:
        name (str): Name of the environment variable.
        type_ (Type[T]): Type of the environment variable.
        default (T): Default value if the environment variable is not set.

    Returns:
        T: Value of the environment variable.

    Usage:
        ```python
        from liqmanager.utils.env import get_env_variable

        get_env_variable("DEADLINE_SECONDS", int, 300)
        ```
    """

    try:
        value = os.getenv(name, default)
        return type_.__call__(value)
    except ValueError:
        raise ValueError(
            f"Environment variable '{name}' is not of type '{type_.__name__}'."
        )
    except TypeError:
        raise TypeError(
            f"Environment variable '{name}' is not set and has no default value."
        )


# RPC endpoints
MAINNET_RPC = get_env_variable(
    name="MAINNET_RPC",
    type_=str,
    default="https://eth.llamarpc.com",
)
BASE_RPC = get_env_variable(
    name="BASE_RPC",
    type_=str,
    default="https://base.llamarpc.com",
)
LOCAL_RPC = get_env_variable(
    name="LOCAL_RPC",
    type_=str,
    default="http://127.0.0.1:8545",
)

# Liquidity manager configuration
MIN_WIDTH = get_env_variable(
    name="MIN_WIDTH",
    type_=int,
    default=10,
)
MAX_WIDTH = get_env_variable(
    name="MAX_WIDTH",
    type_=int,
    default=10000,
)
DEADLINE_SECONDS = get_env_variable(
    name="DEADLINE_SECONDS",
    type_=int,
    default=300,
)
