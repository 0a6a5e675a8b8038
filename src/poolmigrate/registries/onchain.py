"""
On-chain registry implementations backed by web3.py.

The current registry is a MasterChef v2 style contract and the legacy
registry a MasterChef v1 style contract. Only the functions the migration
workflow needs are declared in the ABIs below:

    current: add(allocPoint, lpToken, rewarders, withUpdate)
             set(pid, allocPoint, rewarders, overwrite, withUpdate)
             poolInfoAmount()
             lpToken(pid)
    legacy:  poolInfo(pid) -> (lpToken, allocPoint, lastRewardBlock, accPerShare)
             set(pid, allocPoint)

Transactions are signed locally with an eth_account key, submitted as raw
transactions, and awaited with ``wait_for_transaction_receipt``. Reverts
during gas estimation or in the receipt surface as TransactionRevertedError;
a missing receipt surfaces as TransactionTimeoutError; failing queries
surface as ReadFailureError.

Example:
    >>> w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(settings.network.rpc_url))
    >>> transactor = Transactor(w3, Account.from_key(key), chain_id=137)
    >>> current = OnChainCurrentRegistry.at(w3, current_address, transactor)
    >>> await current.pool_count()
    31
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address
from web3 import AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from poolmigrate.exceptions import (
    ConfigurationError,
    ReadFailureError,
    TransactionRevertedError,
    TransactionSubmissionError,
    TransactionTimeoutError,
)
from poolmigrate.models import TransactionReceipt
from poolmigrate.observability import (
    ATTR_ALLOCATION_POINTS,
    ATTR_CHAIN_ID,
    ATTR_POOL_INDEX,
    ATTR_REGISTRY,
    ATTR_REGISTRY_ADDRESS,
    ATTR_TX_HASH,
    ATTR_TX_STATUS,
    SpanKindEnum,
    Tracer,
    create_tracer,
)
from poolmigrate.registries.interface import CURRENT_REGISTRY, LEGACY_REGISTRY

if TYPE_CHECKING:
    from web3.contract import AsyncContract
    from web3.contract.async_contract import AsyncContractFunction

    from poolmigrate.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_CONFIRMATION_TIMEOUT_SECONDS = 120.0

_READ_ERRORS: tuple[type[BaseException], ...] = (
    Web3Exception,
    ValueError,
    OSError,
    asyncio.TimeoutError,
)

_NODE_ERRORS: tuple[type[BaseException], ...] = (
    Web3Exception,
    OSError,
    asyncio.TimeoutError,
)

CURRENT_REGISTRY_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "add",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "allocPoint", "type": "uint256"},
            {"name": "_lpToken", "type": "address"},
            {"name": "_rewarders", "type": "address[]"},
            {"name": "_withUpdate", "type": "bool"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "set",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "_pid", "type": "uint256"},
            {"name": "_allocPoint", "type": "uint256"},
            {"name": "_rewarders", "type": "address[]"},
            {"name": "overwrite", "type": "bool"},
            {"name": "_withUpdate", "type": "bool"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "poolInfoAmount",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "lpToken",
        "stateMutability": "view",
        "inputs": [{"name": "", "type": "uint256"}],
        "outputs": [{"name": "", "type": "address"}],
    },
]

LEGACY_REGISTRY_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "poolInfo",
        "stateMutability": "view",
        "inputs": [{"name": "", "type": "uint256"}],
        "outputs": [
            {"name": "lpToken", "type": "address"},
            {"name": "allocPoint", "type": "uint256"},
            {"name": "lastRewardBlock", "type": "uint256"},
            {"name": "accAxoPerShare", "type": "uint256"},
        ],
    },
    {
        "type": "function",
        "name": "set",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "_pid", "type": "uint256"},
            {"name": "_allocPoint", "type": "uint256"},
        ],
        "outputs": [],
    },
]


class Transactor:
    """
    Signs, submits and confirms contract transactions from one local account.

    Args:
        w3: Connected AsyncWeb3 instance.
        account: Local signing account.
        chain_id: Chain id embedded in every transaction.
        gas_price_wei: Fixed legacy gas price; None lets the node price it.
        confirmation_timeout_seconds: How long to wait for each receipt.
        poll_latency_seconds: Receipt polling interval.
    """

    def __init__(
        self,
        w3: AsyncWeb3,
        account: LocalAccount,
        chain_id: int,
        *,
        gas_price_wei: int | None = None,
        confirmation_timeout_seconds: float = DEFAULT_CONFIRMATION_TIMEOUT_SECONDS,
        poll_latency_seconds: float = 1.0,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._w3 = w3
        self._account = account
        self._chain_id = chain_id
        self._gas_price_wei = gas_price_wei
        self._confirmation_timeout_seconds = confirmation_timeout_seconds
        self._poll_latency_seconds = poll_latency_seconds

    @property
    def sender(self) -> ChecksumAddress:
        return self._account.address

    async def transact(
        self,
        function: AsyncContractFunction,
        *,
        registry: str,
        operation: str,
    ) -> TransactionReceipt:
        """
        Submit a contract call and wait for its receipt.

        Args:
            function: Bound contract function with its arguments.
            registry: Registry name, for errors and logs.
            operation: Registry operation name, for errors and logs.

        Returns:
            The confirmed receipt; ``status`` is 0 if the transaction reverted.

        Raises:
            TransactionRevertedError: If gas estimation reverts.
            TransactionTimeoutError: If no receipt arrives in time.
            TransactionSubmissionError: If the node fails or rejects the
                transaction at any other point.
        """
        with self._tracer.span_with_kind(
            f"poolmigrate.transactor.{operation}",
            SpanKindEnum.CLIENT,
            {ATTR_REGISTRY: registry, ATTR_CHAIN_ID: self._chain_id},
        ):
            try:
                nonce = await self._w3.eth.get_transaction_count(self._account.address, "pending")
            except _NODE_ERRORS as e:
                raise TransactionSubmissionError(
                    operation, "nonce", registry=registry, reason=str(e)
                ) from e

            params: dict[str, Any] = {
                "from": self._account.address,
                "chainId": self._chain_id,
                "nonce": nonce,
            }
            if self._gas_price_wei is not None:
                params["gasPrice"] = self._gas_price_wei

            try:
                tx = await function.build_transaction(params)
            except ContractLogicError as e:
                raise TransactionRevertedError(
                    operation, registry=registry, reason=str(e)
                ) from e
            except _NODE_ERRORS as e:
                raise TransactionSubmissionError(
                    operation, "build", registry=registry, reason=str(e)
                ) from e

            signed = self._account.sign_transaction(tx)
            try:
                tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
            except _NODE_ERRORS as e:
                raise TransactionSubmissionError(
                    operation, "send", registry=registry, reason=str(e)
                ) from e
            tx_hash_hex = Web3.to_hex(tx_hash)
            logger.info(
                "Submitted %s.%s from %s: %s", registry, operation, self.sender, tx_hash_hex
            )

            try:
                raw_receipt = await self._w3.eth.wait_for_transaction_receipt(
                    tx_hash,
                    timeout=self._confirmation_timeout_seconds,
                    poll_latency=self._poll_latency_seconds,
                )
            except TimeExhausted as e:
                raise TransactionTimeoutError(
                    operation,
                    self._confirmation_timeout_seconds,
                    registry=registry,
                    tx_hash=tx_hash_hex,
                ) from e
            except _NODE_ERRORS as e:
                raise TransactionSubmissionError(
                    operation, "confirm", registry=registry, tx_hash=tx_hash_hex, reason=str(e)
                ) from e

            receipt = TransactionReceipt(
                tx_hash=tx_hash_hex,
                status=int(raw_receipt["status"]),
                block_number=raw_receipt.get("blockNumber"),
                gas_used=raw_receipt.get("gasUsed"),
            )
            logger.info(
                "Confirmed %s.%s in block %s (status=%s)",
                registry,
                operation,
                receipt.block_number,
                receipt.status,
            )
            return receipt


class _OnChainRegistry:
    """Shared plumbing for contract-backed registries."""

    name: str = "registry"

    def __init__(
        self,
        contract: AsyncContract,
        transactor: Transactor,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._contract = contract
        self._transactor = transactor

    @property
    def address(self) -> ChecksumAddress:
        return self._contract.address

    def _attributes(self, **extra: Any) -> dict[str, Any]:
        attributes: dict[str, Any] = {
            ATTR_REGISTRY: self.name,
            ATTR_REGISTRY_ADDRESS: str(self._contract.address),
        }
        attributes.update(extra)
        return attributes

    async def _call(self, operation: str, function: AsyncContractFunction) -> Any:
        with self._tracer.span_with_kind(
            f"poolmigrate.{self.name}.{operation}",
            SpanKindEnum.CLIENT,
            self._attributes(),
        ):
            try:
                return await function.call()
            except _READ_ERRORS as e:
                raise ReadFailureError(operation, registry=self.name, reason=str(e)) from e

    async def _transact(
        self,
        operation: str,
        function: AsyncContractFunction,
        **attributes: Any,
    ) -> TransactionReceipt:
        with self._tracer.span(
            f"poolmigrate.{self.name}.{operation}",
            self._attributes(**attributes),
        ) as span:
            receipt = await self._transactor.transact(
                function, registry=self.name, operation=operation
            )
            if span is not None:
                span.set_attribute(ATTR_TX_HASH, receipt.tx_hash)
                span.set_attribute(ATTR_TX_STATUS, receipt.status)
            return receipt


class OnChainCurrentRegistry(_OnChainRegistry):
    """Current registry backed by a MasterChef v2 style contract."""

    name = CURRENT_REGISTRY

    @classmethod
    def at(
        cls,
        w3: AsyncWeb3,
        address: ChecksumAddress,
        transactor: Transactor,
        **kwargs: Any,
    ) -> OnChainCurrentRegistry:
        """Bind the registry to a deployed contract address."""
        contract = w3.eth.contract(address=address, abi=CURRENT_REGISTRY_ABI)
        return cls(contract, transactor, **kwargs)

    async def create_pool(
        self,
        staked_asset: ChecksumAddress,
        auxiliary_distributors: Sequence[ChecksumAddress],
        mass_update: bool,
    ) -> TransactionReceipt:
        function = self._contract.functions.add(
            0, staked_asset, list(auxiliary_distributors), mass_update
        )
        return await self._transact("create_pool", function)

    async def pool_count(self) -> int:
        return int(await self._call("pool_count", self._contract.functions.poolInfoAmount()))

    async def staked_asset_at(self, index: int) -> ChecksumAddress:
        value = await self._call("staked_asset_at", self._contract.functions.lpToken(index))
        return to_checksum_address(value)

    async def set_pool(
        self,
        index: int,
        allocation_points: int,
        auxiliary_distributors: Sequence[ChecksumAddress],
        overwrite: bool,
        mass_update: bool,
    ) -> TransactionReceipt:
        function = self._contract.functions.set(
            index, allocation_points, list(auxiliary_distributors), overwrite, mass_update
        )
        return await self._transact(
            "set_pool",
            function,
            **{ATTR_POOL_INDEX: index, ATTR_ALLOCATION_POINTS: allocation_points},
        )


class OnChainLegacyRegistry(_OnChainRegistry):
    """Legacy registry backed by a MasterChef v1 style contract."""

    name = LEGACY_REGISTRY

    @classmethod
    def at(
        cls,
        w3: AsyncWeb3,
        address: ChecksumAddress,
        transactor: Transactor,
        **kwargs: Any,
    ) -> OnChainLegacyRegistry:
        """Bind the registry to a deployed contract address."""
        contract = w3.eth.contract(address=address, abi=LEGACY_REGISTRY_ABI)
        return cls(contract, transactor, **kwargs)

    async def allocation_at(self, slot: int) -> int:
        pool_info = await self._call("allocation_at", self._contract.functions.poolInfo(slot))
        # (lpToken, allocPoint, lastRewardBlock, accPerShare)
        return int(pool_info[1])

    async def set_allocation(self, slot: int, allocation_points: int) -> TransactionReceipt:
        function = self._contract.functions.set(slot, allocation_points)
        return await self._transact(
            "set_allocation",
            function,
            **{ATTR_POOL_INDEX: slot, ATTR_ALLOCATION_POINTS: allocation_points},
        )


def connect_registries(
    settings: Settings,
    *,
    tracer: Tracer | None = None,
    enable_tracing: bool = True,
) -> tuple[OnChainCurrentRegistry, OnChainLegacyRegistry]:
    """
    Build both on-chain registries from loaded settings.

    One AsyncWeb3 connection and one Transactor are shared by the pair so
    nonces come from a single signer.

    Raises:
        ConfigurationError: If the signer, RPC endpoint or deployment is missing.
    """
    deployment = settings.deployment
    if settings.private_key is None or not settings.network.rpc_url:
        raise ConfigurationError(
            f"Network {settings.network.name} needs PRIVATE_KEY and "
            f"{settings.network.rpc_url_variable} to submit transactions"
        )
    if deployment.legacy_registry is None or deployment.current_registry is None:
        raise ConfigurationError(
            f"No registry deployment configured for {settings.network.name}"
        )

    tracer = tracer or create_tracer(__name__, enable_tracing)
    w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(settings.network.rpc_url))
    account: LocalAccount = Account.from_key(settings.private_key)
    transactor = Transactor(
        w3,
        account,
        settings.network.chain_id,
        gas_price_wei=settings.network.gas_price_wei,
        confirmation_timeout_seconds=settings.confirmation_timeout_seconds,
        tracer=tracer,
    )
    logger.info(
        "Using %s (chain %d) as %s; legacy=%s current=%s",
        settings.network.name,
        settings.network.chain_id,
        account.address,
        deployment.legacy_registry,
        deployment.current_registry,
    )
    current = OnChainCurrentRegistry.at(
        w3, deployment.current_registry, transactor, tracer=tracer
    )
    legacy = OnChainLegacyRegistry.at(w3, deployment.legacy_registry, transactor, tracer=tracer)
    return current, legacy


__all__ = [
    "CURRENT_REGISTRY_ABI",
    "LEGACY_REGISTRY_ABI",
    "DEFAULT_CONFIRMATION_TIMEOUT_SECONDS",
    "Transactor",
    "OnChainCurrentRegistry",
    "OnChainLegacyRegistry",
    "connect_registries",
]
