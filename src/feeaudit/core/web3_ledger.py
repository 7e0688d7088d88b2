"""
Read-only ledger access over JSON-RPC with web3.py.

Contracts are resolved by name through the protocol's storage registry: the
address and a base64 encoded, zlib compressed ABI are stored under keccak256
keys derived from the contract name. Per-node cached values live in the same
key-value store.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
import zlib
from dataclasses import dataclass
from typing import Any

import aiohttp
from eth_utils import to_checksum_address
from web3 import AsyncWeb3, Web3
from web3.exceptions import BadFunctionCallOutput, Web3Exception

from feeaudit.core.audit_exceptions import DecodeError, ResolutionError, TransportError

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

CONTRACT_ADDRESS_NAMESPACE = "contract.address"
CONTRACT_ABI_NAMESPACE = "contract.abi"
NODE_FEE_NUMERATOR_NAMESPACE = "node.average.fee.numerator"

NODE_MANAGER = "rocketNodeManager"
MINIPOOL_MANAGER = "rocketMinipoolManager"

STORAGE_ABI: list[dict[str, Any]] = [
    {
        "name": "getAddress",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "_key", "type": "bytes32"}],
        "outputs": [{"name": "", "type": "address"}],
    },
    {
        "name": "getString",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "_key", "type": "bytes32"}],
        "outputs": [{"name": "", "type": "string"}],
    },
    {
        "name": "getUint",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "_key", "type": "bytes32"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

MINIPOOL_ABI: list[dict[str, Any]] = [
    {
        "name": "getNodeFee",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "getStatus",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint8"}],
    },
]

HOTFIX_ABI: list[dict[str, Any]] = [
    {
        "name": "errorCount",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "errors",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "", "type": "uint256"}],
        "outputs": [
            {
                "name": "",
                "type": "tuple",
                "components": [
                    {"name": "nodeAddress", "type": "address"},
                    {"name": "amount", "type": "int256"},
                ],
            }
        ],
    },
]


def storage_key(namespace: str, subject: str) -> bytes:
    """
    Derive a storage key as keccak256(abi.encodePacked(namespace, subject)).

    ``subject`` is packed as a 20-byte address when it is one, otherwise as a
    UTF-8 string (contract names).
    """
    if Web3.is_address(subject):
        return bytes(
            Web3.solidity_keccak(["string", "address"], [namespace, to_checksum_address(subject)])
        )
    return bytes(Web3.solidity_keccak(["string", "string"], [namespace, subject]))


def decode_abi_payload(payload: str) -> list[dict[str, Any]]:
    """Decode a stored ABI: base64, then zlib inflate, then JSON."""
    try:
        compressed = base64.b64decode(payload)
        # zlib or gzip wrapper, auto-detected
        raw = zlib.decompress(compressed, zlib.MAX_WBITS | 32)
        abi = json.loads(raw.decode("utf-8"))
    except (binascii.Error, zlib.error, UnicodeDecodeError, ValueError) as exc:
        raise DecodeError(f"Undecodable contract ABI: {exc}") from exc
    if not isinstance(abi, list):
        raise DecodeError("Contract ABI must be a JSON list", details={"type": type(abi).__name__})
    return abi


async def read_call(function: Any, method: str) -> Any:
    """Await a bound contract function call, mapping failures to audit errors."""
    try:
        return await function.call()
    except BadFunctionCallOutput as exc:
        raise DecodeError(
            f"Could not decode {method} response: {exc}", details={"method": method}
        ) from exc
    except (Web3Exception, aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
        raise TransportError(f"{method} failed: {exc}", method=method) from exc


@dataclass(frozen=True)
class ResolvedContract:
    name: str
    address: str
    abi: list[dict[str, Any]]


class Web3LedgerReader:
    """
    LedgerReader backed by an Ethereum JSON-RPC endpoint.

    Contract resolutions are cached for the lifetime of the reader.
    """

    def __init__(self, rpc_url: str, storage_address: str, w3: AsyncWeb3 | None = None):
        self.rpc_url = rpc_url
        self._w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
        self.storage_address = to_checksum_address(storage_address)
        self._storage = self._w3.eth.contract(address=self.storage_address, abi=STORAGE_ABI)
        self._contracts: dict[str, Any] = {}
        self._resolve_lock = asyncio.Lock()

    # ----- Registry -----

    async def resolve_contract(self, name: str) -> ResolvedContract:
        """
        Resolve a contract name to its current address and ABI.

        Raises:
            ResolutionError: The name has no address registered
            DecodeError: The stored ABI cannot be decoded
        """
        address, abi_payload = await asyncio.gather(
            read_call(
                self._storage.functions.getAddress(storage_key(CONTRACT_ADDRESS_NAMESPACE, name)),
                "getAddress",
            ),
            read_call(
                self._storage.functions.getString(storage_key(CONTRACT_ABI_NAMESPACE, name)),
                "getString",
            ),
        )
        if not address or int(address, 16) == 0:
            raise ResolutionError(f"Contract {name} is not registered", contract_name=name)

        resolved = ResolvedContract(
            name=name,
            address=to_checksum_address(address),
            abi=decode_abi_payload(abi_payload),
        )
        logger.info(
            "Resolved contract",
            extra={"contract_name": name, "contract_address": resolved.address},
        )
        return resolved

    async def _contract(self, name: str) -> Any:
        async with self._resolve_lock:
            if name not in self._contracts:
                resolved = await self.resolve_contract(name)
                self._contracts[name] = self._w3.eth.contract(
                    address=resolved.address, abi=resolved.abi
                )
            return self._contracts[name]

    async def call(self, address: str, abi: list[dict[str, Any]], method: str, *args: Any) -> Any:
        """Read-only call of ``method`` on the contract at ``address``."""
        contract = self._w3.eth.contract(address=to_checksum_address(address), abi=abi)
        return await read_call(getattr(contract.functions, method)(*args), method)

    # ----- LedgerReader -----

    async def get_node_count(self) -> int:
        manager = await self._contract(NODE_MANAGER)
        return int(await read_call(manager.functions.getNodeCount(), "getNodeCount"))

    async def get_node_at(self, index: int) -> str:
        manager = await self._contract(NODE_MANAGER)
        return await read_call(manager.functions.getNodeAt(index), "getNodeAt")

    async def get_fee_distributor_initialised(self, node: str) -> bool:
        manager = await self._contract(NODE_MANAGER)
        return bool(
            await read_call(
                manager.functions.getFeeDistributorInitialised(node),
                "getFeeDistributorInitialised",
            )
        )

    async def get_node_fee_numerator(self, node: str) -> int:
        key = storage_key(NODE_FEE_NUMERATOR_NAMESPACE, node)
        return int(await read_call(self._storage.functions.getUint(key), "getUint"))

    async def get_node_minipool_count(self, node: str) -> int:
        manager = await self._contract(MINIPOOL_MANAGER)
        return int(
            await read_call(manager.functions.getNodeMinipoolCount(node), "getNodeMinipoolCount")
        )

    async def get_node_minipool_at(self, node: str, index: int) -> str:
        manager = await self._contract(MINIPOOL_MANAGER)
        return await read_call(
            manager.functions.getNodeMinipoolAt(node, index), "getNodeMinipoolAt"
        )

    async def get_minipool_status(self, minipool: str) -> int:
        return int(await self.call(minipool, MINIPOOL_ABI, "getStatus"))

    async def get_minipool_node_fee(self, minipool: str) -> int:
        return int(await self.call(minipool, MINIPOOL_ABI, "getNodeFee"))

    # ----- Remediation -----

    def hotfix_source(self, address: str) -> "Web3RemediationSource":
        return Web3RemediationSource(self._w3, address)

    async def close(self) -> None:
        """Release the provider's HTTP session."""
        disconnect = getattr(self._w3.provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()


class Web3RemediationSource:
    """RemediationSource reading the hotfix contract's error list."""

    def __init__(self, w3: AsyncWeb3, address: str):
        self.address = to_checksum_address(address)
        self._contract = w3.eth.contract(address=self.address, abi=HOTFIX_ABI)

    async def error_count(self) -> int:
        return int(await read_call(self._contract.functions.errorCount(), "errorCount"))

    async def error_at(self, index: int) -> tuple[str, int]:
        entry = await read_call(self._contract.functions.errors(index), "errors")
        try:
            address, amount = entry
            return to_checksum_address(address), int(amount)
        except (TypeError, ValueError) as exc:
            raise DecodeError(
                f"Malformed hotfix entry at index {index}", details={"index": index}
            ) from exc
