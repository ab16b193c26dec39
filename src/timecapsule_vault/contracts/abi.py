"""Minimal ABI call encoding/decoding on top of eth-abi."""

from dataclasses import dataclass
from typing import Any

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import decode_hex, encode_hex, function_signature_to_4byte_selector, to_checksum_address

from timecapsule_vault.core.errors import AllEndpointsExhausted, RPCCallRejected
from timecapsule_vault.rpc.errors import JsonRpcError

ERROR_SELECTOR = bytes.fromhex("08c379a0")  # Error(string)
PANIC_SELECTOR = bytes.fromhex("4e487b71")  # Panic(uint256)


def _normalize(abi_type: str, value: Any) -> Any:
    if abi_type == "address" and isinstance(value, str):
        return to_checksum_address(value)
    if abi_type == "address[]":
        return [to_checksum_address(item) for item in value]
    if isinstance(value, tuple | list) and abi_type.endswith("[]"):
        return list(value)
    return value


@dataclass(frozen=True)
class ContractFunction:
    """
    One function of a fixed contract ABI.

    Attributes
    ----------
    name : str
        Function name
    inputs : tuple[str, ...]
        Canonical input types
    outputs : tuple[str, ...]
        Canonical output types
    payable : bool
        Whether the function accepts value
    view : bool
        Whether the function is read-only

    """

    name: str
    inputs: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()
    payable: bool = False
    view: bool = False

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> bytes:
        return function_signature_to_4byte_selector(self.signature)

    def encode_call(self, *args: Any) -> str:
        """
        Build calldata for this function.

        Returns
        -------
        str
            0x-prefixed calldata

        Raises
        ------
        ValueError
            If the number of arguments does not match the ABI

        """
        if len(args) != len(self.inputs):
            msg = f"{self.signature} expects {len(self.inputs)} arguments, got {len(args)}"
            raise ValueError(msg)
        return encode_hex(self.selector + encode(list(self.inputs), list(args)))

    def decode_result(self, data: str | bytes) -> Any:
        """
        Decode return data.

        Single-output functions return the bare value, multi-output functions a
        tuple. Addresses are checksummed.

        Raises
        ------
        RPCCallRejected
            If the data is empty or does not match the output types

        """
        if not self.outputs:
            return None

        try:
            raw = decode_hex(data) if isinstance(data, str) else data
            values = decode(list(self.outputs), raw)
        except (DecodingError, TypeError, ValueError) as e:
            reason = "empty return data" if data in ("0x", b"") else f"undecodable return data ({e})"
            raise RPCCallRejected(self.name, reason, cause=e) from e

        values = tuple(_normalize(t, v) for t, v in zip(self.outputs, values, strict=True))
        return values[0] if len(values) == 1 else values


def decode_revert_reason(data: str | bytes | None) -> str | None:
    """Decode ``Error(string)`` or ``Panic(uint256)`` revert payloads."""
    if not data:
        return None
    try:
        raw = decode_hex(data) if isinstance(data, str) else data
    except ValueError:
        return None

    try:
        if raw[:4] == ERROR_SELECTOR:
            return decode(["string"], raw[4:])[0]
        if raw[:4] == PANIC_SELECTOR:
            return f"Panic(0x{decode(['uint256'], raw[4:])[0]:02x})"
    except DecodingError:
        return None
    return None


def extract_revert_reason(error: BaseException | None) -> str | None:
    """
    Find the chain-provided revert reason behind an access-layer error.

    Follows ``AllEndpointsExhausted.last_error`` and ``RPCCallRejected.cause``
    down to the JSON-RPC error, then decodes its ``data`` payload or, failing
    that, the ``execution reverted: <reason>`` message form.

    """
    while isinstance(error, AllEndpointsExhausted | RPCCallRejected):
        error = error.last_error if isinstance(error, AllEndpointsExhausted) else error.cause

    if not isinstance(error, JsonRpcError):
        return None

    data = error.data
    if isinstance(data, dict):
        data = data.get("data") or data.get("result")
    if isinstance(data, str):
        reason = decode_revert_reason(data)
        if reason:
            return reason

    prefix = "execution reverted:"
    if error.message.lower().startswith(prefix):
        reason = error.message[len(prefix) :].strip()
        return reason or None
    return None
