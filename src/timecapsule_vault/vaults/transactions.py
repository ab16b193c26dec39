"""Local signing and submission of vault transactions."""

import asyncio
import logging
from typing import Any

from eth_account import Account
from eth_utils import to_checksum_address

from timecapsule_vault.contracts.abi import extract_revert_reason
from timecapsule_vault.core.config import Settings, get_settings
from timecapsule_vault.core.errors import TransactionRejected, VaultAccessError
from timecapsule_vault.rpc.client import ResilientRPCClient

logger = logging.getLogger(__name__)


def _rejection(error: VaultAccessError, fallback: str) -> str:
    return extract_revert_reason(error) or fallback


class TransactionSender:
    """
    Builds, signs and submits transactions through a ResilientRPCClient.

    Nonces come from the pending block, gas limits are the estimate scaled by
    ``gas_limit_multiplier_percent``, and EIP-1559 fees are used whenever the
    network reports a base fee.

    Parameters
    ----------
    client : ResilientRPCClient
        Client bound to the target network
    settings : Settings | None
        Gas multiplier and receipt polling settings

    """

    def __init__(self, client: ResilientRPCClient, settings: Settings | None = None) -> None:
        self.client = client
        self.settings = settings or get_settings()

    async def build(
        self,
        sender: str,
        to: str,
        data: str = "0x",
        value: int = 0,
    ) -> dict[str, Any]:
        """
        Assemble an unsigned transaction dict ready for ``sign_transaction``.

        Raises
        ------
        TransactionRejected
            If gas estimation fails, typically because the call would revert

        """
        to = to_checksum_address(to)
        nonce, fees = await asyncio.gather(
            self.client.get_transaction_count(sender, "pending"),
            self.client.get_fee_data(),
        )

        try:
            estimate = await self.client.estimate_gas({"from": sender, "to": to, "data": data, "value": hex(value)})
        except VaultAccessError as e:
            raise TransactionRejected(_rejection(e, "Gas estimation failed")) from e

        tx: dict[str, Any] = {
            "chainId": self.client.get_chain_id(),
            "nonce": nonce,
            "to": to,
            "value": value,
            "data": data,
            "gas": estimate * self.settings.gas_limit_multiplier_percent // 100,
        }
        if fees.max_fee_per_gas is not None:
            tx["type"] = 2
            tx["maxFeePerGas"] = fees.max_fee_per_gas
            tx["maxPriorityFeePerGas"] = fees.max_priority_fee_per_gas
        else:
            tx["gasPrice"] = fees.gas_price or 0
        return tx

    async def send(
        self,
        private_key: str,
        to: str,
        data: str = "0x",
        value: int = 0,
        wait: bool = True,
    ) -> str:
        """
        Sign and broadcast a transaction, optionally waiting for its receipt.

        Parameters
        ----------
        private_key : str
            Signing key of the sender
        to : str
            Destination contract
        data : str
            ABI-encoded call data
        value : int
            Native value in wei
        wait : bool
            Block until the transaction is mined

        Returns
        -------
        str
            Transaction hash

        Raises
        ------
        TransactionRejected
            If submission is rejected or the mined transaction reverted

        """
        account = Account.from_key(private_key)
        tx = await self.build(account.address, to, data=data, value=value)
        signed = account.sign_transaction(tx)

        try:
            tx_hash = await self.client.send_raw_transaction(signed.raw_transaction)
        except VaultAccessError as e:
            raise TransactionRejected(_rejection(e, "Transaction submission failed")) from e

        logger.info("Submitted %s from %s on %s", tx_hash, account.address, self.client.network.id)

        if wait:
            await self.client.wait_for_transaction(
                tx_hash,
                timeout=self.settings.receipt_timeout,
                poll_interval=self.settings.receipt_poll_interval,
            )
        return tx_hash
