"""
On-chain payment: native-token transfer carrying the job memo. No API key;
uses a public RPC.

The caller's account signs and broadcasts; the hub verifies the tx on chain.
"""

import logging
from typing import Optional

from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import TimeExhausted

from rayment.config import DEFAULT_RPC_URL, SEPOLIA_CHAIN_ID
from rayment.errors import PaymentError
from rayment.pricing import round_amount, to_decimal

logger = logging.getLogger(__name__)

RECEIPT_TIMEOUT = 120
RECEIPT_POLL_LATENCY = 3


def to_wei(amount: float) -> int:
    """Quote amount (already rounded by the hub) → wei, via the same rounding as pricing."""
    return Web3.to_wei(to_decimal(round_amount(amount)), "ether")


def _connect(rpc_url: str) -> Web3:
    w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": 30}))
    if not w3.is_connected():
        raise ConnectionError(f"Cannot connect to RPC: {rpc_url}")
    return w3


class OnchainPayment:
    """
    SendPayment capability: pay(pay_to, amount, memo) -> tx hash.

    Blocks until the transfer is mined (seconds on a testnet) so the hub can
    find it when the client confirms.
    """

    def __init__(
        self,
        account: LocalAccount,
        rpc_url: str = DEFAULT_RPC_URL,
        chain_id: int = SEPOLIA_CHAIN_ID,
        receipt_timeout: float = RECEIPT_TIMEOUT,
    ):
        self.account = account
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self.receipt_timeout = receipt_timeout

    def __call__(self, pay_to: str, amount: float, memo: str = "") -> str:
        w3 = _connect(self.rpc_url)
        tx = {
            "from": self.account.address,
            "to": Web3.to_checksum_address(pay_to),
            "value": to_wei(amount),
            "data": Web3.to_hex(text=memo) if memo else "0x",
            "chainId": self.chain_id,
            "nonce": w3.eth.get_transaction_count(self.account.address),
            "gasPrice": w3.eth.gas_price,
        }
        tx["gas"] = w3.eth.estimate_gas(tx)
        signed = self.account.sign_transaction(tx)
        tx_hash = Web3.to_hex(w3.eth.send_raw_transaction(signed.raw_transaction))
        logger.info("Sent %s to %s (memo %r): %s", amount, pay_to, memo, tx_hash)

        try:
            receipt = w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout, poll_latency=RECEIPT_POLL_LATENCY
            )
        except TimeExhausted as e:
            raise PaymentError(f"Tx {tx_hash} not mined after {self.receipt_timeout}s") from e
        if receipt.get("status") != 1:
            raise PaymentError(f"Tx {tx_hash} reverted")
        return tx_hash


def get_balance(address: str, rpc_url: Optional[str] = None) -> float:
    """Native balance of address, in ether."""
    w3 = _connect(rpc_url or DEFAULT_RPC_URL)
    wei = w3.eth.get_balance(Web3.to_checksum_address(address))
    return float(Web3.from_wei(wei, "ether"))
