"""
Client wallet: wraps a caller-supplied eth_account key.

The key comes from the caller (or RAYMENT_CLIENT_PRIVATE_KEY via from_env).
This module never generates, stores or writes keys.
"""

import os
from typing import Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount

from rayment.config import DEFAULT_RPC_URL, ENV_PRIVATE_KEY, SEPOLIA_CHAIN_ID
from rayment.payments.onchain import OnchainPayment


class AgentWallet:
    """Address + SignMessage + a SendPayment backed by the same account."""

    def __init__(self, account: LocalAccount):
        self._account = account

    @property
    def address(self) -> str:
        """Payment address (0x...). The hub records it as the job's clientWallet."""
        return self._account.address

    @property
    def account(self) -> LocalAccount:
        return self._account

    def sign_message(self, message: str) -> str:
        """EIP-191 personal_sign of message. Returns the 0x-prefixed signature."""
        signed = self._account.sign_message(encode_defunct(text=message))
        return "0x" + bytes(signed.signature).hex()

    def payment(self, rpc_url: str = DEFAULT_RPC_URL, chain_id: int = SEPOLIA_CHAIN_ID) -> OnchainPayment:
        return OnchainPayment(self._account, rpc_url=rpc_url, chain_id=chain_id)

    @classmethod
    def from_key(cls, private_key: str) -> "AgentWallet":
        """Create wallet from raw private key (hex string, with or without 0x)."""
        private_key = private_key.strip()
        if private_key.startswith("0x"):
            private_key = private_key[2:]
        return cls(Account.from_key(private_key))

    @classmethod
    def from_env(cls, env_var: str = ENV_PRIVATE_KEY) -> Optional["AgentWallet"]:
        """Wallet from the environment, or None when the variable is unset."""
        pk = (os.getenv(env_var) or "").strip()
        if not pk:
            return None
        return cls.from_key(pk)
