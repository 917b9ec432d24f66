"""Exceptions raised by chain adapters."""


class ChainAdapterError(Exception):
    """Base exception for chain adapter failures."""

    client_message = "chain error"


class ChainUnreachableError(ChainAdapterError):
    """RPC or network failure, including timeouts."""

    client_message = "chain unreachable"


class StaleIndexError(ChainUnreachableError):
    """The indexed view of the chain lags further behind than allowed."""

    pass


class UnknownSubjectError(ChainAdapterError):
    """The subject has no share market on this chain."""

    client_message = "unknown subject"


class InvalidAddressError(ChainAdapterError):
    """An address is not valid for this chain."""

    client_message = "invalid address"


class UnsupportedChainError(ChainAdapterError):
    """No adapter is registered for the requested chain_type."""

    client_message = "unsupported chain"

    def __init__(self, chain_type: str):
        super().__init__(f"Unsupported chain type: {chain_type}")
        self.chain_type = chain_type
