"""Read the chain head over JSON-RPC."""
from __future__ import annotations

import logging
from typing import Any, Optional

from requests.exceptions import RequestException
from web3 import HTTPProvider, Web3
from web3.exceptions import Web3Exception

from .errors import ChainRpcError, ConfigError

logger = logging.getLogger(__name__)


class ChainClient:
    def __init__(self, rpc_url: Optional[str], web3: Any = None, timeout: float = 30.0) -> None:
        if web3 is None:
            if not rpc_url:
                raise ConfigError("chain.rpc_url is not configured (KATLA_ENDPOINT)")
            web3 = Web3(HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        self.rpc_url = rpc_url
        self.web3 = web3

    def latest_block_number(self) -> int:
        try:
            number = int(self.web3.eth.block_number)
        except (Web3Exception, RequestException, OSError, ValueError) as exc:
            raise ChainRpcError(f"eth_blockNumber failed against {self.rpc_url}: {exc}", stage="chain") from exc
        logger.info("chain head is block %d", number)
        return number
