"""AsyncWeb3 construction from the ``rpc_urls`` config section.

``rpc_urls`` maps a chain id (string or int key) to a URL or a list of URLs.
The first URL is the primary endpoint; the rest are only used when a caller
asks for them by index.
"""

from contextlib import asynccontextmanager

from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.middleware import ExtraDataToPOAMiddleware

from cabac_dex.core.config import get_rpc_urls
from cabac_dex.core.constants.chains import POA_MIDDLEWARE_CHAIN_IDS


def rpc_urls_for_chain(chain_id: int) -> list[str]:
    mapping = get_rpc_urls()
    urls = mapping.get(str(chain_id), mapping.get(chain_id))
    if isinstance(urls, str):
        urls = [urls]
    urls = [u for u in (urls or []) if isinstance(u, str) and u.strip()]
    if not urls:
        raise ValueError(f"No RPCs configured for chain ID {chain_id}")
    return urls


def build_web3(rpc_url: str, chain_id: int) -> AsyncWeb3:
    provider = AsyncHTTPProvider(
        rpc_url, request_kwargs={"headers": AsyncHTTPProvider.get_request_headers()}
    )
    web3 = AsyncWeb3(provider)
    # Celo-style chains carry oversized extraData in block headers
    if chain_id in POA_MIDDLEWARE_CHAIN_IDS:
        web3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
    return web3


@asynccontextmanager
async def web3_from_chain_id(chain_id: int, *, rpc_index: int = 0):
    urls = rpc_urls_for_chain(chain_id)
    if not 0 <= rpc_index < len(urls):
        raise IndexError(
            f"RPC index {rpc_index} out of range for chain ID {chain_id} "
            f"({len(urls)} configured)"
        )
    web3 = build_web3(urls[rpc_index], chain_id)
    try:
        yield web3
    finally:
        await web3.provider.disconnect()
