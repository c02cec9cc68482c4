"""
Asset descriptions and the asset-indexing collaborator used to sweep an account
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum
from typing import List, Optional

logger = logging.getLogger(__name__)


class AssetType(IntEnum):
    ETH = 1
    ERC20 = 2
    ERC721 = 3
    ERC1155 = 4


@dataclass
class AssetTransfer:
    """One asset to move. A missing amount means the full balance at build time."""
    asset_type: AssetType
    address: Optional[str] = None
    token_id: Optional[int] = None
    amount: Optional[int] = None


class AssetIndexer(ABC):
    """Read-only balance lookups from a third-party indexing service"""

    @abstractmethod
    async def get_native_balance(self, chain_id: int, address: str) -> Optional[AssetTransfer]:
        pass

    @abstractmethod
    async def get_token_balances(self, chain_id: int, address: str) -> List[AssetTransfer]:
        pass

    @abstractmethod
    async def get_nft_balances(self, chain_id: int, address: str) -> List[AssetTransfer]:
        pass


async def list_assets(indexer: AssetIndexer, chain_id: int, address: str) -> List[AssetTransfer]:
    """Native balance first, then fungible tokens, then NFTs"""
    assets = []

    native_asset = await indexer.get_native_balance(chain_id, address)
    if native_asset is not None:
        assets.append(native_asset)
    assets.extend(await indexer.get_token_balances(chain_id, address) or [])
    assets.extend(await indexer.get_nft_balances(chain_id, address) or [])

    logger.info(f"Found {len(assets)} assets for {address} on chain {chain_id}")
    return assets
