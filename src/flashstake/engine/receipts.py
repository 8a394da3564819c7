"""Receipt NFT registry: non-fungible stand-ins for stake ownership."""

import logging
from typing import Dict, Optional

from .chain import Chain, Ownable, Snapshottable
from .errors import NonexistentTokenError, NotNFTOwnerError

logger = logging.getLogger(__name__)


class ReceiptNFTRegistry(Snapshottable, Ownable):
    """ERC721-style registry. Ids start at 1; 0 means "no NFT"."""

    _snapshot_fields = ('owners', 'next_id', 'owner')

    def __init__(self, chain: Chain, name: str = "Flash NFT", symbol: str = "FLASHNFT",
                 owner: Optional[str] = None):
        self.chain = chain
        self.name = name
        self.symbol = symbol
        self.owner = owner or ""
        self.owners: Dict[int, str] = {}
        self.next_id = 1
        self.address = chain.deploy(self, prefix=symbol)

    def mint(self, caller: str, to: str) -> int:
        """
        Mint a new receipt.

        Args:
            caller: Must be the registry owner
            to: Initial holder

        Returns:
            The new NFT id
        """
        self._only_owner(caller)
        nft_id = self.next_id
        self.next_id += 1
        self.owners[nft_id] = to
        logger.debug("Minted %s #%d to %s", self.symbol, nft_id, to)
        return nft_id

    def burn(self, caller: str, nft_id: int) -> None:
        self._only_owner(caller)
        self.owner_of(nft_id)
        del self.owners[nft_id]

    def exists(self, nft_id: int) -> bool:
        return nft_id in self.owners

    def owner_of(self, nft_id: int) -> str:
        try:
            return self.owners[nft_id]
        except KeyError:
            raise NonexistentTokenError(f"{self.symbol} #{nft_id} does not exist") from None

    def balance_of(self, holder: str) -> int:
        return sum(1 for h in self.owners.values() if h == holder)

    def transfer(self, caller: str, to: str, nft_id: int) -> None:
        if self.owner_of(nft_id) != caller:
            raise NotNFTOwnerError(f"{caller} does not hold {self.symbol} #{nft_id}")
        self.owners[nft_id] = to
