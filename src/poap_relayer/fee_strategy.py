"""Gas price strategy for indexPoapMint submissions."""

import logging

from .chain_reader import ChainReader

logger = logging.getLogger(__name__)


class FeeStrategy:
    """Quotes gas prices for first attempts and escalates them for the retry.

    Prices are integer wei and scaled with integer percentages, so results
    round down. The gas limit is never touched here.
    """

    SUBMISSION_PREMIUM_PERCENT: int = 120
    RETRY_PREMIUM_PERCENT: int = 150

    def __init__(self, reader: ChainReader) -> None:
        self.reader = reader

    async def quote(self) -> int:
        """Current network gas price, unscaled."""
        return await self.reader.get_gas_price()

    def submission_price(self, quoted: int) -> int:
        """Gas price for a first attempt: the quote plus a 20% premium."""
        return quoted * self.SUBMISSION_PREMIUM_PERCENT // 100

    async def escalate(self, previous: int) -> int:
        """
        Gas price for the retry after an underpriced replacement.

        Re-reads the live network price and adds a 50% premium. The previous
        attempt's price does not enter the result.

        Args:
            previous: Gas price of the failed attempt (logged only)

        Returns:
            Escalated gas price in wei
        """
        live = await self.reader.get_gas_price()
        escalated = live * self.RETRY_PREMIUM_PERCENT // 100
        logger.info(f"Escalating gas price: {previous=} {live=} -> {escalated}")
        return escalated
