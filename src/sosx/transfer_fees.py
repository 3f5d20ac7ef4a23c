"""
Remittance transfer fees

Published fee schedules for the remittance companies that serve Somalia, and
quotes built on top of the live mid-market rate:

    provider rate    = mid-market rate * (1 - exchange_rate_margin)
    fee              = fixed_fee + amount * percentage_fee, clamped to [min, max]
    total cost       = amount + fee                       (sender's currency)
    recipient amount = amount * provider rate             (recipient's currency)
"""

import logging
from enum import Enum

from pydantic import BaseModel, Field

from sosx.models import Currency, normalize_currency
from sosx.service import RateService

logger = logging.getLogger(__name__)


class TransferMethod(str, Enum):
    BANK_TRANSFER = "bank-transfer"
    CASH_PICKUP = "cash-pickup"
    MOBILE_MONEY = "mobile-money"


class FeeStructure(BaseModel):
    """One provider's pricing for one transfer method."""
    fixed_fee: float = Field(ge=0)
    percentage_fee: float = Field(ge=0, description="Fraction of the amount, 0.015 = 1.5%")
    exchange_rate_margin: float = Field(ge=0, lt=1, description="Markdown on the mid-market rate")
    estimated_time: str
    minimum_fee: float = Field(default=0, ge=0, description="0 = no floor")
    maximum_fee: float = Field(default=0, ge=0, description="0 = no ceiling")

    @property
    def available(self) -> bool:
        return self.fixed_fee > 0 or self.percentage_fee > 0

    def fee_for(self, amount: float) -> float:
        fee = self.fixed_fee + amount * self.percentage_fee
        if self.minimum_fee and fee < self.minimum_fee:
            fee = self.minimum_fee
        if self.maximum_fee and fee > self.maximum_fee:
            fee = self.maximum_fee
        return fee


class TransferQuote(BaseModel):
    """Cost of sending amount with one provider and method."""
    provider: str
    method: TransferMethod
    amount: float
    from_currency: str
    to_currency: str
    fee: float = Field(description="Fee in the sender's currency")
    exchange_rate: float = Field(description="Provider rate after its margin")
    total_cost: float = Field(description="amount + fee, in the sender's currency")
    recipient_amount: float = Field(description="What arrives, in the recipient's currency")
    estimated_time: str


UNAVAILABLE = FeeStructure(
    fixed_fee=0,
    percentage_fee=0,
    exchange_rate_margin=0,
    estimated_time="Not available",
)

PROVIDER_FEES: dict[str, dict[TransferMethod, FeeStructure]] = {
    "western-union": {
        TransferMethod.BANK_TRANSFER: FeeStructure(
            fixed_fee=5.00, percentage_fee=0.015, exchange_rate_margin=0.02,
            estimated_time="1-3 business days", minimum_fee=5.00, maximum_fee=50.00,
        ),
        TransferMethod.CASH_PICKUP: FeeStructure(
            fixed_fee=8.00, percentage_fee=0.02, exchange_rate_margin=0.025,
            estimated_time="Within minutes", minimum_fee=8.00, maximum_fee=75.00,
        ),
        TransferMethod.MOBILE_MONEY: FeeStructure(
            fixed_fee=3.00, percentage_fee=0.01, exchange_rate_margin=0.015,
            estimated_time="Within minutes", minimum_fee=3.00, maximum_fee=25.00,
        ),
    },
    "remitly": {
        TransferMethod.BANK_TRANSFER: FeeStructure(
            fixed_fee=3.99, percentage_fee=0.01, exchange_rate_margin=0.015,
            estimated_time="1-2 business days", minimum_fee=3.99, maximum_fee=30.00,
        ),
        TransferMethod.CASH_PICKUP: FeeStructure(
            fixed_fee=4.99, percentage_fee=0.015, exchange_rate_margin=0.02,
            estimated_time="Within minutes", minimum_fee=4.99, maximum_fee=40.00,
        ),
        TransferMethod.MOBILE_MONEY: FeeStructure(
            fixed_fee=1.99, percentage_fee=0.005, exchange_rate_margin=0.01,
            estimated_time="Within minutes", minimum_fee=1.99, maximum_fee=15.00,
        ),
    },
    "worldremit": {
        TransferMethod.BANK_TRANSFER: FeeStructure(
            fixed_fee=2.99, percentage_fee=0.012, exchange_rate_margin=0.018,
            estimated_time="1-2 business days", minimum_fee=2.99, maximum_fee=35.00,
        ),
        TransferMethod.CASH_PICKUP: FeeStructure(
            fixed_fee=5.99, percentage_fee=0.018, exchange_rate_margin=0.022,
            estimated_time="Within minutes", minimum_fee=5.99, maximum_fee=45.00,
        ),
        TransferMethod.MOBILE_MONEY: FeeStructure(
            fixed_fee=2.49, percentage_fee=0.008, exchange_rate_margin=0.012,
            estimated_time="Within minutes", minimum_fee=2.49, maximum_fee=20.00,
        ),
    },
    "wise": {
        TransferMethod.BANK_TRANSFER: FeeStructure(
            fixed_fee=1.50, percentage_fee=0.005, exchange_rate_margin=0.005,
            estimated_time="1-2 business days", minimum_fee=1.50, maximum_fee=15.00,
        ),
        TransferMethod.CASH_PICKUP: UNAVAILABLE,
        TransferMethod.MOBILE_MONEY: FeeStructure(
            fixed_fee=2.00, percentage_fee=0.007, exchange_rate_margin=0.008,
            estimated_time="Within hours", minimum_fee=2.00, maximum_fee=12.00,
        ),
    },
}

REMITTANCE_PROVIDERS: tuple[str, ...] = tuple(PROVIDER_FEES)


class UnknownRemittanceProvider(ValueError):
    """Raised for a remittance company outside PROVIDER_FEES."""

    def __init__(self, provider: str):
        super().__init__(
            f"Unsupported remittance provider: {provider!r}. "
            f"Supported: {', '.join(REMITTANCE_PROVIDERS)}"
        )
        self.provider = provider


class TransferMethodUnavailable(ValueError):
    """Raised when a provider does not offer the requested transfer method."""

    def __init__(self, provider: str, method: TransferMethod):
        super().__init__(f"{method.value} is not available for {provider}")
        self.provider = provider
        self.method = method


class NoTransferOptionError(LookupError):
    """Raised when no provider offers any method for a transfer."""


class TransferFeeCalculator:
    """
    Quotes remittance costs against the RateService's current table.

    Each quote reads rates through the service, so quotes share its cache and
    its degraded fallbacks.
    """

    def __init__(
        self,
        rate_service: RateService,
        fees: dict[str, dict[TransferMethod, FeeStructure]] | None = None
    ):
        self.rate_service = rate_service
        self.fees = fees if fees is not None else PROVIDER_FEES

    def fee_structure(self, provider: str, method: TransferMethod | str) -> FeeStructure:
        """
        Raises:
            UnknownRemittanceProvider: for a provider outside the schedule
            TransferMethodUnavailable: if the provider does not offer method
        """
        method = TransferMethod(method)
        schedule = self.fees.get(provider.strip().lower())
        if schedule is None:
            raise UnknownRemittanceProvider(provider)

        structure = schedule.get(method)
        if structure is None or not structure.available:
            raise TransferMethodUnavailable(provider, method)
        return structure

    async def calculate_transfer_fee(
        self,
        amount: float,
        from_currency: str | Currency,
        to_currency: str | Currency,
        provider: str,
        method: TransferMethod | str
    ) -> TransferQuote:
        """
        Quote one provider and method.

        Raises:
            ValueError: for a non-positive amount or an unknown method
            UnsupportedCurrencyError: for a currency outside SUPPORTED_CURRENCIES
            UnknownRemittanceProvider: for a provider outside the schedule
            TransferMethodUnavailable: if the provider does not offer method
        """
        if amount <= 0:
            raise ValueError(f"Transfer amount must be positive, got {amount}")

        src = normalize_currency(from_currency)
        dst = normalize_currency(to_currency)
        structure = self.fee_structure(provider, method)

        mid_market = await self.rate_service.convert(1, src, dst)
        provider_rate = mid_market * (1 - structure.exchange_rate_margin)
        fee = structure.fee_for(amount)

        return TransferQuote(
            provider=provider.strip().lower(),
            method=TransferMethod(method),
            amount=amount,
            from_currency=src,
            to_currency=dst,
            fee=fee,
            exchange_rate=provider_rate,
            total_cost=amount + fee,
            recipient_amount=amount * provider_rate,
            estimated_time=structure.estimated_time,
        )

    async def compare_transfer_options(
        self,
        amount: float,
        from_currency: str | Currency,
        to_currency: str | Currency,
        method: TransferMethod | str
    ) -> list[TransferQuote]:
        """Quotes from every provider offering method, cheapest total cost first."""
        method = TransferMethod(method)
        quotes: list[TransferQuote] = []

        for provider in self.fees:
            try:
                quotes.append(await self.calculate_transfer_fee(
                    amount, from_currency, to_currency, provider, method
                ))
            except TransferMethodUnavailable as e:
                logger.warning(f"Skipping {provider}: {e}")

        return sorted(quotes, key=lambda quote: quote.total_cost)

    async def get_best_transfer_option(
        self,
        amount: float,
        from_currency: str | Currency,
        to_currency: str | Currency
    ) -> TransferQuote:
        """
        Cheapest quote across every provider and method.

        Raises:
            NoTransferOptionError: if nothing is available
        """
        best: TransferQuote | None = None

        for method in TransferMethod:
            options = await self.compare_transfer_options(amount, from_currency, to_currency, method)
            if options and (best is None or options[0].total_cost < best.total_cost):
                best = options[0]

        if best is None:
            raise NoTransferOptionError(
                f"No transfer option available for {from_currency} -> {to_currency}"
            )
        return best
