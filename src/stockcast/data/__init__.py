from stockcast.data.price_oracle import (
    FMPPriceOracle,
    PriceOracle,
    YFinancePriceOracle,
    build_price_oracle,
)

__all__ = [
    "FMPPriceOracle",
    "PriceOracle",
    "YFinancePriceOracle",
    "build_price_oracle",
]
