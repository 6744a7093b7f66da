"""Core constants shared across StableExposureLab modules."""

from __future__ import annotations

# All-zero 20-byte address used as a placeholder for unknown contracts.
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

DEX_PROTOCOLS = ("curve", "balancer", "uniswap", "sushi")
LENDING_PROTOCOLS = ("aave", "morpho", "euler", "fluid")

# Upstream metric keys accepted by the manual-data endpoint.
MANUAL_BRIDGE_SUPPLY = "bridgeSupply"
MANUAL_COLLATERALIZATION_RATIO = "collateralizationRatio"
MANUAL_METRIC_KEYS = (MANUAL_BRIDGE_SUPPLY, MANUAL_COLLATERALIZATION_RATIO)

# Source kinds; the first element of every cache key.
MARKET_DATA = "market_data"
FDV = "fdv"
TOTAL_SUPPLY = "total_supply"
BRIDGE_SUPPLY = "bridge_supply"
FILTERED_TVL = "filtered_tvl"
LENDING_USAGE = "lending_usage"
INSURANCE_FUND = "insurance_fund"
COLLATERALIZATION_RATIO = "collateralization_ratio"
TOKEN_BALANCE = "token_balance"
LP_VALUE = "lp_value"
MANUAL_ENTRY = "manual_entry"

SOURCE_KINDS = (
    MARKET_DATA,
    FDV,
    TOTAL_SUPPLY,
    BRIDGE_SUPPLY,
    FILTERED_TVL,
    LENDING_USAGE,
    INSURANCE_FUND,
    COLLATERALIZATION_RATIO,
    TOKEN_BALANCE,
    LP_VALUE,
    MANUAL_ENTRY,
)

# Wrapped and staked variants that belong to a stablecoin family even though
# they are not tracked as stablecoins themselves. Addresses are lower-case;
# values name the family by its stablecoin symbol.
KNOWN_TOKEN_FAMILIES = {
    # sDAI / sUSDS
    "0x83f20f44975d03b1b09e64809b757c47f942beea": "USDS_DAI",
    "0xa3931d71877c0e7a3148cb7eb4463524fec27fbd": "USDS_DAI",
    # sUSDe
    "0x9d39a5de30e57443bff2a8307a4256c8797a3497": "USDe",
    # scrvUSD
    "0x0655977feb2f289a4ab78af67bab0d17aab84367": "crvUSD",
}

# Metric keys in display order, grouped by dashboard section.
METRIC_SECTIONS = {
    "Supply Metrics": (
        "total_supply",
        "bridge_supply",
        "mainnet_supply",
        "excl_lending_other_networks",
    ),
    "Mainnet Liquidity": (
        "curve_tvl",
        "balancer_tvl",
        "uniswap_tvl",
        "sushi_tvl",
        "total_mainnet_liquidity",
    ),
    "Competitor Markets": (
        "aave_collateral",
        "morpho_collateral",
        "euler_collateral",
        "fluid_collateral",
        "total_lending_markets",
    ),
    "Safety Buffer": (
        "insurance_fund",
        "collateralization_ratio",
        "staked_supply",
        "supply_on_mainnet_percent",
        "factor_of_safety",
        "theoretical_supply_limit",
    ),
}

METRIC_LABELS = {
    "total_supply": "Total Supply",
    "bridge_supply": "Supply secured by bridge",
    "mainnet_supply": "Mainnet Supply",
    "excl_lending_other_networks": "Excl. lending markets, other networks",
    "curve_tvl": "Curve",
    "balancer_tvl": "Balancer",
    "uniswap_tvl": "Uniswap",
    "sushi_tvl": "Sushiswap",
    "total_mainnet_liquidity": "Total mainnet liquidity",
    "aave_collateral": "Aave Collateral",
    "morpho_collateral": "Morpho Collateral",
    "euler_collateral": "Euler Collateral",
    "fluid_collateral": "Fluid Collateral",
    "total_lending_markets": "Total lending markets",
    "insurance_fund": "Insurance Layer/Fund",
    "collateralization_ratio": "CR",
    "staked_supply": "Staked Supply",
    "supply_on_mainnet_percent": "% Supply on Mainnet",
    "factor_of_safety": "Factor of Safety",
    "theoretical_supply_limit": "Theoretical Supply Limit",
}

__all__ = [
    "ZERO_ADDRESS",
    "DEX_PROTOCOLS",
    "LENDING_PROTOCOLS",
    "MANUAL_BRIDGE_SUPPLY",
    "MANUAL_COLLATERALIZATION_RATIO",
    "MANUAL_METRIC_KEYS",
    "SOURCE_KINDS",
    "KNOWN_TOKEN_FAMILIES",
    "METRIC_SECTIONS",
    "METRIC_LABELS",
]
