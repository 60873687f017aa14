"""Supply calculation.

Converts an appraised asset value into a token supply.

Base supply by method:
    fixed_price       floor(asset_value / target_token_price)
    dynamic_pricing   floor(asset_value / (target_token_price * (1 + market_adjustment)))
                      with |market_adjustment| bounded by SupplyCFG.max_market_adjustment
    target_supply     target_supply as configured; price = asset_value / final_supply

Then the configured factors are multiplied in list order (default
liquidity_buffer 1.05 → community_reserve 1.10 → market_stability 1.02) and
the product is floored. Decimal arithmetic keeps the result reproducible.
"""

from typing import Optional, Sequence
from decimal import Decimal, ROUND_FLOOR

import structlog

from ..errors import InvalidMethod, MissingParameter, NonPositivePrice, InvalidAmount
from ..interfaces import Valuation
from ..schemas.config import SupplyCFG
from ..schemas.supply import (
    FRACTIONALIZATION_METHODS,
    FractionalizationParams,
    SupplyAdjustment,
    SupplyCalculation,
    TokenSupply,
)

logger = structlog.get_logger()


def _floor(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def market_adjustment_from_history(
    valuations: Sequence[Valuation],
    window: int = 5,
) -> Decimal:
    """Relative trend over the most recent valuations.

    (last - first) / mean over the last `window` valuations (ordered by
    as_of). Fewer than two valuations means no trend: 0.

    Example:
        values 100, 104, 110 → (110 - 100) / 104.67 ≈ 0.0955
    """
    ordered = sorted(valuations, key=lambda v: v.as_of)[-window:]
    if len(ordered) < 2:
        return Decimal("0")

    mean = sum((v.value for v in ordered), Decimal("0")) / len(ordered)
    if mean <= 0:
        return Decimal("0")
    return (ordered[-1].value - ordered[0].value) / mean


class SupplyCalculator:
    """Derives and adjusts token supply.

    Example:
        calc = SupplyCalculator()
        supply = calc.calculate_supply(
            Decimal("1000000"),
            "fixed_price",
            FractionalizationParams(target_token_price=Decimal("10")),
        )
        supply.total_supply      # 117_810
        supply.reserved_supply   # 11_781
    """

    def __init__(self, config: Optional[SupplyCFG] = None):
        self.config = config or SupplyCFG()

    def bounded_adjustment(self, adjustment: Decimal) -> Decimal:
        bound = self.config.max_market_adjustment
        return max(-bound, min(bound, adjustment))

    def calculate_supply(
        self,
        asset_value: Decimal,
        method: str,
        params: FractionalizationParams,
        currency: Optional[str] = None,
    ) -> TokenSupply:
        """Compute a fresh TokenSupply.

        Args:
            asset_value: Appraised value of the asset
            method: fixed_price | dynamic_pricing | target_supply
            params: Method parameters
            currency: Valuation currency, recorded for reference

        Returns:
            TokenSupply with circulating=0, reserved=reserve_ratio of final,
            max_supply = final * max_supply_multiple

        Raises:
            InvalidMethod: Unknown method
            NonPositivePrice: Price missing, zero or negative after adjustment
            MissingParameter: target_supply method without target_supply
            InvalidAmount: Non-positive asset value or a zero final supply
        """
        if method not in FRACTIONALIZATION_METHODS:
            raise InvalidMethod(
                f"Unknown fractionalization method {method!r}; "
                f"expected one of {', '.join(FRACTIONALIZATION_METHODS)}"
            )

        asset_value = Decimal(asset_value)
        if asset_value <= 0:
            raise InvalidAmount(f"Asset value must be positive, got {asset_value}")

        market_adjustment = Decimal("0")

        if method == "target_supply":
            if params.target_supply is None or params.target_supply <= 0:
                raise MissingParameter("target_supply method requires a positive target_supply")
            calculated_supply = params.target_supply
        else:
            price = params.target_token_price
            if price is None or price <= 0:
                raise NonPositivePrice(f"Target token price must be positive, got {price}")

            if method == "dynamic_pricing":
                market_adjustment = self.bounded_adjustment(params.market_adjustment or Decimal("0"))
                price = price * (1 + market_adjustment)
                if price <= 0:
                    raise NonPositivePrice(f"Adjusted token price is not positive: {price}")

            calculated_supply = _floor(asset_value / price)

        # Fixed order: list order of the configured factors
        final = Decimal(calculated_supply)
        for _name, factor in self.config.adjustment_factors:
            final *= factor
        final_supply = _floor(final)

        if final_supply <= 0:
            raise InvalidAmount(
                f"Asset value {asset_value} yields no whole tokens with method {method}"
            )

        if method == "target_supply":
            token_price = asset_value / final_supply
        else:
            token_price = params.target_token_price * (1 + market_adjustment)

        calculation = SupplyCalculation(
            asset_value=asset_value,
            currency=currency,
            method=method,
            token_price=token_price,
            market_adjustment=market_adjustment,
            calculated_supply=calculated_supply,
            adjustment_factors=tuple(self.config.adjustment_factors),
            final_supply=final_supply,
        )

        supply = TokenSupply(
            total_supply=final_supply,
            reserved_supply=_floor(final_supply * self.config.reserve_ratio),
            max_supply=_floor(final_supply * self.config.max_supply_multiple),
            calculation=calculation,
        )

        logger.info(
            "supply_calculated",
            method=method,
            asset_value=str(asset_value),
            calculated_supply=calculated_supply,
            final_supply=final_supply,
        )
        return supply

    def calculate_from_valuation(
        self,
        valuation: Valuation,
        method: str,
        params: FractionalizationParams,
        history: Sequence[Valuation] = (),
    ) -> TokenSupply:
        """Calculate supply from an oracle valuation.

        For dynamic pricing without an explicit market_adjustment, the
        adjustment is derived from the valuation history.
        """
        if method == "dynamic_pricing" and params.market_adjustment is None:
            derived = market_adjustment_from_history(history, self.config.market_history_window)
            params = params.model_copy(update={"market_adjustment": derived})
        return self.calculate_supply(valuation.value, method, params, currency=valuation.currency)

    def adjust_supply(self, supply: TokenSupply, adjustment: SupplyAdjustment) -> TokenSupply:
        """Apply an adjustment to the supply ledger (all-or-nothing).

        Raises:
            SupplyInvariantViolation: Burn/unlock beyond balance, mint beyond max
            InvalidAmount: Zero amount
        """
        try:
            supply.apply(adjustment)
        except Exception as exc:
            logger.warning(
                "supply_adjustment_rejected",
                type=adjustment.type,
                amount=adjustment.amount,
                error=str(exc),
            )
            raise

        logger.info(
            "supply_adjusted",
            type=adjustment.type,
            amount=adjustment.amount,
            total_supply=supply.total_supply,
            circulating_supply=supply.circulating_supply,
            reserved_supply=supply.reserved_supply,
            burned_supply=supply.burned_supply,
        )
        return supply
