"""Daily price policy: percentage drop from the base price plus a flat drop per completed cycle."""
from dataclasses import dataclass
from typing import Optional

MIN_PRICE = 1


@dataclass(frozen=True)
class PriceDecision:
    base_price: int
    new_price: int
    rate_down: int
    daily_down: int
    applied_drop: int
    run_index: int  # run count the daily drop was computed from


def compute_new_price(base_price: int, rate_percent: int, daily_down_yen: int, run_count: int) -> PriceDecision:
    """
    new = max(1, base - (floor(base * rate / 100) + daily * run_count)).
    run_count is the number of cycles already completed (pre-increment).
    """
    rate_down = base_price * rate_percent // 100
    daily_down = daily_down_yen * run_count
    new_price = max(MIN_PRICE, base_price - (rate_down + daily_down))
    return PriceDecision(
        base_price=base_price,
        new_price=new_price,
        rate_down=rate_down,
        daily_down=daily_down,
        applied_drop=max(0, base_price - new_price),
        run_index=run_count,
    )


def last_down_label(rate_percent: Optional[int], daily_down_yen: Optional[int], run_index: Optional[int]) -> str:
    """Display label for the last discount, e.g. '10%' or '10%+200yen'."""
    if rate_percent is None or daily_down_yen is None or run_index is None:
        return ""
    if run_index <= 0:
        return f"{rate_percent}%"
    return f"{rate_percent}%+{daily_down_yen * run_index}yen"
