"""
Evaluator Service — fuel cost and net $/mile for a gig offer.

Thresholds apply to NET dollars per mile (after fuel):
  good ≥ $2/mi, ok ≥ $1/mi, otherwise bad.
"""
from dataclasses import dataclass
from enum import Enum

GOOD_NET_PER_MILE = 2.0
OK_NET_PER_MILE = 1.0


class Verdict(str, Enum):
    good = "good"
    ok = "ok"
    bad = "bad"


@dataclass(frozen=True)
class GigComputation:
    total_miles: float
    dollars_per_mile: float     # net, after fuel
    fuel_cost: float
    profit_after_fuel: float
    verdict: Verdict


def verdict_for(net_per_mile: float) -> Verdict:
    if net_per_mile >= GOOD_NET_PER_MILE:
        return Verdict.good
    if net_per_mile >= OK_NET_PER_MILE:
        return Verdict.ok
    return Verdict.bad


def evaluate(
    pay: float,
    gig_miles: float,
    extra_miles_to_pickup: float,
    mpg: float,
    gas_price: float,
) -> GigComputation:
    """
    Never raises: zero/negative distance and zero mpg collapse to 0 gallons
    and 0 $/mi rather than dividing by zero.
    """
    total = max(0.0, float(gig_miles + extra_miles_to_pickup))

    gallons = total / mpg if (total > 0 and mpg > 0) else 0.0
    fuel_cost = gallons * gas_price
    profit = pay - fuel_cost

    net_per_mile = profit / total if total > 0 else 0.0

    return GigComputation(
        total_miles=total,
        dollars_per_mile=net_per_mile,
        fuel_cost=fuel_cost,
        profit_after_fuel=profit,
        verdict=verdict_for(net_per_mile),
    )
