"""
pay_engine.py — Container piecework pay and lumper split

Covers:
  - Tiered container payout by piece count (palletized flat rate override)
  - Positional payout distribution across worker contribution percentages
  - Percentage reconciliation (0 % = unassigned, 100 % ± tolerance = assigned)
  - Creation-flow pricing that rejects non-positive pieces and bad splits

The pay total is written onto the container at save time and never
recomputed for historical rows, so changing PAY_TIERS only affects new saves.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Any, List, Optional, Sequence, Tuple

from app.models.records import WorkerContribution

logger = logging.getLogger("precision-pulse.pay")


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

PALLETIZED_FLAT_RATE: float = 100.0

# (inclusive upper bound on pieces, container pay)
PAY_TIERS: Tuple[Tuple[int, float], ...] = (
    (500, 100.0),
    (1500, 130.0),
    (3500, 180.0),
    (5500, 230.0),
    (7500, 280.0),
)

OVERFLOW_THRESHOLD: int = 7500
OVERFLOW_BASE_PAY: float = 280.0
OVERFLOW_RATE_PER_PIECE: float = 0.05

PERCENT_TARGET: float = 100.0
PERCENT_TOLERANCE: float = 0.02     # absorbs decimal splits such as 33.33 × 3
ZERO_TOLERANCE: float = 0.0001

PERCENT_ERROR = "Worker contribution percentages must total 100%."
PIECES_ERROR = "Pieces total must be greater than 0."


class ContainerValidationError(ValueError):
    """User-correctable problem with a container form (never a system fault)."""


@dataclass
class ContributionCheck:
    valid: bool
    total: float
    error: Optional[str] = None


@dataclass
class PricedContainer:
    pay_total: float
    workers: List[WorkerContribution] = field(default_factory=list)
    percent_total: float = 0.0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _as_number(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def _field(entry: Any, name: str, default: Any = None) -> Any:
    if isinstance(entry, dict):
        return entry.get(name, default)
    return getattr(entry, name, default)


# ---------------------------------------------------------------------------
# 1. Container pay
# ---------------------------------------------------------------------------

def compute_container_pay(pieces_total: Any, palletized: bool = False) -> float:
    """
    Return the container payout for ``pieces_total`` pieces.

    Palletized containers pay PALLETIZED_FLAT_RATE whatever the count.
    Otherwise each band in PAY_TIERS is inclusive on its upper bound, and
    anything past OVERFLOW_THRESHOLD earns OVERFLOW_RATE_PER_PIECE on top of
    OVERFLOW_BASE_PAY with no cap. Zero, negative and non-numeric counts pay 0.
    """
    if palletized:
        return PALLETIZED_FLAT_RATE

    pieces = _as_number(pieces_total)
    if pieces <= 0:
        return 0.0

    for upper_bound, pay in PAY_TIERS:
        if pieces <= upper_bound:
            return pay

    return OVERFLOW_BASE_PAY + OVERFLOW_RATE_PER_PIECE * (pieces - OVERFLOW_THRESHOLD)


# ---------------------------------------------------------------------------
# 2. Payout distribution
# ---------------------------------------------------------------------------

def distribute_container_pay(
    pay_total: float, contributions: Sequence[Any]
) -> List[Any]:
    """
    Fill ``payout = pay_total * percent_contribution / 100`` on a copy of each
    contribution. Accepts WorkerContribution objects or plain dicts and returns
    the same kind, aligned positionally. No rounding, no sum validation.
    """
    total = _as_number(pay_total)
    distributed: List[Any] = []

    for entry in contributions:
        pct = _as_number(_field(entry, "percent_contribution", 0.0))
        payout = total * pct / 100.0
        if isinstance(entry, dict):
            distributed.append({**entry, "payout": payout})
        else:
            distributed.append(replace(entry, payout=payout))

    return distributed


# ---------------------------------------------------------------------------
# 3. Percentage reconciliation
# ---------------------------------------------------------------------------

def validate_contribution_total(contributions: Sequence[Any]) -> ContributionCheck:
    """
    Sum the percentages of named rows with a positive share.

    Blank rows (no name) are unused form slots and are ignored. A total of 0
    means "not distributed yet" and is valid; otherwise the total must land
    within PERCENT_TOLERANCE of 100.
    """
    total = 0.0
    for entry in contributions:
        name = str(_field(entry, "name", "") or "").strip()
        pct = _as_number(_field(entry, "percent_contribution", 0.0))
        if name and pct > 0:
            total += pct

    if abs(total) <= ZERO_TOLERANCE:
        return ContributionCheck(valid=True, total=total)
    if abs(total - PERCENT_TARGET) <= PERCENT_TOLERANCE:
        return ContributionCheck(valid=True, total=total)
    return ContributionCheck(valid=False, total=total, error=PERCENT_ERROR)


# ---------------------------------------------------------------------------
# 4. Creation flow
# ---------------------------------------------------------------------------

def price_container(
    pieces_total: Any,
    palletized: bool,
    contributions: Sequence[WorkerContribution],
) -> PricedContainer:
    """
    Price a container form submission.

    Raises ContainerValidationError when pieces are not positive or the
    contribution split does not reconcile. Rows without a name are dropped;
    named rows keep their minutes even at 0 %.
    """
    pieces = _as_number(pieces_total)
    if pieces <= 0:
        raise ContainerValidationError(PIECES_ERROR)

    check = validate_contribution_total(contributions)
    if not check.valid:
        logger.info("Rejected contribution split totalling %.2f%%", check.total)
        raise ContainerValidationError(check.error or PERCENT_ERROR)

    pay_total = compute_container_pay(pieces, palletized)
    kept = [
        replace(w, name=w.name.strip())
        for w in contributions
        if w.name.strip() and (w.percent_contribution > 0 or w.minutes_worked > 0)
    ]
    workers = distribute_container_pay(pay_total, kept)

    return PricedContainer(
        pay_total=pay_total,
        workers=workers,
        percent_total=check.total,
    )
