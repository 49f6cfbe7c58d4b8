from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
import math
import random
from typing import List, Optional, Sequence

from clv_cohorts.foundation.events import TransactionEvent, VisitEvent
from clv_cohorts.foundation.weeks import week_start


@dataclass(frozen=True)
class Customer:
    customer_id: str
    acquisition_date: date
    country: str


@dataclass(frozen=True)
class ScenarioConfig:
    """Configuration for scenario-based generators.

    Attributes
    ----------
    churn_hazard: Weekly churn probability for existing customers.
    base_orders_per_week: Average invoices per active customer per week.
    visits_per_week: Average visits per active user per week.
    purchase_probability: Probability that a visit ends in a purchase.
    mean_unit_price: Average item price used to sample line items.
    price_variability: Coefficient in (0, 1] controlling price variance.
    quantity_mean: Average quantity per invoice line.
    guest_share: Fraction of invoice lines recorded without a customer id.
    seed: Optional RNG seed for reproducibility.
    """

    churn_hazard: float = 0.05
    base_orders_per_week: float = 0.3
    visits_per_week: float = 1.5
    purchase_probability: float = 0.1
    mean_unit_price: float = 12.0
    price_variability: float = 0.4
    quantity_mean: float = 3.0
    guest_share: float = 0.0
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        for name in ("churn_hazard", "purchase_probability", "guest_share"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be between 0 and 1, got {value}")


DEFAULT_COUNTRIES = ("United Kingdom", "Germany", "France", "EIRE", "Spain")


def _week_range(start: date, end: date) -> List[date]:
    cur = week_start(start)
    out: List[date] = []
    while cur <= end:
        out.append(cur)
        cur = cur + timedelta(weeks=1)
    return out


def generate_customers(
    n: int,
    start: date,
    end: date,
    *,
    countries: Optional[Sequence[str]] = None,
    seed: Optional[int] = None,
) -> List[Customer]:
    """Generate ``n`` customers with acquisition dates uniformly between start/end."""

    if n <= 0:
        return []
    if start > end:
        raise ValueError("start date must be <= end date")
    rng = random.Random(seed)
    total_days = (end - start).days + 1
    pool = list(countries) if countries else list(DEFAULT_COUNTRIES)

    customers: List[Customer] = []
    for i in range(n):
        offset = rng.randrange(total_days)
        customers.append(
            Customer(
                customer_id=f"C-{i + 1}",
                acquisition_date=start + timedelta(days=offset),
                country=rng.choice(pool),
            )
        )
    return customers


def _poisson(rng: random.Random, lam: float) -> int:
    # Knuth's algorithm; fine for the small rates used here
    if lam <= 0:
        return 0
    L = math.exp(-lam)
    k = 0
    p = 1.0
    while p > L:
        k += 1
        p *= rng.random()
    return max(0, k - 1)


def _sample_price(rng: random.Random, mean: float, variability: float) -> Decimal:
    variability = min(max(variability, 0.01), 1.0)
    # Log-normal-ish by exponentiating a normal draw for positivity
    sigma = variability
    mu = math.log(max(mean, 0.01)) - 0.5 * sigma * sigma
    price = math.exp(rng.normalvariate(mu, sigma))
    return Decimal(str(round(max(price, 0.01), 2)))


def _sample_quantity(rng: random.Random, mean_q: float) -> int:
    q = max(1.0, rng.lognormvariate(mu=math.log(max(mean_q, 0.1)), sigma=0.5))
    return max(1, int(round(q)))


def _timestamp_in_week(
    rng: random.Random, week: date, not_before: date, end: date
) -> Optional[datetime]:
    day = week + timedelta(days=rng.randrange(7))
    if day < not_before:
        day = not_before
    if day > end:
        return None
    return datetime(day.year, day.month, day.day, 8 + rng.randrange(0, 12), rng.randrange(0, 60))


def _active_weeks(
    rng: random.Random, customer: Customer, weeks: Sequence[date], churn_hazard: float
) -> List[date]:
    """Weeks in which ``customer`` is alive, from acquisition until churn."""
    active: List[date] = []
    for week in weeks:
        if week + timedelta(days=6) < customer.acquisition_date:
            continue
        if active and rng.random() < churn_hazard:
            break
        active.append(week)
    return active


def generate_transactions(
    customers: Sequence[Customer],
    start: date,
    end: date,
    *,
    scenario: Optional[ScenarioConfig] = None,
    catalog: Optional[Sequence[str]] = None,
) -> List[TransactionEvent]:
    """Generate invoice line items for customers between ``start`` and ``end``.

    Every customer places a first invoice on their acquisition date, then
    invoices at ``base_orders_per_week`` until they churn. A
    ``guest_share`` fraction of lines loses its customer id, mimicking
    guest checkouts the RFM engine must drop.
    """

    if start > end:
        raise ValueError("start date must be <= end date")
    scenario = scenario or ScenarioConfig()
    rng = random.Random(scenario.seed)
    product_catalog = list(catalog) if catalog else [f"PRODUCT {i + 1}" for i in range(20)]
    weeks = _week_range(start, end)

    transactions: List[TransactionEvent] = []
    invoice_seq = 536365

    for cust in customers:
        if cust.acquisition_date > end:
            continue
        invoice_times: List[datetime] = [
            datetime(
                cust.acquisition_date.year,
                cust.acquisition_date.month,
                cust.acquisition_date.day,
                10,
            )
        ]
        for week in _active_weeks(rng, cust, weeks, scenario.churn_hazard):
            for _ in range(_poisson(rng, scenario.base_orders_per_week)):
                ts = _timestamp_in_week(rng, week, cust.acquisition_date, end)
                if ts is not None:
                    invoice_times.append(ts)

        for ts in invoice_times:
            invoice_id = str(invoice_seq)
            invoice_seq += 1
            # Sample 1-3 line items per invoice
            for _line in range(1 + rng.randrange(3)):
                is_guest = rng.random() < scenario.guest_share
                transactions.append(
                    TransactionEvent(
                        customer_id=None if is_guest else cust.customer_id,
                        invoice_id=invoice_id,
                        invoice_ts=ts,
                        unit_price=_sample_price(
                            rng, scenario.mean_unit_price, scenario.price_variability
                        ),
                        quantity=_sample_quantity(rng, scenario.quantity_mean),
                        country=cust.country,
                        description=rng.choice(product_catalog),
                    )
                )

    transactions.sort(
        key=lambda t: (t.invoice_ts, t.invoice_id, t.customer_id or "", t.description or "")
    )
    return transactions


def generate_visit_events(
    customers: Sequence[Customer],
    start: date,
    end: date,
    *,
    scenario: Optional[ScenarioConfig] = None,
) -> List[VisitEvent]:
    """Generate visit and purchase events for registered users.

    Each user's first event is a visit on their acquisition date, which
    fixes their registration week. Later visits arrive at
    ``visits_per_week`` and carry revenue with ``purchase_probability``.
    """

    if start > end:
        raise ValueError("start date must be <= end date")
    scenario = scenario or ScenarioConfig()
    rng = random.Random(scenario.seed)
    weeks = _week_range(start, end)

    events: List[VisitEvent] = []
    for cust in customers:
        if cust.acquisition_date > end:
            continue
        first = cust.acquisition_date
        events.append(VisitEvent(cust.customer_id, datetime(first.year, first.month, first.day, 9)))
        for week in _active_weeks(rng, cust, weeks, scenario.churn_hazard):
            for _ in range(_poisson(rng, scenario.visits_per_week)):
                ts = _timestamp_in_week(rng, week, first, end)
                if ts is None:
                    continue
                revenue = Decimal("0")
                if rng.random() < scenario.purchase_probability:
                    revenue = _sample_price(
                        rng, scenario.mean_unit_price, scenario.price_variability
                    ) * _sample_quantity(rng, scenario.quantity_mean)
                events.append(VisitEvent(cust.customer_id, ts, revenue))

    events.sort(key=lambda e: (e.event_ts, e.user_id))
    return events
