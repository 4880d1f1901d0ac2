# /carinsight/services/financing_service.py

from typing import Optional, Sequence

from carinsight.config import rules, strings
from carinsight.models.domain import FinancingSimulation, Installment
from carinsight.utils.text import format_brl, format_brl_cents

# Installment estimates for the negotiation stage. Everything here is pure:
# the rates are the static averages in config.rules, not a bank quote.


def interest_rate_for(entry_percent: float) -> float:
    """Monthly rate for the share of the price paid up front. A bigger entry gets a lower rate."""
    if entry_percent >= rules.FINANCING_RATE_LOW_ENTRY_PERCENT:
        return rules.FINANCING_RATE_LOW
    if entry_percent >= rules.FINANCING_RATE_MEDIUM_ENTRY_PERCENT:
        return rules.FINANCING_RATE_MEDIUM
    if entry_percent > 0:
        return rules.FINANCING_RATE_HIGH
    return rules.FINANCING_RATE_ZERO_ENTRY


def monthly_payment(principal: float, rate: float, months: int) -> float:
    """
    Fixed installment (Price table): PMT = PV * i * (1 + i)^n / ((1 + i)^n - 1).
    """
    if months <= 0:
        raise ValueError("months must be positive")
    if principal <= 0:
        return 0.0
    if rate == 0:
        return principal / months
    growth = (1 + rate) ** months
    return principal * rate * growth / (growth - 1)


def simulate_financing(
    vehicle_price: float,
    down_payment: float = 0.0,
    trade_in_value: float = 0.0,
    vehicle_id: Optional[str] = None,
    options: Sequence[int] = rules.INSTALLMENT_OPTIONS,
) -> FinancingSimulation:
    if vehicle_price is None or vehicle_price <= 0:
        raise ValueError("vehicle price must be positive")
    down_payment = max(0.0, down_payment or 0.0)
    trade_in_value = max(0.0, trade_in_value or 0.0)

    total_entry = down_payment + trade_in_value
    finance_amount = max(0.0, vehicle_price - total_entry)
    rate = interest_rate_for(total_entry / vehicle_price * 100)

    installments = []
    for months in options:
        payment = round(monthly_payment(finance_amount, rate, months), 2)
        total_paid = round(payment * months, 2)
        installments.append(
            Installment(
                months=months,
                monthly_payment=payment,
                total_paid=total_paid,
                total_interest=round(max(0.0, total_paid - finance_amount), 2),
            )
        )

    return FinancingSimulation(
        vehicle_id=vehicle_id,
        vehicle_price=round(vehicle_price, 2),
        down_payment=round(down_payment, 2),
        trade_in_value=round(trade_in_value, 2),
        total_entry=round(total_entry, 2),
        finance_amount=round(finance_amount, 2),
        interest_rate=rate,
        installments=installments,
    )


def format_financing(
    simulation: FinancingSimulation,
    vehicle_name: str,
    displayed: Sequence[int] = rules.DISPLAYED_INSTALLMENTS,
) -> str:
    if simulation.finance_amount <= 0:
        return strings.FINANCING_PAID_IN_FULL.format(vehicle=vehicle_name)

    lines = [
        strings.FINANCING_HEADER.format(vehicle=vehicle_name),
        strings.FINANCING_SUMMARY.format(
            price=format_brl(simulation.vehicle_price),
            entry=format_brl(simulation.total_entry),
            financed=format_brl(simulation.finance_amount),
        ),
        strings.FINANCING_RATE.format(rate=f"{simulation.interest_rate * 100:.2f}".replace(".", ",")),
        "",
    ]
    for installment in simulation.installments:
        if installment.months in displayed:
            lines.append(
                strings.FINANCING_INSTALLMENT.format(
                    months=installment.months, payment=format_brl_cents(installment.monthly_payment)
                )
            )
    lines.extend(["", strings.FINANCING_DISCLAIMER])
    return "\n".join(lines)
