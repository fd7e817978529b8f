"""Generate readable summaries of tariff calculations."""

from .models import IntervalBoundary, IntervalType, TariffCalculation
from .periods import period_label


def calculation_to_dict(
    calculation: TariffCalculation,
    period: IntervalBoundary,
    interval_type: IntervalType,
    billing_day: int = 1,
) -> dict:
    """JSON-ready summary of a calculation for its nominal period."""
    partial = (calculation.period_start, calculation.period_end) != (period.start, period.end)
    return {
        "period": {
            "label": period_label(period, interval_type, billing_day),
            "interval": interval_type.value.lower(),
            "start": period.start.isoformat(),
            "end": period.end.isoformat(),
            "covered_start": calculation.period_start.isoformat(),
            "covered_end": calculation.period_end.isoformat(),
            "partial": partial,
        },
        "total_kwh": round(calculation.total_kwh, 3),
        "cost_pence": {
            "exc_vat": round(calculation.cost_exc_vat, 2),
            "inc_vat": round(calculation.cost_inc_vat, 2),
        },
        "cost_pounds": {
            "exc_vat": round(calculation.cost_exc_vat / 100, 2),
            "inc_vat": round(calculation.cost_inc_vat / 100, 2),
        },
        "standing_charge_pence": {
            "exc_vat": round(calculation.standing_charge_exc_vat, 2),
            "inc_vat": round(calculation.standing_charge_inc_vat, 2),
        },
        "average_unit_rate_pence_per_kwh": {
            "exc_vat": round(calculation.average_unit_rate_exc_vat, 2),
            "inc_vat": round(calculation.average_unit_rate_inc_vat, 2),
        },
    }


def format_calculation_text(summary: dict) -> str:
    """Format a calculation summary as human-readable text."""
    period = summary["period"]
    lines = [
        f"Tariff Summary: {period['label']}",
        f"- Consumption: {summary['total_kwh']} kWh",
        f"- Cost: £{summary['cost_pounds']['inc_vat']:.2f} inc VAT "
        f"(£{summary['cost_pounds']['exc_vat']:.2f} exc VAT)",
        f"- Standing charges: {summary['standing_charge_pence']['inc_vat']:.2f}p inc VAT",
        f"- Average unit rate: {summary['average_unit_rate_pence_per_kwh']['inc_vat']:.2f}p/kWh inc VAT",
    ]
    if period["partial"]:
        lines.append(f"- Partial period: data covers {period['covered_start']} to {period['covered_end']}")
    return "\n".join(lines)
