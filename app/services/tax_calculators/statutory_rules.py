"""
Ledgerline Payroll - Statutory Rule Sets

Jamaican payroll statutory rates, versioned by effective date.

Rates per fiscal year (April - March):
- NIS: 3% employee / 3% employer, employee portion capped at an
  annual insurable wage ceiling of J$5,000,000
- NHT: 2% employee / 3% employer
- Education Tax: 2.25% employee / 3.5% employer
- HEART/NTA: 3% employer only
- PAYE: tax-free annual threshold, 25% on annual income up to
  J$6,000,000, 30% above

Each payroll run stores the version code and a snapshot of the rates
applied, so an older run recomputes with the rates of its own period.
"""

from dataclasses import dataclass, fields
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from app.utils.error_handling import ErrorCode, ValidationException
from app.utils.money import money


@dataclass(frozen=True)
class StatutoryRuleSet:
    """Immutable set of statutory rates effective from a given date."""
    version: str
    effective_from: date

    # NIS (capped)
    nis_employee_rate: Decimal
    nis_employer_rate: Decimal
    nis_annual_ceiling: Decimal

    # NHT
    nht_employee_rate: Decimal
    nht_employer_rate: Decimal

    # Education Tax
    education_tax_employee_rate: Decimal
    education_tax_employer_rate: Decimal

    # HEART/NTA training levy
    heart_employer_rate: Decimal

    # PAYE
    paye_annual_threshold: Decimal
    paye_band1_rate: Decimal
    paye_band1_upper: Decimal
    paye_band2_rate: Decimal

    @property
    def monthly_nis_ceiling(self) -> Decimal:
        """Monthly insurable wage ceiling for employee NIS."""
        return money(self.nis_annual_ceiling / 12)

    @property
    def paye_band1_width(self) -> Decimal:
        """Width of the first PAYE band measured in taxable (post-threshold) income."""
        return self.paye_band1_upper - self.paye_annual_threshold

    def to_snapshot(self) -> Dict[str, str]:
        """Serialize to a JSON-safe dict for storage on a payroll run."""
        snapshot = {}
        for field in fields(self):
            value = getattr(self, field.name)
            snapshot[field.name] = value.isoformat() if isinstance(value, date) else str(value)
        return snapshot

    @classmethod
    def from_snapshot(cls, snapshot: Dict[str, str]) -> "StatutoryRuleSet":
        """Rebuild a rule set from a stored snapshot."""
        values = {}
        for field in fields(cls):
            raw = snapshot[field.name]
            if field.name == "version":
                values[field.name] = raw
            elif field.name == "effective_from":
                values[field.name] = date.fromisoformat(raw)
            else:
                values[field.name] = Decimal(raw)
        return cls(**values)


# ===========================================
# JAMAICA RULE SETS
# ===========================================

def _jamaica_rules(version: str, effective_from: date, paye_threshold: str) -> StatutoryRuleSet:
    return StatutoryRuleSet(
        version=version,
        effective_from=effective_from,
        nis_employee_rate=Decimal("0.03"),
        nis_employer_rate=Decimal("0.03"),
        nis_annual_ceiling=Decimal("5000000"),
        nht_employee_rate=Decimal("0.02"),
        nht_employer_rate=Decimal("0.03"),
        education_tax_employee_rate=Decimal("0.0225"),
        education_tax_employer_rate=Decimal("0.035"),
        heart_employer_rate=Decimal("0.03"),
        paye_annual_threshold=Decimal(paye_threshold),
        paye_band1_rate=Decimal("0.25"),
        paye_band1_upper=Decimal("6000000"),
        paye_band2_rate=Decimal("0.30"),
    )


JAMAICA_RULE_SETS: List[StatutoryRuleSet] = [
    _jamaica_rules("JM-2024-04", date(2024, 4, 1), "1700088"),
    _jamaica_rules("JM-2025-04", date(2025, 4, 1), "1902360"),
]


def get_rule_set(
    on_date: date,
    rule_sets: Optional[Iterable[StatutoryRuleSet]] = None,
) -> StatutoryRuleSet:
    """
    Return the latest rule set effective on or before ``on_date``.

    Raises:
        ValidationException: no rule set is effective on that date
    """
    candidates = sorted(
        rule_sets if rule_sets is not None else JAMAICA_RULE_SETS,
        key=lambda rules: rules.effective_from,
    )
    applicable = None
    for rules in candidates:
        if rules.effective_from <= on_date:
            applicable = rules
    if applicable is None:
        raise ValidationException(
            message=f"No statutory rule set is effective on {on_date.isoformat()}",
            field="pay_date",
            code=ErrorCode.NO_RULE_SET,
            details={"date": on_date.isoformat()},
        )
    return applicable


def get_rule_set_by_version(version: str) -> Optional[StatutoryRuleSet]:
    for rules in JAMAICA_RULE_SETS:
        if rules.version == version:
            return rules
    return None
