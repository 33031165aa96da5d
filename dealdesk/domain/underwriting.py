from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional

from ..config import settings
from .errors import ValidationError

LOW = "Low"
MEDIUM = "Medium"
HIGH = "High"

WARN_FEW_COMPS = "Fewer than 2 comps"
WARN_STALE_COMPS = "Comps older than 12 months"

VACANCY_KEYS = ("vacancy_months", "vacancyMonths", "vacancy")


@dataclass(frozen=True)
class UnderwritingInputs:
    price: Optional[float]
    rent: float
    fees: float
    vacancy_months: float
    exit: Optional[float] = None

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]]) -> "UnderwritingInputs":
        raw = raw or {}
        return cls(
            price=_input_number(raw, "price"),
            rent=_input_number(raw, "rent") or 0.0,
            fees=_input_number(raw, "fees") or 0.0,
            vacancy_months=_input_number(raw, *VACANCY_KEYS) or 0.0,
            exit=_input_number(raw, "exit"),
        )


@dataclass(frozen=True)
class Scenario:
    net_rent: float
    yield_pct: Optional[float]


@dataclass(frozen=True)
class ScenarioSet:
    base: Scenario
    downside: Scenario
    upside: Scenario

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _input_number(raw: Mapping[str, Any], *keys: str) -> Optional[float]:
    """First present key wins; a present value that is not a number is rejected."""
    for key in keys:
        v = raw.get(key)
        if v is None or v == "":
            continue
        if isinstance(v, bool):
            raise ValidationError(f"Underwriting input '{key}' must be a number")
        try:
            return float(v)
        except (TypeError, ValueError):
            raise ValidationError(f"Underwriting input '{key}' must be a number") from None
    return None


def _scenario(net_rent: float, price: Optional[float]) -> Scenario:
    # price <= 0 is a data-quality signal, not a fault
    if price is None or price <= 0:
        return Scenario(net_rent=round(net_rent, 2), yield_pct=None)
    return Scenario(net_rent=round(net_rent, 2), yield_pct=round((net_rent / price) * 100, 2))


def compute_scenarios(inputs: UnderwritingInputs | Mapping[str, Any]) -> ScenarioSet:
    if not isinstance(inputs, UnderwritingInputs):
        inputs = UnderwritingInputs.from_mapping(inputs)

    rent = inputs.rent
    net_rent = rent - inputs.fees - (inputs.vacancy_months / 12) * rent

    return ScenarioSet(
        base=_scenario(net_rent, inputs.price),
        downside=_scenario(net_rent * settings.downside_rent_factor, inputs.price),
        upside=_scenario(net_rent * settings.upside_rent_factor, inputs.price),
    )


# -------------------------
# Evidence
# -------------------------
def _as_date(v: Any) -> Optional[date]:
    if v is None or v == "":
        return None
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    try:
        return datetime.fromisoformat(str(v).replace("Z", "+00:00")).date()
    except ValueError:
        return None


def _observed_date(comp: Any) -> Optional[date]:
    if isinstance(comp, Mapping):
        return _as_date(comp.get("observed_date", comp.get("observedDate")))
    return _as_date(getattr(comp, "observed_date", None))


def _today(now: Optional[date | datetime]) -> date:
    if now is None:
        return datetime.utcnow().date()
    return now.date() if isinstance(now, datetime) else now


def is_fresh(comp: Any, *, now: Optional[date | datetime] = None) -> bool:
    observed = _observed_date(comp)
    if observed is None:
        return False
    return abs((_today(now) - observed).days) <= settings.comp_fresh_days


def compute_confidence(
    comps: Iterable[Any],
    inputs: Optional[Any] = None,
    *,
    now: Optional[date | datetime] = None,
) -> str:
    """
    >=2 fresh comps -> High, >=1 comp of any age -> Medium, else Low.

    Order-independent and monotonic in the comp set. `inputs` is accepted so
    callers can pass the underwriting alongside its evidence; the rating is
    driven by evidence alone.
    """
    comps = list(comps or [])
    fresh = sum(1 for c in comps if is_fresh(c, now=now))
    if fresh >= settings.min_comp_count:
        return HIGH
    if comps:
        return MEDIUM
    return LOW


def evidence_warnings(comps: Iterable[Any], *, now: Optional[date | datetime] = None) -> list[str]:
    comps = list(comps or [])
    warnings: list[str] = []
    if len(comps) < settings.min_comp_count:
        warnings.append(WARN_FEW_COMPS)

    today = _today(now)
    for c in comps:
        observed = _observed_date(c)
        if observed is not None and (today - observed).days > settings.comp_stale_days:
            warnings.append(WARN_STALE_COMPS)
            break
    return warnings


# -------------------------
# Memo content
# -------------------------
def _fmt_input(label: str, v: Optional[float], unknown: str) -> str:
    return f"{label}: {v:,.2f}" if v is not None else unknown


def _comp_evidence(c: Any) -> dict[str, Any]:
    if isinstance(c, Mapping):
        return dict(c)
    return {
        "id": getattr(c, "id", None),
        "description": getattr(c, "description", None),
        "price": getattr(c, "price", None),
        "price_per_area": getattr(c, "price_per_area", None),
        "rent_per_year": getattr(c, "rent_per_year", None),
        "source": getattr(c, "source", None),
        "observed_date": _observed_date(c).isoformat() if _observed_date(c) else None,
    }


def build_memo_content(
    *,
    inputs: Mapping[str, Any],
    scenarios: Mapping[str, Any],
    comps: list[Any],
    warnings: list[str],
    confidence: str,
    trust_status: str = "unknown",
    trust_reason: Optional[str] = None,
) -> dict[str, Any]:
    """Template memo content assembled from underwriting + evidence."""
    inp = UnderwritingInputs.from_mapping(inputs)
    raw = dict(inputs or {})

    assumptions = [
        _fmt_input("Purchase price", inp.price, "Purchase price: Unknown"),
        _fmt_input("Rent", _input_number(raw, "rent"), "Rent: Unknown"),
        _fmt_input("Fees", _input_number(raw, "fees"), "Fees: Unknown"),
        _fmt_input("Vacancy (months)", _input_number(raw, *VACANCY_KEYS), "Vacancy: Unknown"),
        _fmt_input("Exit price", inp.exit, "Exit: Unknown"),
    ]

    risks = list(warnings)
    if trust_status == "flagged":
        risks.append("Trust: Flagged listing")
    elif trust_status == "unknown":
        risks.append("Trust: Unknown verification status")

    return {
        "summary": "Draft IC memo generated from underwriting.",
        "assumptions": assumptions,
        "risks": risks or ["No explicit risks captured."],
        "scenarios": dict(scenarios or {}),
        "evidence": {"comps": [_comp_evidence(c) for c in comps]},
        "recommendation": "Review and confirm assumptions; collect missing evidence before sharing.",
        "trust": {"status": trust_status, "reason": trust_reason},
        "confidence": {
            "level": confidence,
            "explanation": f"Confidence derived from {len(comps)} comps.",
        },
    }
