"""Deterministic eligibility rules engine.

Derives a Veterans' Preference Result from a full answer path. The outcome
depends on combinations of earlier answers (discharge, service period,
disability rating, family relationship), not only on the last one.

evaluate() is a pure function of the answer history: no clock, no I/O and
no module-level state.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from vetpref.models import Link, Result
from vetpref.state import answers_from_path


# Question ids the rules read
START = "START"
VETERAN_STATUS = "VETERAN_STATUS"
DISCHARGE_TYPE = "DISCHARGE_TYPE"
SERVICE_DATES = "SERVICE_DATES"
VERIFY_WARTIME_PERIOD = "VERIFY_WARTIME_PERIOD"
VERIFY_CAMPAIGN_MEDAL = "VERIFY_CAMPAIGN_MEDAL"
PEACETIME_CHECK = "DISABILITY_STATUS_PEACETIME_CHECK"
DISABILITY_STATUS = "DISABILITY_STATUS"
RETIREMENT_TYPE = "RETIREMENT_TYPE"
RETIRED_OFFICER_DISABILITY = "RETIRED_OFFICER_DISABILITY"
FAMILY_RELATIONSHIP = "FAMILY_RELATIONSHIP"
SPOUSE_ELIGIBILITY = "SPOUSE_ELIGIBILITY"
MOTHER_ELIGIBILITY = "MOTHER_ELIGIBILITY"
MOTHER_MARITAL_STATUS = "MOTHER_MARITAL_STATUS"

_DISQUALIFYING_DISCHARGES = ("Other Than Honorable", "Bad Conduct", "Dishonorable")

_GUIDE = "https://www.opm.gov/policy-data-oversight/veterans-services/vet-guide-for-hr-professionals/"


# ---------------------------------------------------------------------------
# Answer matchers
# ---------------------------------------------------------------------------

def is_disqualifying_discharge(answer: str | None) -> bool:
    return bool(answer) and any(m in answer for m in _DISQUALIFYING_DISCHARGES)


def is_honorable_discharge(answer: str | None) -> bool:
    if not answer or is_disqualifying_discharge(answer):
        return False
    return answer.startswith("Honorable") or answer.startswith("General")


def is_senior_retired_officer(answers: dict) -> bool:
    """Retired at Major/Lt. Commander (O-4) or above."""
    status = answers.get(VETERAN_STATUS) or ""
    rank = answers.get(RETIREMENT_TYPE) or ""
    return status.startswith("Retired") and "O-4" in rank and "or above" in rank


def disability_category(answer: str | None) -> str | None:
    """Map a DISABILITY_STATUS answer to CPS, CP, XP, or None."""
    if not answer or answer.startswith("No"):
        return None
    if "30% or more" in answer:
        return "CPS"
    if "10% or 20%" in answer:
        return "CP"
    if "0%" in answer or "Purple Heart" in answer:
        return "XP"
    return None


def _is_no(answer: str | None) -> bool:
    return (answer or "").strip().lower() == "no"


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Qualification:
    qualifies: bool
    reason: str


@dataclass(frozen=True)
class Analysis:
    eligibility_type: str
    confidence: str
    service: Qualification
    disability: Qualification
    derivative: Qualification
    disability_category: str | None = None
    factors: dict = field(default_factory=dict)


def _service_qualification(answers: dict) -> Qualification:
    if not is_honorable_discharge(answers.get(DISCHARGE_TYPE)):
        return Qualification(False, "No honorable or general discharge recorded.")

    service = answers.get(SERVICE_DATES) or ""
    if "Wartime service" in service:
        if _is_no(answers.get(VERIFY_WARTIME_PERIOD)):
            return Qualification(False, "Wartime service did not include a qualifying war or campaign period.")
        return Qualification(True, "Qualifying wartime service with honorable discharge.")
    if "Campaign or expedition" in service:
        if _is_no(answers.get(VERIFY_CAMPAIGN_MEDAL)):
            return Qualification(False, "No campaign badge or expeditionary medal was received.")
        return Qualification(True, "Qualifying campaign or expedition service with honorable discharge.")
    if "Peacetime" in service:
        if "campaign/expeditionary medal" in (answers.get(PEACETIME_CHECK) or ""):
            return Qualification(True, "Peacetime service with campaign medal.")
        return Qualification(False, "Peacetime service without a campaign or expeditionary medal.")
    return Qualification(False, "No qualifying service found.")


def _disability_qualification(answers: dict) -> tuple[Qualification, str | None]:
    category = disability_category(answers.get(DISABILITY_STATUS))
    if category == "CPS":
        return Qualification(True, "VA-rated service-connected disability of 30% or more."), category
    if category == "CP":
        return Qualification(True, "VA-rated service-connected disability of 10% or 20%."), category
    if category == "XP":
        return Qualification(True, "VA-rated service-connected disability of 0% or Purple Heart."), category
    return Qualification(False, "No qualifying disability found."), None


def _derivative_qualification(answers: dict) -> Qualification:
    relationship = answers.get(FAMILY_RELATIONSHIP) or ""
    if "Spouse" in relationship:
        situation = answers.get(SPOUSE_ELIGIBILITY) or ""
        if "living" in situation and "permanently and totally" in situation:
            return Qualification(True, "Spouse of a veteran with a permanent and total service-connected disability.")
        if "deceased, and" in situation:
            return Qualification(True, "Unremarried widow(er) of a qualifying deceased veteran.")
        return Qualification(False, "The veteran's situation does not support spousal derivative preference.")
    if relationship.startswith("Mother"):
        veteran = answers.get(MOTHER_ELIGIBILITY) or ""
        marital = answers.get(MOTHER_MARITAL_STATUS) or ""
        veteran_ok = (
            "died under honorable conditions" in veteran
            or "permanent and total service-connected disability" in veteran
        )
        marital_ok = "I am widowed" in marital or "husband is permanently and totally disabled" in marital
        if veteran_ok and marital_ok:
            return Qualification(True, "Mother of a qualifying deceased or disabled veteran with qualifying marital status.")
        return Qualification(False, "The veteran's status or your marital status does not support derivative preference.")
    return Qualification(False, "Not applicable or no derivative eligibility.")


def analyze(answers: dict) -> Analysis:
    """Apply the eligibility rules to an answers map."""
    factors = dict(answers)
    not_applicable = Qualification(False, "Not applicable.")

    # Discharge type gates everything else
    if is_disqualifying_discharge(answers.get(DISCHARGE_TYPE)):
        reason = Qualification(False, "Discharge type does not qualify.")
        return Analysis("not-eligible", "high", reason, not_applicable, not_applicable, factors=factors)

    if "HR professional" in (answers.get(START) or ""):
        return Analysis("info", "high", not_applicable, not_applicable, not_applicable, factors=factors)

    confidence = "high"
    if (answers.get(DISCHARGE_TYPE) or "").startswith("Uncharacterized"):
        confidence = "medium"

    service = _service_qualification(answers)
    disability, category = _disability_qualification(answers)
    derivative = _derivative_qualification(answers)

    if answers.get(FAMILY_RELATIONSHIP):
        eligibility_type = "eligible-10-point-derivative" if derivative.qualifies else "not-eligible"
        return Analysis(eligibility_type, confidence, not_applicable, not_applicable, derivative, factors=factors)

    if is_senior_retired_officer(answers) and (
        _is_no(answers.get(RETIRED_OFFICER_DISABILITY)) or not disability.qualifies
    ):
        service = Qualification(False, "Retired officers at O-4 or above qualify only as disabled veterans.")
        return Analysis("not-eligible", confidence, service, disability, derivative, factors=factors)

    # A disabled veteran is never downgraded to 5-point
    if category == "CPS":
        eligibility_type = "eligible-10-point-cps"
    elif category in ("CP", "XP"):
        eligibility_type = "eligible-10-point"
    elif service.qualifies:
        eligibility_type = "eligible-5-point"
    else:
        eligibility_type = "not-eligible"

    return Analysis(
        eligibility_type, confidence, service, disability, derivative,
        disability_category=category, factors=factors,
    )


# ---------------------------------------------------------------------------
# Result generation
# ---------------------------------------------------------------------------

_TITLES = {
    "eligible-5-point": "Eligible for 5-Point Preference (TP)",
    "eligible-10-point": "Eligible for 10-Point Preference (CP or XP)",
    "eligible-10-point-cps": "Eligible for 10-Point Preference (CPS)",
    "eligible-10-point-derivative": "Potentially Eligible for 10-Point Derivative Preference",
    "not-eligible": "Not Eligible for Veterans' Preference",
    "info": "Information Only",
}

_DESCRIPTIONS = {
    "eligible-5-point": "Based on your qualifying military service and honorable discharge, you appear to be eligible for 5-point preference (TP).",
    "eligible-10-point-cps": "Based on your 30% or more service-connected disability, you appear to be eligible for 10-point preference (CPS).",
    "eligible-10-point-derivative": "Based on your relationship to a qualifying veteran, you may be eligible for 10-point derivative preference.",
    "not-eligible": "Based on your answers, you do not appear to be eligible for Veterans' Preference at this time.",
    "info": "This path provides general information or resources.",
}

_TEN_POINT_DESCRIPTIONS = {
    "CP": "Based on your 10% or 20% service-connected disability, you appear to be eligible for 10-point compensable disability preference (CP).",
    "XP": "Based on your 0% service-connected disability or Purple Heart, you appear to be eligible for 10-point preference (XP).",
}


def _title(analysis: Analysis) -> str:
    if analysis.eligibility_type == "eligible-10-point" and analysis.disability_category:
        return f"Eligible for 10-Point Preference ({analysis.disability_category})"
    return _TITLES.get(analysis.eligibility_type, "Veterans' Preference Eligibility")


def _description(analysis: Analysis) -> str:
    if analysis.eligibility_type == "eligible-10-point":
        return _TEN_POINT_DESCRIPTIONS.get(
            analysis.disability_category,
            "Based on your service-connected disability, you appear to be eligible for 10-point preference (CP or XP).",
        )
    return _DESCRIPTIONS.get(analysis.eligibility_type, "Review the reasoning below for details.")


def _reasoning(analysis: Analysis) -> list[str]:
    reasons: list[str] = []
    factors = analysis.factors
    parts = (
        ("Service", analysis.service),
        ("Disability", analysis.disability),
        ("Derivative status", analysis.derivative),
    )

    if analysis.eligibility_type.startswith("eligible-"):
        for label, q in parts:
            if q.qualifies:
                reasons.append(f"{label} qualifies: {q.reason}")
    elif analysis.eligibility_type == "not-eligible":
        for label, q in parts:
            if not q.qualifies and q.reason != "Not applicable.":
                reasons.append(f"{label} does not qualify: {q.reason}")
        if is_disqualifying_discharge(factors.get(DISCHARGE_TYPE)):
            reasons.append("Discharge type is not honorable or general (under honorable conditions).")
        if is_senior_retired_officer(factors) and _is_no(factors.get(RETIRED_OFFICER_DISABILITY)):
            reasons.append("Retired officer (O-4 or above) without a service-connected disability.")
    elif analysis.eligibility_type == "info":
        reasons.append("This path provides general information and resources, not a preference eligibility determination.")

    return reasons or ["No specific reasoning available for this outcome."]


def _required_documents(analysis: Analysis) -> list[str]:
    docs: list[str] = []

    def add(doc: str) -> None:
        if doc not in docs:
            docs.append(doc)

    eligibility_type = analysis.eligibility_type
    if not eligibility_type.startswith("eligible-"):
        return docs

    add("DD-214 or equivalent discharge documentation")
    if "10-point" in eligibility_type:
        add("SF-15 Application for 10-Point Veteran Preference")

    category = analysis.disability_category
    if category is not None:
        add("VA letter (dated within the last 12 months) confirming your service-connected disability rating.")
    if category == "CPS":
        add("VA letter confirming 30% or more service-connected disability rating.")
    elif category == "CP":
        add("VA letter confirming 10% or 20% service-connected disability rating.")
    elif category == "XP":
        add("VA letter confirming 0% service-connected disability rating, or DD-214 showing Purple Heart award.")

    if analysis.derivative.qualifies:
        factors = analysis.factors
        if "Spouse" in (factors.get(FAMILY_RELATIONSHIP) or ""):
            add("Marriage certificate to the veteran.")
            situation = factors.get(SPOUSE_ELIGIBILITY) or ""
            if "living" in situation:
                add("VA letter confirming veteran's 100% permanent and total service-connected disability OR unemployability (IU) status.")
                add("Statement certifying the veteran is unemployed and unable to work in their usual occupation due to the disability.")
            else:
                add("Veteran's death certificate.")
                add("If death was service-connected, VA documentation confirming this.")
                add("Statement certifying you have not remarried.")
        else:
            add("Your birth certificate (or veteran's showing you as mother).")
            if "died under honorable conditions" in (factors.get(MOTHER_ELIGIBILITY) or ""):
                add("Veteran's death certificate.")
            else:
                add("VA letter confirming veteran's permanent and total service-connected disability.")
            add("Marriage certificate to veteran's father; Death certificate/divorce decree for relevant spouse(s).")
    return docs


def _additional_info(analysis: Analysis) -> list[str]:
    info: list[str] = []
    if analysis.eligibility_type == "not-eligible":
        info.append("Please review your answers or consult official OPM guidance for more details.")
        if is_disqualifying_discharge(analysis.factors.get(DISCHARGE_TYPE)):
            info.append("You may be able to upgrade your discharge through a military discharge review board.")
    elif analysis.eligibility_type == "info":
        info.extend([
            "Review the complete OPM Vet Guide for HR Professionals.",
            "Consult agency-specific policies.",
            "Contact OPM for specific case guidance.",
        ])
    if analysis.confidence != "high":
        info.append("Your eligibility depends on details of your separation; confirm with your agency's HR office.")
    return info


def _links(analysis: Analysis) -> list[Link]:
    links = [Link(_GUIDE, "OPM Vet Guide for HR Professionals (Main)")]
    eligibility_type = analysis.eligibility_type

    if eligibility_type == "eligible-10-point-derivative":
        links.append(Link(_GUIDE + "#derivative", "Derivative Preference Information"))
    elif eligibility_type == "eligible-5-point":
        links.append(Link(_GUIDE + "#5pointtp", "5-Point Preference Information"))
    elif "10-point" in eligibility_type:
        links.append(Link(_GUIDE + "#10point", "General 10-Point Preference Information"))
        if analysis.disability_category == "CPS":
            links.append(Link(_GUIDE + "#cps", "10-Point (30% or more disabled) Preference (CPS)"))
        elif analysis.disability_category == "CP":
            links.append(Link(_GUIDE + "#cp", "10-Point (Compensable) Preference (CP)"))
        elif analysis.disability_category == "XP":
            links.append(Link(_GUIDE + "#xp", "10-Point (Disability/XP) Preference"))

    if is_disqualifying_discharge(analysis.factors.get(DISCHARGE_TYPE)):
        links.append(Link(_GUIDE + "#discharge", "Character of Discharge Requirements"))
    return links


def result_for(analysis: Analysis) -> Result:
    return Result(
        type=analysis.eligibility_type,
        title=_title(analysis),
        description=_description(analysis),
        reasoning=_reasoning(analysis),
        confidence=analysis.confidence,
        required_documents=_required_documents(analysis),
        additional_info=_additional_info(analysis),
        links=_links(analysis),
    )


def evaluate(answer_path) -> Result:
    """Derive a Result from the full answer history.

    Args:
        answer_path: Ordered AnswerRecords. Later answers to the same
                     question replace earlier ones.

    Returns:
        The Result for the combination of answers given.
    """
    return result_for(analyze(answers_from_path(answer_path)))
