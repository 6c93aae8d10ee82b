"""Suggested KPIs / questions built from a template plus detected signals."""

from typing import Iterable, List
from briefdesk.entities import RuleBook, SectorTemplate

MAX_SUGGESTIONS = 10


def compose_kpis(
    template: SectorTemplate,
    signals: Iterable[str],
    rulebook: RuleBook
) -> List[str]:
    """
    Build the "what to track" KPI list for the Company Ramp brief.

    Starts from the sector's KPIs and appends one KPI per detected
    signal, in rulebook order. Strings already present are not added
    twice and keep their original position.

    Args:
        template: Sector template supplying the base KPIs
        signals: Detected signal keys
        rulebook: Supplies the signal -> KPI mapping and its order

    Returns:
        Deduplicated list of at most MAX_SUGGESTIONS KPIs
    """
    detected = set(signals)
    # dict keeps insertion order, so it doubles as an ordered set
    items = dict.fromkeys(template.kpis)

    for key, kpi in rulebook.suggestions:
        if key in detected:
            items.setdefault(kpi, None)

    return list(items)[:MAX_SUGGESTIONS]


def compose_questions(
    template: SectorTemplate,
    signals: Iterable[str],
    rulebook: RuleBook
) -> List[str]:
    """
    Build the "questions to ask" list for the Earnings Brief.

    Each detected signal, checked in rulebook order, pushes its question
    to the very front of a fresh copy of the template's questions. The
    triggered questions therefore come out in reverse check order,
    followed by the base questions. Duplicates keep their first
    (front-most) occurrence.

    Returns:
        Deduplicated list of at most MAX_SUGGESTIONS questions
    """
    detected = set(signals)
    items = list(template.questions)

    for key, question in rulebook.suggestions:
        if key in detected:
            items.insert(0, question)

    return list(dict.fromkeys(items))[:MAX_SUGGESTIONS]
