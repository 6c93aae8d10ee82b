"""Markdown and plain-text brief generation."""

import logging
import re
from pathlib import Path
from typing import List, Protocol, Sequence
from briefdesk.entities import EarningsFormState, RampFormState, SectorTemplate

logger = logging.getLogger("briefdesk.report")

PLACEHOLDER = "-"

# Characters that cannot appear in a file name or an HTTP header value
UNSAFE_FILENAME_CHARS = re.compile(r'[\x00-\x1f\x7f"\\/]')

BRIEF_KINDS = {
    "md": "md",
    "markdown": "md",
    "txt": "txt",
    "text": "txt",
}

# (attribute on KeyNumbers, display label), in brief order
KEY_NUMBER_LABELS = [
    ('revenue', 'Revenue'),
    ('growth', 'Growth'),
    ('gross_margin', 'Gross Margin'),
    ('ebitda', 'EBITDA / Operating Profit'),
    ('cfo', 'Cash from Ops'),
    ('net_debt', 'Net Debt / Net Cash'),
]


def normalize_kind(kind: str) -> str:
    """
    Map an export kind to its file extension.

    Raises:
        ValueError: If kind is not markdown or plain text
    """
    ext = BRIEF_KINDS.get((kind or "").strip().lower())
    if ext is None:
        raise ValueError(f"Unknown brief format '{kind}'. Use 'md' or 'txt'.")
    return ext


def _or_dash(value: str) -> str:
    return value or PLACEHOLDER


def _bullets(items: Sequence[str]) -> str:
    return "\n".join(f"- {item}" for item in items)


def _title(company: str, ticker: str) -> str:
    # The trailing space without a ticker is part of the document format.
    return f"{company or 'Company'} {f'({ticker})' if ticker else ''}"


def brief_filename(company: str, ticker: str, kind: str, fallback: str) -> str:
    """
    Build the export file name from company and ticker.

    Lower-cased, spaces replaced with underscores, ticker appended
    when present: "Acme Corp" + "ACM" -> "acme_corp_acm.md". Control
    characters, quotes, backslashes and slashes also become underscores.

    Args:
        company: Company name (may be empty)
        ticker: Ticker (may be empty)
        kind: 'md' or 'txt'
        fallback: Base name used when company is empty

    Returns:
        File name with extension
    """
    base = (company or fallback).lower().replace(" ", "_")
    if ticker:
        base = f"{base}_{ticker.lower().replace(' ', '_')}"
    base = UNSAFE_FILENAME_CHARS.sub("_", base)
    return f"{base}.{normalize_kind(kind)}"


class RampBrief:
    """
    Renders the Company Ramp brief.

    User text is inserted verbatim (no Markdown escaping). Empty fields
    render as "-"; template lists render in their declared order.

    Representation Invariants:
    - _template is the template for _state.sector
    """

    FILENAME_FALLBACK = "company_ramp"

    def __init__(self, state: RampFormState, template: SectorTemplate) -> None:
        """
        Initialize brief for a form state.

        Args:
            state: Current Company Ramp form state
            template: Sector template matching state.sector
        """
        self._state = state
        self._template = template

    def generate(self, suggestions: List[str], kind: str = "md") -> str:
        """
        Generate the complete brief.

        Args:
            suggestions: Composed KPIs, used when "what to track" is blank
            kind: 'md' for Markdown, 'txt' for plain text

        Returns:
            Brief document as string

        Raises:
            ValueError: If kind is unknown
        """
        if normalize_kind(kind) == "md":
            return self._generate_markdown(suggestions)
        return self._generate_text(suggestions)

    def filename(self, kind: str) -> str:
        return brief_filename(self._state.company, self._state.ticker, kind, self.FILENAME_FALLBACK)

    def _track_block(self, suggestions: List[str]) -> str:
        """Analyst's own list if filled in, otherwise the suggested KPIs."""
        own = (self._state.what_to_track or "").strip()
        return own or _bullets(suggestions)

    def _generate_markdown(self, suggestions: List[str]) -> str:
        s = self._state
        t = self._template
        numbers = _bullets(
            f"{label}: {_or_dash(getattr(s.key_numbers, attr))}"
            for attr, label in KEY_NUMBER_LABELS
        )

        sections = [
            f"# {_title(s.company, s.ticker)}\n\n"
            f"**Sector:** {s.sector}  \n"
            f"**Doc:** {s.doc_type}",
            f"## Business model (plain English)\n{_or_dash(s.business_model)}",
            f"## What changed (this period)\n{_or_dash(s.what_changed)}",
            f"## Key numbers\n{numbers}",
            f"## Bull case (why it wins)\n{_or_dash(s.bull)}",
            f"## Bear case (how it breaks)\n{_or_dash(s.bear)}",
            f"## Risks / watchouts\n{_or_dash(s.risks)}",
            f"## What to track next 2 quarters\n{_or_dash(self._track_block(suggestions))}",
            f"## Sector checklist (1-hour ramp)\n{_bullets(t.checklist)}",
            f"## Common red flags\n{_bullets(t.red_flags)}",
            f"## Failure modes to sanity-check\n{_bullets(t.failure_modes)}",
            f"## Source excerpt (pasted)\n{_or_dash(s.excerpt)}",
        ]
        return "\n\n".join(sections)

    def _generate_text(self, suggestions: List[str]) -> str:
        s = self._state
        t = self._template
        numbers = "\n".join(
            f"{label}: {_or_dash(getattr(s.key_numbers, attr))}"
            for attr, label in KEY_NUMBER_LABELS
        )

        sections = [
            f"{_title(s.company, s.ticker)}\n"
            f"Sector: {s.sector}\n"
            f"Doc: {s.doc_type}",
            f"BUSINESS MODEL\n{_or_dash(s.business_model)}",
            f"WHAT CHANGED\n{_or_dash(s.what_changed)}",
            f"KEY NUMBERS\n{numbers}",
            f"BULL CASE\n{_or_dash(s.bull)}",
            f"BEAR CASE\n{_or_dash(s.bear)}",
            f"RISKS\n{_or_dash(s.risks)}",
            f"WHAT TO TRACK (NEXT 2 QUARTERS)\n{_or_dash(self._track_block(suggestions))}",
            f"SECTOR CHECKLIST\n{_bullets(t.checklist)}",
            f"RED FLAGS\n{_bullets(t.red_flags)}",
            f"FAILURE MODES\n{_bullets(t.failure_modes)}",
            f"SOURCE EXCERPT\n{_or_dash(s.excerpt)}",
        ]
        return "\n\n".join(sections)


class EarningsBrief:
    """Renders the Earnings Brief: notes, signals, questions and checklist."""

    FILENAME_FALLBACK = "earnings_brief"

    def __init__(self, state: EarningsFormState, template: SectorTemplate) -> None:
        self._state = state
        self._template = template

    def generate(
        self,
        signal_labels: List[str],
        questions: List[str],
        kind: str = "md"
    ) -> str:
        """
        Generate the complete brief.

        Args:
            signal_labels: Labels of the detected signals, in rule order
            questions: Composed questions to ask
            kind: 'md' for Markdown, 'txt' for plain text

        Returns:
            Brief document as string
        """
        if normalize_kind(kind) == "md":
            return self._generate_markdown(signal_labels, questions)
        return self._generate_text(signal_labels, questions)

    def filename(self, kind: str) -> str:
        return brief_filename(self._state.company, self._state.ticker, kind, self.FILENAME_FALLBACK)

    def _generate_markdown(self, signal_labels: List[str], questions: List[str]) -> str:
        s = self._state
        t = self._template
        sections = [
            f"# {_title(s.company, s.ticker)}\n\n"
            f"**Type:** {s.company_type}  \n"
            f"**Doc:** {s.doc_type}",
            f"## Notes\n{_or_dash(s.notes)}",
            f"## Detected signals\n{_or_dash(_bullets(signal_labels))}",
            f"## Questions to ask\n{_or_dash(_bullets(questions))}",
            f"## Checklist\n{_bullets(t.checklist)}",
            f"## Red flags\n{_bullets(t.red_flags)}",
            f"## Source excerpt\n{_or_dash(s.excerpt)}",
        ]
        return "\n\n".join(sections)

    def _generate_text(self, signal_labels: List[str], questions: List[str]) -> str:
        s = self._state
        t = self._template
        sections = [
            f"{_title(s.company, s.ticker)}\n"
            f"Type: {s.company_type}\n"
            f"Doc: {s.doc_type}",
            f"NOTES\n{_or_dash(s.notes)}",
            f"DETECTED SIGNALS\n{_or_dash(_bullets(signal_labels))}",
            f"QUESTIONS TO ASK\n{_or_dash(_bullets(questions))}",
            f"CHECKLIST\n{_bullets(t.checklist)}",
            f"RED FLAGS\n{_bullets(t.red_flags)}",
            f"SOURCE EXCERPT\n{_or_dash(s.excerpt)}",
        ]
        return "\n\n".join(sections)


# =============================================================================
# Document sinks
# =============================================================================

class DocumentSink(Protocol):
    """Anything that can hand a finished brief to the analyst."""

    def emit(self, filename: str, content: str) -> object:
        ...


class DirectorySink:
    """
    Writes exported briefs into a directory as UTF-8 files.

    Representation Invariants:
    - base_path is an absolute Path and exists
    """

    def __init__(self, base_path: Path) -> None:
        self._base_path = base_path.resolve()
        self._base_path.mkdir(parents=True, exist_ok=True)

    @property
    def base_path(self) -> Path:
        return self._base_path

    def emit(self, filename: str, content: str) -> Path:
        """
        Save a brief, overwriting any earlier export with the same name.

        Args:
            filename: Bare file name (no directories)
            content: Document text

        Returns:
            Path to saved file
        """
        filepath = self._base_path / Path(filename).name
        filepath.write_text(content, encoding='utf-8')
        logger.info(f"Exported brief to {filepath}")
        return filepath
