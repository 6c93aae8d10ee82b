"""Core entity classes: SectorTemplate, SignalRule, form states, TemplateStore, RuleBook."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple
import yaml


DATA_DIR = Path(__file__).parent / "data"
RAMP_CONFIG = DATA_DIR / "ramp.yaml"
EARNINGS_CONFIG = DATA_DIR / "earnings.yaml"


@dataclass(frozen=True)
class SectorTemplate:
    """
    Static guidance bundle for one sector or company type.

    One schema covers both tables: ramp templates carry kpis and
    failure_modes, earnings templates carry questions. Fields a table
    does not use are empty tuples.

    Representation Invariants:
    - name is non-empty
    - every list field is a tuple of strings, in declared order
    """

    name: str
    checklist: Tuple[str, ...] = ()
    red_flags: Tuple[str, ...] = ()
    kpis: Tuple[str, ...] = ()
    failure_modes: Tuple[str, ...] = ()
    questions: Tuple[str, ...] = ()

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'name': self.name,
            'checklist': list(self.checklist),
            'redFlags': list(self.red_flags),
            'kpis': list(self.kpis),
            'failureModes': list(self.failure_modes),
            'questions': list(self.questions),
        }


@dataclass(frozen=True)
class SignalRule:
    """
    Keyword rule that tags an excerpt with a topic.

    Representation Invariants:
    - key is non-empty
    - words is a non-empty tuple of lower-case trigger substrings
    """

    key: str
    label: str
    words: Tuple[str, ...]

    def __post_init__(self) -> None:
        """Validate rule data."""
        if not self.key:
            raise ValueError("Signal rule key cannot be empty")
        if not self.words:
            raise ValueError(f"Signal rule '{self.key}' has no trigger words")


class TemplateStore:
    """
    Read-only lookup from a category label to its SectorTemplate.

    Representation Invariants:
    - _templates preserves the declared order of labels
    - default is always a key of _templates
    """

    def __init__(self, templates: List[SectorTemplate], default: str) -> None:
        """
        Initialize store from an ordered list of templates.

        Raises:
            ValueError: If the list is empty or default is not one of the labels
        """
        if not templates:
            raise ValueError("TemplateStore needs at least one template")

        self._templates: dict[str, SectorTemplate] = {t.name: t for t in templates}

        if default not in self._templates:
            raise ValueError(f"Default template '{default}' is not defined")
        self._default = default

    @property
    def default(self) -> str:
        return self._default

    def labels(self) -> List[str]:
        """Return category labels in declared order."""
        return list(self._templates.keys())

    def is_valid(self, key: object) -> bool:
        return isinstance(key, str) and key in self._templates

    def resolve(self, key: object) -> str:
        """Return key if it names a template, otherwise the default label."""
        return key if self.is_valid(key) else self._default

    def lookup(self, key: object) -> SectorTemplate:
        """
        Get the template for a category label.

        Never raises: an unknown, empty or non-string key yields the
        default category's template.

        Args:
            key: Category label (exact match)

        Returns:
            SectorTemplate for key, or for the default category
        """
        return self._templates[self.resolve(key)]


@dataclass(frozen=True)
class RuleBook:
    """
    Signal rules plus the hand-written text each signal contributes.

    suggestions and implications are (signal key, text) pairs kept in
    the order they are checked.

    Representation Invariants:
    - rule keys are unique
    - every key in suggestions/implications names a rule
    """

    rules: Tuple[SignalRule, ...]
    suggestions: Tuple[Tuple[str, str], ...] = ()
    implications: Tuple[Tuple[str, str], ...] = ()
    empty_hint: str = ""

    def __post_init__(self) -> None:
        """Validate cross references."""
        keys = [r.key for r in self.rules]
        if len(keys) != len(set(keys)):
            raise ValueError(f"Duplicate signal rule keys: {keys}")
        for key, _ in self.suggestions + self.implications:
            if key not in keys:
                raise ValueError(f"Unknown signal key '{key}' in rule book")

    def keys(self) -> List[str]:
        return [r.key for r in self.rules]


@dataclass(frozen=True)
class VariantConfig:
    """Everything static about one application variant."""

    templates: TemplateStore
    rulebook: RuleBook
    doc_types: Tuple[str, ...]
    tabs: Tuple[str, ...]


# =============================================================================
# Form state
# =============================================================================

@dataclass
class KeyNumbers:
    """Six manually entered headline numbers, kept as free text."""

    revenue: str = ""
    growth: str = ""
    gross_margin: str = ""
    ebitda: str = ""
    cfo: str = ""
    net_debt: str = ""


@dataclass
class RampFormState:
    """
    Everything the analyst has typed into the Company Ramp form.

    Defaults match a fresh session. Mutated only through a session.
    """

    tab: str = "Ramp Brief"
    company: str = ""
    ticker: str = ""
    sector: str = "Fintech"
    doc_type: str = "Quarterly Results"
    excerpt: str = ""
    business_model: str = ""
    what_changed: str = ""
    key_numbers: KeyNumbers = field(default_factory=KeyNumbers)
    bull: str = ""
    bear: str = ""
    risks: str = ""
    what_to_track: str = ""

    @property
    def category(self) -> str:
        return self.sector


@dataclass
class EarningsFormState:
    """Everything the analyst has typed into the Earnings Brief form."""

    tab: str = "Brief"
    company: str = ""
    ticker: str = ""
    company_type: str = "Growth / Tech"
    doc_type: str = "Quarterly Results"
    excerpt: str = ""
    notes: str = ""

    @property
    def category(self) -> str:
        return self.company_type


# =============================================================================
# YAML loading
# =============================================================================

def _as_tuple(values: Optional[list], what: str) -> Tuple[str, ...]:
    if values is None:
        return ()
    if not isinstance(values, list):
        raise ValueError(f"Expected a list for {what}, got {type(values).__name__}")
    return tuple(str(v) for v in values)


def _as_pairs(values: Optional[list], what: str) -> Tuple[Tuple[str, str], ...]:
    pairs = []
    for item in values or []:
        if not isinstance(item, list) or len(item) != 2:
            raise ValueError(f"Invalid {what} entry (expected [key, text]): {item!r}")
        pairs.append((str(item[0]), str(item[1])))
    return tuple(pairs)


def load_variant_config(config_path: Path) -> VariantConfig:
    """
    Load templates and signal rules for one variant from YAML.

    Preconditions:
    - config_path exists and is readable
    - config_path contains 'default', 'templates' and 'rules' keys

    Postconditions:
    - Returns a fully validated, immutable VariantConfig
    - Raises FileNotFoundError if config_path doesn't exist
    - Raises ValueError if YAML is invalid or incomplete

    Args:
        config_path: Path to the variant's YAML file

    Returns:
        VariantConfig with TemplateStore and RuleBook
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Template config not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)

    if not data or 'templates' not in data or 'rules' not in data:
        raise ValueError(f"Invalid config format: missing 'templates' or 'rules' key in {config_path}")

    templates = []
    for name, info in data['templates'].items():
        info = info or {}
        try:
            templates.append(SectorTemplate(
                name=str(name),
                checklist=_as_tuple(info.get('checklist'), f"{name}.checklist"),
                red_flags=_as_tuple(info.get('redFlags'), f"{name}.redFlags"),
                kpis=_as_tuple(info.get('kpis'), f"{name}.kpis"),
                failure_modes=_as_tuple(info.get('failureModes'), f"{name}.failureModes"),
                questions=_as_tuple(info.get('questions'), f"{name}.questions"),
            ))
        except AttributeError as e:
            raise ValueError(f"Invalid template entry for {name}: {e}")

    rules = []
    for entry in data['rules']:
        try:
            rules.append(SignalRule(
                key=entry['key'],
                label=entry.get('label', entry['key']),
                words=tuple(str(w).lower() for w in entry['words']),
            ))
        except (KeyError, TypeError) as e:
            raise ValueError(f"Invalid signal rule entry {entry!r}: {e}")

    rulebook = RuleBook(
        rules=tuple(rules),
        suggestions=_as_pairs(data.get('suggestions'), 'suggestions'),
        implications=_as_pairs(data.get('implications'), 'implications'),
        empty_hint=str(data.get('empty_hint', '')),
    )

    return VariantConfig(
        templates=TemplateStore(templates, default=data.get('default', templates[0].name if templates else '')),
        rulebook=rulebook,
        doc_types=_as_tuple(data.get('doc_types'), 'doc_types'),
        tabs=_as_tuple(data.get('tabs'), 'tabs'),
    )


def load_ramp_config(config_path: Path = RAMP_CONFIG) -> VariantConfig:
    """Company Ramp tables: 7 sectors, 9 signal rules."""
    return load_variant_config(config_path)


def load_earnings_config(config_path: Path = EARNINGS_CONFIG) -> VariantConfig:
    """Earnings Brief tables: 4 company types, 7 signal rules."""
    return load_variant_config(config_path)
