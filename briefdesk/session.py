"""Single-analyst editing sessions for the two brief variants."""

import logging
from abc import ABC, abstractmethod
from dataclasses import fields, replace
from typing import Any, FrozenSet, List, Optional, Tuple
from briefdesk.entities import (
    EarningsFormState,
    KeyNumbers,
    RampFormState,
    SectorTemplate,
    VariantConfig,
)
from briefdesk.report import DocumentSink, EarningsBrief, RampBrief, normalize_kind
from briefdesk.signals import SignalDetector
from briefdesk.store import FormStateRepository
from briefdesk.suggestions import compose_kpis, compose_questions

logger = logging.getLogger("briefdesk.session")


class BriefSession(ABC):
    """
    Owns one variant's form state for the lifetime of a session.

    The state is hydrated from storage on construction and the whole
    record is written back after every change. Signals and suggestions
    are derived from the current state; signals are recomputed only
    when the excerpt changes.

    Representation Invariants:
    - _state's category is always a key of the template table
    - storage holds the same record as _state after every mutation
    """

    CATEGORY_FIELD = ""

    def __init__(self, config: VariantConfig, repository: FormStateRepository) -> None:
        """
        Start a session, restoring any saved state.

        Args:
            config: Static tables for this variant
            repository: Where the form state is persisted
        """
        self._config = config
        self._repository = repository
        self._detector = SignalDetector(config.rulebook)
        self._signals_cache: Optional[Tuple[str, FrozenSet[str]]] = None
        self._state = repository.load()
        logger.info(f"Session started from '{repository.key}' ({self.CATEGORY_FIELD}={self.category})")

    @property
    def state(self):
        return self._state

    @property
    def config(self) -> VariantConfig:
        return self._config

    @property
    def detector(self) -> SignalDetector:
        return self._detector

    @property
    def category(self) -> str:
        return self._state.category

    @property
    def template(self) -> SectorTemplate:
        return self._config.templates.lookup(self.category)

    @property
    def signals(self) -> FrozenSet[str]:
        excerpt = self._state.excerpt
        if self._signals_cache is None or self._signals_cache[0] != excerpt:
            self._signals_cache = (excerpt, self._detector.detect(excerpt))
        return self._signals_cache[1]

    @property
    def signal_labels(self) -> List[str]:
        return self._detector.labels(self.signals)

    @property
    def implications(self) -> List[str]:
        return self._detector.implications(self.signals)

    @property
    @abstractmethod
    def suggestions(self) -> List[str]:
        """KPIs to track or questions to ask for the current state."""

    def update(self, **changes: Any) -> None:
        """
        Apply field edits and persist the whole state.

        Selector fields (category, doc type, tab) only accept the
        enumerated values; every other field accepts any string.

        Raises:
            ValueError: If a field is unknown or a selector value is invalid
        """
        editable = {f.name for f in fields(self._state) if f.name != 'key_numbers'}
        unknown = set(changes) - editable
        if unknown:
            raise ValueError(f"Unknown field(s): {', '.join(sorted(unknown))}")

        for name, value in changes.items():
            if not isinstance(value, str):
                raise ValueError(f"Field '{name}' must be a string")
        self._check_choice(changes, self.CATEGORY_FIELD, self._config.templates.labels())
        self._check_choice(changes, 'doc_type', self._config.doc_types)
        self._check_choice(changes, 'tab', self._config.tabs)

        self._state = replace(self._state, **changes)
        self._persist()

    def clear(self) -> None:
        """Reset every field to its default and persist."""
        self._state = self._repository.empty()
        self._persist()
        logger.info(f"Cleared '{self._repository.key}'")

    def export(self, kind: str, sink: DocumentSink) -> Any:
        """
        Render the brief and hand it to a sink.

        Args:
            kind: 'md' or 'txt'
            sink: Where the document goes

        Returns:
            Whatever the sink returns (e.g. the saved path)
        """
        filename, content = self.render(kind)
        logger.info(f"Exporting {filename}")
        return sink.emit(filename, content)

    @abstractmethod
    def render(self, kind: str) -> Tuple[str, str]:
        """Return (filename, document) without emitting it."""

    @staticmethod
    def _check_choice(changes: dict, name: str, allowed) -> None:
        if name in changes and allowed and changes[name] not in allowed:
            raise ValueError(f"Invalid {name} '{changes[name]}'. Choose one of: {', '.join(allowed)}")

    def _persist(self) -> None:
        self._repository.save(self._state)


class RampSession(BriefSession):
    """Company Ramp: sector checklist, KPIs to track, ramp brief."""

    CATEGORY_FIELD = "sector"

    @property
    def state(self) -> RampFormState:
        return self._state

    @property
    def suggestions(self) -> List[str]:
        return compose_kpis(self.template, self.signals, self._config.rulebook)

    def update_key_numbers(self, **numbers: str) -> None:
        """
        Edit some of the six headline numbers and persist.

        Raises:
            ValueError: If a number name is unknown or a value is not a string
        """
        allowed = {f.name for f in fields(KeyNumbers)}
        unknown = set(numbers) - allowed
        if unknown:
            raise ValueError(f"Unknown key number(s): {', '.join(sorted(unknown))}")
        for name, value in numbers.items():
            if not isinstance(value, str):
                raise ValueError(f"Key number '{name}' must be a string")

        self._state = replace(self._state, key_numbers=replace(self._state.key_numbers, **numbers))
        self._persist()

    def render(self, kind: str) -> Tuple[str, str]:
        brief = RampBrief(self._state, self.template)
        return brief.filename(normalize_kind(kind)), brief.generate(self.suggestions, kind)


class EarningsSession(BriefSession):
    """Earnings Brief: company-type checklist, questions to ask, notes."""

    CATEGORY_FIELD = "company_type"

    @property
    def state(self) -> EarningsFormState:
        return self._state

    @property
    def suggestions(self) -> List[str]:
        return compose_questions(self.template, self.signals, self._config.rulebook)

    def render(self, kind: str) -> Tuple[str, str]:
        brief = EarningsBrief(self._state, self.template)
        return (
            brief.filename(normalize_kind(kind)),
            brief.generate(self.signal_labels, self.suggestions, kind),
        )
