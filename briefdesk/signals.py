"""Keyword signal detection over pasted excerpts."""

from typing import FrozenSet, Iterable, List, Optional
from briefdesk.entities import RuleBook, SignalRule


class SignalDetector:
    """
    Tags an excerpt with the topics its wording touches.

    Matching is plain case-insensitive substring containment: no
    tokenizing and no word boundaries, so "margin" also fires on
    "marginal". A rule fires once no matter how many of its words hit.

    Representation Invariants:
    - _rulebook is immutable; detect() has no side effects
    """

    def __init__(self, rulebook: RuleBook) -> None:
        self._rulebook = rulebook

    @property
    def rules(self) -> Iterable[SignalRule]:
        return self._rulebook.rules

    def detect(self, text: Optional[str]) -> FrozenSet[str]:
        """
        Detect which signal rules the text triggers.

        Args:
            text: Excerpt text (None is treated as empty)

        Returns:
            Set of matched rule keys (empty for empty text)
        """
        text_lower = (text or "").lower()
        return frozenset(
            rule.key
            for rule in self._rulebook.rules
            if any(word in text_lower for word in rule.words)
        )

    def labels(self, signals: Iterable[str]) -> List[str]:
        """Display labels for detected signals, in rule order."""
        detected = set(signals)
        return [rule.label for rule in self._rulebook.rules if rule.key in detected]

    def implications(self, signals: Iterable[str]) -> List[str]:
        """
        What the detected signals usually imply for the analyst.

        Returns the notes in their fixed order, or the single
        "paste more text" hint when nothing was detected.
        """
        detected = set(signals)
        if not detected:
            return [self._rulebook.empty_hint] if self._rulebook.empty_hint else []
        return [note for key, note in self._rulebook.implications if key in detected]


def detect_signals(text: Optional[str], rulebook: RuleBook) -> FrozenSet[str]:
    """Convenience wrapper around SignalDetector.detect."""
    return SignalDetector(rulebook).detect(text)
