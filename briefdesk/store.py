"""Local persistence of form state."""

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Generic, Optional, Protocol, TypeVar
from briefdesk.entities import EarningsFormState, KeyNumbers, RampFormState, TemplateStore

logger = logging.getLogger("briefdesk.store")

RAMP_STORAGE_KEY = "companyRamp:v1"
EARNINGS_STORAGE_KEY = "earningsBrief:v1"

# (attribute on KeyNumbers, record key)
KEY_NUMBER_FIELDS = [
    ('revenue', 'revenue'),
    ('growth', 'growth'),
    ('gross_margin', 'grossMargin'),
    ('ebitda', 'ebitda'),
    ('cfo', 'cfo'),
    ('net_debt', 'netDebt'),
]

StateT = TypeVar("StateT")


class KeyValueStore(Protocol):
    """String key/value storage, one record per key."""

    def get_item(self, key: str) -> Optional[str]:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...


class InMemoryKeyValueStore:
    """Dict-backed store; contents vanish with the process."""

    def __init__(self) -> None:
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value


class FileKeyValueStore:
    """
    Stores each record as a UTF-8 file under a root directory.

    Representation Invariants:
    - root is an absolute Path and exists
    - Each key maps to exactly one file: root/{sanitized key}.json
    """

    def __init__(self, root: Path) -> None:
        """
        Initialize store with root directory.

        Postconditions:
        - root directory exists (created if needed)
        """
        self._root = root.resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        """Get the file path a key is stored at."""
        # ':' and '/' are not safe in file names on every platform
        safe = re.sub(r'[^A-Za-z0-9._-]', '_', key)
        return self._root / f"{safe}.json"

    def get_item(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        if not path.is_file():
            return None
        return path.read_text(encoding='utf-8')

    def set_item(self, key: str, value: str) -> None:
        self.path_for(key).write_text(value, encoding='utf-8')


# =============================================================================
# Record <-> form state
# =============================================================================

def _text(record: Dict[str, Any], key: str, default: str = "") -> str:
    """A record field if it is a non-empty string, otherwise the default."""
    value = record.get(key)
    return value if isinstance(value, str) and value else default


def encode_ramp_state(state: RampFormState) -> Dict[str, Any]:
    """Convert a Company Ramp state to its flat persisted record."""
    return {
        'tab': state.tab,
        'company': state.company,
        'ticker': state.ticker,
        'sector': state.sector,
        'docType': state.doc_type,
        'excerpt': state.excerpt,
        'businessModel': state.business_model,
        'whatChanged': state.what_changed,
        'keyNumbers': {
            record_key: getattr(state.key_numbers, attr)
            for attr, record_key in KEY_NUMBER_FIELDS
        },
        'bull': state.bull,
        'bear': state.bear,
        'risks': state.risks,
        'whatToTrack': state.what_to_track,
    }


def decode_ramp_state(record: Dict[str, Any], templates: TemplateStore) -> RampFormState:
    """
    Rebuild a Company Ramp state from a persisted record.

    Every field defaults on its own when missing, empty or of the wrong
    type. A sector that is not in the template table falls back to the
    default sector.
    """
    defaults = RampFormState()
    numbers = record.get('keyNumbers')
    if not isinstance(numbers, dict):
        numbers = {}

    return RampFormState(
        tab=_text(record, 'tab', defaults.tab),
        company=_text(record, 'company'),
        ticker=_text(record, 'ticker'),
        sector=templates.resolve(record.get('sector')),
        doc_type=_text(record, 'docType', defaults.doc_type),
        excerpt=_text(record, 'excerpt'),
        business_model=_text(record, 'businessModel'),
        what_changed=_text(record, 'whatChanged'),
        key_numbers=KeyNumbers(**{
            attr: _text(numbers, record_key)
            for attr, record_key in KEY_NUMBER_FIELDS
        }),
        bull=_text(record, 'bull'),
        bear=_text(record, 'bear'),
        risks=_text(record, 'risks'),
        what_to_track=_text(record, 'whatToTrack'),
    )


def encode_earnings_state(state: EarningsFormState) -> Dict[str, Any]:
    """Convert an Earnings Brief state to its flat persisted record."""
    return {
        'tab': state.tab,
        'company': state.company,
        'ticker': state.ticker,
        'companyType': state.company_type,
        'docType': state.doc_type,
        'excerpt': state.excerpt,
        'notes': state.notes,
    }


def decode_earnings_state(record: Dict[str, Any], templates: TemplateStore) -> EarningsFormState:
    """Rebuild an Earnings Brief state from a persisted record."""
    defaults = EarningsFormState()
    return EarningsFormState(
        tab=_text(record, 'tab', defaults.tab),
        company=_text(record, 'company'),
        ticker=_text(record, 'ticker'),
        company_type=templates.resolve(record.get('companyType')),
        doc_type=_text(record, 'docType', defaults.doc_type),
        excerpt=_text(record, 'excerpt'),
        notes=_text(record, 'notes'),
    )


def empty_ramp_state(templates: TemplateStore) -> RampFormState:
    """A fresh Company Ramp state in the table's default sector."""
    return RampFormState(sector=templates.default)


def empty_earnings_state(templates: TemplateStore) -> EarningsFormState:
    """A fresh Earnings Brief state in the table's default company type."""
    return EarningsFormState(company_type=templates.default)


@dataclass(frozen=True)
class StateCodec(Generic[StateT]):
    """Pairs a record encoder with its decoder and the empty state."""

    encode: Callable[[StateT], Dict[str, Any]]
    decode: Callable[[Dict[str, Any], TemplateStore], StateT]
    empty: Callable[[TemplateStore], StateT]


RAMP_CODEC = StateCodec(encode_ramp_state, decode_ramp_state, empty_ramp_state)
EARNINGS_CODEC = StateCodec(encode_earnings_state, decode_earnings_state, empty_earnings_state)


class FormStateRepository(Generic[StateT]):
    """
    Loads and saves one variant's whole form state under a fixed key.

    Saving is last-write-wins: the complete record is re-serialized on
    every call, with no partial updates or merging.

    Representation Invariants:
    - key is a non-empty literal storage key
    """

    def __init__(
        self,
        store: KeyValueStore,
        key: str,
        codec: StateCodec,
        templates: TemplateStore
    ) -> None:
        if not key:
            raise ValueError("Storage key cannot be empty")
        self._store = store
        self._key = key
        self._codec = codec
        self._templates = templates

    @property
    def key(self) -> str:
        return self._key

    def empty(self) -> StateT:
        """A fresh state with every field at its default."""
        return self._codec.empty(self._templates)

    def load(self) -> StateT:
        """
        Load the saved state, or a fresh one.

        Never raises on bad data: a missing record, a record that is not
        valid JSON, or JSON that is not an object all yield defaults.

        Returns:
            Hydrated form state
        """
        raw = self._store.get_item(self._key)
        if not raw:
            return self.empty()

        try:
            record = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring unreadable saved state under '{self._key}': {e}")
            return self.empty()

        if not isinstance(record, dict):
            logger.warning(f"Ignoring saved state under '{self._key}': expected an object")
            return self.empty()

        return self._codec.decode(record, self._templates)

    def save(self, state: StateT) -> None:
        """Serialize the whole state and write it under the storage key."""
        record = self._codec.encode(state)
        self._store.set_item(self._key, json.dumps(record, ensure_ascii=False))
        logger.debug(f"Saved state under '{self._key}'")


def ramp_repository(store: KeyValueStore, templates: TemplateStore) -> FormStateRepository:
    return FormStateRepository(store, RAMP_STORAGE_KEY, RAMP_CODEC, templates)


def earnings_repository(store: KeyValueStore, templates: TemplateStore) -> FormStateRepository:
    return FormStateRepository(store, EARNINGS_STORAGE_KEY, EARNINGS_CODEC, templates)
