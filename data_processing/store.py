# outbreakwatch/data_processing/store.py
#
# Record Store Adapters
# The analytics engines never talk to a database directly. They receive a
# store handle through their constructor and read case records through the
# small query surface defined here: filtered finds and summed group-bys.
# Risk scores and alerts have their own minimal stores for the optional
# persistence and explainability lookups.

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Literal, Optional

import pandas as pd
from pydantic import BaseModel, field_validator

from .helpers import normalize_key, utcnow
from .loaders import DataLoader, prepare_case_records

logger = logging.getLogger(__name__)

GroupKey = Literal['disease', 'area', 'day']


class StoreError(Exception):
    """Raised by a store adapter when records cannot be read or written."""


class RecordFilter(BaseModel):
    """
    Query filter for case records.

    `area` matches case-insensitively, either on equality or as a substring
    depending on `area_match`. `disease` matches case-insensitively on
    equality. `start` is inclusive and `end` exclusive.
    """
    area: Optional[str] = None
    area_match: Literal['exact', 'contains'] = 'exact'
    disease: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @field_validator('start', 'end')
    @classmethod
    def _drop_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is not None:
            return pd.Timestamp(value).tz_convert(None).to_pydatetime()
        return value


class CaseRecordStore(ABC):
    """Read-only query surface over reported case records."""

    @abstractmethod
    def find(self, record_filter: RecordFilter) -> pd.DataFrame:
        """Returns matching records (disease, area, case_count, report_date) in date order."""

    @abstractmethod
    def aggregate_sum_by_group(self, record_filter: RecordFilter, group_key: GroupKey) -> pd.Series:
        """Returns the case_count sum per group key, indexed by key in ascending order."""


class PandasRecordStore(CaseRecordStore):
    """
    In-memory record store backed by a pandas DataFrame.

    Records are cleaned on ingestion, so disease keys are lower case and
    `report_date` is a naive datetime column.
    """
    def __init__(self, records: Optional[pd.DataFrame] = None):
        try:
            self._df = prepare_case_records(records if records is not None else pd.DataFrame())
        except (ValueError, TypeError) as e:
            raise StoreError(f"Invalid case record frame: {e}") from e

    @classmethod
    def from_records(cls, records: Iterable[Any]) -> 'PandasRecordStore':
        """Builds a store from CaseRecord models or plain dicts."""
        rows = [r.model_dump() if hasattr(r, 'model_dump') else dict(r) for r in records]
        return cls(pd.DataFrame(rows))

    @classmethod
    def from_csv(cls, path: Path) -> 'PandasRecordStore':
        """Builds a store from a case-report CSV export."""
        path = Path(path)
        try:
            df = DataLoader(path.parent).load_csv(Path(path.name))
        except (ValueError, OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise StoreError(f"Could not load case records from {path}: {e}") from e
        store = cls()
        store._df = df
        return store

    def add_records(self, records: Iterable[Any]) -> int:
        """Appends new records, returning the number accepted after cleaning."""
        rows = [r.model_dump() if hasattr(r, 'model_dump') else dict(r) for r in records]
        try:
            new_df = prepare_case_records(pd.DataFrame(rows))
        except (ValueError, TypeError) as e:
            raise StoreError(f"Invalid case records: {e}") from e
        if new_df.empty:
            return 0
        frames = [df for df in (self._df, new_df) if not df.empty]
        self._df = (
            pd.concat(frames, ignore_index=True)
            .sort_values('report_date', kind='stable')
            .reset_index(drop=True)
        )
        return len(new_df)

    def __len__(self) -> int:
        return len(self._df)

    def _mask(self, record_filter: RecordFilter) -> pd.Series:
        df = self._df
        mask = pd.Series(True, index=df.index)
        if record_filter.area:
            area_key = normalize_key(record_filter.area)
            areas = df['area'].astype(str).str.casefold()
            if record_filter.area_match == 'contains':
                mask &= areas.str.contains(area_key, regex=False)
            else:
                mask &= areas == area_key
        if record_filter.disease:
            mask &= df['disease'] == normalize_key(record_filter.disease)
        if record_filter.start is not None:
            mask &= df['report_date'] >= pd.Timestamp(record_filter.start)
        if record_filter.end is not None:
            mask &= df['report_date'] < pd.Timestamp(record_filter.end)
        return mask

    def find(self, record_filter: RecordFilter) -> pd.DataFrame:
        return self._df[self._mask(record_filter)].reset_index(drop=True)

    def aggregate_sum_by_group(self, record_filter: RecordFilter, group_key: GroupKey) -> pd.Series:
        matched = self.find(record_filter)
        if group_key == 'day':
            keys = matched['report_date'].dt.normalize()
        elif group_key in ('disease', 'area'):
            keys = matched[group_key]
        else:
            raise StoreError(f"Unsupported group key: {group_key!r}")

        sums = matched['case_count'].groupby(keys).sum().sort_index()
        sums.index.name = group_key
        return sums.rename('sum').astype('int64')


# -----------------------------------------------------------------------------
# Risk score and alert stores
# -----------------------------------------------------------------------------

class RiskScoreStore(ABC):
    """Stores calculated risk scores (pydantic models carrying `id` and `calculation_date`)."""

    @abstractmethod
    def find_latest(self, area: str, disease: str) -> Optional[Any]:
        """Most recently calculated score for the (area, disease) pair, or None."""

    @abstractmethod
    def insert(self, result: Any) -> Any:
        """Persists a score and returns the stored copy with its id assigned."""

    @abstractmethod
    def get(self, score_id: str) -> Optional[Any]:
        """Looks a stored score up by id."""

    @abstractmethod
    def latest_per_disease(self, area: str) -> List[Any]:
        """Latest score for every disease in an area, most recent first."""


class InMemoryRiskScoreStore(RiskScoreStore):
    def __init__(self):
        self._scores: List[Any] = []

    def __len__(self) -> int:
        return len(self._scores)

    def _for_area(self, area: str) -> List[Any]:
        area_key = normalize_key(area)
        return [s for s in self._scores if normalize_key(s.area) == area_key]

    def find_latest(self, area: str, disease: str) -> Optional[Any]:
        disease_key = normalize_key(disease)
        matches = [s for s in self._for_area(area) if normalize_key(s.disease) == disease_key]
        if not matches:
            return None
        # max() keeps the first of equal dates, so scan newest insert first.
        return max(reversed(matches), key=lambda s: s.calculation_date)

    def insert(self, result: Any) -> Any:
        update: Dict[str, Any] = {'id': uuid.uuid4().hex}
        if getattr(result, 'calculation_date', None) is None:
            update['calculation_date'] = utcnow()
        stored = result.model_copy(update=update)
        self._scores.append(stored)
        logger.debug(f"[{stored.area}/{stored.disease}] Stored risk score {stored.risk_score} as {stored.id}.")
        return stored

    def get(self, score_id: str) -> Optional[Any]:
        return next((s for s in self._scores if s.id == score_id), None)

    def latest_per_disease(self, area: str) -> List[Any]:
        latest = {}
        for score in self._for_area(area):
            key = normalize_key(score.disease)
            if key not in latest or score.calculation_date >= latest[key].calculation_date:
                latest[key] = score
        return sorted(latest.values(), key=lambda s: s.calculation_date, reverse=True)


class AlertStore(ABC):
    """Stores issued alerts (pydantic models carrying `id`)."""

    @abstractmethod
    def get(self, alert_id: str) -> Optional[Any]:
        """Looks an alert up by id."""

    @abstractmethod
    def insert(self, alert: Any) -> Any:
        """Persists an alert and returns the stored copy with its id assigned."""

    @abstractmethod
    def find_active(self, area: Optional[str] = None) -> List[Any]:
        """Active alerts, newest first, optionally restricted to one area."""


class InMemoryAlertStore(AlertStore):
    def __init__(self):
        self._alerts: Dict[str, Any] = {}

    def __len__(self) -> int:
        return len(self._alerts)

    def get(self, alert_id: str) -> Optional[Any]:
        return self._alerts.get(alert_id)

    def insert(self, alert: Any) -> Any:
        stored = alert if getattr(alert, 'id', None) else alert.model_copy(update={'id': uuid.uuid4().hex})
        self._alerts[stored.id] = stored
        return stored

    def find_active(self, area: Optional[str] = None) -> List[Any]:
        alerts = [a for a in self._alerts.values() if a.is_active]
        if area:
            area_key = normalize_key(area)
            alerts = [a for a in alerts if normalize_key(a.area) == area_key]
        return sorted(alerts, key=lambda a: a.created_at, reverse=True)
