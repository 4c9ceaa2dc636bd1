# outbreakwatch/data_processing/pipeline.py
#
# Fluent Data Processing Pipeline
# A chainable class for applying a sequence of cleaning and preparation steps
# to raw case-report frames before they reach the record store.

import logging
from collections import Counter
from typing import Any, Dict, List

import numpy as np
import pandas as pd

from .helpers import _NA_REGEX_PATTERN, convert_to_numeric

logger = logging.getLogger(__name__)


class DataPipeline:
    """
    A fluent interface for applying a sequence of data processing operations.
    Enables expressive, readable, and chainable cleaning pipelines.
    """
    def __init__(self, df: pd.DataFrame):
        if not isinstance(df, pd.DataFrame):
            raise TypeError("DataPipeline must be initialized with a pandas DataFrame.")
        self._df = df.copy()

    def get_df(self) -> pd.DataFrame:
        """Returns the processed DataFrame."""
        return self._df

    def clean_column_names(self) -> 'DataPipeline':
        """Standardizes column names to lower snake case, de-duplicating collisions."""
        if self._df.empty and len(self._df.columns) == 0:
            return self
        new_cols = (
            self._df.columns.astype(str)
            .str.strip()
            .str.replace(r'(?<=[a-z0-9])(?=[A-Z])', '_', regex=True)
            .str.lower()
            .str.replace(r'[^0-9a-z_]+', '_', regex=True)
            .str.replace(r'_{2,}', '_', regex=True).str.strip('_')
        )
        new_cols = [f"unnamed_col_{i}" if not name else name for i, name in enumerate(new_cols)]

        counts = Counter(new_cols)
        if max(counts.values(), default=0) > 1:
            seen = Counter()
            final_cols = []
            for col_name in new_cols:
                if counts[col_name] > 1:
                    suffix = seen[col_name]
                    seen[col_name] += 1
                    final_cols.append(f"{col_name}_{suffix}")
                else:
                    final_cols.append(col_name)
            self._df.columns = final_cols
        else:
            self._df.columns = new_cols
        return self

    def rename_columns(self, rename_map: Dict[str, str]) -> 'DataPipeline':
        """Renames columns based on a provided dictionary, skipping targets that already exist."""
        if not rename_map:
            return self
        applicable = {
            src: dst for src, dst in rename_map.items()
            if src in self._df.columns and dst not in self._df.columns
        }
        self._df = self._df.rename(columns=applicable)
        return self

    def standardize_missing_values(self, column_defaults: Dict[str, Any]) -> 'DataPipeline':
        """Replaces various 'Not Available' formats and fills with provided defaults."""
        if not column_defaults:
            return self
        for col, default_val in column_defaults.items():
            if col in self._df.columns:
                series = self._df[col]
                if isinstance(default_val, (int, float, np.number)):
                    target_type = int if isinstance(default_val, int) else float
                    self._df[col] = convert_to_numeric(
                        series, default_value=default_val, target_type=target_type
                    )
                else:
                    series_obj = series.astype(object).replace(_NA_REGEX_PATTERN, np.nan, regex=True)
                    self._df[col] = series_obj.fillna(str(default_val))
        return self

    def convert_date_columns(self, date_columns: List[str], errors: str = 'coerce') -> 'DataPipeline':
        """Converts specified columns to timezone-naive datetimes."""
        if not date_columns:
            return self
        for col in date_columns:
            if col in self._df.columns:
                converted = pd.to_datetime(self._df[col], errors=errors, utc=True)
                self._df[col] = converted.dt.tz_convert(None)
            else:
                logger.warning(f"Date conversion skipped: Column '{col}' not found.")
        return self

    def normalize_text_columns(self, columns: List[str], lowercase: bool = False) -> 'DataPipeline':
        """Strips surrounding whitespace (and optionally case) from identifier columns."""
        for col in columns:
            if col in self._df.columns:
                cleaned = self._df[col].astype(object).where(self._df[col].notna(), "")
                cleaned = cleaned.astype(str).str.strip()
                self._df[col] = cleaned.str.lower() if lowercase else cleaned
        return self

    def drop_invalid_rows(self, required: List[str], non_negative: List[str]) -> 'DataPipeline':
        """Drops rows with a blank required field or a negative value in a count column."""
        before = len(self._df)
        mask = pd.Series(True, index=self._df.index)
        for col in required:
            if col in self._df.columns:
                values = self._df[col]
                mask &= values.notna()
                if pd.api.types.is_object_dtype(values.dtype) or pd.api.types.is_string_dtype(values.dtype):
                    mask &= values.astype(str).str.len() > 0
        for col in non_negative:
            if col in self._df.columns:
                mask &= self._df[col].fillna(-1) >= 0
        self._df = self._df[mask].reset_index(drop=True)
        dropped = before - len(self._df)
        if dropped:
            logger.warning(f"Dropped {dropped} invalid row(s) missing {required} or with negative {non_negative}.")
        return self
