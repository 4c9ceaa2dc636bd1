# outbreakwatch/data_processing/loaders.py
#
# Unified Data Loading Engine
# Ingests case-report exports into consistently cleaned and typed DataFrames
# that satisfy the record store's column contract.

import logging
from pathlib import Path
from typing import Dict, Optional

import numpy as np
import pandas as pd

try:
    from config.settings import settings
    from .pipeline import DataPipeline
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in loaders.py: A core dependency is missing. {e}", exc_info=True)
    raise

logger = logging.getLogger(__name__)

CASE_RECORD_COLUMNS = ['disease', 'area', 'case_count', 'report_date']


def prepare_case_records(df: pd.DataFrame, column_aliases: Optional[Dict[str, str]] = None) -> pd.DataFrame:
    """
    Cleans a raw case-report frame into the canonical record layout.

    Column names are standardized, known aliases renamed, identifiers stripped
    (disease keys lower-cased), dates parsed and rows with a missing field or
    a negative case count dropped. Columns outside the contract are discarded.
    """
    if not isinstance(df, pd.DataFrame) or df.empty:
        return pd.DataFrame({
            'disease': pd.Series(dtype=object),
            'area': pd.Series(dtype=object),
            'case_count': pd.Series(dtype='int64'),
            'report_date': pd.Series(dtype='datetime64[ns]'),
        })

    aliases = settings.case_record_column_aliases if column_aliases is None else column_aliases
    df_processed = (
        DataPipeline(df)
        .clean_column_names()
        .rename_columns(aliases)
        .standardize_missing_values({'case_count': np.nan})
        .normalize_text_columns(['area'])
        .normalize_text_columns(['disease'], lowercase=True)
        .convert_date_columns(['report_date'])
        .drop_invalid_rows(required=CASE_RECORD_COLUMNS, non_negative=['case_count'])
        .get_df()
    )

    missing = set(CASE_RECORD_COLUMNS) - set(df_processed.columns)
    if missing:
        raise ValueError(f"Case records are missing required columns: {sorted(missing)}")

    df_processed = df_processed[CASE_RECORD_COLUMNS].copy()
    df_processed['case_count'] = df_processed['case_count'].round().astype('int64')
    df_processed['report_date'] = df_processed['report_date'].astype('datetime64[ns]')
    return df_processed.sort_values('report_date', kind='stable').reset_index(drop=True)


class DataLoader:
    """
    Loads case-report files from a base directory and passes them through the
    cleaning pipeline so that every frame entering the system has the same
    columns and dtypes.
    """
    def __init__(self, data_source_dir: Path):
        self.base_dir = data_source_dir
        if not self.base_dir.exists():
            logger.warning(f"Data source directory not found: {self.base_dir}.")

    def _get_path(self, file_path: Path) -> Path:
        """Resolves a file path relative to the base data directory."""
        file_path = Path(file_path)
        return self.base_dir / file_path if not file_path.is_absolute() else file_path

    def load_csv(self, file_path: Path) -> pd.DataFrame:
        """
        Loads a case-report CSV file and applies the standard cleaning pipeline.
        A missing file yields an empty, correctly typed frame; an unreadable
        or malformed file raises.
        """
        full_path = self._get_path(file_path)
        log_ctx = f"CSV({full_path.name})"
        logger.debug(f"[{log_ctx}] Attempting to load data from {full_path}")

        if not full_path.exists():
            logger.warning(f"[{log_ctx}] Source file not found. Returning empty DataFrame.")
            return prepare_case_records(pd.DataFrame())

        try:
            df = pd.read_csv(full_path, low_memory=False)
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            logger.error(f"[{log_ctx}] File is malformed or has encoding issues: {e}")
            raise

        df_processed = prepare_case_records(df)
        logger.info(f"[{log_ctx}] Successfully loaded and cleaned {len(df_processed)} records.")
        return df_processed


def load_case_records(path: Optional[Path] = None) -> pd.DataFrame:
    """Loads and cleans the case-report dataset (defaults to the configured path)."""
    loader = DataLoader(settings.directories.data_sources)
    return loader.load_csv(path or settings.case_records_path)
