# outbreakwatch/data_processing/__init__.py
#
# Data Processing Package API
# Loading and cleaning of case-report data and the store adapters the
# analytics engines read from.

"""
Initializes the data_processing package, making the loaders, the cleaning
pipeline and the store adapters available at the top level.
"""

from .loaders import DataLoader, load_case_records, prepare_case_records

from .pipeline import DataPipeline

from .store import (
    AlertStore,
    CaseRecordStore,
    InMemoryAlertStore,
    InMemoryRiskScoreStore,
    PandasRecordStore,
    RecordFilter,
    RiskScoreStore,
    StoreError,
)


__all__ = [
    # --- Loading ---
    "DataLoader",
    "load_case_records",
    "prepare_case_records",

    # --- Preparation ---
    "DataPipeline",

    # --- Stores ---
    "AlertStore",
    "CaseRecordStore",
    "InMemoryAlertStore",
    "InMemoryRiskScoreStore",
    "PandasRecordStore",
    "RecordFilter",
    "RiskScoreStore",
    "StoreError",
]
