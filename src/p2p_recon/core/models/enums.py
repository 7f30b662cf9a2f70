from __future__ import annotations
from enum import Enum

class Side(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

class OrderSource(str, Enum):
    API = "api"
    CSV = "csv"
    DEMO = "demo"

class SyncState(str, Enum):
    IDLE = "IDLE"
    FETCHING = "FETCHING"
    NORMALIZING = "NORMALIZING"
    MERGING = "MERGING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
