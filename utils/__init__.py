"""
Utility modules for the belief state index engine.
"""

from .datetime_utils import from_epoch_seconds, now_seconds, to_epoch_seconds, utc_now
from .json_utils import EngineJSONEncoder, dump_json, dumps_json

__all__ = [
    "utc_now",
    "now_seconds",
    "to_epoch_seconds",
    "from_epoch_seconds",
    "EngineJSONEncoder",
    "dump_json",
    "dumps_json",
]
