# Marketplace price-cycle automation – public API

from .automation import MarketAutomation
from .cancellation import CancelToken, OperationSlot
from .errors import LoginRequired, OperationBusy, OperationCanceled, StepFailed
from .ledger import ItemState, ItemStateRepository
from .listings import ListingItem, load_listings, save_listings
from .metrics import BatchSummary, ItemOutcome, PriceUpdateOptions, PriceUpdateResult
from .pricing import PriceDecision, compute_new_price, last_down_label
from .run_state import RunItemState, RunState, RunStateStore
from .runner import BatchRunner, ListingRow, prepare_listings, setup_debug_log, today_utc
from .selector_config import SelectorResolver, default_search_paths
from .session import BrowserSession
from .settings import AppSettings, DataPaths, load_settings, resolve_data_dir, save_settings
from .steps import execute_step

__all__ = [
    "MarketAutomation",
    "CancelToken",
    "OperationSlot",
    "OperationBusy",
    "OperationCanceled",
    "LoginRequired",
    "StepFailed",
    "ItemState",
    "ItemStateRepository",
    "ListingItem",
    "load_listings",
    "save_listings",
    "BatchSummary",
    "ItemOutcome",
    "PriceUpdateOptions",
    "PriceUpdateResult",
    "PriceDecision",
    "compute_new_price",
    "last_down_label",
    "RunItemState",
    "RunState",
    "RunStateStore",
    "BatchRunner",
    "ListingRow",
    "prepare_listings",
    "setup_debug_log",
    "today_utc",
    "SelectorResolver",
    "default_search_paths",
    "BrowserSession",
    "AppSettings",
    "DataPaths",
    "load_settings",
    "resolve_data_dir",
    "save_settings",
    "execute_step",
]
