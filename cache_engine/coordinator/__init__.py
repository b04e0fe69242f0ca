from .categories import CategorySpec, CategoryState, DataCategory, Notice
from .coordinator import DataCoordinator
from .sweeper import schedule_sweep, sweep_once

__all__ = [
    "CategorySpec", "CategoryState", "DataCategory", "Notice",
    "DataCoordinator", "schedule_sweep", "sweep_once",
]
