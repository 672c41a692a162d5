"""ORM models for the fieldwork kernel."""

from fieldwork_kernel.models.category import CategoryModel, CategoryRateModel
from fieldwork_kernel.models.schedule import (
    AdditionalSettlementModel,
    CategoryScheduleModel,
    ScheduleModel,
    StageHistoryModel,
)

__all__ = [
    "AdditionalSettlementModel",
    "CategoryModel",
    "CategoryRateModel",
    "CategoryScheduleModel",
    "ScheduleModel",
    "StageHistoryModel",
]
