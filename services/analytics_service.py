"""Service layer for read-only aggregate reports over one owner's transactions."""
import calendar
import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId

from models.transaction import TransactionType
from services.store import RecordStore
from utils.dates import build_date_filter, year_window
from utils.errors import InputError

logger = logging.getLogger(__name__)

MONTH_NAMES = list(calendar.month_name)[1:]


async def get_summary(
    store: RecordStore,
    owner_id: ObjectId,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> Dict[str, Any]:
    """Income/expense totals and counts within the date window; missing types count as zero."""
    match = {"ownerId": owner_id, **build_date_filter(start_date, end_date)}
    groups = await store.aggregate([
        {"$match": match},
        {"$group": {"_id": "$type", "total": {"$sum": "$amount"}, "count": {"$sum": 1}}},
    ])

    totals = {kind.value: (0, 0) for kind in TransactionType}
    for group in groups:
        if group["_id"] in totals:
            totals[group["_id"]] = (group["total"], group["count"])

    total_income, income_count = totals[TransactionType.INCOME.value]
    total_expense, expense_count = totals[TransactionType.EXPENSE.value]
    logger.debug(f"Summary for owner {owner_id}: {len(groups)} type group(s).")
    return {
        "totalIncome": total_income,
        "totalExpense": total_expense,
        "balance": total_income - total_expense,
        "incomeCount": income_count,
        "expenseCount": expense_count,
        "totalTransactions": income_count + expense_count,
    }


async def get_category_breakdown(
    store: RecordStore,
    owner_id: ObjectId,
    transaction_type: str = TransactionType.EXPENSE.value,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Totals per category for one transaction type, largest total first.
    Equal totals are ordered by category name.
    """
    try:
        kind = TransactionType(transaction_type)
    except ValueError:
        raise InputError("Type must be either income or expense")

    match = {"ownerId": owner_id, "type": kind.value, **build_date_filter(start_date, end_date)}
    groups = await store.aggregate([
        {"$match": match},
        {"$group": {
            "_id": "$category",
            "total": {"$sum": "$amount"},
            "count": {"$sum": 1},
            "avgAmount": {"$avg": "$amount"},
        }},
        {"$sort": {"total": -1, "_id": 1}},
    ])
    return [
        {
            "category": group["_id"],
            "total": group["total"],
            "count": group["count"],
            "avgAmount": group["avgAmount"],
        }
        for group in groups
    ]


def _empty_month(month_number: int) -> Dict[str, Any]:
    return {
        "month": MONTH_NAMES[month_number - 1],
        "monthNumber": month_number,
        "income": 0,
        "expense": 0,
        "balance": 0,
        "incomeCount": 0,
        "expenseCount": 0,
    }


async def get_monthly_trends(store: RecordStore, owner_id: ObjectId, year: int) -> List[Dict[str, Any]]:
    """
    Income, expense and balance for each month of ``year``. Always twelve
    entries in calendar order; months without data stay zero.
    """
    groups = await store.aggregate([
        {"$match": {"ownerId": owner_id, **year_window(year)}},
        {"$group": {
            "_id": {"month": {"$month": "$date"}, "type": "$type"},
            "total": {"$sum": "$amount"},
            "count": {"$sum": 1},
        }},
    ])

    months = [_empty_month(number) for number in range(1, 13)]
    for group in groups:
        month_number = group["_id"].get("month")
        kind = group["_id"].get("type")
        if not isinstance(month_number, int) or not 1 <= month_number <= 12:
            continue
        slot = months[month_number - 1]
        if kind == TransactionType.INCOME.value:
            slot["income"] += group["total"]
            slot["incomeCount"] += group["count"]
        elif kind == TransactionType.EXPENSE.value:
            slot["expense"] += group["total"]
            slot["expenseCount"] += group["count"]

    for slot in months:
        slot["balance"] = slot["income"] - slot["expense"]
    logger.debug(f"Monthly trends for owner {owner_id}, year {year}: {len(groups)} month/type group(s).")
    return months
