# src/api/cohort_initiator.py
#
# Creates a new cohort schedule table and fills it from the cohort type's
# curriculum template, placing sessions on the two chosen class days.

import logging
import re
from datetime import date, timedelta
from typing import List, Sequence

from config.settings import COHORT_TEMPLATE_SUFFIX
from src.api.errors import UnexpectedError, ValidationError
from src.api.rescheduler import (
    CONTEST,
    DAY_INDEX,
    WEEKDAYS,
    assign_week_numbers,
    day_name,
    find_next_day,
)
from src.api.schedule_client import MISSING_FUNCTION_CODES
from src.db import SETUP_SQL, StoreError, manual_table_sql
from src.timezone_utils import local_date_from_iso

logger = logging.getLogger(__name__)

COHORT_TYPES = ("basic", "placement", "mern", "fullstack")
COHORT_NUMBER_RE = re.compile(r"^\d+\.\d+$")

# copied from the template as-is
PAYLOAD_COLUMNS = [
    "time",
    "session_type",
    "subject_type",
    "subject_name",
    "subject_topic",
    "initial_session_material",
    "session_material",
    "session_recording",
]


class SetupRequiredError(UnexpectedError):
    """The create_cohort_schedule_table function is missing from the database."""

    def __init__(self, table_name: str, details: str = None):
        super().__init__(
            "Database setup required: the create_cohort_schedule_table function does not exist",
            details=details,
        )
        self.table_name = table_name

    def to_body(self) -> dict:
        body = super().to_body()
        body.update({
            "setupRequired": True,
            "setupSQL": SETUP_SQL,
            "manualSQL": manual_table_sql(self.table_name),
            "note": "Run setupSQL once in the database SQL editor, then try again. "
                    "Alternatively run manualSQL to create just this table.",
        })
        return body


def cohort_table_name(cohort_type: str, cohort_number: str) -> str:
    """basic + 2.0 -> basic2_0_schedule"""
    return f"{cohort_type}{cohort_number.replace('.', '_')}_schedule"


def validate_cohort_request(data: dict):
    """
    Check a create-cohort payload.
    Returns: (cohort_type, cohort_number, [day1 index, day2 index], start date)
    Raises: ValidationError
    """
    cohort_type = data.get("cohortType")
    cohort_number = data.get("cohortNumber")
    day1 = data.get("day1")
    day2 = data.get("day2")
    start = data.get("startDate")

    if not all([cohort_type, cohort_number, day1, day2, start]):
        raise ValidationError(
            "Missing required fields: cohortType, cohortNumber, day1, day2, startDate"
        )
    if cohort_type not in COHORT_TYPES:
        raise ValidationError(f"Invalid cohort type. Expected one of: {', '.join(COHORT_TYPES)}")
    if not isinstance(cohort_number, str) or not COHORT_NUMBER_RE.match(cohort_number):
        raise ValidationError("Cohort number should be in format like 2.0, 3.0, etc.")
    if day1 not in DAY_INDEX or day2 not in DAY_INDEX:
        raise ValidationError("Class days must be weekday names, e.g. Monday")
    if day1 == day2:
        raise ValidationError("Please select two different days")
    try:
        start_date = local_date_from_iso(str(start))
    except ValueError:
        raise ValidationError(f"Invalid startDate: {start}")

    return cohort_type, cohort_number, [DAY_INDEX[day1], DAY_INDEX[day2]], start_date


def build_cohort_sessions(template: Sequence[dict], day_pattern: List[int], start_date: date) -> List[dict]:
    """
    Lay the template out on the calendar from start_date.
    Regular sessions go on the pattern days, contests on the next weekday,
    each strictly after the previous session. ids run 1..n.
    """
    rows = []
    current = start_date - timedelta(days=1)  # first session may fall on start_date itself
    for item in template:
        targets = WEEKDAYS if item.get("session_type") == CONTEST else day_pattern
        current = find_next_day(current, targets)
        row = {col: item.get(col) for col in PAYLOAD_COLUMNS}
        row["date"] = current
        rows.append(row)

    numbers = assign_week_numbers([row["date"] for row in rows])
    for i, (row, (week, number)) in enumerate(zip(rows, numbers), start=1):
        row["id"] = i
        row["week_number"] = week
        row["session_number"] = number
        row["day"] = day_name(row["date"])
        row["date"] = row["date"].isoformat()
    return rows


def create_cohort(store, data: dict) -> dict:
    """
    Validate the request, create the cohort table and seed it.
    Returns: {"success", "tableName", "recordsInserted"}
    """
    cohort_type, cohort_number, day_pattern, start_date = validate_cohort_request(data)
    table_name = cohort_table_name(cohort_type, cohort_number)
    template_table = f"{cohort_type}{COHORT_TEMPLATE_SUFFIX}"
    logger.info(f"Creating cohort table {table_name} from {template_table} starting {start_date}")

    try:
        template = store.fetch_sessions(template_table, order_by="week_session")
    except StoreError as e:
        logger.error(f"Error fetching curriculum template {template_table}: {e}")
        raise UnexpectedError("Failed to fetch curriculum template", details=str(e)) from e
    if not template:
        raise ValidationError(f"Curriculum template {template_table} has no sessions")

    rows = build_cohort_sessions(template, day_pattern, start_date)

    try:
        store.create_schedule_table(table_name)
    except StoreError as e:
        if e.code in MISSING_FUNCTION_CODES:
            raise SetupRequiredError(table_name, details=str(e)) from e
        logger.error(f"Error creating table {table_name}: {e}")
        raise UnexpectedError("Failed to create cohort table", details=str(e)) from e

    try:
        inserted = store.insert_sessions(table_name, rows)
    except StoreError as e:
        logger.error(f"Error inserting sessions into {table_name}: {e}")
        raise UnexpectedError("Failed to insert cohort sessions", details=str(e)) from e

    logger.info(f"Created {table_name} with {inserted} sessions")
    return {"success": True, "tableName": table_name, "recordsInserted": inserted}
