# src/api/rescheduler.py
#
# Shifts a class session to a new date and reschedules every session after it:
# 1. Detects the cohort's weekly day pattern from its regular sessions
# 2. Projects each following session onto the next pattern day (contests: next weekday)
# 3. Renumbers weeks/sessions over rolling 7-day windows
# Preview and apply run the same computation; only apply writes to the store.

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from src.api.errors import (
    InvalidDateError,
    NoOpError,
    NotFoundError,
    ScheduleInvariantError,
    UnexpectedError,
)
from src.db import StoreError

logger = logging.getLogger(__name__)

# 0 = Sunday ... 6 = Saturday
DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
DAY_INDEX = {name: i for i, name in enumerate(DAY_NAMES)}

DEFAULT_DAY_PATTERN = [1, 3, 5]  # Monday, Wednesday, Friday
WEEKDAYS = [1, 2, 3, 4, 5]  # contests may land on any of Mon-Fri
CONTEST = "contest"
WEEK_LENGTH_DAYS = 7


def weekday_index(d: date) -> int:
    """Day index with Sunday = 0 (date.weekday() has Monday = 0)."""
    return (d.weekday() + 1) % 7


def day_name(d: date) -> str:
    return DAY_NAMES[weekday_index(d)]


def as_date(value) -> Optional[date]:
    """Stored dates come back as 'YYYY-MM-DD' strings (or None for unscheduled rows)."""
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as e:
        raise UnexpectedError(f"Invalid date stored in schedule: {value!r}", details=str(e)) from e


def detect_day_pattern(sessions: Sequence[dict]) -> List[int]:
    """
    Recurring class days of a cohort.
    Distinct `day` values of non-contest sessions, first-seen order, unknown
    names dropped. Falls back to Mon/Wed/Fri when nothing usable is found.
    """
    pattern = []
    for session in sessions:
        if session.get("session_type") == CONTEST:
            continue
        index = DAY_INDEX.get(session.get("day") or "")
        if index is not None and index not in pattern:
            pattern.append(index)

    if not pattern:
        logger.info("No day pattern detected, using default: Monday, Wednesday, Friday")
        return list(DEFAULT_DAY_PATTERN)
    return pattern


def find_next_day(from_date: date, target_days: Sequence[int]) -> date:
    """
    Nearest date strictly after from_date whose weekday index is in target_days.
    A full week is scanned, so any non-empty set of valid indices matches.
    """
    if not target_days:
        raise ValueError("target_days must not be empty")
    if any(not isinstance(d, int) or not 0 <= d <= 6 for d in target_days):
        raise ValueError(f"Invalid weekday indices: {list(target_days)}")

    candidate = from_date
    for _ in range(WEEK_LENGTH_DAYS):
        candidate += timedelta(days=1)
        if weekday_index(candidate) in target_days:
            return candidate

    raise ScheduleInvariantError(
        f"No day in {list(target_days)} within a week of {from_date.isoformat()}"
    )


def assign_week_numbers(dates: Sequence[date]) -> List[Tuple[int, int]]:
    """
    (week_number, session_number) for each date of an ascending date list.
    A week is a rolling 7-day window anchored at the first session in it.
    """
    numbers = []
    if not dates:
        return numbers

    week = 1
    position = 0
    week_start = dates[0]
    for d in dates:
        if (d - week_start).days >= WEEK_LENGTH_DAYS:
            week += 1
            position = 0
            week_start = d
        position += 1
        numbers.append((week, position))
    return numbers


def renumber_sessions(sessions: Sequence[dict]) -> List[Tuple[dict, int, int]]:
    """
    Recompute week/session numbers for date-sorted rows.
    Rows without a date are left out.
    Returns: list of (session, week_number, session_number)
    """
    dated = [s for s in sessions if as_date(s.get("date")) is not None]
    numbers = assign_week_numbers([as_date(s["date"]) for s in dated])
    return [(s, week, number) for s, (week, number) in zip(dated, numbers)]


@dataclass
class SessionUpdate:
    id: int
    date: date
    day: str

    def to_dict(self) -> dict:
        return {"id": self.id, "date": self.date.isoformat(), "day": self.day}


@dataclass
class ShiftPlan:
    """Everything computed for a shift before anything is written."""

    sessions: List[dict]  # original week/session order
    index: int  # position of the shifted session in `sessions`
    day_pattern: List[int]
    updates: List[SessionUpdate]

    @property
    def target(self) -> dict:
        return self.sessions[self.index]

    @property
    def day_pattern_names(self) -> List[str]:
        return [DAY_NAMES[i] for i in self.day_pattern]


@dataclass
class BatchResult:
    """Outcome of a run of independent writes. A failed id of None is a step-level failure."""

    succeeded: List[int] = field(default_factory=list)
    failed: List[Tuple[Optional[int], str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def error_messages(self) -> List[str]:
        return [
            f"Session {session_id}: {reason}" if session_id is not None else reason
            for session_id, reason in self.failed
        ]


def plan_shift(sessions: Sequence[dict], session_id: int, new_date: date, today: date) -> ShiftPlan:
    """
    Validate a shift and compute the new date/day of the target and every later session.

    Args:
        sessions: all rows of the table, ordered by week_number then session_number
        session_id: id of the session to move
        new_date: date to move it to
        today: current calendar day; new_date must be strictly after it
    Raises:
        NotFoundError, NoOpError, InvalidDateError
    """
    sessions = list(sessions)
    index = next((i for i, s in enumerate(sessions) if int(s["id"]) == session_id), -1)
    if index == -1:
        raise NotFoundError("Session not found")

    target = sessions[index]
    if as_date(target.get("date")) == new_date:
        raise NoOpError("New date is the same as current date. No changes needed.")
    if new_date <= today:
        raise InvalidDateError(
            "New date must be greater than today. Cannot shift to past or current date."
        )

    day_pattern = detect_day_pattern(sessions)
    logger.info(
        f"Shifting session {session_id} (week {target.get('week_number')}, "
        f"session {target.get('session_number')}) to {new_date.isoformat()}; "
        f"day pattern: {', '.join(DAY_NAMES[i] for i in day_pattern)}"
    )

    updates = [SessionUpdate(int(target["id"]), new_date, day_name(new_date))]
    current = new_date
    for session in sessions[index + 1:]:
        targets = WEEKDAYS if session.get("session_type") == CONTEST else day_pattern
        current = find_next_day(current, targets)
        updates.append(SessionUpdate(int(session["id"]), current, day_name(current)))
        logger.debug(
            f"  Session {session.get('week_number')}-{session.get('session_number')}: "
            f"{session.get('date')} -> {current.isoformat()} ({day_name(current)})"
        )

    return ShiftPlan(sessions=sessions, index=index, day_pattern=day_pattern, updates=updates)


def build_preview(plan: ShiftPlan) -> dict:
    """
    Old vs new date/day/week/session for the shifted session and everything after it.
    Renumbering runs over the whole table (untouched earlier rows included) so the
    new numbers are the ones an apply would produce.
    """
    new_dates: Dict[int, SessionUpdate] = {u.id: u for u in plan.updates}

    rows = []
    for position, session in enumerate(plan.sessions):
        update = new_dates.get(int(session["id"]))
        if update is not None:
            rows.append((position, session, update.date, update.day))
        else:
            rows.append((position, session, as_date(session.get("date")), session.get("day")))

    # stable sort keeps week/session order for same-day sessions
    rows = sorted((r for r in rows if r[2] is not None), key=lambda r: r[2])
    numbers = assign_week_numbers([r[2] for r in rows])

    preview = []
    for (position, session, new_date, new_day), (week, number) in zip(rows, numbers):
        if position < plan.index:
            continue
        preview.append({
            "id": session["id"],
            "oldWeek": session.get("week_number"),
            "oldSession": session.get("session_number"),
            "newWeek": week,
            "newSession": number,
            "session_type": session.get("session_type"),
            "subject_name": session.get("subject_name"),
            "oldDate": session.get("date"),
            "oldDay": session.get("day"),
            "newDate": new_date.isoformat(),
            "newDay": new_day,
        })

    target = plan.target
    return {
        "success": True,
        "shiftedSession": {
            "id": target["id"],
            "week_number": target.get("week_number"),
            "session_number": target.get("session_number"),
        },
        "affectedCount": len(preview),
        # names of the pattern in use (default Mon/Wed/Fri included), not the raw stored day values
        "dayPattern": plan.day_pattern_names,
        "preview": preview,
    }


@dataclass
class ShiftResult:
    plan: ShiftPlan
    dates: BatchResult
    renumbering: BatchResult

    @property
    def ok(self) -> bool:
        return self.dates.ok and self.renumbering.ok

    def to_response(self) -> Tuple[int, dict]:
        """(http status, body) for the apply endpoint."""
        errors = self.dates.error_messages() + self.renumbering.error_messages()
        if errors:
            return 207, {
                "success": False,
                "message": f"Partially updated. {len(self.dates.succeeded)} succeeded, "
                           f"{len(errors)} failed.",
                "updatedCount": len(self.dates.succeeded),
                "errors": errors,
            }
        updates = self.plan.updates
        return 200, {
            "success": True,
            "message": f"Successfully shifted class and rescheduled {len(updates) - 1} "
                       f"subsequent classes",
            "updatedCount": len(updates),
            "updates": [u.to_dict() for u in updates],
        }


def fetch_sessions(store, table_name: str, order_by: str = "week_session") -> List[dict]:
    try:
        return store.fetch_sessions(table_name, order_by=order_by)
    except StoreError as e:
        logger.error(f"Error fetching sessions from {table_name}: {e}")
        raise UnexpectedError("Failed to fetch sessions", details=str(e)) from e


def persist_updates(store, table_name: str, updates: Sequence[SessionUpdate]) -> BatchResult:
    """Write each date/day change on its own; a failure never stops the rest."""
    result = BatchResult()
    for update in updates:
        try:
            store.update_session(
                table_name, update.id, {"date": update.date.isoformat(), "day": update.day}
            )
        except StoreError as e:
            logger.error(f"Failed to update session {update.id}: {e}")
            result.failed.append((update.id, str(e)))
        else:
            result.succeeded.append(update.id)
    return result


def renumber_table(store, table_name: str) -> BatchResult:
    """
    Re-read the whole table by date and rewrite week/session numbers that changed.
    """
    result = BatchResult()
    try:
        sessions = store.fetch_sessions(table_name, order_by="date")
    except StoreError as e:
        logger.error(f"Could not re-fetch {table_name} for renumbering: {e}")
        result.failed.append((None, f"Week/session renumbering skipped: {e}"))
        return result

    for session, week, number in renumber_sessions(sessions):
        if session.get("week_number") == week and session.get("session_number") == number:
            continue
        logger.info(
            f"  ID {session['id']}: W{session.get('week_number')}-S{session.get('session_number')}"
            f" -> W{week}-S{number}"
        )
        try:
            store.update_session(
                table_name, session["id"], {"week_number": week, "session_number": number}
            )
        except StoreError as e:
            logger.error(f"Failed to renumber session {session['id']}: {e}")
            result.failed.append((session["id"], f"renumbering failed: {e}"))
        else:
            result.succeeded.append(session["id"])
    return result


def preview_shift(store, table_name: str, session_id: int, new_date: date, today: date) -> dict:
    """Compute a shift without writing anything. Returns the preview response body."""
    sessions = fetch_sessions(store, table_name)
    plan = plan_shift(sessions, session_id, new_date, today)
    return build_preview(plan)


def shift_class(store, table_name: str, session_id: int, new_date: date, today: date) -> ShiftResult:
    """
    Move a session and cascade the reschedule, then renumber the whole table.
    Writes are independent; failures are collected in the result, nothing is rolled back.
    """
    logger.info(f"=== SHIFT CLASS STARTED === table={table_name} session={session_id}")
    sessions = fetch_sessions(store, table_name)
    logger.info(f"Found {len(sessions)} total sessions")

    plan = plan_shift(sessions, session_id, new_date, today)
    logger.info(f"Total sessions to update: {len(plan.updates)}")

    dates = persist_updates(store, table_name, plan.updates)
    renumbering = renumber_table(store, table_name)

    logger.info(
        f"=== SHIFT CLASS COMPLETED === {len(dates.succeeded)} updated, "
        f"{len(dates.failed) + len(renumbering.failed)} failed"
    )
    return ShiftResult(plan=plan, dates=dates, renumbering=renumbering)
