# testing/test_rescheduling.py
"""
Tests for the reschedule engine: day pattern detection, next-day projection,
cascading shifts and the preview shape.
"""

import os
import pytest
from datetime import date

os.environ.setdefault("APP_TIMEZONE", "Asia/Kolkata")

from src.api.errors import InvalidDateError, NoOpError, NotFoundError, ValidationError
from src.api.rescheduler import (
    DAY_NAMES,
    WEEKDAYS,
    build_preview,
    day_name,
    detect_day_pattern,
    find_next_day,
    plan_shift,
    weekday_index,
)
from testing.mock_data import MOCK_TODAY, generate_mock_sessions


# ----------------------
# day pattern
# ----------------------
def test_day_pattern_from_regular_sessions():
    sessions = generate_mock_sessions(days=("Monday", "Wednesday"))
    assert detect_day_pattern(sessions) == [1, 3]


def test_day_pattern_keeps_first_seen_order():
    sessions = [
        {"id": 1, "day": "Wednesday", "session_type": "lecture"},
        {"id": 2, "day": "Monday", "session_type": "lecture"},
        {"id": 3, "day": "Wednesday", "session_type": "lecture"},
    ]
    assert detect_day_pattern(sessions) == [3, 1]


def test_day_pattern_ignores_contests():
    sessions = generate_mock_sessions(days=("Monday", "Wednesday"), contest_day="Saturday")
    assert detect_day_pattern(sessions) == [1, 3]


def test_day_pattern_drops_unknown_day_names():
    sessions = [
        {"id": 1, "day": "Funday", "session_type": "lecture"},
        {"id": 2, "day": "Tuesday", "session_type": "lecture"},
        {"id": 3, "day": None, "session_type": "lecture"},
    ]
    assert detect_day_pattern(sessions) == [2]


def test_day_pattern_falls_back_to_mon_wed_fri():
    only_contests = [{"id": 1, "day": "Saturday", "session_type": "contest"}]
    assert detect_day_pattern(only_contests) == [1, 3, 5]
    assert detect_day_pattern([{"id": 1, "day": "Someday", "session_type": "lecture"}]) == [1, 3, 5]
    assert detect_day_pattern([]) == [1, 3, 5]


# ----------------------
# next day projection
# ----------------------
def test_weekday_index_starts_on_sunday():
    assert weekday_index(date(2030, 1, 13)) == 0  # Sunday
    assert weekday_index(date(2030, 1, 14)) == 1  # Monday
    assert day_name(date(2030, 1, 18)) == "Friday"


def test_tuesday_shift_projects_to_following_wednesday():
    """Pattern Mon/Wed, session moved to a Tuesday -> next one lands on Wednesday."""
    assert find_next_day(date(2030, 1, 15), [1, 3]) == date(2030, 1, 16)


def test_next_day_is_strictly_after_start():
    # Monday with a Monday-only pattern jumps a full week
    assert find_next_day(date(2030, 1, 7), [1]) == date(2030, 1, 14)


def test_next_day_handles_sunday_index():
    assert find_next_day(date(2030, 1, 12), [0]) == date(2030, 1, 13)


def test_next_weekday_from_friday_is_monday():
    assert find_next_day(date(2030, 1, 18), WEEKDAYS) == date(2030, 1, 21)


def test_next_day_rejects_empty_or_invalid_sets():
    with pytest.raises(ValueError):
        find_next_day(date(2030, 1, 7), [])
    with pytest.raises(ValueError):
        find_next_day(date(2030, 1, 7), [7])


# ----------------------
# validation
# ----------------------
def test_unknown_session_is_not_found():
    with pytest.raises(NotFoundError):
        plan_shift(generate_mock_sessions(), 999, date(2030, 1, 15), MOCK_TODAY)


def test_same_date_is_rejected():
    sessions = generate_mock_sessions()
    with pytest.raises(NoOpError) as exc:
        plan_shift(sessions, 3, date(2030, 1, 14), MOCK_TODAY)
    assert isinstance(exc.value, ValidationError)
    assert exc.value.status_code == 400


def test_today_and_past_dates_are_rejected():
    sessions = generate_mock_sessions()
    with pytest.raises(InvalidDateError):
        plan_shift(sessions, 3, MOCK_TODAY, MOCK_TODAY)
    with pytest.raises(InvalidDateError):
        plan_shift(sessions, 3, date(2029, 11, 1), MOCK_TODAY)


# ----------------------
# cascade
# ----------------------
def test_shift_cascades_to_following_sessions():
    sessions = generate_mock_sessions()
    plan = plan_shift(sessions, 3, date(2030, 1, 15), MOCK_TODAY)

    updates = [u.to_dict() for u in plan.updates]
    assert updates == [
        {"id": 3, "date": "2030-01-15", "day": "Tuesday"},
        {"id": 4, "date": "2030-01-16", "day": "Wednesday"},
        {"id": 5, "date": "2030-01-21", "day": "Monday"},
        {"id": 6, "date": "2030-01-23", "day": "Wednesday"},
    ]
    assert plan.day_pattern == [1, 3]


def test_sessions_before_target_are_untouched():
    sessions = generate_mock_sessions()
    plan = plan_shift(sessions, 3, date(2030, 1, 15), MOCK_TODAY)
    assert {u.id for u in plan.updates}.isdisjoint({1, 2})


def test_following_dates_increase_and_follow_pattern():
    sessions = generate_mock_sessions(weeks=6)
    plan = plan_shift(sessions, 4, date(2030, 1, 18), MOCK_TODAY)

    assert plan.updates[0].day == DAY_NAMES[weekday_index(date(2030, 1, 18))]
    following = plan.updates[1:]
    for previous, current in zip(plan.updates, following):
        assert current.date > previous.date
    for update in following:
        assert weekday_index(update.date) in plan.day_pattern
        assert day_name(update.date) == update.day


def test_contests_land_on_next_weekday():
    # Mon/Wed lectures with a Saturday contest each week
    sessions = generate_mock_sessions(contest_day="Saturday")
    # move Wednesday 2030-01-09 (id 2) to Thursday; the contest (id 3) follows on Friday
    plan = plan_shift(sessions, 2, date(2030, 1, 10), MOCK_TODAY)

    by_id = {u.id: u for u in plan.updates}
    assert by_id[3].date == date(2030, 1, 11)
    assert by_id[3].day == "Friday"
    assert by_id[4].date == date(2030, 1, 14)
    for update in plan.updates[1:]:
        assert weekday_index(update.date) in WEEKDAYS


def test_subsequent_order_follows_week_session_not_dates():
    """Session 2 is dated after session 3 in storage; order still comes from week/session."""
    sessions = generate_mock_sessions()
    sessions[1]["date"] = "2030-01-20"
    plan = plan_shift(sessions, 2, date(2030, 1, 10), MOCK_TODAY)
    assert [u.id for u in plan.updates] == [2, 3, 4, 5, 6]


# ----------------------
# preview
# ----------------------
def test_preview_renumbers_with_rolling_weeks():
    sessions = generate_mock_sessions()
    preview = build_preview(plan_shift(sessions, 3, date(2030, 1, 15), MOCK_TODAY))

    assert preview["success"] is True
    assert preview["shiftedSession"] == {"id": 3, "week_number": 2, "session_number": 1}
    assert preview["dayPattern"] == ["Monday", "Wednesday"]
    assert preview["affectedCount"] == 4

    rows = {row["id"]: row for row in preview["preview"]}
    assert set(rows) == {3, 4, 5, 6}
    assert (rows[3]["newWeek"], rows[3]["newSession"]) == (2, 1)
    assert (rows[4]["newWeek"], rows[4]["newSession"]) == (2, 2)
    # 2030-01-21 is 6 days after the week-2 anchor (2030-01-15)
    assert (rows[5]["oldWeek"], rows[5]["oldSession"]) == (3, 1)
    assert (rows[5]["newWeek"], rows[5]["newSession"]) == (2, 3)
    assert (rows[6]["newWeek"], rows[6]["newSession"]) == (3, 1)
    assert rows[3]["oldDate"] == "2030-01-14"
    assert rows[3]["oldDay"] == "Monday"
    assert rows[3]["newDate"] == "2030-01-15"
    assert rows[3]["newDay"] == "Tuesday"
    assert rows[3]["subject_name"] == "Topic 3"
    assert rows[3]["session_type"] == "lecture"


def test_preview_of_last_session_only_lists_it():
    sessions = generate_mock_sessions()
    preview = build_preview(plan_shift(sessions, 6, date(2030, 1, 24), MOCK_TODAY))
    assert [row["id"] for row in preview["preview"]] == [6]
    assert preview["preview"][0]["newDay"] == "Thursday"


def test_preview_reports_default_pattern_names():
    sessions = generate_mock_sessions()
    for session in sessions:
        session["day"] = "unknown"
    preview = build_preview(plan_shift(sessions, 1, date(2030, 1, 8), MOCK_TODAY))
    assert preview["dayPattern"] == ["Monday", "Wednesday", "Friday"]
