import json
import logging
from datetime import date

from fastapi import Depends, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from src import timezone_utils
from src.logging_config import setup_logging
from src.api.errors import InvalidDateError, ScheduleError, ValidationError
from src.api.rescheduler import preview_shift, shift_class
from src.api.cohort_initiator import create_cohort
from src.api.schedule_client import build_schedule_store
from src.api.teams_client import build_teams_client
from src.db import is_valid_table_name

setup_logging()
logger = logging.getLogger(__name__)

# -------------------
# CONFIG / GLOBALS
# -------------------
app = FastAPI(title="Cohort Schedule Service")


def get_schedule_store():
    """One store per request, closed when the request is done."""
    store = build_schedule_store()
    try:
        yield store
    finally:
        store.close()


def get_teams_client_factory():
    return build_teams_client


@app.exception_handler(ScheduleError)
async def schedule_error_handler(request: Request, exc: ScheduleError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message} {exc.details or ''}")
    return JSONResponse(exc.to_body(), status_code=exc.status_code)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"{request.method} {request.url.path} failed unexpectedly")
    return JSONResponse({"error": "Internal server error", "details": str(exc)}, status_code=500)


async def read_json(request: Request) -> dict:
    try:
        data = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Empty or invalid payload")
    if not isinstance(data, dict):
        raise ValidationError("Empty or invalid payload")
    return data


def parse_session_id(value) -> int:
    """Whole numbers only: 3, "3" or 3.0. 3.7, "3.7", "abc" and booleans are rejected."""
    if isinstance(value, bool):
        raise ValidationError(f"Invalid sessionId: {value}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValidationError(f"Invalid sessionId: {value}")


def parse_shift_params(table_name, session_id, new_date):
    """
    Validate tableName/sessionId/newDate from a body or query string.
    Returns: (table_name, session_id as int, new_date as date)
    """
    if not table_name or session_id in (None, "") or not new_date:
        raise ValidationError("Missing required fields: tableName, sessionId, newDate")
    if not is_valid_table_name(table_name):
        raise ValidationError(f"Invalid table name: {table_name}")
    session_id = parse_session_id(session_id)
    try:
        new_date = date.fromisoformat(str(new_date))
    except ValueError:
        raise InvalidDateError(f"Invalid newDate: {new_date}. Expected YYYY-MM-DD")
    return table_name, session_id, new_date


# -------------------
# ENDPOINTS
# -------------------
@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/api/cohort/shift-class")
async def shift_class_endpoint(request: Request, store=Depends(get_schedule_store)):
    """
    Shift a class to a new date and reschedule every class after it.
    Payload: {"tableName": "basic2_0_schedule", "sessionId": 12, "newDate": "2026-11-04"}
    200 when every write succeeded, 207 with itemized errors otherwise.
    """
    data = await read_json(request)
    table_name, session_id, new_date = parse_shift_params(
        data.get("tableName"), data.get("sessionId"), data.get("newDate")
    )
    result = await run_in_threadpool(
        shift_class, store, table_name, session_id, new_date, timezone_utils.today()
    )
    status_code, body = result.to_response()
    return JSONResponse(body, status_code=status_code)


@app.get("/api/cohort/shift-class")
async def preview_shift_endpoint(tableName: str = None, sessionId: str = None,
                                 newDate: str = None, store=Depends(get_schedule_store)):
    """Preview a shift without applying it."""
    table_name, session_id, new_date = parse_shift_params(tableName, sessionId, newDate)
    body = await run_in_threadpool(
        preview_shift, store, table_name, session_id, new_date, timezone_utils.today()
    )
    return JSONResponse(body)


@app.post("/api/cohort/create")
async def create_cohort_endpoint(request: Request, store=Depends(get_schedule_store)):
    """
    Create a cohort schedule table.
    Payload: {"cohortType": "basic", "cohortNumber": "2.0", "day1": "Monday",
              "day2": "Thursday", "startDate": "2026-11-02"}
    """
    data = await read_json(request)
    body = await run_in_threadpool(create_cohort, store, data)
    return JSONResponse(body, status_code=201)


@app.post("/api/teams/create-meeting")
async def create_meeting_endpoint(request: Request,
                                  client_factory=Depends(get_teams_client_factory)):
    """
    Create a Teams online meeting.
    Payload: {"subject": "...", "startDateTime": ISO, "endDateTime": ISO, "timeZone": "Asia/Kolkata"}
    """
    data = await read_json(request)
    subject = data.get("subject")
    start = data.get("startDateTime")
    end = data.get("endDateTime")
    if not subject or not start or not end:
        raise ValidationError("Missing required fields: subject, startDateTime, endDateTime")

    client = client_factory()
    try:
        meeting = await client.create_online_meeting(subject, start, end, data.get("timeZone"))
    finally:
        await client.aclose()

    return JSONResponse({"success": True, **meeting})
