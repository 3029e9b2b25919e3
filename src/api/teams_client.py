# src/api/teams_client.py
#
#   creates Teams online meetings through Microsoft Graph
#   app-only auth (client credentials flow), meetings organised by one configured user

import logging
from typing import Optional

import httpx
import pytz

from config import settings
from src.api.errors import UnexpectedError, ValidationError
from src.api.retry import retry_with_backoff
from src.timezone_utils import parse_iso_with_tz

logger = logging.getLogger(__name__)

GRAPH_SCOPE = "https://graph.microsoft.com/.default"


class MeetingError(UnexpectedError):
    """Graph rejected a request or the meeting integration is not configured."""


def to_graph_datetime(value: str, time_zone: str, field_name: str) -> str:
    """
    ISO datetime with an explicit offset, as Graph expects.
    Values without an offset are read as local time in time_zone.
    """
    try:
        return parse_iso_with_tz(value, time_zone).isoformat()
    except pytz.UnknownTimeZoneError:
        raise ValidationError(f"Unknown timeZone: {time_zone}")
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {field_name}: {value}")


class TeamsMeetingClient:
    """
    Thin Graph client for onlineMeetings.

    Args:
        tenant_id, client_id, client_secret: app registration credentials
        organizer_user_id (str): user id or UPN the meetings are created for
        client (httpx.AsyncClient): optional pre-built client (tests pass a MockTransport)
        retry_delay (float): initial backoff for token request retries
    """

    def __init__(self, tenant_id: str, client_id: str, client_secret: str,
                 organizer_user_id: str, auth_url: str = settings.MS_GRAPH_AUTH_URL,
                 api_url: str = settings.MS_GRAPH_API_URL,
                 client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0,
                 retry_delay: float = 1.0):
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.organizer_user_id = organizer_user_id
        self.auth_url = auth_url.rstrip("/")
        self.api_url = api_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.retry_delay = retry_delay

    async def get_access_token(self) -> str:
        """Client-credentials token. Network errors are retried; HTTP errors are not."""
        token_url = f"{self.auth_url}/{self.tenant_id}/oauth2/v2.0/token"
        form = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scope": GRAPH_SCOPE,
            "grant_type": "client_credentials",
        }

        async def request_token():
            return await self.client.post(token_url, data=form)

        try:
            response = await retry_with_backoff(
                request_token,
                initial_delay=self.retry_delay,
                exceptions=(httpx.TransportError,),
            )
        except httpx.TransportError as e:
            raise MeetingError(f"Failed to get access token: {e}") from e
        if response.is_error:
            raise MeetingError(f"Failed to get access token: {response.text}")
        return response.json()["access_token"]

    async def create_online_meeting(self, subject: str, start_date_time: str,
                                    end_date_time: str, time_zone: str = None) -> dict:
        """
        Create a meeting anyone can join without waiting in the lobby.
        Returns: {"joinUrl": str, "meetingId": str}
        """
        time_zone = time_zone or settings.DEFAULT_MEETING_TIMEZONE
        start = to_graph_datetime(start_date_time, time_zone, "startDateTime")
        end = to_graph_datetime(end_date_time, time_zone, "endDateTime")
        if parse_iso_with_tz(end) <= parse_iso_with_tz(start):
            raise ValidationError("endDateTime must be after startDateTime")

        access_token = await self.get_access_token()
        body = {
            "startDateTime": start,
            "endDateTime": end,
            "subject": subject,
            "lobbyBypassSettings": {
                "scope": "everyone",
                "isDialInBypassEnabled": True,
            },
            "allowedPresenters": "everyone",
        }
        url = f"{self.api_url}/users/{self.organizer_user_id}/onlineMeetings"
        try:
            response = await self.client.post(
                url, json=body, headers={"Authorization": f"Bearer {access_token}"}
            )
        except httpx.HTTPError as e:
            raise MeetingError(f"Failed to create meeting: {e}") from e
        if response.is_error:
            raise MeetingError(f"Failed to create meeting: {response.text}")

        data = response.json()
        logger.info(f"Created Teams meeting {data.get('id')} '{subject}' at {start}")
        return {"joinUrl": data.get("joinWebUrl"), "meetingId": data.get("id")}

    async def aclose(self):
        await self.client.aclose()


def build_teams_client(**kwargs) -> TeamsMeetingClient:
    """Client configured from environment settings."""
    if not (settings.MS_TENANT_ID and settings.MS_CLIENT_ID and settings.MS_CLIENT_SECRET):
        raise MeetingError("Missing Microsoft credentials in environment variables")
    if not settings.MS_ORGANIZER_USER_ID:
        raise MeetingError("MS_ORGANIZER_USER_ID not configured")
    return TeamsMeetingClient(
        settings.MS_TENANT_ID,
        settings.MS_CLIENT_ID,
        settings.MS_CLIENT_SECRET,
        settings.MS_ORGANIZER_USER_ID,
        timeout=settings.HTTP_TIMEOUT,
        **kwargs,
    )
