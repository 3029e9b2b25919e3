# config/settings.py
#
#   loading environment variables such as database and Graph credentials from .env

import os
from dotenv import load_dotenv

load_dotenv()  # loads .env into environment


# schedule storage ("supabase" for the hosted database, "sqlite" for local use)
SCHEDULE_STORE = os.getenv("SCHEDULE_STORE", "supabase").lower()
SUPABASE_URL = os.getenv("SUPABASE_URL_B")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY_B")
SCHEDULE_DB_PATH = os.getenv("SCHEDULE_DB_PATH", "cohort_schedules.db")

# curriculum templates live in "<cohort type><suffix>" tables
COHORT_TEMPLATE_SUFFIX = os.getenv("COHORT_TEMPLATE_SUFFIX", "_template")

# microsoft graph (online meetings)
MS_TENANT_ID = os.getenv("MS_TENANT_ID")
MS_CLIENT_ID = os.getenv("MS_CLIENT_ID")
MS_CLIENT_SECRET = os.getenv("MS_CLIENT_SECRET")
MS_ORGANIZER_USER_ID = os.getenv("MS_ORGANIZER_USER_ID")
MS_GRAPH_AUTH_URL = os.getenv("MS_GRAPH_AUTH_URL", "https://login.microsoftonline.com")
MS_GRAPH_API_URL = os.getenv("MS_GRAPH_API_URL", "https://graph.microsoft.com/v1.0")
DEFAULT_MEETING_TIMEZONE = os.getenv("DEFAULT_MEETING_TIMEZONE", "Asia/Kolkata")

# outbound http timeout in seconds
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "10"))


def require_supabase_settings():
    """Return (url, key) for the hosted schedule database or fail loudly."""
    # checks
    if not SUPABASE_URL:
        raise RuntimeError("SUPABASE_URL_B is required!")
    if not SUPABASE_SERVICE_ROLE_KEY:
        raise RuntimeError("SUPABASE_SERVICE_ROLE_KEY_B is required!")
    return SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY
