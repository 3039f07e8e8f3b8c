"""Centralized constants for the Itsunani core."""

# Credential vault keys
PROVIDER_TOKEN_KEY = 'google_provider_token'
PROVIDER_REFRESH_TOKEN_KEY = 'google_provider_refresh_token'

# Remote API paths
EXTRACT_EVENT_PATH = '/api/extract-event'
SAVE_TO_CALENDAR_PATH = '/api/save-to-calendar'
DEBUG_USER_PATH = '/api/debug-user'

# Identity provider
OAUTH_PROVIDER = 'google'
PROFILES_TABLE = 'profiles'
QUOTA_COLUMN = 'trial_events_remaining'

# Redirect fragment parameters
ACCESS_TOKEN_PARAM = 'access_token'
REFRESH_TOKEN_PARAM = 'refresh_token'
PROVIDER_TOKEN_PARAM = 'provider_token'
PROVIDER_REFRESH_TOKEN_PARAM = 'provider_refresh_token'

# Default Values
DEFAULT_API_URL = 'http://localhost:3000'
REDIRECT_CALLBACK_PATH = '/auth/callback'
DEFAULT_CALLBACK_PORT = 9878
DEFAULT_HTTP_TIMEOUT = 30.0

# Browser auth session outcomes
BROWSER_SUCCESS = 'success'
BROWSER_CANCEL = 'cancel'
BROWSER_DISMISS = 'dismiss'
