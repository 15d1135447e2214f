from .supabase_client import SupabaseClient
from .fly_client import FlyClient
from .google_client import GoogleClient, is_google_configured
from .doubleclicker_client import DoubleclickerClient
from .resend_client import ResendClient

__all__ = [
    "SupabaseClient",
    "FlyClient",
    "GoogleClient",
    "is_google_configured",
    "DoubleclickerClient",
    "ResendClient",
]
