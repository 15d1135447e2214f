from decouple import config

# Provisioning endpoint protection (also used to authenticate with Doubleclicker)
PROVISION_SECRET = config("PROVISION_SECRET", default="")

# Supabase configuration
NEXT_PUBLIC_SUPABASE_URL = config("NEXT_PUBLIC_SUPABASE_URL", default="")
NEXT_PUBLIC_SUPABASE_ANON_KEY = config("NEXT_PUBLIC_SUPABASE_ANON_KEY", default="")
SUPABASE_SERVICE_ROLE_KEY = config("SUPABASE_SERVICE_ROLE_KEY", default="")

# Doubleclicker content pipeline
DOUBLECLICKER_API_URL = config("DOUBLECLICKER_API_URL", default="")

# Fly.io configuration
FLY_API_TOKEN = config("FLY_API_TOKEN", default="")
FLY_ORG_SLUG = config("FLY_ORG_SLUG", default="personal")
# Existing app whose machine image every tenant site is cloned from
FLY_BASE_APP = config("FLY_BASE_APP", default="doubledoubleclickclick")

# Resend email configuration
RESEND_API_KEY = config("RESEND_API_KEY", default="")
RESEND_FROM_EMAIL = config("RESEND_FROM_EMAIL", default="noreply@doubleclicker.app")

# Google configuration - service account JSON is the full key file contents
GOOGLE_SERVICE_ACCOUNT_JSON = config("GOOGLE_SERVICE_ACCOUNT_JSON", default="")
GOOGLE_CLOUD_PROJECT = config("GOOGLE_CLOUD_PROJECT", default="")
GOOGLE_ANALYTICS_ACCOUNT_ID = config("GOOGLE_ANALYTICS_ACCOUNT_ID", default="")
GOOGLE_TAG_MANAGER_ACCOUNT_ID = config("GOOGLE_TAG_MANAGER_ACCOUNT_ID", default="")
# API key (not service account) used only for domain suggestion searches
GOOGLE_DOMAINS_API_KEY = config("GOOGLE_DOMAINS_API_KEY", default="")

LOG_LEVEL = config("LOG_LEVEL", default="INFO")
