from logging import WARNING


# Path appended to the endpoint base URL for every event
INGEST_PATH = '/api/v2/logs/ingest'

# Scheme used in the `Authorization` header, followed by the API token
AUTH_SCHEME = 'Api-Token'

CONTENT_TYPE = 'application/json; charset=utf-8'

# Bound (in seconds) on a single delivery attempt
DEFAULT_TIMEOUT = 5.0

# Level for third-party loggers (httpx, httpcore, uvicorn)
DEFAULT_QUIET_LEVEL = WARNING

# Identity defaults, used when the environment has nothing better
DEFAULT_SERVICE_NAME = 'unknown-service'
DEFAULT_SERVICE_NAMESPACE = 'azure-appservice'
DEFAULT_CLOUD_PLATFORM = 'azure_app_service'
DEFAULT_ENVIRONMENT = 'production'

DEFAULT_SEVERITY = 'INFO'

# Environment variables, in order of preference
ENDPOINT_ENV_VARS = ('KIROKU_ENDPOINT', 'DT_ENDPOINT')
API_TOKEN_ENV_VARS = ('KIROKU_API_TOKEN', 'DT_API_TOKEN')
# App Service sets `WEBSITE_SITE_NAME` for us
SERVICE_NAME_ENV_VARS = ('KIROKU_SERVICE_NAME', 'WEBSITE_SITE_NAME')
ENV_ENV_VARS = ('KIROKU_ENV', 'ASPNETCORE_ENVIRONMENT')
CA_BUNDLE_ENV_VARS = ('KIROKU_CA_BUNDLE', 'SSL_CERT_FILE')
