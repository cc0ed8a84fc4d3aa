import dataclasses, logging, os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from hardcoded_config import METADATA_HARDCODED_CONFIG
from routers_v2 import metadata
from routers_v2.common_logging_functions_v2 import MiddlewareLogger
from routers_v2.common_metadata_functions_v2 import get_ambiguity_policy

# Load environment variables from a local .env file if present
load_dotenv()

# Global initialization errors array
initialization_errors = []

@dataclass
class Config:
  SHAREPOINT_SITE_URL: Optional[str]
  SHAREPOINT_CLIENT_ID: Optional[str]
  SHAREPOINT_TENANT_ID: Optional[str]
  SHAREPOINT_CLIENT_CERTIFICATE_PFX_FILE: Optional[str]
  SHAREPOINT_CLIENT_CERTIFICATE_PASSWORD: Optional[str]
  SHAREPOINT_USERNAME: Optional[str]
  SHAREPOINT_PASSWORD: Optional[str]
  LOCAL_PERSISTENT_STORAGE_PATH: Optional[str]
  METADATA_AMBIGUITY_POLICY: str


def load_config() -> Config:
  """Load configuration from environment variables."""

  return Config(
    SHAREPOINT_SITE_URL=os.getenv('SHAREPOINT_SITE_URL')
    ,SHAREPOINT_CLIENT_ID=os.getenv('SHAREPOINT_CLIENT_ID')
    ,SHAREPOINT_TENANT_ID=os.getenv('SHAREPOINT_TENANT_ID')
    ,SHAREPOINT_CLIENT_CERTIFICATE_PFX_FILE=os.getenv('SHAREPOINT_CLIENT_CERTIFICATE_PFX_FILE')
    ,SHAREPOINT_CLIENT_CERTIFICATE_PASSWORD=os.getenv('SHAREPOINT_CLIENT_CERTIFICATE_PASSWORD')
    ,SHAREPOINT_USERNAME=os.getenv('SHAREPOINT_USERNAME')
    ,SHAREPOINT_PASSWORD=os.getenv('SHAREPOINT_PASSWORD')
    ,LOCAL_PERSISTENT_STORAGE_PATH=os.getenv('LOCAL_PERSISTENT_STORAGE_PATH')
    ,METADATA_AMBIGUITY_POLICY=os.getenv('METADATA_AMBIGUITY_POLICY', METADATA_HARDCODED_CONFIG.DEFAULT_AMBIGUITY_POLICY).lower()
  )

def configure_logging():
  """Configure logging to suppress verbose authentication and HTTP logs."""
  logging.getLogger('msal').setLevel(logging.WARNING)
  logging.getLogger('office365').setLevel(logging.WARNING)
  logging.getLogger('urllib3').setLevel(logging.WARNING)
  logging.getLogger('requests').setLevel(logging.WARNING)
  logging.getLogger('httpx').setLevel(logging.WARNING)
  logging.getLogger('httpcore').setLevel(logging.WARNING)

def format_config_for_displaying(config_obj) -> Dict[str, Any]:
  """Mask secrets. Unset values are shown as not configured."""
  result = {}
  for field in dataclasses.fields(config_obj):
    value = getattr(config_obj, field.name)
    if field.name.endswith("_PASSWORD") or field.name.endswith("_SECRET"): result[field.name] = "[CONFIGURED]" if value else "[NOT CONFIGURED]"
    elif value is None: result[field.name] = "[NOT CONFIGURED]"
    else: result[field.name] = str(value)
  return result

def verify_config(config: Config) -> list[dict]:
  """Check the configuration and return a list of {component, error} for everything that is missing or invalid."""
  errors = []
  if not config.SHAREPOINT_SITE_URL:
    errors.append({"component": "SharePoint", "error": "SHAREPOINT_SITE_URL not configured"})
  elif not config.SHAREPOINT_SITE_URL.startswith("https://"):
    errors.append({"component": "SharePoint", "error": "SHAREPOINT_SITE_URL must start with https://"})

  if config.SHAREPOINT_CLIENT_CERTIFICATE_PFX_FILE:
    cert_path = os.path.join(config.LOCAL_PERSISTENT_STORAGE_PATH or '', config.SHAREPOINT_CLIENT_CERTIFICATE_PFX_FILE)
    if not os.path.exists(cert_path): errors.append({"component": "SharePoint", "error": f"Certificate not found: {cert_path}"})
    if not config.SHAREPOINT_CLIENT_ID or not config.SHAREPOINT_TENANT_ID:
      errors.append({"component": "SharePoint", "error": "SHAREPOINT_CLIENT_ID and SHAREPOINT_TENANT_ID are required for certificate authentication"})
  elif not (config.SHAREPOINT_USERNAME and config.SHAREPOINT_PASSWORD):
    errors.append({"component": "SharePoint", "error": "No credentials configured (certificate or username/password)"})
  elif not config.SHAREPOINT_CLIENT_ID or not config.SHAREPOINT_TENANT_ID:
    errors.append({"component": "SharePoint", "error": "SHAREPOINT_CLIENT_ID and SHAREPOINT_TENANT_ID are required for username/password authentication"})

  try:
    get_ambiguity_policy(config.METADATA_AMBIGUITY_POLICY)
  except ValueError:
    errors.append({"component": "Metadata", "error": f"METADATA_AMBIGUITY_POLICY '{config.METADATA_AMBIGUITY_POLICY}' not supported. Use: strict, legacy"})
  return errors

def create_app(config: Optional[Config] = None, store_factory=None) -> FastAPI:
  """Create and configure the FastAPI application. `store_factory(config)` overrides how the document store is created."""
  logger = MiddlewareLogger.create()
  logger.log_function_header("create_app")
  # Configure logging first to ensure all initialization logs are properly formatted
  configure_logging()
  if config is None:
    config = load_config()
    logger.log_function_output("Configuration loaded")
  app = FastAPI(title="SharePoint-Metadata-Sync")
  app.state.config = config

  initialization_errors.clear()
  initialization_errors.extend(verify_config(config))

  router_prefix = METADATA_HARDCODED_CONFIG.ROUTER_PREFIX
  app.include_router(metadata.router, tags=["Metadata"], prefix=router_prefix)
  metadata.set_config(config, router_prefix, store_factory)
  logger.log_function_output(f"Metadata router included at '{router_prefix}/{metadata.router_name}'")

  @app.get("/alive", response_class=PlainTextResponse)
  async def health():
    """Health check endpoint for monitoring."""
    return PlainTextResponse(content="alive", status_code=200)

  @app.get("/favicon.ico")
  async def favicon(): return Response(status_code=204)

  @app.get("/")
  async def root():
    return JSONResponse({"config": format_config_for_displaying(app.state.config), "initialization_errors": initialization_errors})

  if initialization_errors:
    logger.log_function_output(f"App initialization completed with {len(initialization_errors)} initialization error(s):")
    for error in initialization_errors:
      logger.log_function_output(f"  - {error['component']}: {error['error']}")
  else:
    logger.log_function_output("App initialization completed successfully with no errors")
  logger.log_function_footer()
  return app

# Initialize the FastAPI application (run with: uvicorn app:app)
app = create_app()
