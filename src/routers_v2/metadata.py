# Metadata Router V2 - Libraries, columns and item metadata in a SharePoint site
# Endpoints: {router_prefix}/metadata, /libraries, /columns, /internal_name, /item_id, /apply, /lookup_items
# Uses common_metadata_functions_v2.py

import os, textwrap
from typing import Callable, Optional
from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

from routers_v2.common_ui_functions_v2 import generate_endpoint_docs, generate_router_docs, json_result
from routers_v2.common_logging_functions_v2 import MiddlewareLogger
from routers_v2.common_sharepoint_functions_v2 import SharePointDocumentStore, connect_to_site_using_client_id_and_certificate, connect_to_site_using_credentials
from routers_v2.common_metadata_functions_v2 import MetadataResult, MetadataResultKind, apply_lookup_metadata, apply_text_metadata, ensure_document_library, ensure_lookup_column, ensure_text_column, get_ambiguity_policy, get_item_id, get_lookup_list_items, resolve_internal_name

router = APIRouter()
config = None
router_prefix = None
router_name = "metadata"
store_factory: Optional[Callable] = None

status_codes_by_kind = {
  MetadataResultKind.SUCCESS: 200,
  MetadataResultKind.NOT_FOUND: 404,
  MetadataResultKind.AMBIGUOUS: 409,
  MetadataResultKind.STORE_FAILURE: 502,
}

def set_config(app_config, prefix, factory: Optional[Callable] = None):
  """`factory(config)` returns the document store used per request. Default: create_document_store()."""
  global config, router_prefix, store_factory
  config = app_config
  router_prefix = prefix
  store_factory = factory or create_document_store

def create_document_store(app_config) -> SharePointDocumentStore:
  """Connect with the client certificate if configured, else with username and password (both need client and tenant id). Raises ValueError otherwise."""
  site_url = getattr(app_config, 'SHAREPOINT_SITE_URL', None)
  if not site_url: raise ValueError("SHAREPOINT_SITE_URL not configured.")
  pfx_file = getattr(app_config, 'SHAREPOINT_CLIENT_CERTIFICATE_PFX_FILE', None)
  if pfx_file and app_config.SHAREPOINT_CLIENT_ID and app_config.SHAREPOINT_TENANT_ID:
    cert_path = os.path.join(app_config.LOCAL_PERSISTENT_STORAGE_PATH or '', pfx_file)
    ctx = connect_to_site_using_client_id_and_certificate(site_url, app_config.SHAREPOINT_CLIENT_ID, app_config.SHAREPOINT_TENANT_ID, cert_path, app_config.SHAREPOINT_CLIENT_CERTIFICATE_PASSWORD)
    return SharePointDocumentStore(ctx)
  if getattr(app_config, 'SHAREPOINT_USERNAME', None) and getattr(app_config, 'SHAREPOINT_PASSWORD', None):
    if not app_config.SHAREPOINT_CLIENT_ID or not app_config.SHAREPOINT_TENANT_ID: raise ValueError("SHAREPOINT_CLIENT_ID and SHAREPOINT_TENANT_ID are required for username/password authentication.")
    ctx = connect_to_site_using_credentials(site_url, app_config.SHAREPOINT_TENANT_ID, app_config.SHAREPOINT_CLIENT_ID, app_config.SHAREPOINT_USERNAME, app_config.SHAREPOINT_PASSWORD)
    return SharePointDocumentStore(ctx)
  raise ValueError("No SharePoint credentials configured. Set SHAREPOINT_CLIENT_CERTIFICATE_PFX_FILE or SHAREPOINT_USERNAME/SHAREPOINT_PASSWORD.")

def metadata_result_response(result: MetadataResult):
  return json_result(result.ok, "" if result.ok else result.message, result.to_dict(), status_codes_by_kind[result.kind])

async def get_request_body(request: Request) -> dict:
  """Read JSON or form body. Returns {} if the body can't be parsed."""
  content_type = request.headers.get("content-type", "")
  try:
    if "application/x-www-form-urlencoded" in content_type or "multipart/form-data" in content_type:
      form = await request.form()
      return dict(form)
    body = await request.json()
    return body if isinstance(body, dict) else {}
  except ValueError:
    return {}

def parse_int(value) -> Optional[int]:
  try:
    return int(value)
  except (TypeError, ValueError):
    return None

def docs_response(endpoint) -> PlainTextResponse:
  doc = textwrap.dedent(endpoint.__doc__).strip()
  return PlainTextResponse(generate_endpoint_docs(doc, router_prefix), media_type="text/plain; charset=utf-8")

def run_with_store(logger: MiddlewareLogger, action: Callable):
  """Create the store and run `action(store)`. Connection errors are returned as 502."""
  try:
    store = store_factory(config)
  except Exception as e:
    logger.log_function_error(f"Failed to connect to SharePoint -> {str(e)}")
    logger.log_function_footer()
    return json_result(False, f"Failed to connect to SharePoint: {str(e)}", {}, 502)
  result = action(store)
  logger.log_function_footer()
  return metadata_result_response(result)


# ----------------------------------------- START: Router Docs -------------------------------------------------------------

@router.get(f"/{router_name}")
async def metadata_root():
  return generate_router_docs(
    "Metadata",
    "Create document libraries and columns, find documents and apply text or lookup metadata to them.",
    router_prefix,
    [
      {"path": f"/{router_name}/libraries", "method": "POST", "desc": "Ensure document library exists"},
      {"path": f"/{router_name}/columns", "method": "POST", "desc": "Ensure text or lookup column exists"},
      {"path": f"/{router_name}/internal_name", "method": "GET", "desc": "Resolve column display name to internal name"},
      {"path": f"/{router_name}/item_id", "method": "GET", "desc": "Find item id of a document by file name"},
      {"path": f"/{router_name}/apply", "method": "POST", "desc": "Apply text or lookup value to an item"},
      {"path": f"/{router_name}/lookup_items", "method": "GET", "desc": "Get id -> Title of all items in a list"},
    ]
  )

# ----------------------------------------- END: Router Docs ---------------------------------------------------------------


# ----------------------------------------- START: Libraries and Columns ---------------------------------------------------

@router.get(f"/{router_name}/libraries")
async def metadata_libraries_docs():
  """
  Ensure a document library exists. Creates it (title = description = library_name) if missing.

  Method: POST

  Body (JSON or form data):
  - library_name: Name of the document library (required)

  Example:
  POST {router_prefix}/metadata/libraries
  {"library_name": "Contracts"}
  """
  return docs_response(metadata_libraries_docs)

@router.post(f"/{router_name}/libraries")
async def metadata_libraries(request: Request):
  logger = MiddlewareLogger.create()
  logger.log_function_header("metadata_libraries")
  body = await get_request_body(request)
  library_name = str(body.get("library_name", "")).strip()
  if not library_name:
    logger.log_function_footer()
    return json_result(False, "Missing 'library_name'.", {})
  return run_with_store(logger, lambda store: ensure_document_library(store, library_name, logger))

@router.get(f"/{router_name}/columns")
async def metadata_columns_docs():
  """
  Ensure a column exists in a document library. Columns are matched by display name; nothing is created if it exists.

  Method: POST

  Body (JSON or form data):
  - library_name: Name of the document library (required)
  - column_name: Display name of the column (required)
  - column_type: text (default) or lookup
  - lookup_list_name: List the lookup column points to (required for column_type=lookup)

  Example:
  POST {router_prefix}/metadata/columns
  {"library_name": "Contracts", "column_name": "Customer", "column_type": "lookup", "lookup_list_name": "Customers"}
  """
  return docs_response(metadata_columns_docs)

@router.post(f"/{router_name}/columns")
async def metadata_columns(request: Request):
  logger = MiddlewareLogger.create()
  logger.log_function_header("metadata_columns")
  body = await get_request_body(request)
  library_name = str(body.get("library_name", "")).strip()
  column_name = str(body.get("column_name") or "")
  column_type = str(body.get("column_type", "text")).strip().lower()
  lookup_list_name = str(body.get("lookup_list_name", "")).strip()

  error = ""
  if not library_name or not column_name.strip(): error = "Missing 'library_name' or 'column_name'."
  elif column_type not in ("text", "lookup"): error = f"Column type '{column_type}' not supported. Use: text, lookup"
  elif column_type == "lookup" and not lookup_list_name: error = "Missing 'lookup_list_name' for lookup column."
  if error:
    logger.log_function_footer()
    return json_result(False, error, {})

  if column_type == "lookup":
    return run_with_store(logger, lambda store: ensure_lookup_column(store, library_name, column_name, lookup_list_name, logger))
  return run_with_store(logger, lambda store: ensure_text_column(store, library_name, column_name, logger))

@router.get(f"/{router_name}/internal_name")
async def metadata_internal_name(request: Request):
  """
  Resolve the display name of a column to its internal name.

  Parameters:
  - library_name: Name of the document library (required)
  - column_name: Display name of the column (required)

  Example:
  GET {router_prefix}/metadata/internal_name?library_name=Contracts&column_name=Customer
  """
  if len(request.query_params) == 0: return docs_response(metadata_internal_name)
  logger = MiddlewareLogger.create()
  logger.log_function_header("metadata_internal_name")
  library_name = request.query_params.get("library_name", "").strip()
  column_name = request.query_params.get("column_name", "")
  if not library_name or not column_name.strip():
    logger.log_function_footer()
    return json_result(False, "Missing 'library_name' or 'column_name' parameter.", {})
  return run_with_store(logger, lambda store: resolve_internal_name(store, library_name, column_name, logger))

# ----------------------------------------- END: Libraries and Columns -----------------------------------------------------


# ----------------------------------------- START: Item Metadata -----------------------------------------------------------

@router.get(f"/{router_name}/item_id")
async def metadata_item_id(request: Request):
  """
  Find the item id of a document by file name.

  Parameters:
  - library_name: Name of the document library (required)
  - file_name: File name, e.g. 'contract.pdf' (required)
  - ambiguity_policy: strict (any count other than 1 fails) or legacy (1 or 2 matches return the last id). Default from config.

  Example:
  GET {router_prefix}/metadata/item_id?library_name=Contracts&file_name=contract.pdf
  """
  if len(request.query_params) == 0: return docs_response(metadata_item_id)
  logger = MiddlewareLogger.create()
  logger.log_function_header("metadata_item_id")
  library_name = request.query_params.get("library_name", "").strip()
  file_name = request.query_params.get("file_name", "").strip()
  if not library_name or not file_name:
    logger.log_function_footer()
    return json_result(False, "Missing 'library_name' or 'file_name' parameter.", {})
  try:
    policy = get_ambiguity_policy(request.query_params.get("ambiguity_policy") or getattr(config, 'METADATA_AMBIGUITY_POLICY', None))
  except ValueError as e:
    logger.log_function_footer()
    return json_result(False, f"Invalid ambiguity policy: {str(e)}. Use: strict, legacy", {})
  return run_with_store(logger, lambda store: get_item_id(store, library_name, file_name, logger, policy))

@router.get(f"/{router_name}/apply")
async def metadata_apply_docs():
  """
  Apply a value to a column of a document (item). The column is resolved by display name.

  Method: POST

  Body (JSON or form data):
  - library_name: Name of the document library (required)
  - column_name: Display name of the column (required)
  - item_id: Item id of the document (required, see {router_prefix}/metadata/item_id)
  - value: Text value (for text columns)
  - lookup_item_id: Item id in the lookup list (for lookup columns, see {router_prefix}/metadata/lookup_items)

  Example:
  POST {router_prefix}/metadata/apply
  {"library_name": "Contracts", "column_name": "Customer", "item_id": 12, "lookup_item_id": 3}
  """
  return docs_response(metadata_apply_docs)

@router.post(f"/{router_name}/apply")
async def metadata_apply(request: Request):
  logger = MiddlewareLogger.create()
  logger.log_function_header("metadata_apply")
  body = await get_request_body(request)
  library_name = str(body.get("library_name", "")).strip()
  column_name = str(body.get("column_name") or "")
  item_id = parse_int(body.get("item_id"))

  error = ""
  if not library_name or not column_name.strip(): error = "Missing 'library_name' or 'column_name'."
  elif item_id is None: error = "Missing or invalid 'item_id'."
  elif "lookup_item_id" in body and parse_int(body.get("lookup_item_id")) is None: error = "Invalid 'lookup_item_id'."
  elif "lookup_item_id" not in body and "value" not in body: error = "Missing 'value' or 'lookup_item_id'."
  if error:
    logger.log_function_footer()
    return json_result(False, error, {})

  if "lookup_item_id" in body:
    lookup_item_id = parse_int(body.get("lookup_item_id"))
    return run_with_store(logger, lambda store: apply_lookup_metadata(store, library_name, column_name, item_id, lookup_item_id, logger))
  value = str(body.get("value") if body.get("value") is not None else "")
  return run_with_store(logger, lambda store: apply_text_metadata(store, library_name, column_name, item_id, value, logger))

@router.get(f"/{router_name}/lookup_items")
async def metadata_lookup_items(request: Request):
  """
  Get id and Title of every item in a list. Ids are returned as strings (JSON object keys).

  Parameters:
  - list_name: Name of the list (required)

  Example:
  GET {router_prefix}/metadata/lookup_items?list_name=Customers
  """
  if len(request.query_params) == 0: return docs_response(metadata_lookup_items)
  logger = MiddlewareLogger.create()
  logger.log_function_header("metadata_lookup_items")
  list_name = request.query_params.get("list_name", "").strip()
  if not list_name:
    logger.log_function_footer()
    return json_result(False, "Missing 'list_name' parameter.", {})
  return run_with_store(logger, lambda store: get_lookup_list_items(store, list_name, logger))

# ----------------------------------------- END: Item Metadata -------------------------------------------------------------
