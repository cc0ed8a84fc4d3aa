# Common functions for column and item metadata in SharePoint document libraries and lists
# Columns are matched by display title (first match wins); item values are always written by internal name
# Every function takes the document store as first parameter and returns a MetadataResult instead of raising
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional
from xml.sax.saxutils import quoteattr

from hardcoded_config import METADATA_HARDCODED_CONFIG
from routers_v2.common_logging_functions_v2 import MiddlewareLogger
from routers_v2.common_sharepoint_functions_v2 import DocumentStoreNotFoundError, SharePointField

class MetadataResultKind(Enum):
  SUCCESS = "success"
  NOT_FOUND = "not_found"
  AMBIGUOUS = "ambiguous"
  STORE_FAILURE = "store_failure"

class AmbiguityPolicy(Enum):
  STRICT = "strict"
  LEGACY = "legacy"

@dataclass
class MetadataResult:
  kind: MetadataResultKind
  message: str = ""
  value: Any = None
  created: bool = False

  @property
  def ok(self) -> bool: return self.kind == MetadataResultKind.SUCCESS

  def to_dict(self) -> dict:
    return {"kind": self.kind.value, "message": self.message, "value": self.value, "created": self.created}

def _failure(e: Exception, message: str, value: Any = None) -> MetadataResult:
  kind = MetadataResultKind.NOT_FOUND if isinstance(e, DocumentStoreNotFoundError) else MetadataResultKind.STORE_FAILURE
  return MetadataResult(kind, f"{message} -> {str(e)}", value)

def _blank(name: str) -> bool:
  return name is None or not str(name).strip()

def _finish(logger: MiddlewareLogger, result: MetadataResult) -> MetadataResult:
  if result.kind == MetadataResultKind.AMBIGUOUS: logger.log_function_warning(result.message)
  elif not result.ok: logger.log_function_error(result.message)
  elif result.message: logger.log_function_output(result.message)
  logger.log_function_footer()
  return result

def get_ambiguity_policy(value: Optional[str]) -> AmbiguityPolicy:
  """Parse 'strict' / 'legacy' (case-insensitive). Empty value -> configured default. Raises ValueError on unknown values."""
  if _blank(value): value = METADATA_HARDCODED_CONFIG.DEFAULT_AMBIGUITY_POLICY
  return AmbiguityPolicy(value.strip().lower())

def find_field_by_title(fields: list[SharePointField], column_name: str) -> Optional[SharePointField]:
  """Case-sensitive exact match on display title. Returns the first match in enumeration order."""
  for f in fields:
    if f.title == column_name: return f
  return None

def build_text_field_schema_xml(column_name: str) -> str:
  """<Field> schema for a text column. The display name doubles as internal name hint."""
  field_id = quoteattr(str(uuid.uuid4())); name = quoteattr(column_name)
  return f"<Field ID={field_id} Type='Text' DisplayName={name} Name={name}/>"

def build_lookup_field_schema_xml(column_name: str, lookup_list_id: str) -> str:
  """<Field> schema for a lookup column pointing at the list `lookup_list_id`, showing its Title."""
  field_id = quoteattr(str(uuid.uuid4())); name = quoteattr(column_name)
  list_id = quoteattr(lookup_list_id); show_field = quoteattr(METADATA_HARDCODED_CONFIG.LOOKUP_SHOW_FIELD)
  return f"<Field ID={field_id} Type='Lookup' DisplayName={name} Name={name} StaticName={name} List={list_id} ShowField={show_field}/>"


# ----------------------------------------- START: Libraries and Columns --------------------------------------------------

def ensure_document_library(store, library_name: str, logger: MiddlewareLogger) -> MetadataResult:
  """
  Create a document library with `library_name` as title and description unless a list with that title exists.
  If creation fails but the library exists afterwards (created concurrently), the call still succeeds.

  Returns:
    MetadataResult with created=True only if this call created the library
  """
  logger.log_function_header("ensure_document_library()")
  if _blank(library_name): return _finish(logger, MetadataResult(MetadataResultKind.NOT_FOUND, "Library name is empty."))
  try:
    if library_name in store.list_collections():
      return _finish(logger, MetadataResult(MetadataResultKind.SUCCESS, f"Library '{library_name}' already exists."))
  except Exception as e:
    return _finish(logger, _failure(e, f"Library '{library_name}' - failed to list libraries"))

  try:
    store.create_collection(library_name, library_name, METADATA_HARDCODED_CONFIG.DOCUMENT_LIBRARY_TEMPLATE_ID)
    return _finish(logger, MetadataResult(MetadataResultKind.SUCCESS, f"Library '{library_name}' created.", created=True))
  except Exception as create_error:
    try:
      exists_now = library_name in store.list_collections()
    except Exception:
      exists_now = False
    if exists_now:
      return _finish(logger, MetadataResult(MetadataResultKind.SUCCESS, f"Library '{library_name}' already exists (created concurrently)."))
    return _finish(logger, MetadataResult(MetadataResultKind.STORE_FAILURE, f"Library '{library_name}' - failed to create -> {str(create_error)}"))

def ensure_text_column(store, library_name: str, column_name: str, logger: MiddlewareLogger) -> MetadataResult:
  """Add a text column to a library unless a column with the same display title exists."""
  logger.log_function_header("ensure_text_column()")
  if _blank(library_name) or _blank(column_name):
    return _finish(logger, MetadataResult(MetadataResultKind.NOT_FOUND, "Library name and column name are required."))
  try:
    existing = find_field_by_title(store.list_fields(library_name), column_name)
    if existing:
      return _finish(logger, MetadataResult(MetadataResultKind.SUCCESS, f"Column '{column_name}' already exists in '{library_name}'.", existing.internal_name))
    store.create_field(library_name, build_text_field_schema_xml(column_name))
    return _finish(logger, MetadataResult(MetadataResultKind.SUCCESS, f"Text column '{column_name}' created in '{library_name}'.", created=True))
  except Exception as e:
    return _finish(logger, _failure(e, f"Library '{library_name}' - failed to ensure text column '{column_name}'"))

def ensure_lookup_column(store, library_name: str, column_name: str, lookup_list_name: str, logger: MiddlewareLogger) -> MetadataResult:
  """
  Add a lookup column to a library, linked to the list `lookup_list_name` (which must exist) and showing its Title.
  Nothing is created if a column with the same display title exists; the target list is not checked in that case.
  """
  logger.log_function_header("ensure_lookup_column()")
  if _blank(library_name) or _blank(column_name) or _blank(lookup_list_name):
    return _finish(logger, MetadataResult(MetadataResultKind.NOT_FOUND, "Library name, column name and lookup list name are required."))
  try:
    existing = find_field_by_title(store.list_fields(library_name), column_name)
    if existing:
      return _finish(logger, MetadataResult(MetadataResultKind.SUCCESS, f"Column '{column_name}' already exists in '{library_name}'.", existing.internal_name))
  except Exception as e:
    return _finish(logger, _failure(e, f"Library '{library_name}' - failed to load columns"))

  try:
    lookup_list_id = store.get_collection_id(lookup_list_name)
  except Exception as e:
    return _finish(logger, _failure(e, f"Lookup list '{lookup_list_name}' - failed to resolve"))

  try:
    store.create_field(library_name, build_lookup_field_schema_xml(column_name, lookup_list_id))
    return _finish(logger, MetadataResult(MetadataResultKind.SUCCESS, f"Lookup column '{column_name}' -> '{lookup_list_name}' created in '{library_name}'.", created=True))
  except Exception as e:
    return _finish(logger, _failure(e, f"Library '{library_name}' - failed to create lookup column '{column_name}'"))

def resolve_internal_name(store, library_name: str, column_name: str, logger: MiddlewareLogger) -> MetadataResult:
  """Resolve a column display title to its internal name (result value). NOT_FOUND if no column has that title."""
  logger.log_function_header("resolve_internal_name()")
  try:
    match = find_field_by_title(store.list_fields(library_name), column_name)
  except Exception as e:
    return _finish(logger, _failure(e, f"Library '{library_name}' - failed to load columns"))
  if match is None:
    return _finish(logger, MetadataResult(MetadataResultKind.NOT_FOUND, f"Column '{column_name}' not found in '{library_name}'."))
  return _finish(logger, MetadataResult(MetadataResultKind.SUCCESS, f"Column '{column_name}' -> '{match.internal_name}'.", match.internal_name))

# ----------------------------------------- END: Libraries and Columns ----------------------------------------------------


# ----------------------------------------- START: Item Metadata ----------------------------------------------------------

def _apply_metadata(store, library_name: str, column_name: str, item_id: int, value: Any, is_lookup: bool, logger: MiddlewareLogger) -> MetadataResult:
  resolved = resolve_internal_name(store, library_name, column_name, logger)
  if not resolved.ok:
    logger.log_function_footer()
    return resolved
  internal_name = resolved.value
  try:
    if is_lookup: store.set_item_lookup_value(library_name, item_id, internal_name, value)
    else: store.set_item_value(library_name, item_id, internal_name, value)
  except Exception as e:
    return _finish(logger, _failure(e, f"Item {item_id} in '{library_name}' - failed to set '{internal_name}'"))
  return _finish(logger, MetadataResult(MetadataResultKind.SUCCESS, f"Item {item_id} in '{library_name}': '{internal_name}' = {value!r}.", value))

def apply_text_metadata(store, library_name: str, column_name: str, item_id: int, value: str, logger: MiddlewareLogger) -> MetadataResult:
  """
  Set the text column `column_name` (display title) of item `item_id` to `value`.
  Use get_item_id() to find the item id of a document. Nothing is written if the column doesn't exist.
  """
  logger.log_function_header("apply_text_metadata()")
  return _apply_metadata(store, library_name, column_name, item_id, value, False, logger)

def apply_lookup_metadata(store, library_name: str, column_name: str, item_id: int, lookup_item_id: int, logger: MiddlewareLogger) -> MetadataResult:
  """
  Point the lookup column `column_name` of item `item_id` at item `lookup_item_id` of the lookup list.
  Use an id returned by get_lookup_list_items(). The id is not checked against the lookup list.
  """
  logger.log_function_header("apply_lookup_metadata()")
  return _apply_metadata(store, library_name, column_name, item_id, lookup_item_id, True, logger)

def get_item_id(store, library_name: str, file_name: str, logger: MiddlewareLogger, ambiguity_policy: Optional[AmbiguityPolicy] = None) -> MetadataResult:
  """
  Find the item id of a document by file name (FileLeafRef). The result value is the id, or NO_ITEM_ID (0).

  ambiguity_policy:
    STRICT: 1 match -> SUCCESS, 0 matches -> NOT_FOUND, more than 1 -> AMBIGUOUS
    LEGACY: 1 or 2 matches -> SUCCESS with the id of the last item in store order, 0 or more than 2 -> AMBIGUOUS
  """
  logger.log_function_header("get_item_id()")
  if ambiguity_policy is None: ambiguity_policy = get_ambiguity_policy(None)
  no_item_id = METADATA_HARDCODED_CONFIG.NO_ITEM_ID
  try:
    items = store.query_items(library_name, METADATA_HARDCODED_CONFIG.FILE_LEAF_REF_FIELD, file_name)
  except Exception as e:
    return _finish(logger, _failure(e, f"Library '{library_name}' - failed to query '{file_name}'", no_item_id))

  count = len(items)
  if ambiguity_policy == AmbiguityPolicy.LEGACY:
    if count == 0 or count > 2:
      return _finish(logger, MetadataResult(MetadataResultKind.AMBIGUOUS, f"Ambiguous results for '{file_name}' in '{library_name}': {count} items.", no_item_id))
  else:
    if count == 0:
      result = MetadataResult(MetadataResultKind.NOT_FOUND, f"File '{file_name}' not found in '{library_name}'.", no_item_id)
      logger.log_function_warning(result.message)
      logger.log_function_footer()
      return result
    if count > 1:
      return _finish(logger, MetadataResult(MetadataResultKind.AMBIGUOUS, f"Ambiguous results for '{file_name}' in '{library_name}': {count} items.", no_item_id))

  item_id = no_item_id
  for item in items: item_id = item.id
  return _finish(logger, MetadataResult(MetadataResultKind.SUCCESS, f"File '{file_name}' in '{library_name}' -> ID={item_id}.", item_id))

def get_lookup_list_items(store, list_name: str, logger: MiddlewareLogger) -> MetadataResult:
  """
  Get id -> Title of every item in a list (typically the target list of a lookup column).
  On failure the result value holds the items collected so far (possibly empty).
  """
  logger.log_function_header("get_lookup_list_items()")
  lookup_items: dict[int, str] = {}
  try:
    for item in store.query_items(list_name):
      lookup_items[int(item.properties.get('ID', item.id))] = str(item.properties.get('Title', ''))
  except Exception as e:
    return _finish(logger, _failure(e, f"List '{list_name}' - failed to get items", lookup_items))
  return _finish(logger, MetadataResult(MetadataResultKind.SUCCESS, f"{len(lookup_items)} item{'' if len(lookup_items) == 1 else 's'} in '{list_name}'.", lookup_items))

# ----------------------------------------- END: Item Metadata ------------------------------------------------------------
