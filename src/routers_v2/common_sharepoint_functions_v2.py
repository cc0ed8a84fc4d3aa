# Common functions for SharePoint operations using Office365-REST-Python-Client
# https://pypi.org/project/Office365-REST-Python-Client/#Working-with-SharePoint-API
# SharePointDocumentStore wraps a ClientContext; the metadata functions only talk to the store
import io, os
from dataclasses import dataclass, field
from typing import Any, Optional
from cryptography.hazmat.primitives.serialization import pkcs12, Encoding, PrivateFormat, NoEncryption
from cryptography.hazmat.backends import default_backend
from office365.runtime.client_request_exception import ClientRequestException
from office365.runtime.queries.service_operation import ServiceOperationQuery
from office365.sharepoint.client_context import ClientContext
from office365.sharepoint.fields.add_field_options import AddFieldOptions
from office365.sharepoint.fields.field import Field
from office365.sharepoint.fields.lookup_value import FieldLookupValue
from office365.sharepoint.fields.xmlSchemaFieldCreationInformation import XmlSchemaFieldCreationInformation
from office365.sharepoint.lists.creation_information import ListCreationInformation
from hardcoded_config import METADATA_HARDCODED_CONFIG
from routers_v2.common_logging_functions_v2 import MiddlewareLogger

# Same options as AddFieldAsXml(schemaXml, addToDefaultView=true, AddFieldInternalNameHint) in CSOM
CREATE_FIELD_OPTIONS = int(AddFieldOptions.AddFieldInternalNameHint | AddFieldOptions.AddFieldToDefaultView)

class DocumentStoreNotFoundError(LookupError):
  """Raised when the store reports that a list, item, file or folder does not exist (HTTP 404)."""

@dataclass
class SharePointField:
  """Column definition of a list or document library."""
  id: str
  title: str
  internal_name: str
  type_as_string: str
  lookup_list: str = ""
  lookup_field: str = ""

@dataclass
class SharePointListItem:
  """Row of a list or document library. `properties` is keyed by field internal name."""
  id: int
  properties: dict = field(default_factory=dict)

def escape_odata_string(value: str) -> str:
  """Escape a string literal for an OData $filter expression (single quotes are doubled)."""
  return value.replace("'", "''")

def get_file_name_from_path(file_path: str) -> str:
  """Return the file name part of a local path. Accepts both '/' and '\\' separators."""
  return file_path.replace('\\', '/').rsplit('/', 1)[-1]

def build_library_file_url(web_server_relative_url: str, library_name: str, file_name: str = "") -> str:
  """
  Assemble the server-relative URL of a document library folder or of a file in it.
  E.g. ('/sites/demo/', 'Docs', 'a.txt') -> '/sites/demo/Docs/a.txt'
  """
  url = web_server_relative_url.rstrip('/') + "/" + library_name
  if file_name: url += "/" + file_name
  return url

# ----------------------------------------- START: Connection -------------------------------------------------------------

def get_or_create_pem_from_pfx(cert_path: str, cert_password: str) -> tuple[str, str]:
  """
  Convert a PFX certificate to PEM format.
  Only recreates the PEM file if it doesn't exist or has a different timestamp than the PFX file.

  Args:
    cert_path: Path to the PFX certificate file
    cert_password: Password for the PFX certificate

  Returns:
    tuple: (pem_file_path, certificate_thumbprint)
  """
  pem_file = cert_path.replace('.pfx', '.pem')
  pfx_mtime = os.path.getmtime(cert_path)

  # PEM is current if it carries the same timestamp as the PFX
  needs_conversion = True
  if os.path.exists(pem_file):
    if os.path.getmtime(pem_file) == pfx_mtime: needs_conversion = False

  with open(cert_path, 'rb') as f: pfx_data = f.read()
  private_key, certificate, _ = pkcs12.load_key_and_certificates( pfx_data, cert_password.encode() if cert_password else None, backend=default_backend() )

  if needs_conversion:
    with open(pem_file, 'wb') as f:
      f.write( private_key.private_bytes(encoding=Encoding.PEM, format=PrivateFormat.PKCS8,encryption_algorithm=NoEncryption()) )
      f.write(certificate.public_bytes(Encoding.PEM))
    os.utime(pem_file, (pfx_mtime, pfx_mtime))

  thumbprint = certificate.fingerprint(certificate.signature_hash_algorithm).hex().upper()
  return pem_file, thumbprint

def connect_to_site_using_client_id_and_certificate(site_url: str, client_id: str, tenant_id: str, cert_path: str, cert_password: str) -> ClientContext:
  """
  Connect to a SharePoint site using certificate-based authentication (App-Only authentication).

  Args:
    site_url: The SharePoint site URL (e.g., 'https://contoso.sharepoint.com/sites/mysite'). Site must already exist.
    client_id: The OAuth client ID of the registered application
    tenant_id: The Azure AD tenant ID
    cert_path: Path to the PFX certificate file
    cert_password: Password for the PFX certificate

  Returns:
    ClientContext: An authenticated SharePoint client context object
  """
  pem_file, thumbprint = get_or_create_pem_from_pfx(cert_path, cert_password)
  # The library handles MSAL token acquisition internally
  return ClientContext(site_url).with_client_certificate( tenant=tenant_id, client_id=client_id, thumbprint=thumbprint, cert_path=pem_file )

def connect_to_site_using_credentials(site_url: str, tenant_id: str, client_id: str, username: str, password: str) -> ClientContext:
  """
  Connect to a SharePoint site as a user (site admin) with username and password.
  Uses the MSAL username/password flow of the app registration `client_id` (public client flows must be allowed).
  The legacy SAML/ACS user credential flow is retired for SharePoint Online.
  """
  return ClientContext(site_url).with_username_and_password(tenant_id, client_id, username, password)

# ----------------------------------------- END: Connection ---------------------------------------------------------------


# ----------------------------------------- START: Document Store ---------------------------------------------------------

def _is_not_found(e: Exception) -> bool:
  response = getattr(e, 'response', None)
  return response is not None and getattr(response, 'status_code', None) == 404

class SharePointDocumentStore:
  """
  Document store over a SharePoint site. Lists and libraries are addressed by title.
  Each method is one or two blocking round trips (execute_query). A 404 from the service is raised as
  DocumentStoreNotFoundError, every other ClientRequestException propagates unchanged.
  """

  def __init__(self, ctx: ClientContext):
    self.ctx = ctx

  def _execute(self, query, what: str):
    try:
      return query.execute_query()
    except ClientRequestException as e:
      if _is_not_found(e): raise DocumentStoreNotFoundError(f"{what} not found.") from e
      raise

  def list_collections(self) -> list[str]:
    lists = self._execute(self.ctx.web.lists.get().select(["Title"]), "Lists")
    return [l.properties.get('Title', '') for l in lists]

  def create_collection(self, title: str, description: str, template: int) -> None:
    creation_info = ListCreationInformation()
    creation_info.Title = title
    creation_info.Description = description
    creation_info.BaseTemplate = template
    self._execute(self.ctx.web.lists.add(creation_info), f"Web for list '{title}'")

  def get_collection_id(self, title: str) -> str:
    sp_list = self._execute(self.ctx.web.lists.get_by_title(title).get().select(["Id"]), f"List '{title}'")
    return str(sp_list.properties.get('Id', ''))

  def list_fields(self, title: str) -> list[SharePointField]:
    fields = self._execute(self.ctx.web.lists.get_by_title(title).fields.get(), f"List '{title}'")
    return [
      SharePointField(
        id=str(f.properties.get('Id', '')),
        title=f.properties.get('Title', ''),
        internal_name=f.properties.get('InternalName', ''),
        type_as_string=f.properties.get('TypeAsString', ''),
        lookup_list=f.properties.get('LookupList', '') or '',
        lookup_field=f.properties.get('LookupField', '') or ''
      )
      for f in fields
    ]

  def create_field(self, title: str, schema_xml: str) -> None:
    """Create a field from schema XML with the internal name hint, added to the default view."""
    # fields.create_field_as_xml() sends no options, so the CreateFieldAsXml query is built here
    fields = self.ctx.web.lists.get_by_title(title).fields
    new_field = Field(self.ctx)
    fields.add_child(new_field)
    payload = {"parameters": XmlSchemaFieldCreationInformation(schema_xml, CREATE_FIELD_OPTIONS)}
    self.ctx.add_query(ServiceOperationQuery(fields, "CreateFieldAsXml", None, payload, None, new_field))
    self._execute(new_field, f"List '{title}'")

  def query_items(self, title: str, field_name: Optional[str] = None, field_value: Optional[str] = None) -> list[SharePointListItem]:
    """Return all items of the list, or only those where `field_name eq field_value` if a predicate is given."""
    # FileRef and FileLeafRef are not part of the default item payload
    items_query = self.ctx.web.lists.get_by_title(title).items.select(["*", "FileRef", "FileLeafRef"])
    if field_name:
      items_query = items_query.filter(f"{field_name} eq '{escape_odata_string(str(field_value))}'")
    all_items = self._execute(items_query.get_all(5000), f"List '{title}'")
    return [SharePointListItem(id=int(item.properties.get('Id', 0)), properties=dict(item.properties)) for item in all_items]

  def get_item_value(self, title: str, item_id: int, internal_name: str) -> Any:
    """Lookup values are returned as the foreign item id (REST exposes them as '<InternalName>Id')."""
    item = self._execute(self.ctx.web.lists.get_by_title(title).get_item_by_id(item_id).get(), f"Item {item_id} in list '{title}'")
    if internal_name in item.properties: return item.properties[internal_name]
    return item.properties.get(f"{internal_name}Id")

  def set_item_value(self, title: str, item_id: int, internal_name: str, value: str) -> None:
    item = self.ctx.web.lists.get_by_title(title).get_item_by_id(item_id)
    self._execute(item.set_property(internal_name, value).update(), f"Item {item_id} in list '{title}'")

  def set_item_lookup_value(self, title: str, item_id: int, internal_name: str, lookup_item_id: int) -> None:
    item = self.ctx.web.lists.get_by_title(title).get_item_by_id(item_id)
    self._execute(item.set_property(internal_name, FieldLookupValue(lookup_item_id)).update(), f"Item {item_id} in list '{title}'")

  def get_web_server_relative_url(self) -> str:
    web = self._execute(self.ctx.web.get().select(["ServerRelativeUrl"]), "Web")
    return web.properties.get('ServerRelativeUrl', '')

  def read_file(self, server_relative_url: str) -> bytes:
    sp_file = self.ctx.web.get_file_by_server_relative_url(server_relative_url)
    buffer = io.BytesIO()
    self._execute(sp_file.download(buffer), f"File '{server_relative_url}'")
    return buffer.getvalue()

  def write_file(self, folder_server_relative_url: str, file_name: str, content: bytes, overwrite: bool) -> None:
    folder = self.ctx.web.get_folder_by_server_relative_url(folder_server_relative_url)
    self._execute(folder.files.add(file_name, content, overwrite), f"Folder '{folder_server_relative_url}'")

# ----------------------------------------- END: Document Store -----------------------------------------------------------


# ----------------------------------------- START: File Operations --------------------------------------------------------

def copy_document(store, src_library_name: str, dest_library_name: str, file_name: str, logger: MiddlewareLogger) -> tuple[int, str]:
  """
  Copy a file between two document libraries in the same SharePoint site.
  Every item in the source library named `file_name` is copied (overwriting) to '<web url>/<dest_library_name>/<name>'.
  A failing file is logged and skipped, the remaining files are still copied.

  Returns:
    (copied_count, error_message) - error_message is the first error or ""
  """
  logger.log_function_header("copy_document()")
  first_error = ""
  copied_count = 0
  try:
    items = store.query_items(src_library_name, METADATA_HARDCODED_CONFIG.FILE_LEAF_REF_FIELD, file_name)
    web_url = store.get_web_server_relative_url()
  except Exception as e:
    logger.log_function_error(f"Library '{src_library_name}' - failed to find '{file_name}' -> {str(e)}")
    logger.log_function_footer()
    return 0, str(e)

  if not items: logger.log_function_warning(f"Library '{src_library_name}' - no file named '{file_name}'.")
  dest_folder_url = build_library_file_url(web_url, dest_library_name)
  for item in items:
    src_url = item.properties.get('FileRef')
    if not src_url:
      logger.log_function_warning(f"Item ID={item.id} in library '{src_library_name}' has no FileRef. Skipping.")
      continue
    name = item.properties.get(METADATA_HARDCODED_CONFIG.FILE_LEAF_REF_FIELD) or file_name
    try:
      content = store.read_file(src_url)
      store.write_file(dest_folder_url, name, content, True)
      copied_count += 1
      logger.log_function_output(f"Copied '{src_url}' -> '{build_library_file_url(web_url, dest_library_name, name)}'.")
    except Exception as e:
      logger.log_function_error(f"File '{src_url}' (ID={item.id}) - failed to copy -> {str(e)}")
      if not first_error: first_error = str(e)

  logger.log_function_output(f"{copied_count} file{'' if copied_count == 1 else 's'} copied.")
  logger.log_function_footer()
  return copied_count, first_error

def upload_file_to_document_library(store, library_name: str, file_path: str, overwrite: bool, logger: MiddlewareLogger) -> tuple[bool, str]:
  """
  Upload a local file to a document library root folder.

  Args:
    store: Document store
    library_name: Name of the document library the file is uploaded to
    file_path: Path to the local file including the file name (e.g. "c:\\temp\\test.doc" or "/tmp/test.doc")
    overwrite: True to overwrite an existing file with the same name

  Returns:
    (success, error_message)
  """
  logger.log_function_header("upload_file_to_document_library()")
  try:
    file_name = get_file_name_from_path(file_path)
    folder_url = build_library_file_url(store.get_web_server_relative_url(), library_name)
    with open(file_path, 'rb') as f: content = f.read()
    store.write_file(folder_url, file_name, content, overwrite)
    logger.log_function_output(f"Uploaded '{file_path}' -> '{folder_url}/{file_name}' ({len(content)} bytes).")
    logger.log_function_footer()
    return True, ""
  except Exception as e:
    logger.log_function_error(f"File '{file_path}' - failed to upload to library '{library_name}' -> {str(e)}")
    logger.log_function_footer()
    return False, str(e)

# ----------------------------------------- END: File Operations ----------------------------------------------------------
