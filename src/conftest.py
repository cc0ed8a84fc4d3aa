# Shared pytest fixtures: in-memory document store with the same interface as SharePointDocumentStore

import xml.etree.ElementTree as ET
from typing import Any, Optional

import pytest

from routers_v2.common_logging_functions_v2 import MiddlewareLogger
from routers_v2.common_sharepoint_functions_v2 import DocumentStoreNotFoundError, SharePointField, SharePointListItem

WEB_SERVER_RELATIVE_URL = "/sites/demo"

class SimulatedStoreFailure(Exception):
  pass

class InMemoryDocumentStore:
  """
  Lists are keyed by title. Internal names are derived like SharePoint does for spaces ('My Col' -> 'My_x0020_Col').
  Creating a list whose title exists fails, like the real service does.
  Put a method name into `fail_on` to make that method raise SimulatedStoreFailure.
  """

  def __init__(self):
    self.lists: dict[str, dict] = {}
    self.files: dict[str, bytes] = {}
    self.fail_on: set[str] = set()
    self.calls: list[str] = []
    self._next_list_number = 1

  def _call(self, method_name: str):
    self.calls.append(method_name)
    if method_name in self.fail_on: raise SimulatedStoreFailure(f"Simulated failure in {method_name}()")

  def _get_list(self, title: str) -> dict:
    if title not in self.lists: raise DocumentStoreNotFoundError(f"List '{title}' not found.")
    return self.lists[title]

  # ---------- Test setup helpers ----------

  def add_list(self, title: str, template: int = 100) -> dict:
    list_id = f"00000000-0000-0000-0000-{self._next_list_number:012d}"
    self._next_list_number += 1
    self.lists[title] = {
      "id": list_id, "title": title, "description": "", "template": template,
      "fields": [SharePointField(id=f"{list_id}-title", title="Title", internal_name="Title", type_as_string="Text")],
      "items": [], "next_item_id": 1
    }
    return self.lists[title]

  def add_item(self, title: str, properties: Optional[dict] = None) -> int:
    sp_list = self._get_list(title)
    item_id = sp_list["next_item_id"]
    sp_list["next_item_id"] += 1
    sp_list["items"].append(SharePointListItem(id=item_id, properties={"Id": item_id, "ID": item_id, **(properties or {})}))
    return item_id

  def add_field(self, title: str, field: SharePointField) -> None:
    self._get_list(title)["fields"].append(field)

  def add_file(self, title: str, file_name: str, content: bytes) -> int:
    file_ref = f"{WEB_SERVER_RELATIVE_URL}/{title}/{file_name}"
    self.files[file_ref] = content
    return self.add_item(title, {"FileLeafRef": file_name, "FileRef": file_ref})

  def get_item(self, title: str, item_id: int) -> SharePointListItem:
    for item in self._get_list(title)["items"]:
      if item.id == item_id: return item
    raise DocumentStoreNotFoundError(f"Item {item_id} in list '{title}' not found.")

  def fields_titled(self, title: str, field_title: str) -> list[SharePointField]:
    return [f for f in self._get_list(title)["fields"] if f.title == field_title]

  # ---------- Document store interface ----------

  def list_collections(self) -> list[str]:
    self._call("list_collections")
    return list(self.lists.keys())

  def create_collection(self, title: str, description: str, template: int) -> None:
    self._call("create_collection")
    if title in self.lists: raise SimulatedStoreFailure(f"A list, survey, discussion board, or document library with the specified title '{title}' already exists.")
    self.add_list(title, template)["description"] = description

  def get_collection_id(self, title: str) -> str:
    self._call("get_collection_id")
    return self._get_list(title)["id"]

  def list_fields(self, title: str) -> list[SharePointField]:
    self._call("list_fields")
    return list(self._get_list(title)["fields"])

  def create_field(self, title: str, schema_xml: str) -> None:
    self._call("create_field")
    sp_list = self._get_list(title)
    element = ET.fromstring(schema_xml)
    internal_name = element.get("Name").replace(" ", "_x0020_")
    sp_list["fields"].append(SharePointField(
      id=element.get("ID"),
      title=element.get("DisplayName"),
      internal_name=internal_name,
      type_as_string=element.get("Type"),
      lookup_list=element.get("List", ""),
      lookup_field=element.get("ShowField", "")
    ))

  def query_items(self, title: str, field_name: Optional[str] = None, field_value: Optional[str] = None) -> list[SharePointListItem]:
    self._call("query_items")
    items = self._get_list(title)["items"]
    if field_name: items = [i for i in items if i.properties.get(field_name) == field_value]
    return list(items)

  def get_item_value(self, title: str, item_id: int, internal_name: str) -> Any:
    self._call("get_item_value")
    properties = self.get_item(title, item_id).properties
    if internal_name in properties: return properties[internal_name]
    return properties.get(f"{internal_name}Id")

  def set_item_value(self, title: str, item_id: int, internal_name: str, value: str) -> None:
    self._call("set_item_value")
    self.get_item(title, item_id).properties[internal_name] = value

  def set_item_lookup_value(self, title: str, item_id: int, internal_name: str, lookup_item_id: int) -> None:
    self._call("set_item_lookup_value")
    self.get_item(title, item_id).properties[f"{internal_name}Id"] = lookup_item_id

  def get_web_server_relative_url(self) -> str:
    self._call("get_web_server_relative_url")
    return WEB_SERVER_RELATIVE_URL

  def read_file(self, server_relative_url: str) -> bytes:
    self._call("read_file")
    if server_relative_url not in self.files: raise DocumentStoreNotFoundError(f"File '{server_relative_url}' not found.")
    return self.files[server_relative_url]

  def write_file(self, folder_server_relative_url: str, file_name: str, content: bytes, overwrite: bool) -> None:
    self._call("write_file")
    library_title = folder_server_relative_url[len(WEB_SERVER_RELATIVE_URL) + 1:]
    self._get_list(library_title)
    file_ref = f"{folder_server_relative_url}/{file_name}"
    if file_ref in self.files and not overwrite: raise SimulatedStoreFailure(f"A file with the name {file_ref} already exists.")
    if file_ref not in self.files:
      self.add_item(library_title, {"FileLeafRef": file_name, "FileRef": file_ref})
    self.files[file_ref] = content


@pytest.fixture
def store() -> InMemoryDocumentStore:
  return InMemoryDocumentStore()

@pytest.fixture
def logger() -> MiddlewareLogger:
  return MiddlewareLogger.create()
