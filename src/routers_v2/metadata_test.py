# Tests for the metadata router (routers_v2/metadata.py) using FastAPI's TestClient and the in-memory document store
# Run: pytest src/routers_v2/metadata_test.py

import pytest
from fastapi.testclient import TestClient
from office365.sharepoint.client_context import ClientContext

from app import Config, create_app
from routers_v2 import metadata
from routers_v2.common_sharepoint_functions_v2 import SharePointField

# ----------------------------------------- START: Test Infrastructure -----------------------------------------------

def make_config(**overrides) -> Config:
  values = dict(
    SHAREPOINT_SITE_URL="https://contoso.sharepoint.com/sites/demo",
    SHAREPOINT_CLIENT_ID="11111111-1111-1111-1111-111111111111", SHAREPOINT_TENANT_ID="contoso.onmicrosoft.com",
    SHAREPOINT_CLIENT_CERTIFICATE_PFX_FILE=None, SHAREPOINT_CLIENT_CERTIFICATE_PASSWORD=None,
    SHAREPOINT_USERNAME="admin@contoso.com", SHAREPOINT_PASSWORD="secret",
    LOCAL_PERSISTENT_STORAGE_PATH=None, METADATA_AMBIGUITY_POLICY="strict"
  )
  values.update(overrides)
  return Config(**values)

@pytest.fixture
def client(store):
  store.add_list("Docs", 101)
  store.add_file("Docs", "a.txt", b"A")
  store.add_list("Customers")
  store.add_item("Customers", {"Title": "Alpha"})
  store.add_item("Customers", {"Title": "Beta"})
  return TestClient(create_app(make_config(), store_factory=lambda cfg: store))

# ----------------------------------------- END: Test Infrastructure -------------------------------------------------


# ----------------------------------------- START: Docs --------------------------------------------------------------

def test_router_docs(client):
  response = client.get("/v2/metadata")
  assert response.status_code == 200
  assert "/v2/metadata/apply" in response.text

def test_endpoint_docs_without_parameters(client):
  for path in ("/v2/metadata/libraries", "/v2/metadata/columns", "/v2/metadata/apply", "/v2/metadata/item_id", "/v2/metadata/lookup_items", "/v2/metadata/internal_name"):
    response = client.get(path)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "{router_prefix}" not in response.text

# ----------------------------------------- END: Docs ----------------------------------------------------------------


# ----------------------------------------- START: Libraries and Columns ---------------------------------------------

def test_ensure_library(client, store):
  first = client.post("/v2/metadata/libraries", json={"library_name": "Contracts"})
  second = client.post("/v2/metadata/libraries", json={"library_name": "Contracts"})
  assert first.status_code == 200 and first.json()["data"]["created"] is True
  assert second.status_code == 200 and second.json()["data"]["created"] is False
  assert list(store.lists.keys()).count("Contracts") == 1

def test_ensure_library_accepts_form_data(client, store):
  response = client.post("/v2/metadata/libraries", data={"library_name": "Invoices"})
  assert response.status_code == 200
  assert "Invoices" in store.lists

def test_ensure_library_missing_name(client):
  response = client.post("/v2/metadata/libraries", json={})
  assert response.status_code == 400
  assert response.json()["ok"] is False

def test_ensure_text_column(client, store):
  response = client.post("/v2/metadata/columns", json={"library_name": "Docs", "column_name": "Category"})
  assert response.status_code == 200
  assert len(store.fields_titled("Docs", "Category")) == 1

def test_ensure_lookup_column(client, store):
  body = {"library_name": "Docs", "column_name": "Customer", "column_type": "lookup", "lookup_list_name": "Customers"}
  assert client.post("/v2/metadata/columns", json=body).status_code == 200
  assert store.fields_titled("Docs", "Customer")[0].type_as_string == "Lookup"

def test_ensure_lookup_column_missing_target_is_404(client):
  body = {"library_name": "Docs", "column_name": "Customer", "column_type": "lookup", "lookup_list_name": "Nope"}
  response = client.post("/v2/metadata/columns", json=body)
  assert response.status_code == 404
  assert response.json()["data"]["kind"] == "not_found"

def test_ensure_column_validation(client):
  assert client.post("/v2/metadata/columns", json={"library_name": "Docs", "column_name": "X", "column_type": "number"}).status_code == 400
  assert client.post("/v2/metadata/columns", json={"library_name": "Docs", "column_name": "X", "column_type": "lookup"}).status_code == 400

def test_internal_name(client):
  client.post("/v2/metadata/columns", json={"library_name": "Docs", "column_name": "Project Code"})
  response = client.get("/v2/metadata/internal_name", params={"library_name": "Docs", "column_name": "Project Code"})
  assert response.json()["data"]["value"] == "Project_x0020_Code"
  assert client.get("/v2/metadata/internal_name", params={"library_name": "Docs", "column_name": "Nope"}).status_code == 404

def test_column_names_are_matched_without_trimming(client, store):
  store.add_field("Docs", SharePointField(id="f-notes", title="Notes ", internal_name="Notes", type_as_string="Text"))
  resolved = client.get("/v2/metadata/internal_name", params={"library_name": "Docs", "column_name": "Notes "})
  assert resolved.status_code == 200 and resolved.json()["data"]["value"] == "Notes"
  assert client.get("/v2/metadata/internal_name", params={"library_name": "Docs", "column_name": "Notes"}).status_code == 404
  applied = client.post("/v2/metadata/apply", json={"library_name": "Docs", "column_name": "Notes ", "item_id": 1, "value": "checked"})
  assert applied.status_code == 200
  assert store.get_item_value("Docs", 1, "Notes") == "checked"
  assert client.post("/v2/metadata/columns", json={"library_name": "Docs", "column_name": "Notes "}).json()["data"]["created"] is False

def test_blank_column_name_is_rejected(client):
  assert client.get("/v2/metadata/internal_name", params={"library_name": "Docs", "column_name": "  "}).status_code == 400
  assert client.post("/v2/metadata/columns", json={"library_name": "Docs", "column_name": "  "}).status_code == 400

# ----------------------------------------- END: Libraries and Columns -----------------------------------------------


# ----------------------------------------- START: Item Metadata -----------------------------------------------------

def test_item_id(client):
  response = client.get("/v2/metadata/item_id", params={"library_name": "Docs", "file_name": "a.txt"})
  assert response.status_code == 200
  assert response.json()["data"]["value"] == 1

def test_item_id_missing_file(client):
  response = client.get("/v2/metadata/item_id", params={"library_name": "Docs", "file_name": "missing.txt"})
  assert response.status_code == 404
  assert response.json()["data"]["value"] == 0

def test_item_id_ambiguity_policy(client, store):
  store.add_item("Docs", {"FileLeafRef": "dup.txt"})
  last_id = store.add_item("Docs", {"FileLeafRef": "dup.txt"})
  strict = client.get("/v2/metadata/item_id", params={"library_name": "Docs", "file_name": "dup.txt"})
  legacy = client.get("/v2/metadata/item_id", params={"library_name": "Docs", "file_name": "dup.txt", "ambiguity_policy": "legacy"})
  invalid = client.get("/v2/metadata/item_id", params={"library_name": "Docs", "file_name": "dup.txt", "ambiguity_policy": "random"})
  assert strict.status_code == 409
  assert legacy.status_code == 200 and legacy.json()["data"]["value"] == last_id
  assert invalid.status_code == 400

def test_apply_text_value(client, store):
  client.post("/v2/metadata/columns", json={"library_name": "Docs", "column_name": "Category"})
  response = client.post("/v2/metadata/apply", json={"library_name": "Docs", "column_name": "Category", "item_id": 1, "value": "Invoice"})
  assert response.status_code == 200
  assert store.get_item_value("Docs", 1, "Category") == "Invoice"

def test_apply_lookup_value(client, store):
  client.post("/v2/metadata/columns", json={"library_name": "Docs", "column_name": "Customer", "column_type": "lookup", "lookup_list_name": "Customers"})
  response = client.post("/v2/metadata/apply", json={"library_name": "Docs", "column_name": "Customer", "item_id": "1", "lookup_item_id": 2})
  assert response.status_code == 200
  assert store.get_item_value("Docs", 1, "Customer") == 2

def test_apply_validation(client):
  assert client.post("/v2/metadata/apply", json={"library_name": "Docs", "column_name": "Category", "value": "x"}).status_code == 400
  assert client.post("/v2/metadata/apply", json={"library_name": "Docs", "column_name": "Category", "item_id": 1}).status_code == 400
  assert client.post("/v2/metadata/apply", json={"library_name": "Docs", "column_name": "Category", "item_id": 1, "lookup_item_id": "abc"}).status_code == 400

def test_apply_store_failure_is_502(client, store):
  client.post("/v2/metadata/columns", json={"library_name": "Docs", "column_name": "Category"})
  store.fail_on.add("set_item_value")
  response = client.post("/v2/metadata/apply", json={"library_name": "Docs", "column_name": "Category", "item_id": 1, "value": "x"})
  assert response.status_code == 502
  assert response.json()["data"]["kind"] == "store_failure"

def test_lookup_items(client):
  response = client.get("/v2/metadata/lookup_items", params={"list_name": "Customers"})
  assert response.status_code == 200
  assert response.json()["data"]["value"] == {"1": "Alpha", "2": "Beta"}

# ----------------------------------------- END: Item Metadata -------------------------------------------------------


# ----------------------------------------- START: Store Creation ----------------------------------------------------

def test_connection_failure_is_502(store):
  def failing_factory(cfg): raise ValueError("No SharePoint credentials configured.")
  client = TestClient(create_app(make_config(), store_factory=failing_factory))
  response = client.post("/v2/metadata/libraries", json={"library_name": "Docs"})
  assert response.status_code == 502
  assert "No SharePoint credentials configured" in response.json()["error"]

def test_create_document_store_requires_site_url():
  with pytest.raises(ValueError):
    metadata.create_document_store(make_config(SHAREPOINT_SITE_URL=None))

def test_create_document_store_requires_credentials():
  with pytest.raises(ValueError):
    metadata.create_document_store(make_config(SHAREPOINT_USERNAME=None, SHAREPOINT_PASSWORD=None))

def test_create_document_store_username_password_requires_app_registration():
  with pytest.raises(ValueError, match="SHAREPOINT_CLIENT_ID and SHAREPOINT_TENANT_ID"):
    metadata.create_document_store(make_config(SHAREPOINT_TENANT_ID=None))

def test_create_document_store_with_username_and_password(monkeypatch):
  calls = []
  def fake_with_username_and_password(self, tenant, client_id, username, password):
    calls.append((tenant, client_id, username, password))
    return self
  # MSAL resolves the authority over the network when the flow is set up
  monkeypatch.setattr(ClientContext, "with_username_and_password", fake_with_username_and_password)
  store = metadata.create_document_store(make_config())
  assert isinstance(store.ctx, ClientContext)
  assert calls == [("contoso.onmicrosoft.com", "11111111-1111-1111-1111-111111111111", "admin@contoso.com", "secret")]

# ----------------------------------------- END: Store Creation ------------------------------------------------------
