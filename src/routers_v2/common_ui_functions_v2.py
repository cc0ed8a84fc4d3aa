# Common UI Functions V2 - Response helpers shared by V2 routers

from typing import Any, Dict, List

from fastapi.responses import JSONResponse, PlainTextResponse

def json_result(ok: bool, error: str, data: Any, status_code: int = None) -> JSONResponse:
  """Generate consistent JSON response: {ok, error, data}. Default status: 200 if ok, else 400."""
  if status_code is None: status_code = 200 if ok else 400
  return JSONResponse({"ok": ok, "error": error, "data": data}, status_code=status_code)

def generate_endpoint_docs(docstring: str, router_prefix: str) -> str:
  """
  Generate action endpoint documentation (plain text UTF-8).
  Simply returns docstring with {router_prefix} placeholder replaced.
  """
  return docstring.replace("{router_prefix}", router_prefix) if docstring else ""

def generate_router_docs(title: str, description: str, router_prefix: str, endpoints: List[Dict]) -> PlainTextResponse:
  """
  Generate router root documentation (plain text).

  Args:
    title: Router title
    description: Router description
    router_prefix: API prefix
    endpoints: List of endpoint configs [{"path": "/metadata/apply", "method": "POST", "desc": "Apply metadata"}]
  """
  lines = [title, "=" * len(title), "", description, "", "Endpoints:"]
  for ep in endpoints:
    lines.append(f"  {ep.get('method', 'GET'):<6} {router_prefix}{ep.get('path', '')} - {ep.get('desc', '')}")
  return PlainTextResponse("\n".join(lines), media_type="text/plain; charset=utf-8")
