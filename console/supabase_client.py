from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import quote

import requests

from .config import dlog
from .errors import ServiceError


DEFAULT_TIMEOUT = 30

# (operator, column, value) as understood by PostgREST, e.g. ("eq", "display_user", "kiosk-1").
Filter = Tuple[str, str, Any]

SUPPORTED_OPERATORS = {"eq", "neq", "gt", "gte", "lt", "lte"}


def _error_message(resp: requests.Response) -> str:
    try:
        err_json = resp.json()
    except Exception:
        return resp.text
    if isinstance(err_json, dict):
        err = err_json.get("error")
        if isinstance(err, dict):
            err = err.get("message")
        return err_json.get("message") or err or err_json.get("msg") or resp.text
    return resp.text


def build_filter_params(filters: Iterable[Filter]) -> List[Tuple[str, str]]:
    """Turn filter triples into PostgREST query params (repeatable keys kept)."""
    params: List[Tuple[str, str]] = []
    for op, column, value in filters:
        if op not in SUPPORTED_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {op}")
        params.append((column, f"{op}.{value}"))
    return params


class SupabaseClient:
    """Minimal client for the PostgREST, RPC and storage endpoints of a Supabase project."""

    def __init__(self, *, url: str, api_key: str, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._url = url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout

    @property
    def url(self) -> str:
        return self._url

    @property
    def api_key(self) -> str:
        return self._api_key

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
        }
        if extra:
            headers.update(extra)
        return headers

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Sequence[Tuple[str, str]]] = None,
        json_body: Any = None,
        data: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
        expect_json: bool = True,
    ) -> Any:
        url = f"{self._url}{path}"
        dlog("supabase_request", {"method": method, "url": url, "params": list(params or [])})
        try:
            resp = requests.request(
                method,
                url,
                params=params,
                json=json_body,
                data=data,
                headers=self._headers(headers),
                timeout=self._timeout,
            )
        except Exception as e:
            raise ServiceError(f"Could not reach Supabase at {self._url}: {e}") from e

        if resp.status_code >= 400:
            message = _error_message(resp)
            dlog("supabase_error", {"status": resp.status_code, "message": message})
            raise ServiceError(f"Upstream error ({resp.status_code}): {message}", status_code=resp.status_code)

        if not expect_json or resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except Exception as e:
            raise ServiceError(f"Invalid JSON from Supabase: {e}", status_code=resp.status_code) from e

    # ---------- database ----------
    def rpc(self, fn: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._request("POST", f"/rest/v1/rpc/{fn}", json_body=params or {})

    def select(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: Iterable[Filter] = (),
        order: Optional[Tuple[str, str]] = None,
    ) -> List[Dict[str, Any]]:
        params: List[Tuple[str, str]] = [("select", columns)]
        params.extend(build_filter_params(filters))
        if order:
            column, direction = order
            params.append(("order", f"{column}.{direction}"))
        data = self._request("GET", f"/rest/v1/{table}", params=params)
        if data is None:
            return []
        if not isinstance(data, list):
            raise ServiceError(f"Expected a row list from {table}, got {type(data).__name__}")
        return data

    def insert(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        data = self._request(
            "POST",
            f"/rest/v1/{table}",
            json_body=rows,
            headers={"Prefer": "return=representation"},
        )
        return data if isinstance(data, list) else []

    def delete(self, table: str, *, filters: Iterable[Filter]) -> None:
        params = build_filter_params(filters)
        if not params:
            # PostgREST refuses unfiltered deletes; refuse before sending.
            raise ValueError(f"Refusing to delete from {table} without filters")
        self._request("DELETE", f"/rest/v1/{table}", params=params, expect_json=False)

    # ---------- storage ----------
    def storage_upload(
        self,
        bucket: str,
        path: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> Any:
        return self._request(
            "POST",
            f"/storage/v1/object/{bucket}/{quote(path)}",
            data=content,
            headers={"Content-Type": content_type},
        )

    def storage_remove(self, bucket: str, paths: List[str]) -> Any:
        if not paths:
            return []
        return self._request("DELETE", f"/storage/v1/object/{bucket}", json_body={"prefixes": paths})
