"""Shared fixtures: an in-memory hosted backend behind ``httpx.MockTransport``.

``FakeBackend`` speaks the three dialects the service uses: REST rows
(``/rest/v1/{table}``), object storage (``/storage/v1/object/{bucket}``)
and token introspection (``/auth/v1/user``). Failures are injected per
table or bucket, and every write is recorded in ``calls`` so tests can
assert on ordering.
"""

from __future__ import annotations

import json
import re
import uuid
from collections import defaultdict
from typing import TYPE_CHECKING, Any

import httpx
import pytest
from fastapi.testclient import TestClient

from clientvault.domain.identity import AuthenticatedCaller, Identity
from clientvault.infra.auth.privilege import PrivilegedBackend
from clientvault.infra.backend.client import BackendClient
from clientvault.infra.backend.settings import BackendSettings, get_backend_settings
from clientvault.infra.fastapi import AppSettings, create_app

if TYPE_CHECKING:
    from collections.abc import Iterator

    from fastapi import FastAPI

BASE_URL = "https://backend.test"
ANON_KEY = "anon-key"
SERVICE_KEY = "service-role-key"
STAFF_TOKEN = "staff-token"
STAFF_EMAIL = "staff@example.com"

_QUOTED = re.compile(r'"((?:[^"\\]|\\.)*)"')


def _encode(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _split_top_level(text: str) -> list[str]:
    parts, depth, current = [], 0, ""
    for char in text:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if char == "," and depth == 0:
            parts.append(current)
            current = ""
        else:
            current += char
    if current:
        parts.append(current)
    return parts


class FakeBackend:
    """In-memory stand-in for the hosted Postgres, object store and auth."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self.objects: dict[str, set[str]] = defaultdict(set)
        self.users: dict[str, dict[str, str]] = {}
        self.calls: list[tuple[str, str]] = []
        self.storage_calls: list[tuple[str, list[str]]] = []
        self.auth_headers: list[tuple[str, str]] = []
        self.fail_select: dict[str, str] = {}
        self.fail_delete: dict[str, str] = {}
        self.fail_update: dict[str, str] = {}
        self.fail_storage: dict[str, str] = {}
        self.fail_upload: dict[str, str] = {}
        self.uploads: dict[tuple[str, str], tuple[bytes, str]] = {}
        self.signed: list[tuple[str, str, int]] = []
        self.missing_columns: dict[str, set[str]] = {}
        self.join_as_list = False

    # -- Seeding ---------------------------------------------------------------

    def add_user(self, token: str, email: str, user_id: str | None = None) -> None:
        self.users[token] = {"id": user_id or str(uuid.uuid4()), "email": email}

    def insert(self, table: str, **row: Any) -> dict[str, Any]:
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("deleted_at", None)
        self.tables[table].append(row)
        return row

    def put_object(self, bucket: str, path: str) -> None:
        self.objects[bucket].add(path)

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables[table]

    def find(self, table: str, row_id: str) -> dict[str, Any] | None:
        return next((r for r in self.tables[table] if r["id"] == row_id), None)

    # -- Transport -------------------------------------------------------------

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.auth_headers.append(
            (request.headers.get("apikey", ""), request.headers.get("authorization", ""))
        )
        path = request.url.path
        if path == "/auth/v1/user":
            return self._auth(request)
        if path.startswith("/storage/v1/object/"):
            return self._storage(request, path.removeprefix("/storage/v1/object/"))
        if path.startswith("/rest/v1/"):
            return self._rest(request, path.removeprefix("/rest/v1/"))
        return httpx.Response(404, json={"message": "route not found"})

    def _auth(self, request: httpx.Request) -> httpx.Response:
        token = request.headers.get("authorization", "").removeprefix("Bearer ")
        user = self.users.get(token)
        if user is None:
            return httpx.Response(401, json={"msg": "invalid JWT: unable to parse or verify"})
        return httpx.Response(200, json=user)

    def _storage(self, request: httpx.Request, rest: str) -> httpx.Response:
        if rest.startswith("sign/"):
            return self._sign(request, rest.removeprefix("sign/"))
        if request.method == "POST":
            return self._upload(request, rest)
        bucket = rest
        paths = json.loads(request.content)["prefixes"]
        self.storage_calls.append((bucket, list(paths)))
        self.calls.append(("storage", bucket))
        if bucket in self.fail_storage:
            return httpx.Response(
                400,
                json={"statusCode": "403", "error": "Unauthorized", "message": self.fail_storage[bucket]},
            )
        removed = [p for p in paths if p in self.objects[bucket]]
        self.objects[bucket].difference_update(removed)
        return httpx.Response(200, json=[{"name": p} for p in removed])

    def _upload(self, request: httpx.Request, rest: str) -> httpx.Response:
        bucket, _, path = rest.partition("/")
        self.calls.append(("upload", bucket))
        if bucket in self.fail_upload:
            return httpx.Response(
                400,
                json={"statusCode": "404", "error": "Not Found", "message": self.fail_upload[bucket]},
            )
        if path in self.objects[bucket]:
            return httpx.Response(
                400,
                json={"statusCode": "409", "error": "Duplicate", "message": "The resource already exists"},
            )
        self.objects[bucket].add(path)
        self.uploads[(bucket, path)] = (request.content, request.headers.get("content-type", ""))
        return httpx.Response(200, json={"Key": f"{bucket}/{path}"})

    def _sign(self, request: httpx.Request, rest: str) -> httpx.Response:
        bucket, _, path = rest.partition("/")
        if path not in self.objects[bucket]:
            return httpx.Response(
                400,
                json={"statusCode": "404", "error": "not_found", "message": "Object not found"},
            )
        expires_in = json.loads(request.content)["expiresIn"]
        self.signed.append((bucket, path, expires_in))
        return httpx.Response(
            200, json={"signedURL": f"/object/sign/{bucket}/{path}?token=signed-{expires_in}"}
        )

    def _rest(self, request: httpx.Request, table: str) -> httpx.Response:
        params = list(request.url.params.multi_items())
        select = next((v for k, v in params if k == "select"), "*")
        order = next((v for k, v in params if k == "order"), "")
        filters = [(k, v) for k, v in params if k not in ("select", "order", "offset")]
        method = request.method

        missing = self.missing_columns.get(table, set())
        for column in _split_top_level(select):
            if column in missing:
                return httpx.Response(
                    400,
                    json={"code": "42703", "message": f"column {table}.{column} does not exist"},
                )

        if method == "POST":
            values = {"created_at": "2024-06-01T00:00:00+00:00", **json.loads(request.content)}
            row = self.insert(table, **values)
            self.calls.append(("insert", table))
            return httpx.Response(201, json=[self._project(table, row, select)])

        if method == "GET" and table in self.fail_select:
            return httpx.Response(500, json={"message": self.fail_select[table]})

        matched = [r for r in self.tables[table] if self._matches(r, filters)]

        if method == "GET":
            for clause in reversed(order.split(",") if order else []):
                matched = self._sorted(matched, clause)
            total = len(matched)
            start = 0
            range_header = request.headers.get("range")
            if range_header:
                start, end = (int(x) for x in range_header.split("-"))
                if start > 0 and start >= total:
                    return httpx.Response(
                        416,
                        json={"code": "PGRST103", "message": "Requested range not satisfiable"},
                        headers={"content-range": f"*/{total}"},
                    )
                matched = matched[start : end + 1]
            headers = {}
            if "count=exact" in request.headers.get("prefer", ""):
                span = f"{start}-{start + len(matched) - 1}" if matched else "*"
                headers["content-range"] = f"{span}/{total}"
            body = [self._project(table, r, select) for r in matched]
            return httpx.Response(200, json=body, headers=headers)

        if method == "PATCH":
            self.calls.append(("update", table))
            if table in self.fail_update:
                return httpx.Response(403, json={"code": "42501", "message": self.fail_update[table]})
            values = json.loads(request.content)
            for row in matched:
                row.update(values)
            if "return=representation" in request.headers.get("prefer", ""):
                return httpx.Response(200, json=[self._project(table, r, select) for r in matched])
            return httpx.Response(204)

        if method == "DELETE":
            self.calls.append(("delete", table))
            if table in self.fail_delete:
                return httpx.Response(409, json={"code": "23503", "message": self.fail_delete[table]})
            ids = {id(r) for r in matched}
            self.tables[table] = [r for r in self.tables[table] if id(r) not in ids]
            return httpx.Response(204)

        return httpx.Response(405, json={"message": f"unsupported method {method}"})

    # -- Query semantics ---------------------------------------------------------

    def _matches(self, row: dict[str, Any], filters: list[tuple[str, str]]) -> bool:
        for column, expression in filters:
            if column == "or":
                clauses = expression.strip("()").split(",")
                if not any(self._ilike(row, clause) for clause in clauses):
                    return False
                continue
            operator, _, operand = expression.partition(".")
            value = row.get(column)
            if operator == "eq" and _encode(value) != operand:
                return False
            if operator == "neq" and _encode(value) == operand:
                return False
            if operator == "is" and _encode(value) != operand:
                return False
            if operator == "in" and _encode(value) not in _QUOTED.findall(operand):
                return False
        return True

    @staticmethod
    def _ilike(row: dict[str, Any], clause: str) -> bool:
        column, _, pattern = clause.split(".", 2)
        needle = pattern.strip("*").lower()
        return needle in _encode(row.get(column)).lower()

    @staticmethod
    def _sorted(rows: list[dict[str, Any]], clause: str) -> list[dict[str, Any]]:
        column, direction, *modifiers = clause.split(".")
        descending = direction == "desc"
        nulls_last = "nullslast" in modifiers or not descending
        present = [r for r in rows if r.get(column) is not None]
        absent = [r for r in rows if r.get(column) is None]
        present.sort(key=lambda r: r[column], reverse=descending)
        return present + absent if nulls_last else absent + present

    def _project(self, table: str, row: dict[str, Any], select: str) -> dict[str, Any]:
        if select == "*":
            return dict(row)
        projected: dict[str, Any] = {}
        for column in _split_top_level(select):
            if "(" in column:
                relation, _, inner = column.partition("(")
                projected[relation] = self._join(row, relation, inner.rstrip(")"))
            else:
                projected[column] = row.get(column)
        return projected

    def _join(self, row: dict[str, Any], relation: str, select: str) -> Any:
        target = self.find(relation, row.get("document_type_id") or "")
        if target is None:
            return [] if self.join_as_list else None
        joined = self._project(relation, target, select)
        return [joined] if self.join_as_list else joined


# -- Fixtures -------------------------------------------------------------------


@pytest.fixture()
def fake_backend() -> FakeBackend:
    backend = FakeBackend()
    backend.add_user(STAFF_TOKEN, STAFF_EMAIL)
    return backend


@pytest.fixture()
def http_client(fake_backend: FakeBackend) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=fake_backend.transport())


@pytest.fixture()
def caller() -> AuthenticatedCaller:
    return AuthenticatedCaller(
        identity=Identity(user_id="user-1", email=STAFF_EMAIL),
        access_token=STAFF_TOKEN,
    )


@pytest.fixture()
def elevated_backend(http_client: httpx.AsyncClient) -> PrivilegedBackend:
    client = BackendClient(BASE_URL, SERVICE_KEY, client=http_client)
    return PrivilegedBackend(client=client, elevated=True)


@pytest.fixture()
def scoped_backend(http_client: httpx.AsyncClient) -> PrivilegedBackend:
    client = BackendClient(BASE_URL, ANON_KEY, STAFF_TOKEN, client=http_client)
    return PrivilegedBackend(client=client, elevated=False)


@pytest.fixture()
def backend_settings() -> BackendSettings:
    """Caller-scoped configuration: no service role key, no allowlist."""
    return BackendSettings(
        url=BASE_URL,
        anon_key=ANON_KEY,
        service_role_key="",
        admin_emails="",
        storage_remove_batch_size=100,
    )


@pytest.fixture()
def app(
    fake_backend: FakeBackend,
    backend_settings: BackendSettings,
    http_client: httpx.AsyncClient,
) -> FastAPI:
    """Application wired to the fake backend.

    Tests adjust ``backend_settings`` in place (e.g. set a service role key)
    before issuing requests; the override returns the same instance.
    """
    application = create_app(AppSettings(title="Clientvault Test", version="0.0.0"))
    application.state.http_client = http_client
    application.dependency_overrides[get_backend_settings] = lambda: backend_settings
    return application


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    """TestClient for the application (lifespan hooks executed)."""
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture()
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {STAFF_TOKEN}"}
