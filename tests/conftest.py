from __future__ import annotations

import asyncio
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx
import pytest

from mcp_drive_search.credentials import CredentialProvider, StaticCredentialProvider
from mcp_drive_search.drive_client import DriveClient, RetryPolicy
from mcp_drive_search.models import FOLDER_MIME_TYPE
from mcp_drive_search.service import DriveSearchService

BASE_URL = "https://drive.test/drive/v3"

_LITERAL = r"'((?:[^'\\]|\\.)*)'"


def _unescape(value: str) -> str:
    return re.sub(r"\\(.)", r"\1", value)


@dataclass
class Call:
    kind: str
    token: str
    parent: str | None = None
    name: str | None = None
    mime_op: str | None = None
    mime: str | None = None
    node_id: str | None = None
    page_token: str | None = None


@dataclass
class Fault:
    predicate: Callable[[Call], bool]
    status: int
    remaining: int | None
    reason: str | None = None
    headers: dict[str, str] = field(default_factory=dict)


class FakeDrive:
    """In-memory stand-in for the Drive v3 files endpoints."""

    def __init__(self) -> None:
        self.files: dict[str, dict[str, Any]] = {}
        self.calls: list[Call] = []
        self.faults: list[Fault] = []
        self.valid_tokens: set[str] | None = None
        self.delay: float = 0.0

    def add_folder(self, node_id: str, name: str, parent: str | None = None) -> None:
        self.files[node_id] = {
            "id": node_id,
            "name": name,
            "mimeType": FOLDER_MIME_TYPE,
            "parents": [parent] if parent else [],
        }

    def add_file(
        self,
        node_id: str,
        name: str,
        parent: str,
        *,
        mime: str = "application/pdf",
        size: int | None = 2048,
    ) -> None:
        data: dict[str, Any] = {
            "id": node_id,
            "name": name,
            "mimeType": mime,
            "parents": [parent],
            "modifiedTime": "2024-03-01T10:00:00.000Z",
        }
        if size is not None:
            data["size"] = str(size)
        self.files[node_id] = data

    def fail_when(
        self,
        predicate: Callable[[Call], bool],
        status: int,
        *,
        times: int | None = None,
        reason: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.faults.append(Fault(predicate, status, times, reason, headers or {}))

    def list_calls(self, **match: Any) -> list[Call]:
        return [
            c
            for c in self.calls
            if c.kind == "list" and all(getattr(c, k) == v for k, v in match.items())
        ]

    def _parse_list(self, request: httpx.Request, token: str) -> Call:
        q = request.url.params.get("q", "")
        parent = re.search(_LITERAL + r" in parents", q)
        name = re.search(r"name contains " + _LITERAL, q)
        mime = re.search(r"mimeType (=|!=) " + _LITERAL, q)
        return Call(
            kind="list",
            token=token,
            parent=_unescape(parent.group(1)) if parent else None,
            name=_unescape(name.group(1)) if name else None,
            mime_op=mime.group(1) if mime else None,
            mime=mime.group(2) if mime else None,
            page_token=request.url.params.get("pageToken"),
        )

    def _fault_for(self, call: Call) -> Fault | None:
        for fault in self.faults:
            if fault.remaining == 0 or not fault.predicate(call):
                continue
            if fault.remaining is not None:
                fault.remaining -= 1
            return fault
        return None

    @staticmethod
    def _error(fault: Fault) -> httpx.Response:
        errors = [{"reason": fault.reason}] if fault.reason else []
        body = {"error": {"code": fault.status, "message": f"fake {fault.status}", "errors": errors}}
        return httpx.Response(fault.status, json=body, headers=fault.headers)

    def _matches(self, data: dict[str, Any], call: Call) -> bool:
        if call.parent is not None and call.parent not in data["parents"]:
            return False
        if call.name is not None and call.name.lower() not in data["name"].lower():
            return False
        if call.mime_op == "=" and data["mimeType"] != call.mime:
            return False
        if call.mime_op == "!=" and data["mimeType"] == call.mime:
            return False
        return True

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if self.delay:
            await asyncio.sleep(self.delay)
        token = request.headers.get("authorization", "").removeprefix("Bearer ")
        path = request.url.path.removeprefix("/drive/v3")

        if path == "/files":
            call = self._parse_list(request, token)
        else:
            call = Call(kind="get", token=token, node_id=path.removeprefix("/files/"))
        self.calls.append(call)

        if self.valid_tokens is not None and token not in self.valid_tokens:
            return httpx.Response(401, json={"error": {"code": 401, "message": "bad token"}})
        fault = self._fault_for(call)
        if fault is not None:
            return self._error(fault)

        if call.kind == "get":
            data = self.files.get(call.node_id or "")
            if data is None:
                return httpx.Response(404, json={"error": {"code": 404, "message": "File not found"}})
            return httpx.Response(200, json=data)

        matches = [d for d in self.files.values() if self._matches(d, call)]
        order = request.url.params.get("orderBy", "")
        if order.startswith("folder"):
            matches.sort(key=lambda d: (d["mimeType"] != FOLDER_MIME_TYPE, d["name"]))
        else:
            matches.sort(key=lambda d: d["name"])
        page_size = int(request.url.params.get("pageSize", "100"))
        start = int(call.page_token or 0)
        page = matches[start : start + page_size]
        body: dict[str, Any] = {"files": page}
        if start + page_size < len(matches):
            body["nextPageToken"] = str(start + page_size)
        return httpx.Response(200, json=body)


def build_scenario(drive: FakeDrive) -> None:
    """R holds A/x.pdf and B/report-x.pdf; C sits beside R and also holds x.pdf."""
    drive.add_folder("my-drive", "My Drive")
    drive.add_folder("R", "Curriculum", "my-drive")
    drive.add_folder("A", "A", "R")
    drive.add_folder("B", "B", "R")
    drive.add_folder("B1", "Archive", "B")
    drive.add_folder("C", "C", "my-drive")
    drive.add_file("a-x", "x.pdf", "A")
    drive.add_file("a-notes", "notes.md", "A", mime="text/plain")
    drive.add_file("b-report", "report-x.pdf", "B")
    drive.add_file("b1-old", "old.pdf", "B1")
    drive.add_file("c-x", "x.pdf", "C")


@pytest.fixture
def drive() -> FakeDrive:
    fake = FakeDrive()
    build_scenario(fake)
    return fake


@pytest.fixture
def make_client(drive: FakeDrive) -> Callable[..., DriveClient]:
    def factory(
        *,
        credentials: CredentialProvider | None = None,
        page_size: int = 100,
        max_in_flight: int = 8,
        max_retries: int = 1,
        reauth_attempts: int = 1,
    ) -> DriveClient:
        return DriveClient(
            base_url=BASE_URL,
            credentials=credentials or StaticCredentialProvider("token-1"),
            page_size=page_size,
            max_in_flight=max_in_flight,
            retry=RetryPolicy(
                max_retries=max_retries,
                backoff_base=0.0,
                backoff_max=0.0,
                reauth_attempts=reauth_attempts,
            ),
            transport=httpx.MockTransport(drive.handler),
        )

    return factory


@pytest.fixture
def client(make_client: Callable[..., DriveClient]) -> DriveClient:
    return make_client()


@pytest.fixture
def service(client: DriveClient) -> DriveSearchService:
    return DriveSearchService(client, root_folder_id="R")


@pytest.fixture
def fail_global(drive: FakeDrive) -> None:
    """Make the store-wide name query fail every time."""
    drive.fail_when(lambda c: c.kind == "list" and c.parent is None, 500)
