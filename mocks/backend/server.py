"""
Mock backend-as-a-service exposing a PostgREST-style REST surface.

Supports the subset the feed service uses: ``eq.`` / ``in.`` filters,
``limit``, ``order=created_at.desc`` and the embedded ``author`` and
``reactions``, ``saved_posts`` and ``post_shares`` selections on posts.
"""

import uuid
from datetime import datetime, timezone, timedelta
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from shared.logging import get_logger


RESERVED_PARAMS = {"select", "limit", "order", "offset"}

# table -> columns that must be unique together
UNIQUE_COLUMNS = {
    "reactions": ("target_id", "user_id"),
    "saved_posts": ("post_id", "user_id"),
}


class MockBackendServer:
    """In-memory backend with profile, post, reaction, save and share tables."""

    def __init__(self, port: int = 54321):
        self.port = port
        self.logger = get_logger("mock.backend")
        self.app = FastAPI(title="Mock Backend", version="1.0.0")

        self.tables: Dict[str, List[Dict[str, Any]]] = {
            "profiles": [],
            "posts": [],
            "reactions": [],
            "saved_posts": [],
            "post_shares": [],
        }
        self.request_log: List[Dict[str, Any]] = []
        # (method, table) -> (status_code, message) for injected failures
        self.failures: Dict[tuple, tuple] = {}

        self._seed()
        self._setup_routes()

    def _seed(self):
        now = datetime.now(timezone.utc)
        self.tables["profiles"] = [
            {"id": "u1", "username": "alice", "display_name": "Alice", "avatar_url": None, "is_verified": True},
            {"id": "u2", "username": "mikechen", "display_name": "Mike Chen", "avatar_url": None, "is_verified": False},
            {"id": "u3", "username": "alexr", "display_name": "Alex Rivera", "avatar_url": None, "is_verified": False},
        ]
        self.tables["posts"] = [
            {
                "id": f"post-{index}",
                "author_id": author,
                "content": f"Post number {index}",
                "shares": 0,
                "saves": 0,
                "views": 10 * index,
                "created_at": (now - timedelta(minutes=index)).isoformat(),
            }
            for index, author in enumerate(["u2", "u3", "u1"])
        ]
        self.tables["reactions"] = [
            {
                "id": "reaction-seed-1",
                "target_id": "post-0",
                "target_type": "post",
                "user_id": "u3",
                "reaction_type": "love",
                "created_at": now.isoformat(),
            }
        ]

    def fail(self, method: str, table: str, status_code: int = 500, message: str = "Mock failure"):
        """Make subsequent ``method`` calls on ``table`` fail."""
        self.failures[(method.upper(), table)] = (status_code, message)

    def clear_failures(self):
        self.failures.clear()

    def count_requests(self, method: str, table: str) -> int:
        return sum(1 for entry in self.request_log if entry["method"] == method and entry["table"] == table)

    def _setup_routes(self):
        """Set up mock REST routes."""

        @self.app.get("/rest/v1/{table}")
        async def select_rows(table: str, request: Request):
            failure = self._check(request.method, table)
            if failure is not None:
                return failure

            rows = self._filter(table, request.query_params)
            if request.query_params.get("order") == "created_at.desc":
                rows = sorted(rows, key=lambda row: row.get("created_at", ""), reverse=True)
            offset = int(request.query_params.get("offset") or 0)
            limit = request.query_params.get("limit")
            rows = rows[offset: offset + int(limit)] if limit else rows[offset:]

            select = request.query_params.get("select", "*")
            if table == "posts" and "author:" in select:
                rows = [self._embed_post(row) for row in rows]
            return rows

        @self.app.post("/rest/v1/{table}", status_code=201)
        async def insert_row(table: str, request: Request):
            failure = self._check(request.method, table)
            if failure is not None:
                return failure

            row = dict(await request.json())
            row.setdefault("id", str(uuid.uuid4()))
            row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
            unique = UNIQUE_COLUMNS.get(table)
            if unique and any(
                all(existing.get(column) == row.get(column) for column in unique)
                for existing in self.tables[table]
            ):
                return JSONResponse(status_code=409, content={"message": "duplicate key value violates unique constraint"})

            self.tables.setdefault(table, []).append(row)
            self.logger.debug("Mock row inserted", table=table, row_id=row["id"])
            return Response(status_code=201)

        @self.app.delete("/rest/v1/{table}")
        async def delete_rows(table: str, request: Request):
            failure = self._check(request.method, table)
            if failure is not None:
                return failure

            doomed = {id(row) for row in self._filter(table, request.query_params)}
            self.tables[table] = [row for row in self.tables.get(table, []) if id(row) not in doomed]
            return Response(status_code=204)

    def _check(self, method: str, table: str) -> Optional[JSONResponse]:
        self.request_log.append({"method": method, "table": table})
        if table not in self.tables:
            return JSONResponse(status_code=404, content={"message": f"relation {table} does not exist"})
        failure = self.failures.get((method, table))
        if failure is not None:
            status_code, message = failure
            return JSONResponse(status_code=status_code, content={"message": message})
        return None

    def _filter(self, table: str, params) -> List[Dict[str, Any]]:
        rows = list(self.tables.get(table, []))
        for column, expression in params.items():
            if column in RESERVED_PARAMS:
                continue
            operator, _, value = expression.partition(".")
            if operator == "eq":
                rows = [row for row in rows if str(row.get(column)) == value]
            elif operator == "in":
                wanted = set(value.strip("()").split(",")) if value.strip("()") else set()
                rows = [row for row in rows if str(row.get(column)) in wanted]
        return rows

    def _profile(self, user_id: str) -> Dict[str, Any]:
        for profile in self.tables["profiles"]:
            if profile["id"] == user_id:
                return dict(profile)
        return {"id": user_id}

    def _embed_post(self, row: Dict[str, Any]) -> Dict[str, Any]:
        embedded = dict(row)
        embedded["author"] = self._profile(row["author_id"])
        embedded["reactions"] = [
            {**reaction, "user": self._profile(reaction["user_id"])}
            for reaction in self.tables["reactions"]
            if reaction["target_id"] == row["id"] and reaction["target_type"] == "post"
        ]
        embedded["saved_posts"] = [{"user_id": saved["user_id"]} for saved in self.tables["saved_posts"] if saved["post_id"] == row["id"]]
        embedded["post_shares"] = [{"user_id": share["user_id"]} for share in self.tables["post_shares"] if share["post_id"] == row["id"]]
        embedded["saves"] = len(embedded["saved_posts"])
        embedded["shares"] = len(embedded["post_shares"])
        return embedded


def create_app(port: int = 54321) -> FastAPI:
    return MockBackendServer(port).app


if __name__ == "__main__":
    import uvicorn
    server = MockBackendServer()
    uvicorn.run(server.app, host="0.0.0.0", port=server.port)
