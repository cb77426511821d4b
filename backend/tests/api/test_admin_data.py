"""Tests for the /api/superadmin/admin-data privileged endpoint."""

import pytest
from httpx import AsyncClient

from superadmin.api.deps import get_document_store
from superadmin.core.exceptions import PersistenceFailureError
from superadmin.main import app
from superadmin.services.audit import AuditAction
from superadmin.services.documents import DocumentStore

from conftest import USERNAME

DATA_URL = "/api/superadmin/admin-data"


class CountingStore(DocumentStore):
    """Records every call; optionally fails them all."""

    def __init__(self, fail: bool = False):
        self.calls: list[tuple] = []
        self.fail = fail

    async def _call(self, *args):
        self.calls.append(args)
        if self.fail:
            raise PersistenceFailureError(args[0], "store offline")

    async def list(self, collection, limit=None):
        await self._call("list", collection, limit)
        return []

    async def create(self, collection, data):
        await self._call("create", collection, data)
        return "generated-id"

    async def update(self, collection, document_id, data):
        await self._call("update", collection, document_id, data)

    async def delete(self, collection, document_id):
        await self._call("delete", collection, document_id)


@pytest.fixture
def counting_store() -> CountingStore:
    store = CountingStore()
    app.dependency_overrides[get_document_store] = lambda: store
    return store


class TestUnauthorizedAccess:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method,kwargs",
        [
            ("GET", {"params": {"entity": "users"}}),
            ("POST", {"json": {"entity": "users", "data": {"email": "a@b.c"}}}),
            ("PUT", {"json": {"entity": "users", "id": "abc", "data": {}}}),
            ("DELETE", {"params": {"entity": "users", "id": "abc"}}),
        ],
    )
    async def test_no_token_is_rejected_before_store_access(
        self, client: AsyncClient, counting_store: CountingStore, audit_entries, method, kwargs
    ):
        response = await client.request(method, DATA_URL, **kwargs)

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED"
        assert counting_store.calls == []
        entries = await audit_entries()
        assert [e.action for e in entries] == [AuditAction.ADMIN_DATA_UNAUTHORIZED]
        assert entries[0].success is False

    @pytest.mark.asyncio
    async def test_pending_token_is_rejected(self, client: AsyncClient, session_manager, counting_store):
        pending = session_manager.issue(session_manager.new_claim(USERNAME, stage="pending_2fa"))

        response = await client.get(
            DATA_URL, params={"entity": "users"}, headers={"Authorization": f"Bearer {pending}"}
        )

        assert response.status_code == 401
        assert counting_store.calls == []

    @pytest.mark.asyncio
    async def test_expired_token_is_rejected(self, client: AsyncClient, full_token, clock, counting_store):
        clock.advance(hours=3)

        response = await client.get(
            DATA_URL, params={"entity": "users"}, headers={"Authorization": f"Bearer {full_token}"}
        )

        assert response.status_code == 401
        assert counting_store.calls == []


class TestDocumentCrud:
    @pytest.mark.asyncio
    async def test_create_list_update_delete_user(self, authenticated_client: AsyncClient, audit_entries):
        created = await authenticated_client.post(
            DATA_URL, json={"entity": "users", "data": {"email": "trader@example.com", "plan": "free"}}
        )
        assert created.status_code == 200
        document_id = created.json()["id"]

        listed = await authenticated_client.get(DATA_URL, params={"entity": "users"})
        assert listed.status_code == 200
        body = listed.json()
        assert body["count"] == 1
        assert body["data"][0]["id"] == document_id
        assert body["data"][0]["email"] == "trader@example.com"

        updated = await authenticated_client.put(
            DATA_URL, json={"entity": "users", "id": document_id, "data": {"plan": "pro"}}
        )
        assert updated.status_code == 200

        listed = await authenticated_client.get(DATA_URL, params={"entity": "users"})
        assert listed.json()["data"][0]["plan"] == "pro"
        assert listed.json()["data"][0]["email"] == "trader@example.com"

        deleted = await authenticated_client.delete(DATA_URL, params={"entity": "users", "id": document_id})
        assert deleted.status_code == 200

        listed = await authenticated_client.get(DATA_URL, params={"entity": "users"})
        assert listed.json() == {"data": [], "count": 0}

        actions = sorted(e.action for e in await audit_entries())
        assert actions == [
            "CREATE_USERS",
            "DELETE_USERS",
            "READ_USERS",
            "READ_USERS",
            "READ_USERS",
            "UPDATE_USERS",
        ]

    @pytest.mark.asyncio
    async def test_geofences_are_kept_apart_from_users(self, authenticated_client: AsyncClient):
        await authenticated_client.post(
            DATA_URL, json={"entity": "geofences", "data": {"country": "KP", "action": "block"}}
        )

        users = await authenticated_client.get(DATA_URL, params={"entity": "users"})
        geofences = await authenticated_client.get(DATA_URL, params={"entity": "geofences"})

        assert users.json()["count"] == 0
        assert geofences.json()["count"] == 1
        assert geofences.json()["data"][0]["country"] == "KP"

    @pytest.mark.asyncio
    async def test_list_limit_is_honoured(self, authenticated_client: AsyncClient):
        for i in range(3):
            await authenticated_client.post(DATA_URL, json={"entity": "users", "data": {"n": i}})

        response = await authenticated_client.get(DATA_URL, params={"entity": "users", "limit": 2})

        assert response.json()["count"] == 2

    @pytest.mark.asyncio
    async def test_update_of_missing_document_is_404_and_audited(
        self, authenticated_client: AsyncClient, audit_entries
    ):
        response = await authenticated_client.put(
            DATA_URL,
            json={"entity": "users", "id": "00000000-0000-0000-0000-000000000000", "data": {}},
        )

        assert response.status_code == 404
        entries = await audit_entries()
        assert [(e.action, e.success) for e in entries] == [("UPDATE_USERS", False)]

    @pytest.mark.asyncio
    async def test_unknown_entity_is_400_and_audited(self, authenticated_client: AsyncClient, audit_entries):
        response = await authenticated_client.get(DATA_URL, params={"entity": "trades"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"
        entries = await audit_entries()
        assert [(e.action, e.success) for e in entries] == [("READ_TRADES", False)]

    @pytest.mark.asyncio
    async def test_read_only_entity_cannot_be_created(self, authenticated_client: AsyncClient):
        response = await authenticated_client.post(DATA_URL, json={"entity": "analytics", "data": {}})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request"}

    @pytest.mark.asyncio
    async def test_store_failure_is_500_and_audited_once(
        self, authenticated_client: AsyncClient, audit_entries
    ):
        app.dependency_overrides[get_document_store] = lambda: CountingStore(fail=True)

        response = await authenticated_client.post(DATA_URL, json={"entity": "users", "data": {}})

        assert response.status_code == 500
        entries = await audit_entries()
        assert [(e.action, e.success) for e in entries] == [("CREATE_USERS", False)]


class TestReadOnlyEntities:
    @pytest.mark.asyncio
    async def test_analytics_summarises_users(self, authenticated_client: AsyncClient, clock):
        today = clock.now.date().isoformat()
        await authenticated_client.post(
            DATA_URL,
            json={"entity": "users", "data": {"stats": {"totalTrades": 10, "winRate": 60, "lastUpdated": today}}},
        )
        await authenticated_client.post(
            DATA_URL,
            json={"entity": "users", "data": {"stats": {"totalTrades": 5, "winRate": 45.5, "lastUpdated": "2020-01-01"}}},
        )

        response = await authenticated_client.get(DATA_URL, params={"entity": "analytics"})

        assert response.status_code == 200
        summary = response.json()["data"][0]
        assert summary["totalUsers"] == 2
        assert summary["activeToday"] == 1
        assert summary["totalTrades"] == 15
        assert summary["avgWinRate"] == 52.75

    @pytest.mark.asyncio
    async def test_analytics_follows_the_clock(self, authenticated_client: AsyncClient, clock):
        await authenticated_client.post(
            DATA_URL,
            json={"entity": "users", "data": {"stats": {"lastUpdated": clock.now.date().isoformat()}}},
        )

        clock.advance(days=1)
        response = await authenticated_client.get(DATA_URL, params={"entity": "analytics"})

        assert response.json()["data"][0]["activeToday"] == 0

    @pytest.mark.asyncio
    async def test_analytics_tolerates_malformed_stats(self, authenticated_client: AsyncClient, audit_entries):
        await authenticated_client.post(DATA_URL, json={"entity": "users", "data": {"stats": {"totalTrades": "many"}}})
        await authenticated_client.post(DATA_URL, json={"entity": "users", "data": {"stats": "not-a-dict"}})
        await authenticated_client.post(
            DATA_URL, json={"entity": "users", "data": {"stats": {"totalTrades": 4, "winRate": [1, 2]}}}
        )

        response = await authenticated_client.get(DATA_URL, params={"entity": "analytics"})

        assert response.status_code == 200
        summary = response.json()["data"][0]
        assert summary["totalUsers"] == 3
        assert summary["totalTrades"] == 4
        assert summary["avgWinRate"] == 0
        entries = await audit_entries()
        assert sorted((e.action, e.success) for e in entries) == [
            ("CREATE_USERS", True),
            ("CREATE_USERS", True),
            ("CREATE_USERS", True),
            ("READ_ANALYTICS", True),
        ]

    @pytest.mark.asyncio
    async def test_unexpected_read_error_is_audited(self, authenticated_client: AsyncClient, audit_entries):
        class BrokenStore(CountingStore):
            async def list(self, collection, limit=None):
                raise RuntimeError("driver crashed")

        app.dependency_overrides[get_document_store] = lambda: BrokenStore()

        response = await authenticated_client.get(DATA_URL, params={"entity": "users"})

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "INTERNAL_ERROR"
        entries = await audit_entries()
        assert [(e.action, e.success) for e in entries] == [("READ_USERS", False)]

    @pytest.mark.asyncio
    async def test_audit_logs_entity_lists_recent_entries(self, authenticated_client: AsyncClient):
        await authenticated_client.get(DATA_URL, params={"entity": "users"})

        response = await authenticated_client.get(DATA_URL, params={"entity": "audit_logs"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert [entry["action"] for entry in data] == ["READ_USERS"]
        assert data[0]["success"] is True
