"""
Route-level tests for the compliance, to-do, resources, nexus and auth routers.

Each test builds a FastAPI app with the routers under test, an in-memory
SQLite session and a pinned clock via dependency overrides.
"""
import pytest
from datetime import datetime, timedelta

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from app.auth import get_current_user, decode_token
from app.database import get_db, init_db, make_engine
from app.models.db_models import (
    UserDB, ComplianceAccountTypeDB, ComplianceSubmissionDB, NexusDataDB, SubmissionStatus,
)
from app.routers import auth_router, compliance_router, todos_router, resources_router, nexus_router
from app.services.renewals.clock import FixedClock, get_clock


NOW = datetime(2024, 12, 20, 9, 30, 0)
TODAY = NOW.date()


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def db():
    engine = make_engine("sqlite://")
    init_db(engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def user(db):
    user = UserDB(id="user-1", email="owner@example.com", name="Owner", password_hash="x")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def app(db, user, clock) -> FastAPI:
    app = FastAPI()
    for router in (auth_router, compliance_router, todos_router, resources_router, nexus_router):
        app.include_router(router)

    def _override_db():
        yield db

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_current_user] = lambda: user
    app.dependency_overrides[get_clock] = lambda: clock
    return app


@pytest.fixture
def client(app: FastAPI):
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def submission_payload(**overrides):
    payload = {
        "compliance_type": "Sales and Use Tax Permit",
        "state": "ca",
        "state_agency": "CDTFA",
        "entity_name": "Acme LLC",
        "expiration_date": (TODAY + timedelta(days=10)).isoformat(),
    }
    payload.update(overrides)
    return payload


# =============================================================================
# TEST: COMPLIANCE ROUTES
# =============================================================================

class TestComplianceRoutes:

    def test_create_then_duplicate_is_conflict(self, client: TestClient):
        first = client.post("/compliance", json=submission_payload())
        second = client.post("/compliance", json=submission_payload())

        assert first.status_code == 201
        assert first.json()["state"] == "CA"
        assert first.json()["renewal_due_date"] == (TODAY + timedelta(days=10)).isoformat()
        assert second.status_code == 409
        assert second.json()["detail"]["existing_submission_id"] == first.json()["id"]

    def test_invalid_state_code_is_rejected(self, client: TestClient):
        response = client.post("/compliance", json=submission_payload(state="California"))
        assert response.status_code == 422

    def test_renew_endpoint(self, client: TestClient, db):
        created = client.post("/compliance", json=submission_payload()).json()
        client.post("/todos/sync-renewals")

        response = client.post(
            f"/compliance/{created['id']}/renew",
            json={"expiration_date": "2026-01-01"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["obsoleted_id"] == created["id"]
        assert len(body["completed_todo_ids"]) == 1
        assert body["submission"]["expiration_date"] == "2026-01-01"
        old = db.query(ComplianceSubmissionDB).filter(ComplianceSubmissionDB.id == created["id"]).first()
        assert old.status == SubmissionStatus.OBSOLETE

    def test_update_unknown_submission_is_404(self, client: TestClient):
        response = client.put("/compliance/missing", json={"notes": "x"})
        assert response.status_code == 404

    def test_update_into_existing_triple_is_conflict(self, client: TestClient):
        first = client.post("/compliance", json=submission_payload()).json()
        second = client.post("/compliance", json=submission_payload(state="NY")).json()

        response = client.put(f"/compliance/{second['id']}", json={"state": "CA"})

        assert response.status_code == 409
        assert response.json()["detail"]["existing_submission_id"] == first["id"]
        assert [s["id"] for s in client.get("/compliance", params={"state": "NY"}).json()] == [second["id"]]

    @pytest.mark.parametrize("field", ["compliance_type", "state", "status"])
    def test_null_for_required_column_is_rejected(self, client: TestClient, field):
        created = client.post("/compliance", json=submission_payload()).json()

        response = client.put(f"/compliance/{created['id']}", json={field: None})

        assert response.status_code == 422

    def test_renewed_reminder_cannot_be_deferred(self, client: TestClient, clock: FixedClock):
        created = client.post("/compliance", json=submission_payload()).json()
        client.post("/todos/sync-renewals")
        [flagged] = client.get("/todos").json()
        client.post(f"/compliance/{created['id']}/renew", json={"expiration_date": "2026-01-01"})

        deferred = client.post(f"/todos/{flagged['id']}/defer", json={"days": 1})
        dismissed = client.post(f"/todos/{flagged['id']}/dismiss")

        assert deferred.status_code == 400
        assert dismissed.status_code == 400

        clock.advance(days=1)
        client.post("/todos/sync-renewals")
        assert len(client.get("/compliance").json()) == 1


    def test_account_type_form(self, client: TestClient, db):
        account_type = ComplianceAccountTypeDB(
            id="acct-1",
            name="SOS Business Entity",
            state="CA",
            state_agency="Secretary of State",
            required_fields='["entityName"]',
            default_duration="24",
        )
        db.add(account_type)
        db.commit()

        listed = client.get("/compliance/account-types", params={"state": "ca"}).json()
        form = client.get("/compliance/account-types/acct-1/form", params={"filing_date": "2024-03-15"}).json()

        assert [t["name"] for t in listed] == ["SOS Business Entity"]
        assert listed[0]["required_fields"] == ["entityName"]
        assert "entityName" in form["visible_fields"]
        assert "notes" not in form["visible_fields"]
        assert form["prefill"]["expirationDate"] == "2026-03-15"

    def test_unknown_account_type_form_is_404(self, client: TestClient):
        assert client.get("/compliance/account-types/missing/form").status_code == 404


# =============================================================================
# TEST: TODO ROUTES
# =============================================================================

class TestTodoRoutes:

    def test_flagged_items_cannot_be_created_manually(self, client: TestClient):
        response = client.post("/todos", json={"title": "Renew", "item_type": "FLAGGED_ITEM"})
        assert response.status_code == 400

    def test_sync_then_dismiss_hides_item(self, client: TestClient):
        client.post("/compliance", json=submission_payload())

        sync = client.post("/todos/sync-renewals").json()
        [flagged] = client.get("/todos").json()

        assert sync["created"] == 1
        assert flagged["item_type"] == "FLAGGED_ITEM"
        assert flagged["priority"] == "HIGH"
        assert flagged["title"] == "Renew Sales and Use Tax Permit - CA"

        dismissed = client.post(f"/todos/{flagged['id']}/dismiss")
        assert dismissed.status_code == 200
        assert dismissed.json()["submission_status"] == "USER_DISMISSED"
        assert client.get("/todos").json() == []
        assert client.post("/todos/sync-renewals").json()["created"] == 0

    def test_tasks_sort_before_flagged_items(self, client: TestClient):
        client.post("/compliance", json=submission_payload())
        client.post("/todos/sync-renewals")
        client.post("/todos", json={"title": "Call the accountant", "priority": "LOW"})

        items = client.get("/todos").json()

        assert [i["item_type"] for i in items] == ["TASK", "FLAGGED_ITEM"]

    def test_defer_hides_item_until_elapsed(self, client: TestClient, clock: FixedClock):
        client.post("/compliance", json=submission_payload(
            expiration_date=(TODAY + timedelta(days=20)).isoformat()
        ))
        client.post("/todos/sync-renewals")
        [flagged] = client.get("/todos").json()

        response = client.post(f"/todos/{flagged['id']}/defer", json={"days": 2})
        assert response.status_code == 200
        assert client.get("/todos").json() == []

        clock.advance(days=2)
        sync = client.post("/todos/sync-renewals").json()
        items = client.get("/todos").json()

        assert sync["reactivated"] == 1
        assert sync["created"] == 1
        assert [i["status"] for i in items] == ["PENDING", "COMPLETED"]

    def test_defer_requires_positive_days(self, client: TestClient):
        client.post("/compliance", json=submission_payload())
        client.post("/todos/sync-renewals")
        [flagged] = client.get("/todos").json()

        response = client.post(f"/todos/{flagged['id']}/defer", json={"days": 0})
        assert response.status_code == 422

    def test_dismissing_a_task_is_bad_request(self, client: TestClient):
        task = client.post("/todos", json={"title": "File quarterly return"}).json()
        response = client.post(f"/todos/{task['id']}/dismiss")
        assert response.status_code == 400

    @pytest.mark.parametrize("field", ["title", "priority", "status"])
    def test_null_for_required_column_is_rejected(self, client: TestClient, field):
        task = client.post("/todos", json={"title": "File quarterly return"}).json()

        response = client.put(f"/todos/{task['id']}", json={field: None})

        assert response.status_code == 422
        assert client.get("/todos").json()[0]["title"] == "File quarterly return"

    def test_null_description_is_allowed(self, client: TestClient):
        task = client.post("/todos", json={"title": "File quarterly return", "description": "Q4"}).json()

        response = client.put(f"/todos/{task['id']}", json={"description": None})

        assert response.status_code == 200
        assert response.json()["description"] is None


    def test_upcoming_renewals(self, client: TestClient):
        client.post("/compliance", json=submission_payload())

        body = client.get("/todos/upcoming-renewals").json()

        assert body["window_days"] == 30
        assert body["count"] == 1
        assert body["renewals"][0]["days_remaining"] == 10


# =============================================================================
# TEST: RESOURCE ROUTES
# =============================================================================

class TestResourceRoutes:

    def _create(self, client, **overrides):
        payload = {
            "state": "ca",
            "compliance_type": "SOS Registration",
            "title": "California Secretary of State Business Registration",
            "description": "All businesses operating in California must register.",
        }
        payload.update(overrides)
        return client.post("/resources", json=payload)

    def test_create_and_filter(self, client: TestClient):
        created = self._create(client)
        self._create(client, state="TX", title="Texas Secretary of State Business Filing",
                     description="Certificate of authority required.")

        assert created.status_code == 201
        assert created.json()["state"] == "CA"
        assert len(client.get("/resources").json()) == 2
        assert [r["state"] for r in client.get("/resources", params={"state": "tx"}).json()] == ["TX"]
        assert len(client.get("/resources", params={"search": "authority"}).json()) == 1

    def test_update_and_delete(self, client: TestClient):
        resource_id = self._create(client).json()["id"]

        updated = client.put(f"/resources/{resource_id}", json={"fees": "$70 filing fee"})
        deleted = client.delete(f"/resources/{resource_id}")

        assert updated.json()["fees"] == "$70 filing fee"
        assert deleted.status_code == 200
        assert client.get(f"/resources/{resource_id}").status_code == 404

    @pytest.mark.parametrize("field", ["state", "compliance_type", "title", "description"])
    def test_null_for_required_column_is_rejected(self, client: TestClient, field):
        resource_id = self._create(client).json()["id"]

        response = client.put(f"/resources/{resource_id}", json={field: None})

        assert response.status_code == 422



# =============================================================================
# TEST: NEXUS ROUTES
# =============================================================================

class TestNexusRoutes:

    def test_analyze_persists_results(self, client: TestClient, db):
        content = b"name,state\nJane,CA\nJohn,TX\n"

        response = client.post(
            "/nexus/analyze",
            files={"file": ("payroll.csv", content, "text/csv")},
            data={"file_type": "payroll"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["analysis_results"]["statesIdentified"] == ["CA", "TX"]
        assert body["analysis_results"]["totalRecords"] == 2
        assert len(body["recommendations"]) == 2
        assert db.query(NexusDataDB).count() == 1

        history = client.get("/nexus/history").json()
        assert history[0]["file_name"] == "payroll.csv"

    def test_empty_upload_is_rejected(self, client: TestClient):
        response = client.post("/nexus/analyze", files={"file": ("empty.csv", b"", "text/csv")})
        assert response.status_code == 400


# =============================================================================
# TEST: AUTH ROUTES
# =============================================================================

class TestAuthRoutes:

    def test_register_and_login(self, client: TestClient):
        registered = client.post("/auth/register", json={
            "email": "new@example.com", "password": "correct-horse", "name": "New User",
        })
        assert registered.status_code == 201
        assert decode_token(registered.json()["token"])["email"] == "new@example.com"

        login = client.post("/auth/login", json={"email": "new@example.com", "password": "correct-horse"})
        bad = client.post("/auth/login", json={"email": "new@example.com", "password": "wrong-password"})

        assert login.status_code == 200
        assert bad.status_code == 401

    def test_duplicate_registration(self, client: TestClient):
        payload = {"email": "owner@example.com", "password": "long-enough-pw"}
        assert client.post("/auth/register", json=payload).status_code == 400

    def test_short_password_is_rejected(self, client: TestClient):
        response = client.post("/auth/register", json={"email": "x@example.com", "password": "short"})
        assert response.status_code == 422
