import uuid


HARDWARE_SCHEMA = [
    {"key": "serialNumber", "label": "Serial Number", "data_type": "STRING"},
    {"key": "warrantyExpiry", "label": "Warranty Expiry", "data_type": "DATE"},
]


def _type_id(client, name):
    return next(t["id"] for t in client.get("/resource-types").json() if t["name"] == name)


def _category_id(client, type_name, name):
    groups = client.get("/resource-categories/grouped").json()
    group = next(g for g in groups if g["resource_type"]["name"] == type_name)
    return next(c["id"] for c in group["categories"] if c["name"] == name)


def _employee(client, name):
    r = client.post("/employees", json={"name": name, "email": f"{name.lower()}@acme.io"})
    assert r.status_code == 201
    return r.json()


def _laptop(client):
    r = client.post("/resources", json={
        "name": "MacBook Pro #1",
        "resource_type_id": _type_id(client, "Hardware"),
        "resource_category_id": _category_id(client, "Hardware", "Laptop"),
        "property_schema": HARDWARE_SCHEMA,
    })
    assert r.status_code == 201
    return r.json()


def test_health(client):
    r = client.get("/health", headers={"X-Request-ID": "req-1"})
    assert r.json() == {"status": "ok"}
    assert r.headers["X-Request-ID"] == "req-1"


def test_catalog_endpoints(client):
    assert len(client.get("/property-catalog").json()) == 21
    grouped = client.get("/property-catalog/grouped").json()
    assert grouped["custom"] == []
    assert {t["name"] for t in client.get("/resource-types").json()} == {"Hardware", "Software", "Cloud"}

    r = client.post("/property-catalog", json={"key": "assetTag", "label": "Asset Tag", "data_type": "STRING", "default_value": "TBD"})
    assert r.status_code == 201
    assert r.json()["default_value"] == "TBD"


def test_macbook_flow_over_http(client):
    actor = str(uuid.uuid4())
    headers = {"X-Actor-ID": actor}
    alice = _employee(client, "Alice")
    bob = _employee(client, "Bob")
    laptop = _laptop(client)
    assert laptop["schema_locked"] is False

    r = client.post(f"/resources/{laptop['id']}/items", json={"properties": {"serialNumber": "SN-001", "warrantyExpiry": "2027-01-01"}}, headers=headers)
    assert r.status_code == 201
    item = r.json()
    assert item["status"] == "AVAILABLE"
    assert client.get(f"/resources/{laptop['id']}").json()["schema_locked"] is True

    r = client.post(f"/resources/{laptop['id']}/items", json={"properties": {"serialNumber": "SN-002"}})
    assert r.status_code == 422
    body = r.json()
    assert body["code"] == "MISSING_MANDATORY_PROPERTIES"
    assert body["details"]["missing_properties"] == ["warrantyExpiry"]

    r = client.post("/assignments", json={"employee_id": alice["id"], "resource_id": laptop["id"], "item_id": item["id"]}, headers=headers)
    assert r.status_code == 201
    assignment = r.json()
    assert assignment["assignment_type"] == "INDIVIDUAL"
    assert assignment["assigned_by"] == actor
    assert client.get(f"/items/{item['id']}").json()["status"] == "ASSIGNED"

    r = client.post("/assignments", json={"employee_id": bob["id"], "resource_id": laptop["id"], "item_id": item["id"]})
    assert r.status_code == 409
    assert r.json()["code"] == "ITEM_UNAVAILABLE"

    r = client.post(f"/assignments/{assignment['id']}/revoke", json={"reason": "Replaced"})
    assert r.status_code == 200
    assert r.json()["status"] == "RETURNED"
    assert r.json()["notes"] == "Revoked: Replaced"

    r = client.post("/assignments", json={"employee_id": bob["id"], "resource_id": laptop["id"], "item_id": item["id"]})
    assert r.status_code == 201

    history = client.get(f"/employees/{alice['id']}/assignments").json()
    assert [a["status"] for a in history] == ["RETURNED"]


def test_locked_schema_change_is_a_conflict(client):
    laptop = _laptop(client)
    client.post(f"/resources/{laptop['id']}/items", json={"properties": {"serialNumber": "SN-001", "warrantyExpiry": "2027-01-01"}})
    schema = HARDWARE_SCHEMA + [{"key": "hostname", "label": "Hostname", "data_type": "STRING"}]
    r = client.patch(f"/resources/{laptop['id']}", json={"property_schema": schema})
    assert r.status_code == 409
    assert r.json()["code"] == "SCHEMA_LOCKED"
    assert r.json()["details"]["blocking_count"] == 1
    assert client.get(f"/resources/{laptop['id']}/schema-status").json()["can_modify"] is False


def test_item_with_active_assignment_cannot_be_deleted(client):
    alice = _employee(client, "Alice")
    laptop = _laptop(client)
    item = client.post(f"/resources/{laptop['id']}/items", json={"properties": {"serialNumber": "SN-001", "warrantyExpiry": "2027-01-01"}}).json()
    client.post("/assignments", json={"employee_id": alice["id"], "resource_id": laptop["id"], "item_id": item["id"]})

    assert client.get(f"/items/{item['id']}/can-delete").json()["can_delete"] is False
    r = client.delete(f"/items/{item['id']}")
    assert r.status_code == 409
    assert r.json()["code"] == "ACTIVE_ASSIGNMENT"


def test_pooled_capacity_over_http(client):
    alice, bob = _employee(client, "Alice"), _employee(client, "Bob")
    r = client.post("/resources", json={
        "name": "Figma Seats",
        "resource_type_id": _type_id(client, "Software"),
        "resource_category_id": _category_id(client, "Software", "SaaS"),
        "property_schema": [{"key": "licenseKey", "label": "License Key", "data_type": "STRING"}],
        "quantity": 1,
    })
    pool = r.json()
    assert client.post("/assignments", json={"employee_id": alice["id"], "resource_id": pool["id"], "assignment_type": "POOLED"}).status_code == 201

    r = client.post("/assignments/validate", json={"employee_id": bob["id"], "resource_id": pool["id"], "assignment_type": "POOLED"})
    assert r.json()["is_valid"] is False
    assert r.json()["error_code"] == "CAPACITY_EXCEEDED"

    r = client.post("/assignments", json={"employee_id": bob["id"], "resource_id": pool["id"], "assignment_type": "POOLED"})
    assert r.status_code == 409
    assert r.json()["details"] == {"used": 1, "total": 1}
    assert client.get(f"/resources/{pool['id']}/licenses").json() == {"available": 0, "total": 1, "used": 1}


def test_shared_users_endpoint(client):
    alice, bob = _employee(client, "Alice"), _employee(client, "Bob")
    r = client.post("/resources", json={
        "name": "AWS Production",
        "resource_type_id": _type_id(client, "Cloud"),
        "resource_category_id": _category_id(client, "Cloud", "Cloud Account"),
        "property_schema": [{"key": "maxUsers", "label": "Max Users", "data_type": "STRING"}],
    })
    cloud = r.json()
    for employee in (alice, bob):
        r = client.post("/assignments", json={"employee_id": employee["id"], "resource_id": cloud["id"]})
        assert r.json()["assignment_type"] == "SHARED"
    users = client.get(f"/resources/{cloud['id']}/shared-users").json()
    assert [u["employee_name"] for u in users] == ["Alice", "Bob"]


def test_legacy_item_views(client):
    laptop = _laptop(client)
    r = client.post(f"/resources/{laptop['id']}/items/legacy", json={
        "serialNumber": "SN-777",
        "warrantyExpiry": "2027-01-01",
        "licenseKey": "ignored",
    })
    assert r.status_code == 201
    item = r.json()
    assert item["properties"] == {"serialNumber": "SN-777", "warrantyExpiry": "2027-01-01"}

    view = client.get(f"/items/{item['id']}/legacy").json()
    assert view["serialNumber"] == "SN-777"
    assert view["resourceId"] == laptop["id"]
    assert "licenseKey" not in view

    assert client.get(f"/resources/{laptop['id']}/legacy").json()["type"] == "PHYSICAL"


def test_error_mapping(client):
    missing = uuid.uuid4()
    r = client.get(f"/resources/{missing}")
    assert r.status_code == 404
    assert r.json() == {"error": "Resource not found", "code": "NOT_FOUND", "details": {"entity": "Resource", "id": str(missing)}}

    assert client.post("/employees", json={"name": "Bad", "email": "not-an-email"}).status_code == 422
    r = client.delete(f"/items/{missing}", headers={"X-Actor-ID": "nobody"})
    assert r.status_code == 400


def test_duplicate_email_over_http(client):
    _employee(client, "Alice")
    r = client.post("/employees", json={"name": "Alice Two", "email": "alice@acme.io"})
    assert r.status_code == 422
    assert r.json()["code"] == "DUPLICATE_EMAIL"
