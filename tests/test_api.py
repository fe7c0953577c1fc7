"""HTTP tests for the /api routes."""
from enums import UserType
from services.schedule import check_slot_availability
from conftest import PASSWORD

SIGNUP = {
    "firstName": "Jane",
    "lastName": "Doe",
    "email": "Jane@Example.com",
    "password": "hunter22",
    "type": "customer",
}


def test_home(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json() == {"message": "CarMedic API is live"}


def test_signup_creates_user_and_one_token(client, db):
    response = client.post("/api/auth/signup", json=SIGNUP)

    assert response.status_code == 201
    data = response.json()
    assert data["token"]
    assert data["user"]["email"] == "jane@example.com"
    assert "password" not in data["user"]

    user = db["users"].find_one({"email": "jane@example.com"})
    assert db["users"].count_documents({}) == 1
    assert db["tokens"].count_documents({"userId": user["_id"], "type": "auth", "isValid": True}) == 1


def test_signup_reports_missing_fields(client):
    response = client.post("/api/auth/signup", json={"email": "a@b.co"})

    assert response.status_code == 400
    assert set(response.json()["missingFields"]) == {"firstName", "lastName", "password", "type"}


def test_signup_duplicate_email(client):
    client.post("/api/auth/signup", json=SIGNUP)
    response = client.post("/api/auth/signup", json={**SIGNUP, "email": "jane@example.com"})

    assert response.status_code == 400
    assert response.json()["message"] == "Email already registered"


def test_login_and_logout(client, customer):
    response = client.post("/api/auth/login", json={"email": customer["email"], "password": PASSWORD})
    assert response.status_code == 200
    headers = {"Authorization": f"Bearer {response.json()['token']}"}

    assert client.get("/api/users/profile", headers=headers).status_code == 200
    assert client.post("/api/auth/logout", headers=headers).status_code == 200
    assert client.get("/api/users/profile", headers=headers).status_code == 401


def test_login_wrong_password(client, customer):
    response = client.post("/api/auth/login", json={"email": customer["email"], "password": "nope"})

    assert response.status_code == 401
    assert response.json() == {"message": "Invalid credentials"}


def test_quoted_bearer_credential(client, customer, token_service):
    credential = token_service.issue_token(customer["_id"])

    response = client.get("/api/users/profile", headers={"Authorization": f'Bearer "{credential}"'})

    assert response.status_code == 200


def test_profile_requires_authentication(client):
    response = client.get("/api/users/profile")

    assert response.status_code == 401
    assert response.json()["message"] == "Authentication required"


def test_check_email(client, customer):
    assert client.get(f"/api/auth/check-email/{customer['email']}").json()["available"] is False
    assert client.get("/api/auth/check-email/free@example.com").json()["available"] is True
    assert client.get("/api/auth/check-email/not-an-email").status_code == 400


def test_garage_add_and_remove(client, customer, auth_headers):
    headers = auth_headers(customer)
    vehicle = {"carModelId": "64b7f0c2a1b2c3d4e5f60718", "licensePlate": "ABC-123", "year": 2019}

    response = client.post("/api/users/garage/add", json=vehicle, headers=headers)
    assert response.status_code == 201
    vehicle_id = response.json()["vehicle"]["id"]

    duplicate = client.post("/api/users/garage/add", json=vehicle, headers=headers)
    assert duplicate.status_code == 400

    assert client.delete(f"/api/users/garage/{vehicle_id}", headers=headers).status_code == 200
    assert client.delete(f"/api/users/garage/{vehicle_id}", headers=headers).status_code == 404


def test_admin_suspends_user(client, customer, make_user, auth_headers):
    customer_headers = auth_headers(customer)
    admin_headers = auth_headers(make_user(UserType.ADMIN))

    assert client.get("/api/users", headers=customer_headers).status_code == 403

    response = client.patch(f"/api/users/{customer['_id']}/status", json={"status": "suspended"}, headers=admin_headers)
    assert response.status_code == 200
    assert client.get("/api/users/profile", headers=customer_headers).status_code == 401

    listing = client.get("/api/users", params={"search": "example"}, headers=admin_headers).json()
    assert listing["total"] == 2


def test_catalog_endpoints(client, make_user, auth_headers):
    admin_headers = auth_headers(make_user(UserType.ADMIN))
    body = {"name": "Wheel Alignment", "category": "tyres", "description": "Four wheel alignment"}

    created = client.post("/api/services", json=body, headers=admin_headers)
    assert created.status_code == 201

    first = client.get("/api/services").json()
    second = client.get("/api/services").json()
    assert first["fromCache"] is False
    assert second["fromCache"] is True

    service_id = created.json()["service"]["id"]
    client.put(f"/api/services/{service_id}", json={"description": "Alignment check"}, headers=admin_headers)
    assert client.get("/api/services").json()["fromCache"] is False

    search = client.get("/api/services/search", params={"query": "alignment"}).json()
    assert search["count"] == 1
    assert client.get("/api/services/category/tyres").json()["services"][0]["name"] == "Wheel Alignment"

    assert client.delete(f"/api/services/{service_id}", headers=admin_headers).status_code == 200
    assert client.delete(f"/api/services/{service_id}", headers=admin_headers).status_code == 404


def test_catalog_writes_require_admin(client, customer, auth_headers):
    response = client.post("/api/services", json={"name": "x"}, headers=auth_headers(customer))

    assert response.status_code == 403


def test_invalid_object_id(client):
    response = client.get("/api/services/not-an-id")

    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "serviceId"


def test_booking_flow_over_http(client, db, shop, owner, customer, oil_change, auth_headers):
    owner_headers = auth_headers(owner)
    customer_headers = auth_headers(customer)
    mechanic_id = str(shop["_id"])

    slots = {
        "date": "2030-05-01T00:00:00",
        "slots": [
            {"startTime": "2030-05-01T09:00:00", "endTime": "2030-05-01T10:00:00"},
            {"startTime": "2030-05-01T10:00:00", "endTime": "2030-05-01T11:00:00"},
        ],
    }
    assert client.post(f"/api/mechanics/{mechanic_id}/slots", json=slots, headers=owner_headers).status_code == 200

    booked = client.post(
        "/api/appointments/book",
        json={"mechanicId": mechanic_id, "serviceId": oil_change["id"], "startTime": "2030-05-01T09:00:00"},
        headers=customer_headers,
    )
    assert booked.status_code == 201
    appointment_id = booked.json()["appointment"]["id"]

    forbidden = client.patch(
        f"/api/appointments/{appointment_id}/status", json={"status": "accepted"}, headers=customer_headers
    )
    assert forbidden.status_code == 403

    accepted = client.patch(
        f"/api/appointments/{appointment_id}/status", json={"status": "accepted"}, headers=owner_headers
    )
    assert accepted.status_code == 200
    assert accepted.json()["appointment"]["status"] == "accepted"

    mechanic = db["mechanics"].find_one({"_id": shop["_id"]})
    assert check_slot_availability(mechanic, mechanic["schedule"][0]["slots"][0]["startTime"],
                                   mechanic["schedule"][0]["slots"][0]["endTime"]) is False

    free = client.get(f"/api/mechanics/{mechanic_id}/slots", params={"date": "2030-05-01T00:00:00"}).json()
    assert [s["startTime"][:16] for s in free["slots"]] == ["2030-05-01T10:00"]

    mine = client.get("/api/appointments/user", headers=customer_headers).json()
    assert mine["total"] == 1


def test_booking_type_over_http(client, shop, customer, oil_change, auth_headers):
    body = {"mechanicId": str(shop["_id"]), "serviceId": oil_change["id"], "startTime": "2030-05-01T09:00:00"}

    emergency = client.post("/api/appointments/create", json={**body, "type": "emergency"}, headers=auth_headers(customer))
    assert emergency.status_code == 201
    assert emergency.json()["appointment"]["type"] == "emergency"

    default = client.post("/api/appointments/create", json=body, headers=auth_headers(customer))
    assert default.json()["appointment"]["type"] == "scheduled"

    bogus = client.post("/api/appointments/create", json={**body, "type": "bogus"}, headers=auth_headers(customer))
    assert bogus.status_code == 400
    assert bogus.json()["message"] == "Invalid appointment type"
    assert bogus.json()["errors"][0]["field"] == "type"


def test_staff_cannot_manage_services(client, db, shop, make_user, auth_headers, catalog):
    staff = make_user()
    db["mechanics"].update_one({"_id": shop["_id"]}, {"$push": {"admins": {"userId": staff["_id"], "role": "staff"}}})
    brakes = catalog.create_service({"name": "Brake Pads", "category": "brakes", "description": "Front pads"})

    response = client.post(
        f"/api/mechanics/{shop['_id']}/services",
        json={"serviceId": brakes["id"], "price": 100, "estimatedDuration": 2},
        headers=auth_headers(staff),
    )

    assert response.status_code == 403


def test_review_over_http(client, db, shop, customer, auth_headers):
    appointment_id = db["appointments"].insert_one(
        {
            "mechanicId": shop["_id"],
            "clientId": customer["_id"],
            "serviceId": shop["services"][0]["serviceId"],
            "status": "completed",
            "type": "scheduled",
        }
    ).inserted_id
    body = {"appointmentId": str(appointment_id), "rating": 5, "review": "Great"}

    first = client.post(f"/api/reviews/mechanic/{shop['_id']}", json=body, headers=auth_headers(customer))
    second = client.post(f"/api/reviews/mechanic/{shop['_id']}", json=body, headers=auth_headers(customer))

    assert first.status_code == 201
    assert second.status_code == 400
    stats = client.get(f"/api/reviews/mechanic/{shop['_id']}/stats").json()["stats"]
    assert stats == {"totalReviews": 1, "averageRating": 5, "ratingDistribution": {"5": 1, "4": 0, "3": 0, "2": 0, "1": 0}}


def test_nearby_requires_coordinates(client, customer, auth_headers):
    assert client.get("/api/mechanics/nearby").status_code == 400

    response = client.post("/api/emergency-appointments/nearby-mechanics", json={}, headers=auth_headers(customer))
    assert response.status_code == 400
    assert response.json()["required"] == ["latitude", "longitude"]


def test_request_validation_shape(client):
    response = client.post("/api/auth/login", json={"email": "not-an-email"})

    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation failed"
    assert {e["field"] for e in body["errors"]} == {"email", "password"}
