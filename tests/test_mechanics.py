"""Tests for mechanic shop management."""
import pytest
from bson import ObjectId

from enums import ShopRole, UserType
from errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from services.mechanics import MechanicService


@pytest.fixture
def mechanics(db, catalog):
    return MechanicService(db, catalog)


def owners(mechanic):
    return [a["userId"] for a in mechanic["admins"] if a["role"] == "owner"]


def test_create_mechanic_promotes_customer(db, mechanics, customer):
    mechanic = mechanics.create_mechanic(customer["_id"], "Corner Garage", 35)

    assert owners(mechanic) == [customer["_id"]]
    assert mechanic["scheduleVersion"] == 0
    assert db["users"].find_one({"_id": customer["_id"]})["type"] == UserType.MECHANIC.value


def test_create_mechanic_unknown_user(mechanics):
    with pytest.raises(NotFoundError):
        mechanics.create_mechanic(ObjectId(), "Ghost Garage", 35)


def test_transfer_ownership_to_new_admin(db, mechanics, shop, owner, make_user):
    new_owner = make_user()

    mechanics.transfer_ownership(shop["_id"], owner["_id"], new_owner["_id"])

    stored = db["mechanics"].find_one({"_id": shop["_id"]})
    assert owners(stored) == [new_owner["_id"]]
    assert mechanics.admin_role(shop["_id"], owner["_id"]) == ShopRole.MANAGER


def test_transfer_ownership_to_existing_staff(db, mechanics, shop, owner, make_user):
    staff = make_user()
    db["mechanics"].update_one(
        {"_id": shop["_id"]}, {"$push": {"admins": {"userId": staff["_id"], "role": "staff"}}}
    )

    mechanics.transfer_ownership(shop["_id"], owner["_id"], staff["_id"])

    stored = db["mechanics"].find_one({"_id": shop["_id"]})
    assert owners(stored) == [staff["_id"]]
    assert len(stored["admins"]) == 2


def test_only_owner_can_transfer(mechanics, shop, make_user):
    intruder = make_user()

    with pytest.raises(ForbiddenError):
        mechanics.transfer_ownership(shop["_id"], intruder["_id"], intruder["_id"])


def test_transfer_to_unknown_user(mechanics, shop, owner):
    with pytest.raises(NotFoundError):
        mechanics.transfer_ownership(shop["_id"], owner["_id"], ObjectId())


def test_add_service_is_unique_and_counts_popularity(db, mechanics, shop, oil_change):
    assert db["services"].find_one({"name": "Oil Change"})["popularity"] == 1

    with pytest.raises(ConflictError):
        mechanics.add_service(shop["_id"], oil_change["id"], 60, 1)


def test_add_service_returns_catalog_details(mechanics, shop, catalog):
    brakes = catalog.create_service({"name": "Brake Pads", "category": "brakes", "description": "Front pads"})

    offered = mechanics.add_service(shop["_id"], brakes["id"], 120, 2, is_emergency=True)

    assert offered["name"] == "Brake Pads"
    assert offered["category"] == "brakes"
    assert offered["isEmergency"] is True
    assert "SUV" in offered["vehicleTypes"]


@pytest.mark.parametrize("price,duration", [(None, 1), (50, None), (-5, 1), (50, 0.0)])
def test_add_service_validation(mechanics, shop, oil_change, price, duration):
    with pytest.raises(ValidationError):
        mechanics.add_service(shop["_id"], oil_change["id"], price, duration)


def test_find_by_service_name(mechanics, shop):
    found = mechanics.find_by_service_name("oil change")

    assert [m["_id"] for m in found] == [shop["_id"]]
    with pytest.raises(NotFoundError):
        mechanics.find_by_service_name("Teleportation")
    with pytest.raises(ValidationError):
        mechanics.find_by_service_name("")
