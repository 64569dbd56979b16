from decimal import Decimal

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile

from accounts.models import Agent, User
from accounts.services import register_agent
from confirmations.models import Confirmation
from confirmations.services import issue_collection_code, submit_confirmation
from orders.claims import claim
from orders.models import FORWARD_SEQUENCE, STATUS_RANK, OrderStatus
from orders.services import advance_order, create_order, publish_for_pickup
from pickup_sites.models import PickupSite

SITE_LAT = Decimal("-1.9441000")
SITE_LON = Decimal("30.0619000")
NEAR_SITE = {"latitude": -1.9440, "longitude": 30.0619}


def _user(email, role, first_name="Test"):
    return User.objects.create_user(
        email=email,
        password="testpass123",
        first_name=first_name,
        last_name="User",
        role=role,
    )


@pytest.fixture
def admin_user(db):
    return _user("admin@test.com", User.Role.ADMIN, "Admin")


@pytest.fixture
def buyer(db):
    return _user("buyer@test.com", User.Role.BUYER, "Buyer")


@pytest.fixture
def seller(db):
    return _user("seller@test.com", User.Role.SELLER, "Seller")


@pytest.fixture
def site(db):
    return PickupSite.objects.create(
        name="Kigali Downtown",
        address="KN 4 Ave",
        city="Kigali",
        latitude=SITE_LAT,
        longitude=SITE_LON,
        capacity=2,
    )


@pytest.fixture
def other_site(db):
    return PickupSite.objects.create(
        name="Remera",
        city="Kigali",
        latitude=Decimal("-1.9579000"),
        longitude=Decimal("30.1127000"),
        capacity=5,
    )


@pytest.fixture
def courier(db):
    user = _user("courier1@test.com", User.Role.COURIER, "Courier")
    return register_agent(user, Agent.AgentType.COURIER)


@pytest.fixture
def courier2(db):
    user = _user("courier2@test.com", User.Role.COURIER, "Rival")
    return register_agent(user, Agent.AgentType.COURIER)


@pytest.fixture
def site_manager(db, site):
    user = _user("psm@test.com", User.Role.SITE_MANAGER, "Manager")
    return register_agent(user, Agent.AgentType.SITE_MANAGER, assigned_site=site)


@pytest.fixture
def make_order(buyer, seller, site):
    def _make(total=Decimal("10000.00"), pickup_site=site):
        return create_order(buyer=buyer, seller=seller, total=total, pickup_site=pickup_site)

    return _make


def parcel_photo():
    return SimpleUploadedFile("parcel.jpg", b"\xff\xd8\xff\xe0fake-jpeg", content_type="image/jpeg")


def payment_receipt(name="receipt.png", size=None):
    content = b"\x89PNG\r\n\x1a\nfake-png" if size is None else b"0" * size
    return SimpleUploadedFile(name, content, content_type="image/png")


@pytest.fixture
def make_photo():
    return parcel_photo


@pytest.fixture
def make_receipt():
    return payment_receipt


@pytest.fixture
def near_site():
    return dict(NEAR_SITE)


@pytest.fixture
def drive(seller, buyer, courier, site_manager):
    """Move an order forward through the normal workflow until it reaches *status*."""

    steps = {
        OrderStatus.AVAILABLE_FOR_PICKUP: lambda o: publish_for_pickup(o.pk, seller),
        OrderStatus.CLAIMED_BY_COURIER: lambda o: claim(o.pk, courier),
        OrderStatus.EN_ROUTE_TO_SELLER: lambda o: advance_order(
            o.pk, OrderStatus.CLAIMED_BY_COURIER, OrderStatus.EN_ROUTE_TO_SELLER, courier.user
        ),
        OrderStatus.AT_SELLER: lambda o: advance_order(
            o.pk, OrderStatus.EN_ROUTE_TO_SELLER, OrderStatus.AT_SELLER, courier.user
        ),
        OrderStatus.PICKED_UP: lambda o: submit_confirmation(
            o.pk,
            Confirmation.Kind.PHOTO,
            {"photo": parcel_photo(), "condition_note": "Sealed box"},
            courier.user,
        ),
        OrderStatus.EN_ROUTE_TO_SITE: lambda o: advance_order(
            o.pk, OrderStatus.PICKED_UP, OrderStatus.EN_ROUTE_TO_SITE, courier.user
        ),
        OrderStatus.AT_SITE: lambda o: submit_confirmation(
            o.pk, Confirmation.Kind.GPS, dict(NEAR_SITE), courier.user
        ),
        OrderStatus.AWAITING_COLLECTION: lambda o: issue_collection_code(o.pk, site_manager.user).order,
        OrderStatus.COLLECTED_BY_BUYER: lambda o: submit_confirmation(
            o.pk, Confirmation.Kind.OTP, {"code": o.delivery_code}, buyer
        ),
    }

    def _drive(order, status):
        target_rank = STATUS_RANK[status]
        for step in FORWARD_SEQUENCE[STATUS_RANK[order.status] + 1:target_rank + 1]:
            order = steps[step](order)
        return order

    return _drive
