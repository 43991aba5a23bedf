"""API tests for pay/process/complete and the transaction listings."""

import uuid
from decimal import Decimal

import pytest

from apps.checkout.models import PaymentMethod, TransactionStatusModel

CREATE_URL = "/api/orders/"
PAY_URL = "/api/orders/{tid}/pay/"
PROCESS_URL = "/api/orders/{tid}/process/"
COMPLETE_URL = "/api/orders/{tid}/complete/"
SELLER_URL = "/api/orders/seller/"


@pytest.fixture
def tid(client, catalog, buyer_id) -> str:
    """Id of a Not Paid transaction of 2xP in Shop A (total 25000)."""
    body = {
        "payment_id": str(catalog.wallet.id),
        "address_id": str(uuid.uuid4()),
        "shops": [
            {
                "shop_id": str(catalog.shop.id),
                "courier_id": str(catalog.courier.id),
                "products": [{"product_id": str(catalog.product.id), "quantity": 2}],
            }
        ],
    }
    r = client.post(CREATE_URL, data=body, content_type="application/json", HTTP_X_USER_ID=str(buyer_id))
    assert r.status_code == 201
    return r.json()["transactions"][0]["transaction"]["id"]


def pay(client, tid, payment_id):
    return client.post(
        PAY_URL.format(tid=tid), data={"payment_id": str(payment_id)}, content_type="application/json"
    )


def process(client, tid, user):
    return client.post(PROCESS_URL.format(tid=tid), HTTP_X_USER_ID=str(user))


def current_status(tid) -> str:
    return TransactionStatusModel.objects.get(transaction_id=tid).status


@pytest.mark.django_db
def test_full_lifecycle(client, catalog, tid, seller_id):
    r = pay(client, tid, catalog.wallet.id)
    assert r.status_code == 200
    assert r.json()["status"]["status"] == "Paid"
    assert PaymentMethod.objects.get(id=catalog.wallet.id).credit == Decimal("75000.00")

    r = process(client, tid, seller_id)
    assert r.status_code == 200
    assert r.json()["status"]["status"] == "Processed"

    r = client.post(COMPLETE_URL.format(tid=tid))
    assert r.status_code == 200
    assert r.json()["status"]["status"] == "Completed"


@pytest.mark.django_db
def test_pay_twice_debits_once(client, catalog, tid):
    assert pay(client, tid, catalog.wallet.id).status_code == 200

    r = pay(client, tid, catalog.wallet.id)

    assert r.status_code == 409
    assert r.json()["detail"] == "ALREADY_IN_TARGET_STATE"
    assert PaymentMethod.objects.get(id=catalog.wallet.id).credit == Decimal("75000.00")


@pytest.mark.django_db
def test_pay_with_insufficient_credit(client, catalog, tid):
    poor = PaymentMethod.objects.create(name="Poor", credit=Decimal("100.00"))

    r = pay(client, tid, poor.id)

    assert r.status_code == 402
    assert r.json()["detail"] == "INSUFFICIENT_CREDIT"
    assert PaymentMethod.objects.get(id=poor.id).credit == Decimal("100.00")
    assert current_status(tid) == "Not Paid"


@pytest.mark.django_db
def test_pay_validation_and_not_found(client, catalog, tid):
    r = client.post(PAY_URL.format(tid=tid), data={}, content_type="application/json")
    assert r.status_code == 400

    assert pay(client, tid, uuid.uuid4()).status_code == 404
    assert pay(client, uuid.uuid4(), catalog.wallet.id).status_code == 404


@pytest.mark.django_db
def test_complete_not_paid_is_invalid_state(client, tid):
    r = client.post(COMPLETE_URL.format(tid=tid))

    assert r.status_code == 409
    body = r.json()
    assert body["detail"] == "INVALID_STATE"
    assert body["context"] == {"current": "Not Paid", "required": "Processed", "target": "Completed"}
    assert current_status(tid) == "Not Paid"


@pytest.mark.django_db
def test_process_requires_paid_and_owner(client, catalog, tid, seller_id):
    assert process(client, tid, seller_id).status_code == 409

    pay(client, tid, catalog.wallet.id)
    assert process(client, tid, uuid.uuid4()).status_code == 403
    assert process(client, tid, catalog.other_shop.owner_id).status_code == 403
    assert client.post(PROCESS_URL.format(tid=tid)).status_code == 401
    assert current_status(tid) == "Paid"


@pytest.mark.django_db
def test_seller_listing(client, catalog, tid, seller_id):
    r = client.get(SELLER_URL, HTTP_X_USER_ID=str(seller_id))
    assert r.status_code == 200
    rows = r.json()["transactions"]
    assert [row["transaction"]["id"] for row in rows] == [tid]
    assert rows[0]["status"]["status"] == "Not Paid"
    txn = rows[0]["transaction"]
    assert txn["courier"] == {"id": str(catalog.courier.id), "name": "C", "cost": "5000.00"}
    assert txn["payment"] == {"id": str(catalog.wallet.id), "name": "Wallet"}
    assert txn["voucher"] is None

    assert client.get(SELLER_URL, HTTP_X_USER_ID=str(catalog.other_shop.owner_id)).json() == {
        "transactions": []
    }
    assert client.get(SELLER_URL, HTTP_X_USER_ID=str(uuid.uuid4())).status_code == 403


@pytest.mark.django_db
def test_buyer_listing(client, catalog, tid, buyer_id):
    r = client.get(CREATE_URL, HTTP_X_USER_ID=str(buyer_id))
    assert r.status_code == 200
    body = r.json()
    assert [t["id"] for t in body["transactions"]] == [tid]
    assert body["transactions"][0]["courier"]["name"] == "C"
    assert body["transactions"][0]["payment"]["name"] == "Wallet"
    assert [s["transaction_id"] for s in body["statuses"]] == [tid]

    other = client.get(CREATE_URL, HTTP_X_USER_ID=str(uuid.uuid4())).json()
    assert other == {"transactions": [], "statuses": []}
    assert client.get(CREATE_URL).status_code == 401


@pytest.mark.django_db
def test_buyer_listing_shows_voucher_reference(client, catalog, buyer_id):
    body = {
        "payment_id": str(catalog.wallet.id),
        "voucher_id": str(catalog.voucher.id),
        "address_id": str(uuid.uuid4()),
        "shops": [
            {
                "shop_id": str(catalog.shop.id),
                "courier_id": str(catalog.courier.id),
                "products": [{"product_id": str(catalog.product.id), "quantity": 5}],
            }
        ],
    }
    r = client.post(CREATE_URL, data=body, content_type="application/json", HTTP_X_USER_ID=str(buyer_id))
    assert r.status_code == 201

    txn = client.get(CREATE_URL, HTTP_X_USER_ID=str(buyer_id)).json()["transactions"][0]
    assert txn["voucher"] == {"id": str(catalog.voucher.id), "name": "V", "discount": "10.00"}


@pytest.mark.django_db
@pytest.mark.parametrize("url", [CREATE_URL, SELLER_URL])
def test_listing_failure_returns_json_500(client, monkeypatch, seller_id, url):
    class Broken:
        def list_for_buyer(self, buyer_id):
            raise RuntimeError("db went away")

        def list_for_seller(self, user_id):
            raise RuntimeError("db went away")

    monkeypatch.setattr("apps.checkout.providers.get_order_service", lambda: Broken())

    r = client.get(url, HTTP_X_USER_ID=str(seller_id))

    assert r.status_code == 500
    assert r["Content-Type"].startswith("application/json")
    assert r.json()["detail"] == "INTERNAL"
