import pytest
from mongomock.collection import Collection
from pymongo.errors import OperationFailure

from errors import NotFoundError, ValidationError
from orders import COD_CHARGE_NAME
from schemas import Address, CartItemCreate, PlaceOrderRequest


def _order(product_ids, payment_method="cod", total=1, **extra):
    items = [{"productId": pid, "quantity": 1, "size": "M", "price": 1} for pid in product_ids]
    return PlaceOrderRequest(items=items, totalAmount=total, paymentMethod=payment_method, **extra)


def _stored_items(database, order_id):
    return list(database["order_items"].find({"orderId": order_id}))


class TestValidation:
    @pytest.mark.parametrize("utr", [None, "12345", "12345678901a", "1234567890123"])
    def test_upi_needs_a_twelve_digit_utr(self, order_service, database, make_user, make_product, utr):
        user = make_user()
        payload = _order([make_product()], payment_method="upi", utrNumber=utr)

        with pytest.raises(ValidationError):
            order_service.place_order(str(user["_id"]), payload)

        assert database["orders"].count_documents({}) == 0
        assert database["order_items"].count_documents({}) == 0

    def test_requires_items_total_and_payment_method(self, order_service, make_user, make_product):
        user_id = str(make_user()["_id"])
        product_id = make_product()
        for payload in (
            PlaceOrderRequest(items=[], totalAmount=100, paymentMethod="cod"),
            _order([product_id], total=0),
            _order([product_id], payment_method=None),
        ):
            with pytest.raises(ValidationError):
                order_service.place_order(user_id, payload)

    def test_unknown_product(self, order_service, database, make_user):
        with pytest.raises(NotFoundError):
            order_service.place_order(str(make_user()["_id"]), _order(["0" * 24]))
        assert database["orders"].count_documents({}) == 0


class TestPlaceOrder:
    def test_cod_adds_a_fee_line(self, order_service, database, make_user, make_product):
        user = make_user()
        a, b = make_product("Tee", price=500), make_product("Shirt", price=800)

        order_id = order_service.place_order(str(user["_id"]), _order([a, b], total=500 + 800 + order_service.cod_fee))

        order = database["orders"].find_one({})
        items = _stored_items(database, order["_id"])
        assert str(order["_id"]) == order_id
        assert len(items) == 3
        fee = [i for i in items if i["productName"] == COD_CHARGE_NAME]
        assert len(fee) == 1
        assert fee[0]["price"] == order_service.cod_fee
        assert fee[0]["quantity"] == 1
        assert order["totalAmount"] == 500 + 800 + order_service.cod_fee
        assert order["status"] == "pending"

    def test_upi_has_no_fee_and_keeps_the_utr(self, order_service, database, make_user, make_product):
        user = make_user()
        payload = _order([make_product(price=300)], payment_method="upi", total=300, utrNumber="123456789012")

        order_service.place_order(str(user["_id"]), payload)

        order = database["orders"].find_one({})
        assert order["utrNumber"] == "123456789012"
        assert len(_stored_items(database, order["_id"])) == 1

    def test_prices_come_from_the_catalog(self, order_service, database, make_user, make_product):
        user = make_user()
        product_id = make_product(price=1299)
        payload = PlaceOrderRequest(
            items=[{"id": product_id, "price": 1, "quantity": 2, "size": "M"}],
            totalAmount=2,
            paymentMethod="upi",
            utrNumber="123456789012",
        )

        order_service.place_order(str(user["_id"]), payload)

        order = database["orders"].find_one({})
        item = _stored_items(database, order["_id"])[0]
        assert item["price"] == 1299
        assert item["productName"] == "Classic Tee"
        assert order["totalAmount"] == 2 * 1299

    def test_stock_is_decremented(self, order_service, catalog, make_user, make_product):
        user = make_user()
        product_id = make_product(sizes={"S": 5, "M": 5})
        payload = PlaceOrderRequest(
            items=[{"productId": product_id, "quantity": 2, "size": "M"}],
            totalAmount=1000 + order_service.cod_fee,
            paymentMethod="cod",
        )

        order_service.place_order(str(user["_id"]), payload)

        product = catalog.get_product(product_id)
        assert product["sizes"] == {"S": 5, "M": 3}
        assert product["stock"] == 8

    def test_cart_is_cleared(self, order_service, cart_service, make_user, make_product):
        user = make_user()
        user_id = str(user["_id"])
        a, b = make_product("Tee"), make_product("Shirt")
        cart_service.add_item(user_id, CartItemCreate(productName="Tee", productId=a, price=500, size="M"))
        cart_service.add_item(user_id, CartItemCreate(productName="Shirt", productId=b, price=500, size="M"))

        order_service.place_order(user_id, _order([a]))

        assert cart_service.list_items(user_id) == []

    def test_shipping_address_is_snapshotted(self, order_service, address_book, database, make_user, make_product):
        user_id = str(make_user()["_id"])
        address_id = address_book.create_address(
            user_id, Address(name="Jane", street="Main Street", city="Pune", zipCode="411001")
        )

        order_service.place_order(user_id, _order([make_product()], shippingAddressId=address_id))
        address_book.delete_address(user_id, address_id)

        shipping = database["orders"].find_one({})["shippingAddress"]
        assert shipping["city"] == "Pune"
        assert shipping["zipCode"] == "411001"
        assert shipping["country"] == "IN"

    def test_shipping_address_must_belong_to_the_user(self, order_service, address_book, database, make_user, make_product):
        jane = str(make_user()["_id"])
        john = str(make_user(email="john@example.com")["_id"])
        address_id = address_book.create_address(jane, Address(name="Jane", city="Pune"))

        with pytest.raises(NotFoundError):
            order_service.place_order(john, _order([make_product()], shippingAddressId=address_id))
        assert database["orders"].count_documents({}) == 0


class TestOrderViews:
    def test_list_orders_is_per_user(self, order_service, make_user, make_product):
        jane = str(make_user()["_id"])
        john = str(make_user(email="john@example.com")["_id"])
        product_id = make_product()

        order_id = order_service.place_order(jane, _order([product_id]))
        order_service.place_order(john, _order([product_id]))

        orders = order_service.list_orders(jane)
        assert [o["id"] for o in orders] == [order_id]
        assert len(orders[0]["items"]) == 2
        assert orders[0]["userId"] == jane

    def test_admin_views_include_customer(self, order_service, make_user, make_product):
        user = make_user()
        order_id = order_service.place_order(str(user["_id"]), _order([make_product()]))

        listed = order_service.list_all_orders()
        assert listed[0]["customerName"] == "Jane Doe"

        details = order_service.get_order_details(order_id)
        assert details["userEmail"] == "jane@example.com"
        assert {i["name"] for i in details["items"]} == {"Classic Tee", COD_CHARGE_NAME}

    def test_update_status(self, order_service, database, make_user, make_product):
        order_id = order_service.place_order(str(make_user()["_id"]), _order([make_product()]))

        order_service.update_order(order_id, status="shipped", payment_status="paid")

        order = database["orders"].find_one({})
        assert order["status"] == "shipped"
        assert order["paymentStatus"] == "paid"

    def test_delete_removes_items(self, order_service, database, make_user, make_product):
        order_id = order_service.place_order(str(make_user()["_id"]), _order([make_product()]))

        order_service.delete_order(order_id)

        assert database["orders"].count_documents({}) == 0
        assert database["order_items"].count_documents({}) == 0
        with pytest.raises(NotFoundError):
            order_service.delete_order(order_id)
        with pytest.raises(NotFoundError):
            order_service.get_order_details(order_id)


class TestStockDecrementFailure:
    def test_order_stands_when_stock_update_fails(self, order_service, database, monkeypatch, make_user, make_product):
        user = make_user()
        product_id = make_product(sizes={"M": 5})

        def failing_update_one(self, *args, **kwargs):
            raise OperationFailure("write failed")

        monkeypatch.setattr(Collection, "update_one", failing_update_one)

        order_id = order_service.place_order(str(user["_id"]), _order([product_id]))

        order = database["orders"].find_one({})
        assert str(order["_id"]) == order_id
        assert len(_stored_items(database, order["_id"])) == 2
        assert database["products"].find_one({})["sizes"] == {"M": 5}
