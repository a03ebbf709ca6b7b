import mongomock
import pytest
from fastapi.testclient import TestClient

from addresses import AddressBook
from cart import CartService
from catalog import CatalogService
from config import Settings
from database import Database, utcnow
from grouping import VariantGrouping
from main import create_app
from orders import OrderService
from security import TokenIssuer, hash_password
from users import UserService

COD_FEE = 10


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        database_name="storefront_test",
        jwt_secret="test-secret",
        upload_dir=str(tmp_path / "uploads"),
        cod_fee=COD_FEE,
    )


@pytest.fixture()
def database():
    db = Database(name="storefront_test", client=mongomock.MongoClient())
    db.connect()
    yield db
    db.close()


@pytest.fixture()
def tokens(settings):
    return TokenIssuer(settings.jwt_secret, settings.jwt_algorithm, settings.token_ttl_hours)


@pytest.fixture()
def catalog(database):
    return CatalogService(database)


@pytest.fixture()
def grouping(database):
    return VariantGrouping(database)


@pytest.fixture()
def cart_service(database):
    return CartService(database)


@pytest.fixture()
def order_service(database):
    return OrderService(database, cod_fee=COD_FEE)


@pytest.fixture()
def address_book(database):
    return AddressBook(database)


@pytest.fixture()
def user_service(database, tokens):
    return UserService(database, tokens)


@pytest.fixture()
def make_user(database):
    def _make_user(email="jane@example.com", password="secret123", role="user", first_name="Jane", last_name="Doe"):
        now = utcnow()
        doc = {
            "firstName": first_name,
            "lastName": last_name,
            "email": email,
            "phone": "9999999999",
            "password": hash_password(password) if password else "",
            "role": role,
            "createdAt": now,
            "updatedAt": now,
        }
        doc["_id"] = database["users"].insert_one(doc).inserted_id
        return doc

    return _make_user


@pytest.fixture()
def make_product(catalog):
    def _make_product(name="Classic Tee", price=500, sizes=None, category="T-Shirts", **extra):
        form = {
            "name": name,
            "category": category,
            "price": price,
            "sizes": sizes if sizes is not None else {"S": 5, "M": 5},
            "images": [f"images/{name.lower().replace(' ', '-')}.jpg"],
            **extra,
        }
        return catalog.create_product(form)["productId"]

    return _make_product


@pytest.fixture()
def app(settings, database):
    return create_app(settings=settings, database=database)


@pytest.fixture()
def client(app):
    return TestClient(app)


@pytest.fixture()
def auth_headers(app):
    def _auth_headers(user):
        return {"Authorization": f"Bearer {app.state.tokens.issue(user)}"}

    return _auth_headers


@pytest.fixture()
def admin_headers(make_user, auth_headers):
    admin = make_user(email="admin@example.com", role="admin", first_name="Ada", last_name="Admin")
    return auth_headers(admin)
