import json
import secrets
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from addresses import AddressBook
from cart import CartService
from catalog import CatalogService
from config import Settings, get_settings
from database import Database, to_str_id
from errors import AuthError, StorefrontError, register_exception_handlers
from grouping import VariantGrouping
from log import add_context, clear_context, configure_logging, get_logger
from oauth import GoogleIdentityProvider
from orders import OrderService
from schemas import (
    Address,
    AdminUserCreate,
    AdminUserUpdate,
    CartItemCreate,
    CartQuantityUpdate,
    Category,
    LoginRequest,
    OrderUpdateRequest,
    PlaceOrderRequest,
    ProductIdsRequest,
    ProfileUpdate,
    RegisterRequest,
    SeedRequest,
    StockUpdateRequest,
)
from security import CurrentUser, TokenIssuer, get_current_user, require_admin
from users import UserService

logger = get_logger(__name__)

GOOGLE_FAILURE_REDIRECT = "/login.html?error=google_login_failed"


# ---------- Service lookups ----------

def get_users(request: Request) -> UserService:
    return request.app.state.users


def get_catalog(request: Request) -> CatalogService:
    return request.app.state.catalog


def get_grouping(request: Request) -> VariantGrouping:
    return request.app.state.grouping


def get_cart(request: Request) -> CartService:
    return request.app.state.cart


def get_orders(request: Request) -> OrderService:
    return request.app.state.orders


def get_addresses(request: Request) -> AddressBook:
    return request.app.state.addresses


# ---------- Uploads ----------

def save_uploads(files: Optional[List[UploadFile]], upload_dir: str) -> List[str]:
    """Store uploaded images and return their public paths."""
    paths = []
    if not files:
        return paths
    target = Path(upload_dir)
    target.mkdir(parents=True, exist_ok=True)
    for upload in files:
        if not upload.filename:
            continue
        suffix = Path(upload.filename).suffix.lower()
        filename = f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{suffix}"
        with open(target / filename, "wb") as fh:
            fh.write(upload.file.read())
        paths.append(f"images/uploads/{filename}")
    return paths


def product_form(
    name: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    stock: Optional[str] = Form(None),
    sizes: Optional[str] = Form(None),
    colors: Optional[str] = Form(None),
    collections: Optional[str] = Form(None),
    image: Optional[str] = Form(None),
    existing_images: Optional[List[str]] = Form(None, alias="existingImages"),
) -> dict:
    return {
        "name": name,
        "category": category,
        "price": price,
        "description": description,
        "stock": stock,
        "sizes": sizes,
        "colors": colors,
        "collections": collections,
        "image": image,
        "existingImages": existing_images,
    }


def uploaded_images(request: Request, images: Optional[List[UploadFile]] = File(None)) -> List[str]:
    return save_uploads(images, request.app.state.settings.upload_dir)


# ---------- App ----------

def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    identity_provider: Optional[GoogleIdentityProvider] = None,
) -> FastAPI:
    settings = settings or get_settings()
    database = database or Database.from_settings(settings)
    if identity_provider is None and settings.google_enabled:
        identity_provider = GoogleIdentityProvider(
            settings.google_client_id,
            settings.google_client_secret,
            settings.google_callback_url,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        if not database.connected:
            database.connect()
        yield
        database.close()

    app = FastAPI(title="Storefront API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        add_context(method=request.method, path=request.url.path)
        try:
            return await call_next(request)
        finally:
            clear_context()

    register_exception_handlers(app)

    tokens = TokenIssuer(settings.jwt_secret, settings.jwt_algorithm, settings.token_ttl_hours)
    app.state.settings = settings
    app.state.database = database
    app.state.tokens = tokens
    app.state.identity_provider = identity_provider
    app.state.users = UserService(database, tokens)
    app.state.catalog = CatalogService(database)
    app.state.grouping = VariantGrouping(database)
    app.state.cart = CartService(database)
    app.state.orders = OrderService(database, cod_fee=settings.cod_fee)
    app.state.addresses = AddressBook(database)

    register_routes(app)
    return app


def register_routes(app: FastAPI) -> None:

    # ---------- Health ----------

    @app.get("/")
    def read_root():
        return {"message": "Storefront API is running"}

    @app.get("/test")
    def test_database(request: Request):
        """Test endpoint to check if database is available and accessible"""
        database: Database = request.app.state.database
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "database_name": database.name,
            "collections": [],
        }
        if database.connected:
            try:
                response["collections"] = sorted(database.db.list_collection_names())[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
        return response

    # ---------- Auth ----------

    @app.post("/api/register", status_code=201)
    def register(payload: RegisterRequest, users: UserService = Depends(get_users)):
        session = users.register(payload)
        return {"message": "User created successfully", **session}

    @app.post("/api/login")
    def login(payload: LoginRequest, users: UserService = Depends(get_users)):
        session = users.login(payload.email, payload.password)
        return {"message": "Login successful", **session}

    @app.get("/auth/google")
    def google_login(request: Request):
        provider = request.app.state.identity_provider
        if provider is None:
            raise StorefrontError("Google login is not configured", status_code=503)
        return RedirectResponse(provider.authorization_url(), status_code=302)

    @app.get("/auth/google/callback")
    def google_callback(request: Request, code: Optional[str] = None, users: UserService = Depends(get_users)):
        provider = request.app.state.identity_provider
        if provider is None or not code:
            return RedirectResponse(GOOGLE_FAILURE_REDIRECT, status_code=302)
        try:
            user = users.upsert_identity(provider.fetch_profile(code))
        except AuthError as exc:
            logger.warning("google_login_failed", error=exc.message)
            return RedirectResponse(GOOGLE_FAILURE_REDIRECT, status_code=302)

        session = users.session_for(user)
        profile = session["user"]
        user_data = json.dumps(
            {
                "id": profile["id"],
                "firstName": profile.get("firstName"),
                "lastName": profile.get("lastName"),
                "email": profile.get("email"),
                "role": profile.get("role"),
                "profileImage": profile.get("profileImage"),
            }
        )
        return RedirectResponse(f"/?token={session['token']}&user={quote(user_data)}", status_code=302)

    # ---------- Profile ----------

    @app.get("/api/profile")
    def get_profile(user: CurrentUser = Depends(get_current_user), users: UserService = Depends(get_users)):
        return users.get_profile(user.id)

    @app.put("/api/profile")
    def update_profile(
        payload: ProfileUpdate,
        user: CurrentUser = Depends(get_current_user),
        users: UserService = Depends(get_users),
    ):
        users.update_profile(user.id, payload)
        return {"message": "Profile updated successfully"}

    # ---------- Products ----------

    @app.get("/api/products")
    def list_products(
        category: Optional[str] = None,
        collection: Optional[str] = None,
        catalog: CatalogService = Depends(get_catalog),
    ):
        return catalog.list_products(category=category, collection=collection)

    @app.get("/api/products/{product_id}")
    def get_product(product_id: str, catalog: CatalogService = Depends(get_catalog)):
        return catalog.get_product(product_id)

    @app.post("/api/products", status_code=201)
    @app.post("/api/admin/products", status_code=201)
    def create_product(
        admin: CurrentUser = Depends(require_admin),
        form: dict = Depends(product_form),
        uploaded: List[str] = Depends(uploaded_images),
        catalog: CatalogService = Depends(get_catalog),
    ):
        created = catalog.create_product(form, uploaded)
        return {"message": "Product created successfully", **created}

    @app.put("/api/admin/products/{product_id}")
    def update_product(
        product_id: str,
        admin: CurrentUser = Depends(require_admin),
        form: dict = Depends(product_form),
        uploaded: List[str] = Depends(uploaded_images),
        catalog: CatalogService = Depends(get_catalog),
    ):
        updated = catalog.update_product(product_id, form, uploaded)
        return {"message": "Product updated successfully", **updated}

    @app.delete("/api/admin/products/{product_id}")
    def delete_product(
        product_id: str,
        admin: CurrentUser = Depends(require_admin),
        catalog: CatalogService = Depends(get_catalog),
    ):
        catalog.delete_product(product_id)
        return {"message": "Product deleted successfully"}

    @app.post("/api/admin/products/{product_id}/add-stock")
    def add_stock(
        product_id: str,
        payload: StockUpdateRequest,
        admin: CurrentUser = Depends(require_admin),
        catalog: CatalogService = Depends(get_catalog),
    ):
        result = catalog.add_stock(product_id, payload.stock_update)
        return {"message": "Stock updated successfully", **result}

    @app.post("/api/admin/products/group")
    def group_products(
        payload: ProductIdsRequest,
        admin: CurrentUser = Depends(require_admin),
        grouping: VariantGrouping = Depends(get_grouping),
    ):
        ids = grouping.group(payload.product_ids)
        return {"message": "Products successfully grouped and linked.", "productIds": ids}

    @app.post("/api/admin/products/ungroup")
    def ungroup_products(
        payload: ProductIdsRequest,
        admin: CurrentUser = Depends(require_admin),
        grouping: VariantGrouping = Depends(get_grouping),
    ):
        ids = grouping.ungroup(payload.product_ids)
        return {"message": "Products successfully ungrouped.", "productIds": ids}

    @app.post("/api/admin/products/seed")
    def seed_products(
        payload: SeedRequest,
        admin: CurrentUser = Depends(require_admin),
        catalog: CatalogService = Depends(get_catalog),
    ):
        inserted = catalog.seed_products(force=payload.force)
        return {"inserted": inserted}

    # ---------- Categories ----------

    @app.get("/api/categories")
    @app.get("/api/admin/categories")
    def list_categories(catalog: CatalogService = Depends(get_catalog)):
        return catalog.list_categories()

    @app.post("/api/categories", status_code=201)
    @app.post("/api/admin/categories", status_code=201)
    def add_category(
        payload: Category,
        admin: CurrentUser = Depends(require_admin),
        catalog: CatalogService = Depends(get_catalog),
    ):
        return catalog.add_category(payload.name, payload.description)

    # ---------- Cart ----------

    @app.get("/api/cart")
    def get_cart_items(user: CurrentUser = Depends(get_current_user), cart: CartService = Depends(get_cart)):
        return cart.list_items(user.id)

    @app.post("/api/cart")
    def add_to_cart(
        item: CartItemCreate,
        user: CurrentUser = Depends(get_current_user),
        cart: CartService = Depends(get_cart),
    ):
        return cart.add_item(user.id, item)

    @app.put("/api/cart/{item_id}")
    def update_cart_item(
        item_id: str,
        payload: CartQuantityUpdate,
        user: CurrentUser = Depends(get_current_user),
        cart: CartService = Depends(get_cart),
    ):
        cart.update_quantity(user.id, item_id, payload.quantity)
        return {"message": "Cart updated successfully"}

    @app.delete("/api/cart/{item_id}")
    def remove_cart_item(
        item_id: str,
        user: CurrentUser = Depends(get_current_user),
        cart: CartService = Depends(get_cart),
    ):
        cart.remove_item(user.id, item_id)
        return {"message": "Item removed from cart successfully"}

    @app.delete("/api/cart")
    def clear_cart(user: CurrentUser = Depends(get_current_user), cart: CartService = Depends(get_cart)):
        deleted = cart.clear(user.id)
        return {"message": "Cart cleared successfully", "deleted": deleted}

    # ---------- Orders ----------

    @app.get("/api/orders")
    def list_orders(user: CurrentUser = Depends(get_current_user), orders: OrderService = Depends(get_orders)):
        return orders.list_orders(user.id)

    @app.post("/api/orders", status_code=201)
    def place_order(
        payload: PlaceOrderRequest,
        user: CurrentUser = Depends(get_current_user),
        orders: OrderService = Depends(get_orders),
    ):
        order_id = orders.place_order(user.id, payload)
        return {"message": "Order created successfully", "orderId": order_id}

    @app.get("/api/admin/orders")
    def admin_list_orders(admin: CurrentUser = Depends(require_admin), orders: OrderService = Depends(get_orders)):
        return orders.list_all_orders()

    @app.get("/api/admin/orders/{order_id}/details")
    def admin_order_details(
        order_id: str,
        admin: CurrentUser = Depends(require_admin),
        orders: OrderService = Depends(get_orders),
    ):
        return orders.get_order_details(order_id)

    @app.put("/api/admin/orders/{order_id}")
    def admin_update_order(
        order_id: str,
        payload: OrderUpdateRequest,
        admin: CurrentUser = Depends(require_admin),
        orders: OrderService = Depends(get_orders),
    ):
        orders.update_order(order_id, status=payload.status, payment_status=payload.payment_status)
        return {"message": "Order updated successfully"}

    @app.delete("/api/admin/orders/{order_id}")
    def admin_delete_order(
        order_id: str,
        admin: CurrentUser = Depends(require_admin),
        orders: OrderService = Depends(get_orders),
    ):
        orders.delete_order(order_id)
        return {"message": "Order deleted successfully"}

    # ---------- Addresses ----------

    @app.get("/api/user/addresses")
    def list_addresses(user: CurrentUser = Depends(get_current_user), book: AddressBook = Depends(get_addresses)):
        return book.list_addresses(user.id)

    @app.get("/api/user/addresses/{address_id}")
    def get_address(
        address_id: str,
        user: CurrentUser = Depends(get_current_user),
        book: AddressBook = Depends(get_addresses),
    ):
        return to_str_id(book.get_owned(user.id, address_id))

    @app.post("/api/user/addresses", status_code=201)
    def add_address(
        payload: Address,
        user: CurrentUser = Depends(get_current_user),
        book: AddressBook = Depends(get_addresses),
    ):
        address_id = book.create_address(user.id, payload)
        return {"message": "Address added successfully", "addressId": address_id}

    @app.put("/api/user/addresses/{address_id}")
    def update_address(
        address_id: str,
        payload: Address,
        user: CurrentUser = Depends(get_current_user),
        book: AddressBook = Depends(get_addresses),
    ):
        book.update_address(user.id, address_id, payload)
        return {"message": "Address updated successfully"}

    @app.delete("/api/user/addresses/{address_id}")
    def delete_address(
        address_id: str,
        user: CurrentUser = Depends(get_current_user),
        book: AddressBook = Depends(get_addresses),
    ):
        book.delete_address(user.id, address_id)
        return {"message": "Address deleted successfully"}

    # ---------- Admin users ----------

    @app.get("/api/admin/users")
    def admin_list_users(admin: CurrentUser = Depends(require_admin), users: UserService = Depends(get_users)):
        return users.list_users()

    @app.post("/api/admin/users", status_code=201)
    def admin_create_user(
        payload: AdminUserCreate,
        admin: CurrentUser = Depends(require_admin),
        users: UserService = Depends(get_users),
    ):
        return {"message": "User created successfully", "user": users.create_user(payload)}

    @app.put("/api/admin/users/{user_id}")
    def admin_update_user(
        user_id: str,
        payload: AdminUserUpdate,
        admin: CurrentUser = Depends(require_admin),
        users: UserService = Depends(get_users),
    ):
        users.update_user(user_id, payload)
        return {"message": "User updated successfully"}

    @app.delete("/api/admin/users/{user_id}")
    def admin_delete_user(
        user_id: str,
        admin: CurrentUser = Depends(require_admin),
        users: UserService = Depends(get_users),
    ):
        deleted = users.delete_user(user_id)
        return {"message": "User deleted successfully", "deletedItems": deleted}


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
