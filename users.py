from pymongo.errors import DuplicateKeyError

from database import Database, parse_id, to_str_id, utcnow
from errors import AuthError, NotFoundError, ValidationError
from log import get_logger
from schemas import AdminUserCreate, AdminUserUpdate, IdentityProfile, ProfileUpdate, RegisterRequest
from security import TokenIssuer, hash_password, verify_password

logger = get_logger(__name__)


def public_user(user: dict) -> dict:
    """User document without the password hash."""
    out = {k: v for k, v in user.items() if k != "password"}
    out.setdefault("role", "user")
    return to_str_id(out)


def display_name(user: dict) -> str:
    name = f"{user.get('firstName') or ''} {user.get('lastName') or ''}".strip()
    return name or user.get("email") or "Unknown"


class UserService:
    def __init__(self, db: Database, tokens: TokenIssuer):
        self.db = db
        self.tokens = tokens

    @property
    def users(self):
        return self.db["users"]

    def _get(self, user_id) -> dict:
        user = self.users.find_one({"_id": parse_id(user_id, "user id")})
        if not user:
            raise NotFoundError("User not found")
        return user

    def _insert(self, data: dict) -> dict:
        now = utcnow()
        doc = {**data, "createdAt": now, "updatedAt": now}
        try:
            result = self.users.insert_one(doc)
        except DuplicateKeyError:
            raise ValidationError("User already exists")
        doc["_id"] = result.inserted_id
        return doc

    def session_for(self, user: dict) -> dict:
        return {"token": self.tokens.issue(user), "user": public_user(user)}

    # ---------- Registration / login ----------

    def register(self, data: RegisterRequest) -> dict:
        if self.users.find_one({"email": data.email}):
            raise ValidationError("User already exists")
        user = self._insert(
            {
                "firstName": data.first_name,
                "lastName": data.last_name,
                "email": data.email,
                "phone": data.phone,
                "password": hash_password(data.password),
                "role": "user",
            }
        )
        logger.info("user_registered", user_id=str(user["_id"]))
        return self.session_for(user)

    def login(self, email: str, password: str) -> dict:
        user = self.users.find_one({"email": email})
        if not user or not verify_password(password, user.get("password") or ""):
            logger.info("login_failed", email=email)
            raise AuthError("Invalid credentials")
        return self.session_for(user)

    def upsert_identity(self, profile: IdentityProfile) -> dict:
        """Find or create the account for an identity-provider login."""
        user = self.users.find_one({"email": profile.email})
        if user is None:
            user = self._insert(
                {
                    "firstName": profile.first_name,
                    "lastName": profile.last_name,
                    "email": profile.email,
                    "password": "",
                    "googleId": profile.provider_id,
                    "profileImage": profile.picture,
                    "role": "user",
                }
            )
            logger.info("identity_user_created", user_id=str(user["_id"]))
        elif not user.get("googleId"):
            changes = {
                "googleId": profile.provider_id,
                "profileImage": profile.picture or user.get("profileImage"),
                "updatedAt": utcnow(),
            }
            self.users.update_one({"_id": user["_id"]}, {"$set": changes})
            user.update(changes)
        return user

    # ---------- Profile ----------

    def get_profile(self, user_id: str) -> dict:
        return public_user(self._get(user_id))

    def update_profile(self, user_id: str, data: ProfileUpdate) -> None:
        changes = data.model_dump(by_alias=True, exclude_unset=True)
        changes["updatedAt"] = utcnow()
        result = self.users.update_one({"_id": parse_id(user_id, "user id")}, {"$set": changes})
        if result.matched_count == 0:
            raise NotFoundError("User not found")

    # ---------- Admin ----------

    def list_users(self) -> list:
        return [public_user(u) for u in self.users.find({})]

    def create_user(self, data: AdminUserCreate) -> dict:
        if self.users.find_one({"email": data.email}):
            raise ValidationError("User already exists")
        user = self._insert(
            {
                "firstName": data.first_name,
                "lastName": data.last_name,
                "email": data.email,
                "phone": data.phone,
                "password": hash_password(data.password),
                "role": data.role,
            }
        )
        logger.info("user_created", user_id=str(user["_id"]), role=data.role)
        return public_user(user)

    def update_user(self, user_id: str, data: AdminUserUpdate) -> None:
        user = self._get(user_id)
        changes = {
            "firstName": data.first_name,
            "lastName": data.last_name,
            "phone": data.phone,
            "role": data.role,
            "updatedAt": utcnow(),
        }
        if data.email:
            changes["email"] = data.email
        if data.password:
            changes["password"] = hash_password(data.password)
        try:
            self.users.update_one({"_id": user["_id"]}, {"$set": changes})
        except DuplicateKeyError:
            raise ValidationError("Email already in use")

    def delete_user(self, user_id: str) -> dict:
        """Delete a user together with their cart, addresses and orders."""
        user = self._get(user_id)
        uid = user["_id"]

        cart = self.db["cart"].delete_many({"userId": uid})
        addresses = self.db["addresses"].delete_many({"userId": uid})
        order_ids = [o["_id"] for o in self.db["orders"].find({"userId": uid}, {"_id": 1})]
        order_items = 0
        if order_ids:
            order_items = self.db["order_items"].delete_many({"orderId": {"$in": order_ids}}).deleted_count
        orders = self.db["orders"].delete_many({"userId": uid})
        self.users.delete_one({"_id": uid})

        deleted = {
            "cartItems": cart.deleted_count,
            "addresses": addresses.deleted_count,
            "orders": orders.deleted_count,
            "orderItems": order_items,
        }
        logger.info("user_deleted", user_id=str(uid), **deleted)
        return deleted
