from database import Database, parse_id, to_str_id, utcnow
from errors import NotFoundError
from log import get_logger
from schemas import Address

logger = get_logger(__name__)


class AddressBook:
    """Per-user shipping addresses; at most one is the default."""

    def __init__(self, db: Database):
        self.db = db

    @property
    def addresses(self):
        return self.db["addresses"]

    def list_addresses(self, user_id: str) -> list:
        docs = self.db.get_documents(
            "addresses",
            {"userId": parse_id(user_id, "user id")},
            sort=[("isDefault", -1), ("createdAt", -1)],
        )
        return [to_str_id(a) for a in docs]

    def get_owned(self, user_id: str, address_id: str) -> dict:
        address = self.addresses.find_one(
            {"_id": parse_id(address_id, "address id"), "userId": parse_id(user_id, "user id")}
        )
        if not address:
            raise NotFoundError("Address not found")
        return address

    def create_address(self, user_id: str, data: Address) -> str:
        uid = parse_id(user_id, "user id")
        body = data.model_dump(by_alias=True)
        with self.db.transaction() as session:
            if data.is_default:
                self.addresses.update_many({"userId": uid}, {"$set": {"isDefault": False}}, session=session)
            address_id = self.db.create_document("addresses", {**body, "userId": uid}, session=session)
        logger.info("address_created", user_id=user_id, address_id=address_id, is_default=data.is_default)
        return address_id

    def update_address(self, user_id: str, address_id: str, data: Address) -> None:
        uid = parse_id(user_id, "user id")
        _id = parse_id(address_id, "address id")
        body = {**data.model_dump(by_alias=True), "updatedAt": utcnow()}
        with self.db.transaction() as session:
            if not self.addresses.find_one({"_id": _id, "userId": uid}, session=session):
                raise NotFoundError("Address not found")
            if data.is_default:
                self.addresses.update_many(
                    {"userId": uid, "_id": {"$ne": _id}},
                    {"$set": {"isDefault": False}},
                    session=session,
                )
            self.addresses.update_one({"_id": _id, "userId": uid}, {"$set": body}, session=session)
        logger.info("address_updated", user_id=user_id, address_id=address_id, is_default=data.is_default)

    def delete_address(self, user_id: str, address_id: str) -> None:
        result = self.addresses.delete_one(
            {"_id": parse_id(address_id, "address id"), "userId": parse_id(user_id, "user id")}
        )
        if result.deleted_count == 0:
            raise NotFoundError("Address not found")
        logger.info("address_deleted", user_id=user_id, address_id=address_id)
