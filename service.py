"""Tenancy workflow service.

Apartments, agreements, coupons, payments, users and announcements for the
building management API. The service holds the MongoDB database and the
payment-intent provider it was constructed with; the HTTP layer in main.py
only validates requests and resolves the caller before calling in here.

Multi-document steps (accepting an agreement and promoting its user) are
independent writes with no transaction between them.
"""

import logging
import math
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Dict, List, Optional, Protocol, Type, TypeVar

from bson import ObjectId
from pydantic import BaseModel, ValidationError
from pymongo.database import Database
from pymongo.errors import PyMongoError

import database as collections
from errors import BadRequestError, ConflictError, ForbiddenError, InternalError, NotFoundError
from schemas import Agreement, Announcement, Coupon, Payment, User

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class PaymentIntentProvider(Protocol):
    def create_payment_intent(self, amount: int, currency: str) -> str:
        ...


def store_operation(message: str):
    """Turn store failures inside the wrapped operation into an InternalError."""

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except PyMongoError as e:
                logger.error("%s %s", message, e)
                raise InternalError(message) from e

        return wrapper

    return decorator


def parse_object_id(value: str, label: str = "id") -> ObjectId:
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise BadRequestError(f"Invalid {label}")
    return ObjectId(value)


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _validate(model: Type[ModelT], data: Dict[str, Any]) -> ModelT:
    try:
        return model(**data)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        raise BadRequestError(f"Invalid {model.__name__.lower()} data: {field} {first.get('msg', '')}".strip())


def _serialize(doc: Dict[str, Any]) -> Dict[str, Any]:
    doc["id"] = str(doc.pop("_id"))
    return doc


class TenancyService:
    def __init__(self, db: Database, payments: PaymentIntentProvider, currency: str = "usd"):
        self.db = db
        self.payments = payments
        self.currency = currency

    # ------------------------
    # Apartments
    # ------------------------
    @store_operation("Failed to fetch apartments.")
    def list_apartments(
        self,
        page: int = 1,
        limit: int = 6,
        min_rent: float = 0,
        max_rent: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Return one page of apartments whose rent lies in [min_rent, max_rent].

        `total` counts every matching apartment, not just the returned page.
        """
        if page < 1 or limit < 1 or min_rent < 0:
            raise BadRequestError("page and limit must be at least 1 and min must not be negative")
        rent_cond: Dict[str, Any] = {"$gte": min_rent}
        if max_rent is not None:
            rent_cond["$lte"] = max_rent
        filter_ = {"rent": rent_cond}

        total = self.db[collections.APARTMENTS].count_documents(filter_)
        cursor = self.db[collections.APARTMENTS].find(filter_).skip((page - 1) * limit).limit(limit)
        items = [_serialize(doc) for doc in cursor]
        return {"items": items, "total": total, "page": page, "limit": limit}

    @store_operation("Failed to fetch featured apartments.")
    def list_featured(self) -> List[Dict[str, Any]]:
        return [_serialize(doc) for doc in self.db[collections.APARTMENTS].find({"featured": True})]

    # ------------------------
    # Agreements
    # ------------------------
    @store_operation("Failed to create agreement.")
    def create_agreement(self, agreement: Dict[str, Any], requester_email: Optional[str] = None) -> Dict[str, Any]:
        data = {k: v for k, v in agreement.items() if k not in ("status", "decision", "agreementDate")}
        data["status"] = "pending"
        data["createdAt"] = _now()
        doc = _validate(Agreement, data).model_dump(exclude_none=True)

        if requester_email is not None and doc["userEmail"] != requester_email:
            raise ForbiddenError("Agreements can only be requested for your own email")
        if self.db[collections.AGREEMENTS].find_one({"userEmail": doc["userEmail"]}):
            raise ConflictError("User already has an agreement.")

        doc["_id"] = self.db[collections.AGREEMENTS].insert_one(doc).inserted_id
        logger.info("Agreement %s requested by %s for apartment %s", doc["_id"], doc["userEmail"], doc["apartmentId"])
        return _serialize(doc)

    @store_operation("Failed to fetch agreement.")
    def get_agreement_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        doc = self.db[collections.AGREEMENTS].find_one({"userEmail": email})
        return _serialize(doc) if doc else None

    @store_operation("Failed to fetch agreements.")
    def list_agreements(self) -> List[Dict[str, Any]]:
        return [_serialize(doc) for doc in self.db[collections.AGREEMENTS].find()]

    @store_operation("Failed to fetch pending agreements.")
    def list_pending(self) -> List[Dict[str, Any]]:
        return [_serialize(doc) for doc in self.db[collections.AGREEMENTS].find({"status": "pending"})]

    def _find_agreement(self, agreement_id: str) -> Dict[str, Any]:
        oid = parse_object_id(agreement_id, "agreement id")
        agreement = self.db[collections.AGREEMENTS].find_one({"_id": oid})
        if not agreement:
            raise NotFoundError("Agreement not found")
        return agreement

    @store_operation("Failed to accept agreement.")
    def accept_agreement(self, agreement_id: str) -> Dict[str, Any]:
        """Check the agreement and promote its user to member.

        A missing user record is not an error; the role update matches nothing.
        """
        agreement = self._find_agreement(agreement_id)
        self.db[collections.AGREEMENTS].update_one(
            {"_id": agreement["_id"]},
            {"$set": {"status": "checked", "decision": "accepted", "agreementDate": _now()}},
        )
        result = self.db[collections.USERS].update_one(
            {"email": agreement["userEmail"]},
            {"$set": {"role": "member"}},
        )
        logger.info(
            "Agreement %s accepted, %d user(s) promoted to member", agreement_id, result.modified_count
        )
        return {"message": "Agreement accepted and user role updated"}

    @store_operation("Failed to reject agreement.")
    def reject_agreement(self, agreement_id: str) -> Dict[str, Any]:
        agreement = self._find_agreement(agreement_id)
        self.db[collections.AGREEMENTS].update_one(
            {"_id": agreement["_id"]},
            {"$set": {"status": "checked", "decision": "rejected"}},
        )
        logger.info("Agreement %s rejected", agreement_id)
        return {"message": "Agreement rejected"}

    # ------------------------
    # Coupons
    # ------------------------
    def _find_active_coupon(self, code: Any) -> Dict[str, Any]:
        if not code or not isinstance(code, str):
            raise BadRequestError("Coupon code is required")
        coupon = self.db[collections.COUPONS].find_one({"code": code.strip().upper(), "active": True})
        if not coupon:
            raise NotFoundError("Invalid or inactive coupon")
        return coupon

    @store_operation("Coupon validation failed")
    def validate_coupon(self, code: Any) -> Dict[str, Any]:
        coupon = self._find_active_coupon(code)
        return {
            "valid": True,
            "discountPercentage": coupon["discount"],
            "description": coupon.get("description") or "",
        }

    @store_operation("Coupon verification failed")
    def verify_coupon(self, code: Any, rent: Any) -> Dict[str, Any]:
        if not is_number(rent):
            raise BadRequestError("Rent must be a number")
        coupon = self._find_active_coupon(code)
        discount = coupon["discount"]
        return {
            "valid": True,
            "discountPercentage": discount,
            "discountedAmount": rent - rent * discount / 100,
        }

    @store_operation("Failed to fetch coupons")
    def list_coupons(self) -> List[Dict[str, Any]]:
        return [_serialize(doc) for doc in self.db[collections.COUPONS].find()]

    @store_operation("Failed to create coupon")
    def create_coupon(
        self,
        code: Any,
        discount_percentage: Any,
        description: str = "",
        active: bool = True,
    ) -> Dict[str, Any]:
        if not code or not isinstance(code, str) or not is_number(discount_percentage) or discount_percentage <= 0:
            raise BadRequestError("Invalid coupon data")
        coupon = _validate(
            Coupon,
            {
                "code": code.strip().upper(),
                "discount": discount_percentage,
                "description": description or "",
                "active": active is not False,
            },
        )
        doc = coupon.model_dump()
        inserted_id = self.db[collections.COUPONS].insert_one(doc).inserted_id
        logger.info("Coupon %s created with %s%% discount", coupon.code, coupon.discount)
        return {"insertedId": str(inserted_id), "code": coupon.code}

    @store_operation("Failed to update coupon")
    def set_coupon_active(self, coupon_id: str, active: bool) -> Dict[str, Any]:
        oid = parse_object_id(coupon_id, "coupon id")
        result = self.db[collections.COUPONS].update_one({"_id": oid}, {"$set": {"active": bool(active)}})
        if result.matched_count == 0:
            raise NotFoundError("Coupon not found")
        return {"modifiedCount": result.modified_count, "active": bool(active)}

    @store_operation("Failed to delete coupon")
    def delete_coupon(self, coupon_id: str) -> Dict[str, Any]:
        oid = parse_object_id(coupon_id, "coupon id")
        result = self.db[collections.COUPONS].delete_one({"_id": oid})
        if result.deleted_count == 0:
            raise NotFoundError("Coupon not found")
        return {"deletedCount": result.deleted_count}

    # ------------------------
    # Payments
    # ------------------------
    @store_operation("Payment failed")
    def record_payment(self, payment: Dict[str, Any], requester_email: Optional[str] = None) -> Dict[str, Any]:
        """Store a payment as submitted.

        The amount is not recomputed; only a second paid payment for the same
        agreement and month is refused.
        """
        data = dict(payment)
        if not data.get("status"):
            data["status"] = "paid"
        if not data.get("date"):
            data["date"] = _now()
        doc = _validate(Payment, data).model_dump(exclude_none=True)

        if requester_email is not None and doc["email"] != requester_email:
            raise ForbiddenError("Payments can only be recorded for your own email")
        duplicate = self.db[collections.PAYMENTS].find_one(
            {"agreementId": doc["agreementId"], "month": doc["month"], "status": "paid"}
        )
        if duplicate:
            raise ConflictError(f"Rent for {doc['month']} has already been paid")

        inserted_id = self.db[collections.PAYMENTS].insert_one(doc).inserted_id
        logger.info("Payment %s recorded for agreement %s (%s)", inserted_id, doc["agreementId"], doc["month"])
        return {"success": True, "message": "Payment recorded", "insertedId": str(inserted_id)}

    @store_operation("Failed to fetch payments")
    def list_payments(self, email: str, requester_email: Optional[str]) -> List[Dict[str, Any]]:
        if not email or email != requester_email:
            raise ForbiddenError("Forbidden access")
        cursor = self.db[collections.PAYMENTS].find({"email": email}).sort("date", -1)
        return [_serialize(doc) for doc in cursor]

    def create_payment_intent(self, amount: Any) -> Dict[str, Any]:
        if not is_number(amount) or amount <= 0:
            raise BadRequestError("Amount must be a positive number")
        minor_units = int(round(amount * 100))
        if minor_units < 1:
            raise BadRequestError("Amount is below the smallest chargeable unit")
        client_secret = self.payments.create_payment_intent(minor_units, self.currency)
        return {"clientSecret": client_secret}

    # ------------------------
    # Users & membership
    # ------------------------
    @store_operation("Failed to save user")
    def ensure_user(self, email: str, profile: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if self.db[collections.USERS].find_one({"email": email}):
            return {"message": "User already exists", "insertedId": None}
        profile = profile or {}
        user = _validate(
            User,
            {
                "email": email,
                "displayName": profile.get("displayName"),
                "photoURL": profile.get("photoURL"),
                "createdAt": _now(),
            },
        )
        inserted_id = self.db[collections.USERS].insert_one(user.model_dump(exclude_none=True)).inserted_id
        logger.info("User %s registered", email)
        return {"message": "User created", "insertedId": str(inserted_id)}

    @store_operation("Failed to fetch user")
    def find_user(self, email: Optional[str]) -> Optional[Dict[str, Any]]:
        if not email:
            return None
        doc = self.db[collections.USERS].find_one({"email": email})
        return _serialize(doc) if doc else None

    def get_role(self, email: str) -> str:
        user = self.find_user(email)
        if not user:
            raise NotFoundError("User not found")
        return user.get("role", "user")

    @store_operation("Failed to fetch members")
    def list_members(self) -> List[Dict[str, Any]]:
        return [_serialize(doc) for doc in self.db[collections.USERS].find({"role": "member"})]

    @store_operation("Failed to remove member")
    def remove_membership(self, user_id: str) -> Dict[str, Any]:
        oid = parse_object_id(user_id, "user id")
        result = self.db[collections.USERS].update_one(
            {"_id": oid, "role": "member"},
            {"$set": {"role": "user"}},
        )
        if result.matched_count == 0:
            raise NotFoundError("Member not found")
        logger.info("User %s demoted from member to user", user_id)
        return {"message": "Member removed", "modifiedCount": result.modified_count}

    @store_operation("Failed to delete user")
    def delete_user(self, user_id: str) -> Dict[str, Any]:
        oid = parse_object_id(user_id, "user id")
        result = self.db[collections.USERS].delete_one({"_id": oid})
        if result.deleted_count == 0:
            raise NotFoundError("User not found")
        return {"deletedCount": result.deleted_count}

    @store_operation("Failed to compute admin stats")
    def compute_admin_stats(self, admin_email: Optional[str]) -> Dict[str, Any]:
        """Apartment availability and user counts for the admin dashboard.

        Every apartment referenced by any agreement counts as unavailable,
        whatever the agreement's status.
        """
        admin = self.db[collections.USERS].find_one({"email": admin_email, "role": "admin"}) if admin_email else None
        if not admin:
            raise NotFoundError("Admin not found")

        total_apartments = self.db[collections.APARTMENTS].count_documents({})
        unavailable = len(self.db[collections.AGREEMENTS].distinct("apartmentId"))
        available = max(total_apartments - unavailable, 0)

        def percent(count: int) -> float:
            return round(count / total_apartments * 100, 2) if total_apartments else 0

        return {
            "totalApartments": total_apartments,
            "availableApartments": available,
            "unavailableApartments": unavailable,
            "availablePercentage": percent(available),
            "unavailablePercentage": percent(unavailable),
            "totalUsers": self.db[collections.USERS].count_documents({}),
            "totalMembers": self.db[collections.USERS].count_documents({"role": "member"}),
        }

    # ------------------------
    # Announcements
    # ------------------------
    @store_operation("Failed to post announcement")
    def post_announcement(self, title: Any, description: Any) -> Dict[str, Any]:
        if not title or not description:
            raise BadRequestError("Title and description required")
        announcement = _validate(Announcement, {"title": title, "description": description, "date": _now()})
        inserted_id = self.db[collections.ANNOUNCEMENTS].insert_one(announcement.model_dump()).inserted_id
        return {"message": "Announcement posted", "insertedId": str(inserted_id)}

    @store_operation("Failed to fetch announcements")
    def list_announcements(self) -> List[Dict[str, Any]]:
        cursor = self.db[collections.ANNOUNCEMENTS].find().sort("date", -1)
        return [_serialize(doc) for doc in cursor]
