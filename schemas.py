"""
Database Schemas for the Building Management App

Each Pydantic model describes the documents of one MongoDB collection. The
collection names are the plural of the model name:
- Apartment -> "apartments"
- Agreement -> "agreements"
- User -> "users"
- Coupon -> "coupons"
- Payment -> "payments"
- Announcement -> "announcements"
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

Role = Literal["user", "member", "admin"]
AgreementStatus = Literal["pending", "checked"]
AgreementDecision = Literal["accepted", "rejected"]


class Apartment(BaseModel):
    floor: int
    block: str
    apartmentNo: str
    rent: float = Field(..., ge=0)
    image: Optional[str] = None
    featured: bool = False


class Agreement(BaseModel):
    userName: Optional[str] = None
    userEmail: str = Field(..., min_length=1)
    floor: Optional[int] = None
    block: Optional[str] = None
    apartmentNo: Optional[str] = None
    apartmentId: str = Field(..., min_length=1)
    rent: Optional[float] = Field(None, ge=0)
    status: AgreementStatus = "pending"
    # "checked" covers both outcomes; the decision records which one
    decision: Optional[AgreementDecision] = None
    createdAt: Optional[datetime] = None
    agreementDate: Optional[datetime] = None


class User(BaseModel):
    email: str = Field(..., min_length=1)
    role: Role = Field("user", description="user, member or admin")
    displayName: Optional[str] = None
    photoURL: Optional[str] = None
    createdAt: Optional[datetime] = None


class Coupon(BaseModel):
    code: str = Field(..., min_length=1, description="Stored upper-cased")
    discount: float = Field(..., gt=0, le=100, description="Percentage off the rent")
    description: str = ""
    active: bool = True


class Payment(BaseModel):
    email: str = Field(..., min_length=1)
    agreementId: str = Field(..., min_length=1)
    apartmentId: Optional[str] = None
    month: str = Field(..., min_length=1, description="Billing month, e.g. 2024-01")
    rent: Optional[float] = Field(None, ge=0)
    couponCode: Optional[str] = None
    discountPercentage: Optional[float] = None
    finalAmount: Optional[float] = Field(None, ge=0)
    transactionId: Optional[str] = None
    status: str = "paid"
    date: Optional[datetime] = None


class Announcement(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    date: Optional[datetime] = None
