import logging
from typing import Any, Dict, Optional, Union

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, StrictFloat, StrictInt
from pymongo.errors import PyMongoError

# Firebase Admin for token verification
import firebase_admin
from firebase_admin import auth as fb_auth, credentials

from config import Settings
from database import get_database
from errors import ForbiddenError, InternalError, ServiceError, UnauthorizedError
from log_config import setup_logging
from payments import StripePaymentProvider
from schemas import Payment, Role
from service import TenancyService

settings = Settings.from_env()
setup_logging(settings.log_level, settings.log_format)
logger = logging.getLogger(__name__)

# Initialize Firebase Admin SDK once if not already
if not firebase_admin._apps:
    try:
        if settings.firebase_service_account:
            firebase_admin.initialize_app(credentials.Certificate(settings.firebase_service_account))
        else:
            firebase_admin.initialize_app()  # default credentials
    except ValueError as e:
        logger.warning("Firebase Admin not initialized, token verification will fail: %s", e)

app = FastAPI(title="Building Management API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.db = get_database(settings)
app.state.service = (
    TenancyService(
        app.state.db,
        StripePaymentProvider(settings.stripe_secret_key),
        currency=settings.payment_currency,
    )
    if app.state.db is not None
    else None
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


# ------------------------
# Request bodies
# ------------------------
# Numbers arrive as JSON numbers only; range checks happen in the service
StrictNumber = Union[StrictInt, StrictFloat]


class AgreementRequest(BaseModel):
    userName: Optional[str] = None
    userEmail: str = Field(..., min_length=1)
    floor: Optional[int] = None
    block: Optional[str] = None
    apartmentNo: Optional[str] = None
    apartmentId: str = Field(..., min_length=1)
    rent: Optional[float] = Field(None, ge=0)


class CouponCodeRequest(BaseModel):
    couponCode: str = Field(..., min_length=1)


class VerifyCouponRequest(CouponCodeRequest):
    rent: StrictNumber


class CouponRequest(BaseModel):
    code: str = Field(..., min_length=1)
    discountPercentage: StrictNumber
    description: str = ""
    active: bool = True


class CouponActiveUpdate(BaseModel):
    active: bool


class PaymentIntentRequest(BaseModel):
    amount: StrictNumber


class AnnouncementRequest(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)


class UserRequest(BaseModel):
    email: str = Field(..., min_length=1)
    displayName: Optional[str] = None
    photoURL: Optional[str] = None


# ------------------------
# Dependencies
# ------------------------
def get_service() -> TenancyService:
    service = app.state.service
    if service is None:
        raise InternalError("Database not configured")
    return service


def verify_token(authorization: Optional[str] = Header(None)) -> Dict[str, Any]:
    if not authorization:
        raise UnauthorizedError("Missing Authorization header")
    try:
        scheme, token = authorization.split(" ")
        if scheme.lower() != "bearer":
            raise ValueError("Invalid auth scheme")
    except ValueError:
        raise UnauthorizedError("Invalid Authorization header format")

    try:
        return fb_auth.verify_id_token(token)  # contains uid, email, etc.
    except (ValueError, fb_auth.InvalidIdTokenError, fb_auth.CertificateFetchError) as e:
        raise UnauthorizedError(f"Invalid token: {str(e)[:100]}")


def get_current_user(
    decoded: Dict[str, Any] = Depends(verify_token),
    service: TenancyService = Depends(get_service),
) -> Dict[str, Any]:
    email = decoded.get("email")
    user_doc = service.find_user(email)
    role = user_doc.get("role") if user_doc else None
    return {"uid": decoded.get("uid"), "email": email, "role": role}


def require_role(role: Role):
    def guard(current: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
        if current.get("role") != role:
            raise ForbiddenError(f"Only {role}s can perform this action")
        return current

    return guard


require_admin = require_role("admin")


@app.get("/")
def root():
    return {"name": "Building Management API", "status": "ok"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if settings.database_url else "❌ Not Set",
        "database_name": "✅ Set" if settings.database_name else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    db = app.state.db
    if db is not None:
        try:
            response["collections"] = db.list_collection_names()
            response["database"] = "✅ Connected"
            response["connection_status"] = "Connected"
        except PyMongoError as e:
            logger.error("Database check failed: %s", e)
            response["database"] = f"⚠️ {str(e)[:80]}"
    return response


# ------------------------
# Apartments
# ------------------------
@app.get("/apartments")
def list_apartments(
    page: int = Query(1, ge=1),
    limit: int = Query(6, ge=1),
    min_rent: float = Query(0, ge=0, alias="min"),
    max_rent: Optional[float] = Query(None, ge=0, alias="max"),
    service: TenancyService = Depends(get_service),
):
    return service.list_apartments(page=page, limit=limit, min_rent=min_rent, max_rent=max_rent)


@app.get("/apartments/featured")
def list_featured(service: TenancyService = Depends(get_service)):
    return service.list_featured()


# ------------------------
# Agreements
# ------------------------
@app.post("/agreements", status_code=201)
def create_agreement(
    payload: AgreementRequest,
    current=Depends(get_current_user),
    service: TenancyService = Depends(get_service),
):
    return service.create_agreement(payload.model_dump(exclude_none=True), requester_email=current["email"])


@app.get("/agreements")
def list_agreements(_admin=Depends(require_admin), service: TenancyService = Depends(get_service)):
    return service.list_agreements()


@app.get("/agreements/{email}")
def get_agreement(email: str, service: TenancyService = Depends(get_service)):
    return service.get_agreement_by_email(email)


@app.get("/agreement/pending")
def list_pending(_admin=Depends(require_admin), service: TenancyService = Depends(get_service)):
    return service.list_pending()


@app.patch("/agreements/{agreement_id}/accept")
def accept_agreement(agreement_id: str, _admin=Depends(require_admin), service: TenancyService = Depends(get_service)):
    return service.accept_agreement(agreement_id)


@app.patch("/agreements/{agreement_id}/reject")
def reject_agreement(agreement_id: str, _admin=Depends(require_admin), service: TenancyService = Depends(get_service)):
    return service.reject_agreement(agreement_id)


# ------------------------
# Payments
# ------------------------
@app.post("/payments", status_code=201)
def record_payment(payload: Payment, current=Depends(get_current_user), service: TenancyService = Depends(get_service)):
    return service.record_payment(payload.model_dump(exclude_none=True), requester_email=current["email"])


@app.get("/payments")
def list_payments(email: str = Query(...), current=Depends(get_current_user), service: TenancyService = Depends(get_service)):
    return service.list_payments(email, requester_email=current["email"])


@app.post("/create-payment-intent")
def create_payment_intent(
    payload: PaymentIntentRequest,
    _current=Depends(get_current_user),
    service: TenancyService = Depends(get_service),
):
    return service.create_payment_intent(payload.amount)


# ------------------------
# Coupons
# ------------------------
@app.post("/validate-coupon")
def validate_coupon(payload: CouponCodeRequest, service: TenancyService = Depends(get_service)):
    return service.validate_coupon(payload.couponCode)


@app.post("/verify-coupon")
def verify_coupon(payload: VerifyCouponRequest, service: TenancyService = Depends(get_service)):
    return service.verify_coupon(payload.couponCode, payload.rent)


@app.get("/coupons")
def list_coupons(_admin=Depends(require_admin), service: TenancyService = Depends(get_service)):
    return service.list_coupons()


@app.post("/coupons", status_code=201)
def create_coupon(payload: CouponRequest, _admin=Depends(require_admin), service: TenancyService = Depends(get_service)):
    return service.create_coupon(payload.code, payload.discountPercentage, payload.description, payload.active)


@app.patch("/coupons/{coupon_id}")
def set_coupon_active(
    coupon_id: str,
    payload: CouponActiveUpdate,
    _admin=Depends(require_admin),
    service: TenancyService = Depends(get_service),
):
    return service.set_coupon_active(coupon_id, payload.active)


@app.delete("/coupons/{coupon_id}")
def delete_coupon(coupon_id: str, _admin=Depends(require_admin), service: TenancyService = Depends(get_service)):
    return service.delete_coupon(coupon_id)


# ------------------------
# Announcements
# ------------------------
@app.post("/announcements", status_code=201)
def post_announcement(
    payload: AnnouncementRequest,
    _admin=Depends(require_admin),
    service: TenancyService = Depends(get_service),
):
    return service.post_announcement(payload.title, payload.description)


@app.get("/announcements")
def list_announcements(service: TenancyService = Depends(get_service)):
    return service.list_announcements()


# ------------------------
# Users & members
# ------------------------
@app.post("/users")
def ensure_user(payload: UserRequest, service: TenancyService = Depends(get_service)):
    return service.ensure_user(payload.email, payload.model_dump(exclude={"email"}))


@app.get("/users/role/{email}")
def get_role(email: str, service: TenancyService = Depends(get_service)):
    return {"role": service.get_role(email)}


@app.delete("/users/{user_id}")
def delete_user(user_id: str, _admin=Depends(require_admin), service: TenancyService = Depends(get_service)):
    return service.delete_user(user_id)


@app.get("/members")
def list_members(_admin=Depends(require_admin), service: TenancyService = Depends(get_service)):
    return service.list_members()


@app.patch("/members/{user_id}/remove")
def remove_membership(user_id: str, _admin=Depends(require_admin), service: TenancyService = Depends(get_service)):
    return service.remove_membership(user_id)


@app.get("/admin/stats")
def admin_stats(current=Depends(get_current_user), service: TenancyService = Depends(get_service)):
    return service.compute_admin_stats(current["email"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port)
