from fastapi import FastAPI, HTTPException, Query, Request, Depends, Header
from fastapi.responses import JSONResponse
from typing import List, Optional
from decimal import Decimal
import asyncio
import logging
import pytz
from contextlib import asynccontextmanager, suppress

# Local imports
import config
import ledger
from databases_sql import (
    init_db, insert_user, list_users, get_user, get_user_by_email,
    insert_class, list_classes, list_upcoming_classes, get_class, update_class, delete_class,
    list_bookings, list_bookings_for_user, list_bookings_for_class, get_booking,
)
from errors import (
    LedgerError, NotFound, CapacityExceeded, AlreadyBooked, ConflictAlreadyCancelled, InvalidClassChange,
)
from models import (
    UserCreate, UserOut, ClassCreate, ClassUpdate, ClassOut, ClassDetailOut,
    BookRequest, BookingOut, Message, STUDIO_OWNER_ROLES,
)
from seed_data import seed_classes
from cleanup import run_periodic_cleanup
from utils import get_timezone, format_local, to_utc_iso, utc_now

# ---------- Config ----------
logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger("booking_api")

ERROR_STATUS = {
    NotFound: 404,
    CapacityExceeded: 400,
    InvalidClassChange: 400,
    AlreadyBooked: 409,
    ConflictAlreadyCancelled: 409,
}


# ---------- App Lifecycle ----------
@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("Database initialized.")
    if config.SEED_ON_STARTUP:
        seed_classes()
        logger.info("Database seeded.")
    cleanup_task = None
    if config.CLEANUP_INTERVAL_HOURS > 0:
        cleanup_task = asyncio.create_task(run_periodic_cleanup(config.CLEANUP_INTERVAL_HOURS))
        logger.info("Cleanup of past classes scheduled every %s hours", config.CLEANUP_INTERVAL_HOURS)
    app.state.cleanup_task = cleanup_task
    yield
    if cleanup_task:
        cleanup_task.cancel()
        with suppress(asyncio.CancelledError):
            await cleanup_task
    logger.info("Application shutting down.")

app = FastAPI(title="Yoga Studio Booking API", lifespan=lifespan)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    return JSONResponse(status_code=ERROR_STATUS.get(type(exc), 400), content={"detail": str(exc)})


# ---------- Caller identity ----------
def get_current_user(x_user_id: Optional[int] = Header(None)):
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    user = get_user(x_user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user


def require_studio_owner(user=Depends(get_current_user)):
    if user["role"] not in STUDIO_OWNER_ROLES:
        raise HTTPException(status_code=403, detail="Studio owner access required")
    return user


def is_studio_owner(user) -> bool:
    return user["role"] in STUDIO_OWNER_ROLES


# ---------- Helpers ----------
def _resolve_timezone(name: str) -> str:
    try:
        get_timezone(name)
    except pytz.UnknownTimeZoneError:
        raise HTTPException(status_code=400, detail="Invalid timezone")
    return name


def _class_out(cls, tz_name: str) -> ClassOut:
    return ClassOut(
        **cls,
        start_local=format_local(cls["start_utc"], tz_name),
        end_local=format_local(cls["end_utc"], tz_name),
        available_slots=cls["max_capacity"] - cls["current_capacity"],
    )


def _price_text(price: Decimal) -> str:
    return str(price.quantize(Decimal("0.01")))


# ---------- Users ----------
def _may_assign_role(role: str, email: str, caller) -> bool:
    # Staff roles come from an admin, or from the ADMIN_EMAILS whitelist on self-registration
    if role == "member":
        return True
    if caller is not None and caller["role"] == "admin":
        return True
    return email.lower() in config.ADMIN_EMAILS


@app.post("/api/users", response_model=UserOut, status_code=201)
def create_user_api(req: UserCreate, x_user_id: Optional[int] = Header(None)):
    caller = get_current_user(x_user_id) if x_user_id is not None else None
    if not _may_assign_role(req.role, req.email, caller):
        raise HTTPException(status_code=403, detail="Only an admin can assign staff roles")
    if get_user_by_email(req.email):
        raise HTTPException(status_code=400, detail="Email already registered")
    user_id = insert_user(req.email, req.first_name, req.last_name, req.phone, req.role)
    logger.info("Registered user %s (%s)", user_id, req.role)
    return get_user(user_id)


@app.get("/api/users", response_model=List[UserOut])
def list_users_api(current_user=Depends(get_current_user)):
    return list_users()


@app.get("/api/users/me", response_model=UserOut)
def read_users_me(current_user=Depends(get_current_user)):
    return current_user


@app.get("/api/users/{user_id}", response_model=UserOut)
def get_user_api(user_id: int, current_user=Depends(get_current_user)):
    user = get_user(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


# ---------- Classes ----------
@app.get("/api/classes", response_model=List[ClassOut])
def list_classes_api(timezone: str = Query(config.DEFAULT_TIMEZONE)):
    tz_name = _resolve_timezone(timezone)
    return [_class_out(cls, tz_name) for cls in list_classes()]


@app.get("/api/classes/upcoming", response_model=List[ClassOut])
def list_upcoming_classes_api(timezone: str = Query(config.DEFAULT_TIMEZONE)):
    tz_name = _resolve_timezone(timezone)
    return [_class_out(cls, tz_name) for cls in list_upcoming_classes(to_utc_iso(utc_now()))]


@app.get("/api/classes/{class_id}", response_model=ClassDetailOut)
def get_class_api(class_id: int, timezone: str = Query(config.DEFAULT_TIMEZONE)):
    tz_name = _resolve_timezone(timezone)
    cls = get_class(class_id)
    if not cls:
        raise HTTPException(status_code=404, detail="Class not found")
    out = _class_out(cls, tz_name)
    return ClassDetailOut(**out.model_dump(), bookings=list_bookings_for_class(class_id))


@app.post("/api/classes", response_model=ClassOut, status_code=201)
def create_class_api(req: ClassCreate, owner=Depends(require_studio_owner)):
    class_id = insert_class(
        req.title, req.description, req.instructor_id,
        to_utc_iso(req.start_time), to_utc_iso(req.end_time),
        req.max_capacity, _price_text(req.price),
    )
    logger.info("Class %s created by user %s", class_id, owner["id"])
    return _class_out(get_class(class_id), config.DEFAULT_TIMEZONE)


@app.patch("/api/classes/{class_id}", response_model=ClassOut)
def update_class_api(class_id: int, req: ClassUpdate, owner=Depends(require_studio_owner)):
    changes = req.model_dump(exclude_unset=True, exclude_none=True)
    if "start_time" in changes:
        changes["start_utc"] = to_utc_iso(changes.pop("start_time"))
    if "end_time" in changes:
        changes["end_utc"] = to_utc_iso(changes.pop("end_time"))
    if "price" in changes:
        changes["price"] = _price_text(changes["price"])
    updated = update_class(class_id, changes)
    logger.info("Class %s updated by user %s: %s", class_id, owner["id"], sorted(changes))
    return _class_out(updated, config.DEFAULT_TIMEZONE)


@app.delete("/api/classes/{class_id}", response_model=Message)
def delete_class_api(class_id: int, owner=Depends(require_studio_owner)):
    delete_class(class_id)
    logger.info("Class %s deleted by user %s", class_id, owner["id"])
    return {"message": "Class deleted successfully"}


# ---------- Bookings ----------
@app.get("/api/bookings", response_model=List[BookingOut])
def list_bookings_api(owner=Depends(require_studio_owner)):
    return list_bookings()


@app.get("/api/bookings/user/{user_id}", response_model=List[BookingOut])
def list_user_bookings_api(user_id: int, current_user=Depends(get_current_user)):
    if user_id != current_user["id"] and not is_studio_owner(current_user):
        raise HTTPException(status_code=403, detail="Not allowed to view these bookings")
    return list_bookings_for_user(user_id)


@app.get("/api/bookings/class/{class_id}", response_model=List[BookingOut])
def list_class_bookings_api(class_id: int, owner=Depends(require_studio_owner)):
    if not get_class(class_id):
        raise HTTPException(status_code=404, detail="Class not found")
    return list_bookings_for_class(class_id)


@app.post("/api/bookings", response_model=BookingOut, status_code=201)
def book_class_api(req: BookRequest, current_user=Depends(get_current_user)):
    return ledger.create_booking(current_user["id"], req.class_id)


@app.patch("/api/bookings/{booking_id}/cancel", response_model=Message)
def cancel_booking_api(booking_id: int, current_user=Depends(get_current_user)):
    booking = get_booking(booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    if booking["user_id"] != current_user["id"] and not is_studio_owner(current_user):
        raise HTTPException(status_code=403, detail="Not allowed to cancel this booking")
    ledger.cancel_booking(booking_id)
    return {"message": "Booking cancelled successfully"}


# ---------- Run ----------
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=True)
