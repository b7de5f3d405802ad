"""
QRIS payments and package access gating.

Settlement is external: a payment row moves from pending to completed,
expired or failed; the app only creates, polls and (in demo mode) completes it.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from engine import MAX_PAYMENT_TIMEOUT_MINUTES, MIN_PAYMENT_TIMEOUT_MINUTES
from tryout.config import DEFAULT_PAYMENT_TIMEOUT_MINUTES
from tryout.database import DatabaseClient
from tryout.errors import ValidationError

logger = logging.getLogger(__name__)

PENDING = "pending"
COMPLETED = "completed"
EXPIRED = "expired"
FAILED = "failed"
PAYMENT_STATUSES = (PENDING, COMPLETED, EXPIRED, FAILED)


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ============= Access =============

def has_access(package: Dict, completed_payments: List[Dict]) -> bool:
    """Free packages are open; paid ones need a completed payment for the package."""
    if not package.get("requires_payment"):
        return True
    return any(p.get("package_id") == package.get("id") for p in completed_payments)


def completed_payments(db: DatabaseClient, user_id) -> List[Dict]:
    return db.entity("Payment").filter({"user_id": str(user_id), "status": COMPLETED})


# ============= Settings =============

def get_payment_settings(db: DatabaseClient) -> Optional[Dict]:
    """Most recent settings row, or None when the admin has not saved any."""
    rows = db.entity("PaymentSetting").list(order="-created_at", limit=1)
    return rows[0] if rows else None


def validate_payment_settings(settings: Dict) -> Dict:
    timeout = settings.get("payment_timeout_minutes", DEFAULT_PAYMENT_TIMEOUT_MINUTES)
    try:
        timeout = int(timeout)
    except (TypeError, ValueError):
        raise ValidationError("Payment timeout must be a number", field="payment_timeout_minutes")
    if not MIN_PAYMENT_TIMEOUT_MINUTES <= timeout <= MAX_PAYMENT_TIMEOUT_MINUTES:
        raise ValidationError(
            f"Payment timeout must be between {MIN_PAYMENT_TIMEOUT_MINUTES} and {MAX_PAYMENT_TIMEOUT_MINUTES} minutes",
            field="payment_timeout_minutes",
        )
    return {
        "qris_merchant_id": (settings.get("qris_merchant_id") or "").strip(),
        "qris_merchant_name": (settings.get("qris_merchant_name") or "").strip(),
        "payment_timeout_minutes": timeout,
        "is_active": bool(settings.get("is_active", True)),
    }


def save_payment_settings(db: DatabaseClient, settings: Dict) -> Dict:
    """Update the current settings row, or create the first one."""
    cleaned = validate_payment_settings(settings)
    store = db.entity("PaymentSetting")
    existing = get_payment_settings(db)
    if existing:
        saved = store.update(existing["id"], cleaned)
    else:
        saved = store.create(cleaned)
    logger.info("Payment settings saved (timeout=%d min)", cleaned["payment_timeout_minutes"])
    return saved


def payment_timeout_minutes(settings: Optional[Dict]) -> int:
    return (settings or {}).get("payment_timeout_minutes") or DEFAULT_PAYMENT_TIMEOUT_MINUTES


# ============= Payments =============

def generate_qris_code(settings: Optional[Dict], now: Optional[datetime] = None) -> str:
    # Placeholder until a payment gateway issues real codes
    merchant = (settings or {}).get("qris_merchant_id") or "MERCHANT"
    return f"{merchant}-{int(_now(now).timestamp() * 1000)}"


def find_pending_payment(db: DatabaseClient, user_id, package_id) -> Optional[Dict]:
    rows = db.entity("Payment").filter(
        {"user_id": str(user_id), "package_id": str(package_id), "status": PENDING},
        order="-created_at",
        limit=1,
    )
    return rows[0] if rows else None


def seconds_left(payment: Dict, now: Optional[datetime] = None) -> int:
    if not payment.get("expires_at"):
        return 0
    delta = parse_timestamp(payment["expires_at"]) - _now(now)
    return max(0, int(delta.total_seconds()))


def create_payment(db: DatabaseClient, user_id, package: Dict, settings: Optional[Dict] = None, now: Optional[datetime] = None) -> Dict:
    """Open a pending QRIS payment for the package price."""
    now = _now(now)
    expires_at = now + timedelta(minutes=payment_timeout_minutes(settings))
    payment = db.entity("Payment").create({
        "user_id": str(user_id),
        "package_id": package["id"],
        "amount": package.get("price") or 0,
        "payment_method": "QRIS",
        "status": PENDING,
        "qris_code": generate_qris_code(settings, now),
        "expires_at": expires_at.isoformat(),
    })
    logger.info("Payment %s created for package %s (%s)", payment["id"], package["id"], payment["amount"])
    return payment


def check_payment_status(db: DatabaseClient, payment_id, now: Optional[datetime] = None) -> Dict:
    """Reload a payment; a pending one past its expiry is marked expired."""
    store = db.entity("Payment")
    payment = store.get(payment_id)
    if payment.get("status") == PENDING and payment.get("expires_at") and seconds_left(payment, now) <= 0:
        payment = store.update(payment_id, {"status": EXPIRED})
        logger.info("Payment %s expired", payment_id)
    return payment


def simulate_payment_success(db: DatabaseClient, payment_id) -> Dict:
    """Demo only: mark the payment completed as if the gateway had settled it."""
    db.entity("Payment").update(payment_id, {"status": COMPLETED})
    return check_payment_status(db, payment_id)
