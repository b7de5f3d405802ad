"""
Registration, login and the per-browser user context.

The signed-in user lives under a single key of the Streamlit session state;
pages read it through load_context() and redirect to login when it is absent.
The users table stays the source of truth.
"""
import logging
from dataclasses import asdict, dataclass
from typing import Dict, MutableMapping, Optional

from engine import MIN_PASSWORD_LENGTH
from tryout.config import ADMIN_EMAIL
from tryout.database import DatabaseClient
from tryout.errors import NotFoundError, RemoteOperationFailure, ValidationError

logger = logging.getLogger(__name__)

SESSION_KEY = "current_user"


@dataclass
class UserContext:
    id: str
    email: str
    full_name: str = ""
    is_admin: bool = False

    @classmethod
    def from_record(cls, record: Dict) -> "UserContext":
        return cls(
            id=str(record["id"]),
            email=record.get("email") or "",
            full_name=record.get("full_name") or "",
            is_admin=bool(record.get("is_admin")),
        )

    def to_dict(self) -> Dict:
        return asdict(self)


def load_context(state: MutableMapping) -> Optional[UserContext]:
    data = state.get(SESSION_KEY)
    if not data:
        return None
    return UserContext(**data)


def store_context(state: MutableMapping, context: UserContext) -> None:
    state[SESSION_KEY] = context.to_dict()


def clear_context(state: MutableMapping) -> None:
    state.pop(SESSION_KEY, None)


def validate_registration(full_name: str, email: str, phone: str, password: str, confirm_password: str) -> Dict:
    fields = {
        "full_name": (full_name or "").strip(),
        "email": (email or "").strip().lower(),
        "phone": (phone or "").strip(),
    }
    for name, value in fields.items():
        if not value:
            raise ValidationError(f"{name} is required", field=name)
    if "@" not in fields["email"]:
        raise ValidationError("Email is not valid", field="email")
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters", field="password")
    if password != confirm_password:
        raise ValidationError("Passwords do not match", field="confirm_password")
    return fields


def register(db: DatabaseClient, full_name: str, email: str, phone: str, password: str, confirm_password: str) -> Dict:
    """Create the auth account and its profile row. Returns the profile."""
    fields = validate_registration(full_name, email, phone, password, confirm_password)
    try:
        response = db.auth.sign_up({"email": fields["email"], "password": password})
    except Exception as e:
        logger.error("Sign up failed for %s: %s", fields["email"], e)
        raise RemoteOperationFailure("Registration failed, the email may already be registered", cause=e) from e
    if response.user is None:
        raise RemoteOperationFailure("Registration failed, no user returned")

    profile = db.entity("User").create({
        "id": str(response.user.id),
        **fields,
        "is_admin": fields["email"] == ADMIN_EMAIL,
        "subscription_status": "inactive",
    })
    logger.info("Registered user %s (admin=%s)", profile["id"], profile.get("is_admin"))
    return profile


def login(db: DatabaseClient, email: str, password: str) -> UserContext:
    email = (email or "").strip().lower()
    if not email or not password:
        raise ValidationError("Email and password are required", field="email")
    try:
        response = db.auth.sign_in_with_password({"email": email, "password": password})
    except Exception as e:
        logger.error("Login failed for %s: %s", email, e)
        raise RemoteOperationFailure("Wrong email or password", cause=e) from e
    if response.user is None:
        raise RemoteOperationFailure("Wrong email or password")

    users = db.entity("User")
    try:
        profile = users.get(response.user.id)
    except NotFoundError:
        # Account created outside the app: give it a minimal profile
        profile = users.create({
            "id": str(response.user.id),
            "email": email,
            "full_name": email.split("@")[0],
            "is_admin": email == ADMIN_EMAIL,
            "subscription_status": "inactive",
        })
    return UserContext.from_record(profile)


def logout(db: DatabaseClient, state: MutableMapping) -> None:
    clear_context(state)
    try:
        db.auth.sign_out()
    except Exception as e:
        logger.warning("Sign out failed: %s", e)
