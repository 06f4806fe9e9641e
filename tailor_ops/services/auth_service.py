"""
Email/password authentication for customers and tailors.

The account role is written once at sign-up as user metadata and read back
directly; profile rows live in the customers and tailors tables.
"""

import logging
from typing import Any, Dict, Optional

from ..core.exceptions import AuthError
from ..core.models import Party, Viewer
from ..core.timestamps import utc_now

logger = logging.getLogger(__name__)

# Supabase auth error codes -> user-facing text
FRIENDLY_AUTH_ERRORS = {
    "user_not_found": "No account found with this email. Please sign up first.",
    "invalid_credentials": "Incorrect email or password. Please try again.",
    "email_exists": "An account with this email already exists. Please login instead.",
    "user_already_exists": "An account with this email already exists. Please login instead.",
    "weak_password": "Password should be at least 6 characters long.",
    "email_address_invalid": "Please enter a valid email address.",
    "validation_failed": "Please enter a valid email address.",
    "email_not_confirmed": "Please confirm your email address before signing in.",
    "over_request_rate_limit": "Too many attempts. Please wait a moment and try again.",
}

REQUIRED_PROFILE_FIELDS = {
    Party.CUSTOMER: ["name", "phone"],
    Party.TAILOR: ["name", "business_name", "phone"],
}

PROFILE_TABLES = {
    Party.CUSTOMER: "customers",
    Party.TAILOR: "tailors",
}


def friendly_auth_error(error: Exception) -> str:
    code = getattr(error, "code", None)
    if code in FRIENDLY_AUTH_ERRORS:
        return FRIENDLY_AUTH_ERRORS[code]
    return getattr(error, "message", None) or str(error) or "An error occurred. Please try again."


def _normalize_email(email: str) -> str:
    return (email or "").lower().strip()


def _role_of(user) -> Optional[Party]:
    metadata = getattr(user, "user_metadata", None) or {}
    try:
        return Party(metadata.get("role"))
    except ValueError:
        return None


class AuthService:
    def __init__(self, client):
        self.client = client

    async def sign_up(self, email: str, password: str, role: Party, profile: Dict[str, Any]) -> Dict[str, Any]:
        """Create the auth user and its customer or tailor profile row"""
        try:
            missing = [name for name in REQUIRED_PROFILE_FIELDS[role] if not str(profile.get(name) or "").strip()]
            if missing:
                raise AuthError("Please fill in all required fields.", code="missing_fields")

            email = _normalize_email(email)
            response = await self.client.auth.sign_up({
                "email": email,
                "password": password,
                "options": {"data": {"role": role.value, "name": profile["name"].strip()}},
            })
            user = response.user
            if user is None:
                raise AuthError("Sign up did not return a user", code="sign_up_failed")

            row = {
                "id": user.id,
                "name": profile["name"].strip(),
                "email": email,
                "phone": profile["phone"].strip(),
                "user_type": role.value,
                "is_active": True,
                "created_at": utc_now().isoformat(),
            }
            if role == Party.TAILOR:
                row["business_name"] = profile["business_name"].strip()
                row["is_verified"] = False
            else:
                row["saved_measurements"] = {}

            await self.client.table(PROFILE_TABLES[role]).insert(row).execute()

            logger.info(f"✅ {role.value.title()} account created: {email}")
            return {"success": True, "user_id": user.id, "role": role.value, "profile": row}

        except AuthError as e:
            return {"success": False, "error": e.message, "code": e.code}
        except Exception as e:
            logger.error(f"❌ Sign up failed for {email}: {e}")
            return {"success": False, "error": friendly_auth_error(e), "code": getattr(e, "code", None)}

    async def sign_in(self, email: str, password: str, expected_role: Party) -> Dict[str, Any]:
        """Sign in and confirm the account matches the portal being used"""
        email = _normalize_email(email)
        try:
            response = await self.client.auth.sign_in_with_password({"email": email, "password": password})
            user = response.user
            role = _role_of(user)

            if role != expected_role:
                await self.client.auth.sign_out()
                other = Party.TAILOR if expected_role == Party.CUSTOMER else Party.CUSTOMER
                raise AuthError(
                    f"This account is not registered as a {expected_role.value}. "
                    f"Please sign up as a {expected_role.value} or use the {other.value} login.",
                    code="wrong_role",
                )

            result = await self.client.table(PROFILE_TABLES[role]).select("*").eq("id", user.id).execute()
            profile = result.data[0] if result.data else None
            if profile is None:
                await self.client.auth.sign_out()
                raise AuthError("Account profile not found. Please contact the shop.", code="profile_missing")

            if role == Party.TAILOR:
                if not profile.get("is_active"):
                    await self.client.auth.sign_out()
                    raise AuthError("This tailor account has been deactivated.", code="tailor_inactive")
                if not profile.get("is_verified"):
                    await self.client.auth.sign_out()
                    raise AuthError("This tailor account is awaiting verification.", code="tailor_unverified")

            logger.info(f"✅ {role.value.title()} signed in: {email}")
            return {
                "success": True,
                "user_id": user.id,
                "role": role.value,
                "profile": profile,
                "message": f"Welcome back, {profile.get('name', '')}!",
                "access_token": getattr(response.session, "access_token", None),
            }

        except AuthError as e:
            logger.warning(f"⚠️ Sign in refused for {email}: {e.code}")
            return {"success": False, "error": e.message, "code": e.code}
        except Exception as e:
            logger.error(f"❌ Sign in failed for {email}: {e}")
            return {"success": False, "error": friendly_auth_error(e), "code": getattr(e, "code", None)}

    async def reset_password(self, email: str) -> Dict[str, Any]:
        email = _normalize_email(email)
        if not email:
            return {"success": False, "error": "Please enter your email first."}
        try:
            await self.client.auth.reset_password_for_email(email)
            logger.info(f"📧 Password reset requested for {email}")
            return {"success": True, "message": "Password reset email sent! Check your inbox."}
        except Exception as e:
            logger.error(f"❌ Password reset failed for {email}: {e}")
            return {"success": False, "error": "Error sending reset email. Please check your email address."}

    async def sign_out(self) -> Dict[str, Any]:
        try:
            await self.client.auth.sign_out()
            return {"success": True}
        except Exception as e:
            logger.error(f"❌ Error signing out: {e}")
            return {"success": False, "error": str(e)}

    async def get_viewer(self, access_token: str) -> Optional[Viewer]:
        """Resolve a bearer token to the viewer it belongs to"""
        try:
            response = await self.client.auth.get_user(access_token)
        except Exception as e:
            logger.warning(f"⚠️ Token rejected: {e}")
            return None

        user = getattr(response, "user", None)
        role = _role_of(user) if user else None
        if role is None:
            return None
        metadata = user.user_metadata or {}
        return Viewer(user_id=user.id, role=role, name=metadata.get("name"), email=getattr(user, "email", None))
