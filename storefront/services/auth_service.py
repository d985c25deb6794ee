import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from pydantic import ValidationError

from config.constants import (
    REMEMBER_ME_KEY,
    SAVED_EMAIL_KEY,
    SESSION_EXPIRY_HOURS,
    SESSION_STORAGE_KEY,
)
from config.env import is_production
from models.user import RegistrationRequest, User, VerificationStatus, VerificationStep
from utils.errors import (
    AppError,
    AuthenticationError,
    ErrorType,
    create_permission_error,
)
from utils.verification import (
    default_verification_status,
    fully_verified_status,
    is_user_admin,
    recompute_verification,
    user_from_details,
)

logger = logging.getLogger(__name__)

Listener = Callable[[str, Optional[User]], Awaitable[None]]

INVALID_CREDENTIALS = "Invalid email or password"


@dataclass
class AuthState:
    is_logged_in: bool = False
    user: Optional[User] = None
    is_loading: bool = True
    error: Optional[str] = None
    verification_status: Optional[VerificationStatus] = None


class AuthService:
    """
    Owns who is logged in and what they may do.

    Verification flags are always re-derived from the backend status strings;
    they are never patched flag by flag.
    """

    def __init__(self, gateway, store, tokens, notifier, *, clock=time.time):
        self.gateway = gateway
        self.store = store
        self.tokens = tokens
        self.notifier = notifier
        self._clock = clock
        self.state = AuthState()
        self._listeners: List[Listener] = []

    # =========================
    # LISTENERS
    # =========================

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _notify(self, event: str) -> None:
        for listener in list(self._listeners):
            try:
                await listener(event, self.state.user)
            except Exception:
                logger.exception("AUTH_LISTENER_ERROR event=%s", event)

    # =========================
    # COMPUTED
    # =========================

    @property
    def is_logged_in(self) -> bool:
        return self.state.is_logged_in

    @property
    def user(self) -> Optional[User]:
        return self.state.user

    def _flags(self) -> VerificationStatus:
        return self.state.verification_status or VerificationStatus()

    @property
    def can_buy(self) -> bool:
        return self._flags().can_buy

    @property
    def can_sell(self) -> bool:
        flags = self._flags()
        return flags.can_sell or flags.can_list

    @property
    def can_contact(self) -> bool:
        return self._flags().can_contact

    @property
    def is_verified_buyer(self) -> bool:
        return self.is_logged_in and self.can_buy

    @property
    def is_fully_verified(self) -> bool:
        return self._flags().is_fully_verified

    @property
    def is_admin(self) -> bool:
        return is_user_admin(self.state.user)

    @property
    def current_verification_step(self) -> VerificationStep:
        return self._flags().current_step

    # =========================
    # SESSION SNAPSHOT
    # =========================

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _persist(self, user: User) -> None:
        self.store.set_item_immediate(SESSION_STORAGE_KEY, {
            "user": user.model_dump(mode="json", by_alias=True),
            "timestamp": self._now_ms(),
        })

    def _set_logged_in(self, user: User) -> None:
        self.state = AuthState(
            is_logged_in=True,
            user=user,
            is_loading=False,
            error=None,
            verification_status=user.verification_status,
        )

    def _snapshot_user(self, snapshot) -> Optional[User]:
        if not isinstance(snapshot, dict):
            return None

        timestamp = snapshot.get("timestamp")
        user_data = snapshot.get("user")
        if not isinstance(timestamp, (int, float)) or not isinstance(user_data, dict):
            return None
        if not user_data.get("email"):
            return None

        age_ms = self._now_ms() - timestamp
        if age_ms < 0 or age_ms >= SESSION_EXPIRY_HOURS * 60 * 60 * 1000:
            logger.info("SESSION_EXPIRED age_ms=%s", age_ms)
            return None

        try:
            user = User.model_validate(user_data)
        except ValidationError:
            logger.warning("SESSION_SNAPSHOT_INVALID")
            return None

        user.verification_status = recompute_verification(user)
        return user

    async def _fetch_user(self) -> Optional[User]:
        try:
            details = await self.gateway.get_user_details()
        except AppError as e:
            logger.warning("USER_DETAILS_FETCH_FAILED type=%s message=%s", e.type.value, e.message)
            return None
        return user_from_details(details)

    # =========================
    # AUTHENTICATION
    # =========================

    async def login(self, email: str, password: str, remember_me: bool = False) -> User:
        self.state.is_loading = True
        self.state.error = None

        try:
            result = await self.gateway.login(email, password)
            if not result.token:
                raise AuthenticationError("No authentication token received")

            self.tokens.set(result.token)

            user = await self._fetch_user()
            if user is None:
                login_email = result.email or email
                role = "admin" if (result.role or "").upper() == "ADMIN" else "user"
                user = User(
                    id=login_email,
                    name=login_email.split("@")[0] or "User",
                    email=login_email,
                    logging_email=login_email,
                    role=role,
                    verification_status=default_verification_status(),
                )
        except AppError as e:
            self.state.is_loading = False
            if isinstance(e, AuthenticationError) or e.type in (ErrorType.AUTHENTICATION, ErrorType.NOT_FOUND) or e.status_code in (401, 404):
                self.state.error = INVALID_CREDENTIALS
                self.notifier.error("Login failed", INVALID_CREDENTIALS)
                raise AuthenticationError(INVALID_CREDENTIALS, status_code=e.status_code, details=e.message) from e

            self.state.error = "Login failed. Please try again."
            self.notifier.error("Login failed", e.user_message)
            raise

        self._persist(user)
        self._set_logged_in(user)
        self._remember(email if remember_me else None)

        logger.info("LOGIN_SUCCESS user=%s role=%s", user.id, user.role)
        await self._notify("login")
        return user

    def _remember(self, email: Optional[str]) -> None:
        if email:
            self.store.set_item_immediate(REMEMBER_ME_KEY, True)
            self.store.set_item_immediate(SAVED_EMAIL_KEY, email)
        else:
            self.store.remove_item(REMEMBER_ME_KEY)
            self.store.remove_item(SAVED_EMAIL_KEY)

    def saved_email(self) -> Optional[str]:
        if self.store.get_item(REMEMBER_ME_KEY):
            return self.store.get_item(SAVED_EMAIL_KEY)
        return None

    async def register(self, payload) -> None:
        """One call to the backend. The user still has to log in afterwards."""
        self.state.is_loading = True
        self.state.error = None
        try:
            request = payload if isinstance(payload, RegistrationRequest) else RegistrationRequest.model_validate(payload)
            await self.gateway.register(request)
        except (AppError, ValidationError) as e:
            self.state.is_loading = False
            self.state.error = "Registration failed"
            logger.warning("REGISTER_FAILED error=%s", e)
            raise
        self.state.is_loading = False

    async def logout(self) -> None:
        previous = self.state.user

        try:
            await self.gateway.logout()
        except AppError as e:
            logger.warning("LOGOUT_BACKEND_FAILED type=%s", e.type.value)

        self.store.flush_pending_writes()

        self.state = AuthState(is_loading=False)
        self.store.remove_item(SESSION_STORAGE_KEY)
        self.tokens.clear()

        logger.info("LOGOUT user=%s", previous.id if previous else None)
        await self._notify("logout")
        self.notifier.toast("Logged out", "You have been logged out successfully.")

    # =========================
    # PROFILE
    # =========================

    async def update_user(self, changes: dict) -> Optional[User]:
        user = self.state.user
        if user is None:
            logger.warning("UPDATE_USER_SKIPPED no user logged in")
            return None

        merged = user.model_dump()
        merged.update(changes)
        merged.pop("verification_status", None)
        updated = User.model_validate({**merged, "verification_status": user.verification_status})
        updated.verification_status = recompute_verification(updated)

        self._persist(updated)
        self._set_logged_in(updated)
        await self._notify("update")
        return updated

    # =========================
    # ORGANIZATION EMAIL
    # =========================

    async def request_organization_email_otp(self, email: str) -> None:
        await self.gateway.send_email_otp(email)

        flags = self.state.verification_status
        if self.state.user and flags and flags.current_step == VerificationStep.NOT_STARTED:
            flags = flags.model_copy(update={"current_step": VerificationStep.ORGANIZATION})
            user = self.state.user.model_copy(update={"verification_status": flags})
            self._persist(user)
            self._set_logged_in(user)

    async def verify_organization_email(self, email: str, otp: str, role: str = "USER") -> User:
        await self.gateway.verify_email_otp(email, otp, role)

        user = await self._fetch_user()
        if user is None:
            current = self.state.user
            if current is None:
                raise AuthenticationError("No user logged in")
            user = current.model_copy(update={"organization_email": email})
            user.verification_status = recompute_verification(user)

        self._persist(user)
        self._set_logged_in(user)
        logger.info("ORG_EMAIL_VERIFIED user=%s", user.id)
        await self._notify("update")
        return user

    async def complete_verification_for_testing(self) -> Optional[User]:
        if is_production():
            raise create_permission_error("Verification shortcut is disabled in production")

        user = self.state.user
        if user is None:
            return None

        user = user.model_copy(update={"verification_status": fully_verified_status(), "is_verified": True})
        self._persist(user)
        self._set_logged_in(user)
        await self._notify("update")
        return user

    # =========================
    # RESTORE / REFRESH
    # =========================

    async def restore_session(self) -> bool:
        try:
            snapshot = self.store.get_item(SESSION_STORAGE_KEY)
            token = self.tokens.initialize_from_storage()

            if snapshot is None:
                if token:
                    user = await self._fetch_user()
                    if user is not None:
                        self._persist(user)
                        self._set_logged_in(user)
                        await self._notify("restore")
                        return True
                self.state.is_loading = False
                return False

            user = self._snapshot_user(snapshot)
            if user is None:
                self.store.remove_item(SESSION_STORAGE_KEY)
                self.state = AuthState(is_loading=False)
                return False
        except Exception:
            logger.exception("SESSION_RESTORE_ERROR")
            self.store.remove_item(SESSION_STORAGE_KEY)
            self.state = AuthState(is_loading=False, error="Session restoration failed")
            return False

        self._set_logged_in(user)
        await self._notify("restore")
        return True

    async def refresh_session(self) -> Optional[User]:
        if not self.state.is_logged_in:
            return None

        try:
            details = await self.gateway.get_user_details()
        except AppError as e:
            if e.type == ErrorType.AUTHENTICATION:
                logger.info("SESSION_REFRESH_UNAUTHENTICATED")
                await self.logout()
                return None
            logger.warning("SESSION_REFRESH_FAILED type=%s", e.type.value)
            return self.state.user

        user = user_from_details(details)
        self._persist(user)
        self._set_logged_in(user)
        await self._notify("update")
        return user
