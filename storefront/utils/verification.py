from typing import Optional

from config.constants import PENDING, VERIFIED
from models.user import User, UserDetails, VerificationStatus, VerificationStep


def _step_for(*, fully_verified: bool, org_verified: bool, otp_requested: bool) -> VerificationStep:
    if fully_verified:
        return VerificationStep.COMPLETE
    if org_verified:
        return VerificationStep.IDENTITY
    if otp_requested:
        return VerificationStep.ORGANIZATION
    return VerificationStep.NOT_STARTED


def derive_verification_status(
    *,
    organization_email: Optional[str],
    backend_status: Optional[str],
    passport_status: Optional[str],
    address_status: Optional[str],
    otp_requested: bool = False,
) -> VerificationStatus:
    """
    Flags from the backend's status strings.
    can_sell / can_list always require identity AND organization email.
    """
    org_verified = bool(organization_email)
    backend_verified = backend_status == VERIFIED
    identity_verified = passport_status == VERIFIED
    fully_verified = (
        org_verified
        and backend_verified
        and identity_verified
        and address_status == VERIFIED
    )
    can_sell = backend_verified and identity_verified and org_verified

    if fully_verified:
        pending = []
    elif backend_status == PENDING:
        pending = ["admin_review"]
    elif not org_verified:
        pending = ["verify_email"]
    else:
        pending = ["upload_documents"]

    return VerificationStatus(
        is_fully_verified=fully_verified,
        is_identity_verified=identity_verified,
        is_organization_email_verified=org_verified,
        can_buy=backend_verified or org_verified,
        can_list=can_sell,
        can_sell=can_sell,
        can_contact=backend_verified or org_verified,
        current_step=_step_for(
            fully_verified=fully_verified,
            org_verified=org_verified,
            otp_requested=otp_requested,
        ),
        pending_actions=pending,
    )


def default_verification_status(organization_email: Optional[str] = None, otp_requested: bool = False) -> VerificationStatus:
    """Used when no backend statuses are known (e.g. detail fetch failed)."""
    org_verified = bool(organization_email)
    return VerificationStatus(
        is_organization_email_verified=org_verified,
        can_buy=org_verified,
        can_contact=org_verified,
        current_step=_step_for(fully_verified=False, org_verified=org_verified, otp_requested=otp_requested),
        pending_actions=["upload_documents"] if org_verified else ["verify_email"],
    )


def recompute_verification(user: User) -> VerificationStatus:
    otp_requested = user.verification_status.current_step == VerificationStep.ORGANIZATION
    has_backend_statuses = any((
        user.backend_verification_status,
        user.passport_verification_status,
        user.address_verification_status,
    ))
    if not has_backend_statuses:
        return default_verification_status(user.organization_email, otp_requested)

    return derive_verification_status(
        organization_email=user.organization_email,
        backend_status=user.backend_verification_status,
        passport_status=user.passport_verification_status,
        address_status=user.address_verification_status,
        otp_requested=otp_requested,
    )


def fully_verified_status() -> VerificationStatus:
    return VerificationStatus(
        is_fully_verified=True,
        is_identity_verified=True,
        is_organization_email_verified=True,
        can_buy=True,
        can_list=True,
        can_sell=True,
        can_contact=True,
        current_step=VerificationStep.COMPLETE,
        pending_actions=[],
    )


def user_from_details(details: UserDetails) -> User:
    is_admin = any(r.role_name == "ADMIN" for r in details.roles)
    return User(
        id=details.logging_email,
        first_name=details.first_name,
        last_name=details.last_name,
        name=f"{details.first_name} {details.last_name}".strip(),
        email=details.logging_email,
        logging_email=details.logging_email,
        organization_email=details.organizational_email,
        avatar=details.profile_image_url,
        position=details.position,
        about_me=details.about_me,
        phone_number=details.phone_number,
        organization=details.organization,
        location=details.location,
        backend_verification_status=details.verification_status,
        passport_verification_status=details.passport_verification_status,
        address_verification_status=details.address_verification_status,
        verification_status=derive_verification_status(
            organization_email=details.organizational_email,
            backend_status=details.verification_status,
            passport_status=details.passport_verification_status,
            address_status=details.address_verification_status,
        ),
        role="admin" if is_admin else "user",
        roles=details.roles,
        is_verified=details.verification_status == VERIFIED,
    )


# -------------------------------
# Permission gates
# -------------------------------

def _has_role(user: User, *names: str) -> bool:
    return any(r.role_name in names for r in user.roles)


def is_user_admin(user: Optional[User]) -> bool:
    return bool(user) and user.role == "admin"


def can_user_buy(user: Optional[User]) -> bool:
    if not user:
        return False
    return is_user_admin(user) or user.verification_status.can_buy


def can_user_sell(user: Optional[User]) -> bool:
    if not user:
        return False
    return is_user_admin(user) or user.verification_status.can_sell


def can_user_contact(user: Optional[User]) -> bool:
    if not user:
        return False
    if _has_role(user, "SELLER", "USER", "ADMIN"):
        return True
    return user.verification_status.can_contact


def get_next_verification_step(user: Optional[User]) -> str:
    if not user:
        return "login"
    if user.verification_status.is_fully_verified:
        return "complete"
    if user.verification_status.is_organization_email_verified:
        return "identity"
    return "organization-email"


def get_verification_status_message(user: Optional[User]) -> str:
    if not user:
        return "Please log in to access this feature"
    if user.verification_status.is_fully_verified:
        return "Account fully verified - access to all features"
    if user.verification_status.is_organization_email_verified:
        return "Upload your identity documents to start selling"
    return "Please verify your email to access all features"


def get_user_capabilities(user: Optional[User]) -> dict:
    return {
        "can_buy": can_user_buy(user),
        "can_sell": can_user_sell(user),
        "can_contact": can_user_contact(user),
        "is_admin": is_user_admin(user),
        "is_fully_verified": bool(user) and user.verification_status.is_fully_verified,
        "next_step": get_next_verification_step(user),
        "status_message": get_verification_status_message(user),
    }
