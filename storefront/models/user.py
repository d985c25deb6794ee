from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel
from typing import List, Literal, Optional
from datetime import datetime
from enum import Enum


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VerificationStep(str, Enum):
    NOT_STARTED = "not_started"
    ORGANIZATION = "organization"
    IDENTITY = "identity"
    COMPLETE = "complete"


class VerificationStatus(CamelModel):
    is_fully_verified: bool = False
    is_identity_verified: bool = False
    is_organization_email_verified: bool = False
    can_buy: bool = False
    can_list: bool = False
    can_sell: bool = False
    can_contact: bool = False
    current_step: VerificationStep = VerificationStep.NOT_STARTED
    pending_actions: List[str] = []


class Role(CamelModel):
    role_id: Optional[int] = None
    role_name: str


class UserDetails(CamelModel):
    """Payload of GET /api/v1/userManagement/user-details."""

    first_name: str = ""
    last_name: str = ""
    logging_email: str
    organizational_email: Optional[str] = None
    position: Optional[str] = None
    about_me: Optional[str] = None
    phone_number: Optional[str] = None
    organization: Optional[str] = None
    location: Optional[str] = None
    profile_image_url: Optional[str] = None
    verification_status: Optional[str] = None
    passport_verification_status: Optional[str] = None
    address_verification_status: Optional[str] = None
    roles: List[Role] = []


class User(CamelModel):
    id: str
    first_name: str = ""
    last_name: str = ""
    name: str = ""
    email: str
    logging_email: Optional[str] = None
    organization_email: Optional[str] = None
    avatar: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    position: Optional[str] = None
    about_me: Optional[str] = None
    phone_number: Optional[str] = None
    organization: Optional[str] = None
    location: Optional[str] = None

    # raw backend statuses, kept so flags can be re-derived offline
    backend_verification_status: Optional[str] = None
    passport_verification_status: Optional[str] = None
    address_verification_status: Optional[str] = None

    verification_status: VerificationStatus = Field(default_factory=VerificationStatus)
    role: Literal["user", "admin"] = "user"
    roles: List[Role] = []
    is_verified: bool = False
    signup_method: str = "email"


class LoginResult(CamelModel):
    email: Optional[str] = None
    token: Optional[str] = None
    role: Optional[str] = None


class RegistrationRequest(CamelModel):
    first_name: str
    last_name: str
    password: str = Field(..., min_length=1)
    email_address: EmailStr
    agree_to_terms: bool
    agree_to_privacy_policy: bool
