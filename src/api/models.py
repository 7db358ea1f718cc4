"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
Request fields are optional where the domain reports missing fields itself,
so the caller receives the domain's stable error code.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from src.domain.ports import FriendStatus, UserStatus


class RegisterRequest(BaseModel):
    """Request model for user registration."""

    username: str | None = Field(None, description="10-digit phone number")
    password: str | None = Field(None, description="RSA-encrypted password")
    name: str | None = None
    otp_key: str | None = Field(None, alias="otpKey")
    hash: str | None = Field(None, description="Replay-protected hash for REGISTER")

    model_config = {"populate_by_name": True}


class LoginRequest(BaseModel):
    """Request model for login."""

    username: str | None = None
    password: str | None = None
    hash: str | None = Field(None, description="Replay-protected hash for LOGIN")


class LoginResponse(BaseModel):
    """Response model for successful login."""

    id: int
    username: str
    status: UserStatus
    is_verified: bool = Field(..., serialization_alias="isVerified")
    name: str


class ChangePasswordRequest(BaseModel):
    old_password: str | None = Field(None, alias="oldPassword")
    new_password: str | None = Field(None, alias="newPassword")
    otp_key: str | None = Field(None, alias="otpKey")
    hash: str | None = None

    model_config = {"populate_by_name": True}


class ResetPasswordRequest(BaseModel):
    username: str | None = None
    new_password: str | None = Field(None, alias="newPassword")
    otp_key: str | None = Field(None, alias="otpKey")
    hash: str | None = None

    model_config = {"populate_by_name": True}


class CheckExistRequest(BaseModel):
    value: str | None = None


class CheckExistResponse(BaseModel):
    is_exist: bool = Field(..., serialization_alias="isExist")
    is_verified: bool = Field(..., serialization_alias="isVerified")


class UserInfoResponse(BaseModel):
    id: int
    name: str
    status: UserStatus
    phone_number: str | None = Field(None, serialization_alias="phoneNumber")
    email: str | None = None
    avatar: str | None = None
    birth_day: datetime | None = Field(None, serialization_alias="birthDay")


class UpdateUserInfoRequest(BaseModel):
    name: str | None = None
    birth_day: datetime | None = Field(None, alias="birthDay")
    avatar: str | None = None

    model_config = {"populate_by_name": True}


class ConfirmUserRequest(BaseModel):
    password: str | None = None


class ConfirmUserResponse(BaseModel):
    value: bool


class DisableUserRequest(BaseModel):
    otp_key: str | None = Field(None, alias="otpKey")
    hash: str | None = None

    model_config = {"populate_by_name": True}


class FriendRequest(BaseModel):
    """Target user id (request/block) or edge id (accept/reject/unblock)."""

    friend: int | None = Field(None, description="User id or friend edge id")


class FriendCreatedResponse(BaseModel):
    id: int


class FriendCheckResponse(BaseModel):
    is_friend: bool = Field(..., serialization_alias="isFriend")
    exists: bool
    friend_id: int | None = Field(None, serialization_alias="friendId")
    status: FriendStatus | None = None
    other_id: int | None = Field(None, serialization_alias="otherId")


class FriendResponse(BaseModel):
    """A relationship seen from the caller, joined with the other user."""

    id: int
    name: str
    status: UserStatus
    avatar: str | None = None
    phone_number: str | None = Field(None, serialization_alias="phoneNumber")
    birth_day: datetime | None = Field(None, serialization_alias="birthDay")
    friend_id: int = Field(..., serialization_alias="friendId")
    status_friend: FriendStatus = Field(..., serialization_alias="statusFriend")


class BiometricLoginRequest(BaseModel):
    """Request model for signature login."""

    username: str | None = None
    signature_value: str | None = Field(
        None, alias="signatureValue", description="Base64 RSA-SHA256 signature of USERNAME"
    )
    device_id: str | None = Field(None, alias="deviceId")
    hash: str | None = Field(None, description="Replay-protected hash for LOGIN")

    model_config = {"populate_by_name": True}


class BiometricRegisterRequest(BaseModel):
    public_key: str | None = Field(None, alias="publicKey", description="Base64 RSA public key")
    secret_key: str | None = Field(None, alias="secretKey")
    device_id: str | None = Field(None, alias="deviceId")
    hash: str | None = Field(None, description="Replay-protected hash for BIOMETRIC")

    model_config = {"populate_by_name": True}


class BiometricRegisteredResponse(BaseModel):
    biometric_id: int = Field(..., serialization_alias="biometricId")


class BiometricStatusResponse(BaseModel):
    is_enable: bool = Field(..., serialization_alias="isEnable")


class BiometricCancelRequest(BaseModel):
    device_id: str | None = Field(None, alias="deviceId")
    hash: str | None = None

    model_config = {"populate_by_name": True}


class UserInfosRequest(BaseModel):
    user_ids: list[int] | None = Field(None, alias="userIds")

    model_config = {"populate_by_name": True}


class UserSuggestionResponse(BaseModel):
    """A user matched by contact details, with the caller's edge to them if any."""

    id: int
    name: str
    status: UserStatus
    avatar: str | None = None
    phone_number: str | None = Field(None, serialization_alias="phoneNumber")
    birth_day: datetime | None = Field(None, serialization_alias="birthDay")
    friend_id: int | None = Field(None, serialization_alias="friendId")
    status_friend: FriendStatus | None = Field(None, serialization_alias="statusFriend")


class ResultResponse(BaseModel):
    """Response model for mutations that only report a status."""

    status: str


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str
    message: str | None = None
