"""
API v1 routes.

Defines REST endpoints for account credentials, profile and relationships.

Handlers are plain (sync) functions: services block on advisory-lock polls,
bcrypt and psycopg, so FastAPI runs them in its threadpool instead of on
the event loop. Domain errors are translated by src.api.errors.
"""

from fastapi import APIRouter, Depends, Query, status

from src.api.dependencies import (
    Caller,
    get_authentication_service,
    get_biometric_service,
    get_caller,
    get_friend_service,
    get_user_service,
)
from src.api.models import (
    BiometricCancelRequest,
    BiometricLoginRequest,
    BiometricRegisteredResponse,
    BiometricRegisterRequest,
    BiometricStatusResponse,
    ChangePasswordRequest,
    CheckExistRequest,
    CheckExistResponse,
    ConfirmUserRequest,
    ConfirmUserResponse,
    DisableUserRequest,
    ErrorResponse,
    FriendCheckResponse,
    FriendCreatedResponse,
    FriendRequest,
    FriendResponse,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    ResetPasswordRequest,
    ResultResponse,
    UpdateUserInfoRequest,
    UserInfoResponse,
    UserInfosRequest,
    UserSuggestionResponse,
)
from src.domain.authentication import AuthenticationService, LoginResult
from src.domain.biometrics import BiometricService
from src.domain.exceptions import ValidationError
from src.domain.ports import FriendView, User, UserSuggestion
from src.domain.relationships import FriendService
from src.domain.users import UserService

router = APIRouter(tags=["v1"])

_ERRORS = {
    400: {"model": ErrorResponse, "description": "Missing field or policy violation"},
    401: {"model": ErrorResponse, "description": "Credential, hash or OTP key rejected"},
    409: {"model": ErrorResponse, "description": "Conflicting state or operation in progress"},
}


def _friend_response(view: FriendView) -> FriendResponse:
    return FriendResponse(
        id=view.user_id,
        name=view.name,
        status=view.user_status,
        avatar=view.avatar,
        phone_number=view.phone_number,
        birth_day=view.birth_day,
        friend_id=view.friend_id,
        status_friend=view.status,
    )


def _login_response(result: LoginResult) -> LoginResponse:
    return LoginResponse(
        id=result.id,
        username=result.username,
        status=result.status,
        is_verified=result.is_verified,
        name=result.name,
    )


def _user_info(user: User, include_email: bool = True) -> UserInfoResponse:
    return UserInfoResponse(
        id=user.id,
        name=user.name,
        status=user.status,
        phone_number=user.phone_number,
        email=user.email if include_email else None,
        avatar=user.avatar,
        birth_day=user.birth_day,
    )


def _suggestion_response(suggestion: UserSuggestion) -> UserSuggestionResponse:
    user = suggestion.user
    return UserSuggestionResponse(
        id=user.id,
        name=user.name,
        status=user.status,
        avatar=user.avatar,
        phone_number=user.phone_number,
        birth_day=user.birth_day,
        friend_id=suggestion.friend_id,
        status_friend=suggestion.friend_status,
    )


def _required_friend(request_data: FriendRequest) -> int:
    if request_data.friend is None:
        raise ValidationError(detail="missing required field(s): friend")
    return request_data.friend


# --- Credentials -----------------------------------------------------------


@router.post(
    "/register",
    response_model=ResultResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Register a new user",
)
def register(
    request_data: RegisterRequest,
    service: AuthenticationService = Depends(get_authentication_service),
) -> ResultResponse:
    """
    Create an account from a verified phone number.

    - **username**: 10-digit phone number
    - **password**: RSA-encrypted password
    - **otpKey**: OTP key proving phone ownership
    - **hash**: replay-protected hash for REGISTER
    """
    service.register(
        request_data.username,
        request_data.password,
        request_data.otp_key,
        request_data.hash,
        name=request_data.name,
    )
    return ResultResponse(status="REGISTER_SUCCESSFUL")


@router.post("/login", response_model=LoginResponse, responses=_ERRORS, summary="Log in")
def login(
    request_data: LoginRequest,
    service: AuthenticationService = Depends(get_authentication_service),
) -> LoginResponse:
    """Check credentials under the login throttle."""
    result = service.login(request_data.username, request_data.password, request_data.hash)
    return _login_response(result)


@router.post(
    "/login/biometric",
    response_model=LoginResponse,
    responses=_ERRORS,
    summary="Log in with a device signature",
)
def login_biometric(
    request_data: BiometricLoginRequest,
    service: BiometricService = Depends(get_biometric_service),
) -> LoginResponse:
    """
    Signature login under the same throttle as password login.

    - **signatureValue**: base64 RSA-SHA256 signature of the upper-cased username
    - **deviceId**: restricts the lookup to one device's registration
    """
    result = service.login(
        request_data.username,
        request_data.signature_value,
        request_data.hash,
        device_id=request_data.device_id,
    )
    return _login_response(result)


@router.post(
    "/user/changePassword",
    response_model=ResultResponse,
    responses=_ERRORS,
    summary="Change the caller's password",
)
def change_password(
    request_data: ChangePasswordRequest,
    caller: Caller = Depends(get_caller),
    service: AuthenticationService = Depends(get_authentication_service),
) -> ResultResponse:
    service.change_password(
        caller.id,
        request_data.old_password,
        request_data.new_password,
        request_data.otp_key,
        request_data.hash,
    )
    return ResultResponse(status="CHANGED_PASSWORD_SUCCESSFUL")


@router.post(
    "/user/resetPassword",
    response_model=ResultResponse,
    responses=_ERRORS,
    summary="Reset a forgotten password",
)
def reset_password(
    request_data: ResetPasswordRequest,
    service: AuthenticationService = Depends(get_authentication_service),
) -> ResultResponse:
    service.reset_password(
        request_data.username,
        request_data.new_password,
        request_data.otp_key,
        request_data.hash,
    )
    return ResultResponse(status="RESET_PASSWORD_SUCCESSFUL")


@router.post("/user/checkExist", response_model=CheckExistResponse, summary="Check a username")
def check_exist(
    request_data: CheckExistRequest,
    service: AuthenticationService = Depends(get_authentication_service),
) -> CheckExistResponse:
    exists, verified = service.check_exist(request_data.value)
    return CheckExistResponse(is_exist=exists, is_verified=verified)


# --- Profile ---------------------------------------------------------------


@router.get("/user/info", response_model=UserInfoResponse, summary="Get a user's profile")
def get_user_info(
    user_id: int | None = None,
    caller: Caller = Depends(get_caller),
    service: UserService = Depends(get_user_service),
) -> UserInfoResponse:
    """Profile of user_id, or of the caller when user_id is omitted."""
    user = service.get_user_info(user_id if user_id is not None else caller.id)
    return _user_info(user)


@router.get("/user/search", response_model=list[UserInfoResponse], summary="Search users by name")
def search_users(
    search: str | None = None,
    page_number: int | None = None,
    page_size: int | None = None,
    caller: Caller = Depends(get_caller),
    service: UserService = Depends(get_user_service),
) -> list[UserInfoResponse]:
    users = service.search_users(caller.id, search, page_number, page_size)
    return [_user_info(u, include_email=False) for u in users]


@router.post(
    "/user/infos",
    response_model=list[UserInfoResponse],
    responses=_ERRORS,
    summary="Get profiles for a batch of users",
)
def get_user_infos(
    request_data: UserInfosRequest,
    caller: Caller = Depends(get_caller),
    service: UserService = Depends(get_user_service),
) -> list[UserInfoResponse]:
    return [_user_info(u) for u in service.get_user_infos(request_data.user_ids)]


@router.put(
    "/user/info", response_model=ResultResponse, responses=_ERRORS, summary="Update profile"
)
def put_user_info(
    request_data: UpdateUserInfoRequest,
    caller: Caller = Depends(get_caller),
    service: UserService = Depends(get_user_service),
) -> ResultResponse:
    service.put_user_info(
        caller.id, request_data.name, birth_day=request_data.birth_day, avatar=request_data.avatar
    )
    return ResultResponse(status="UPDATE_USER_INFO_SUCCESSFUL")


@router.post(
    "/user/confirm",
    response_model=ConfirmUserResponse,
    responses=_ERRORS,
    summary="Confirm the caller's password",
)
def confirm_user(
    request_data: ConfirmUserRequest,
    caller: Caller = Depends(get_caller),
    service: UserService = Depends(get_user_service),
) -> ConfirmUserResponse:
    return ConfirmUserResponse(value=service.confirm_user(caller.id, request_data.password))


@router.delete(
    "/user", response_model=ResultResponse, responses=_ERRORS, summary="Disable the caller"
)
def disable_user(
    request_data: DisableUserRequest,
    caller: Caller = Depends(get_caller),
    service: UserService = Depends(get_user_service),
) -> ResultResponse:
    service.disable_user(caller.id, request_data.otp_key, request_data.hash)
    return ResultResponse(status="DISABLE_USER_SUCCESSFUL")


# --- Biometrics ------------------------------------------------------------


@router.post(
    "/user/bio",
    response_model=BiometricRegisteredResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Register a device key for signature login",
)
def register_biometric(
    request_data: BiometricRegisterRequest,
    caller: Caller = Depends(get_caller),
    service: BiometricService = Depends(get_biometric_service),
) -> BiometricRegisteredResponse:
    """Retires the caller's previous registration, if any."""
    biometric_id = service.register(
        caller.id,
        caller.username,
        request_data.public_key,
        request_data.secret_key,
        request_data.device_id,
        request_data.hash,
    )
    return BiometricRegisteredResponse(biometric_id=biometric_id)


@router.get(
    "/user/bio/status",
    response_model=BiometricStatusResponse,
    responses=_ERRORS,
    summary="Whether a device key is registered",
)
def query_biometric_status(
    public_key: str | None = Query(None, alias="publicKey"),
    device_id: str | None = Query(None, alias="deviceId"),
    caller: Caller = Depends(get_caller),
    service: BiometricService = Depends(get_biometric_service),
) -> BiometricStatusResponse:
    return BiometricStatusResponse(
        is_enable=service.query_status(caller.id, public_key=public_key, device_id=device_id)
    )


@router.delete(
    "/user/bio",
    response_model=ResultResponse,
    responses=_ERRORS,
    summary="Cancel a device registration",
)
def cancel_biometric(
    request_data: BiometricCancelRequest,
    caller: Caller = Depends(get_caller),
    service: BiometricService = Depends(get_biometric_service),
) -> ResultResponse:
    service.cancel(caller.id, caller.username, request_data.device_id, request_data.hash)
    return ResultResponse(status="BIOMETRIC_CANCELLED")


# --- Relationships ---------------------------------------------------------


@router.post(
    "/user/friend",
    response_model=FriendCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Send a friend request",
)
def request_friend(
    request_data: FriendRequest,
    caller: Caller = Depends(get_caller),
    service: FriendService = Depends(get_friend_service),
) -> FriendCreatedResponse:
    """- **friend**: id of the user to befriend"""
    friend_id = service.request_friend(caller.id, _required_friend(request_data), caller.name)
    return FriendCreatedResponse(id=friend_id)


@router.put(
    "/user/friend/{friend_id}",
    response_model=ResultResponse,
    responses=_ERRORS,
    summary="Accept a friend request",
)
def accept_friend(
    friend_id: int,
    caller: Caller = Depends(get_caller),
    service: FriendService = Depends(get_friend_service),
) -> ResultResponse:
    service.accept_friend(caller.id, friend_id, caller.name)
    return ResultResponse(status="FRIENDED")


@router.delete(
    "/user/friend/{friend_id}",
    response_model=ResultResponse,
    responses=_ERRORS,
    summary="Reject a request or remove a friend",
)
def reject_friend(
    friend_id: int,
    caller: Caller = Depends(get_caller),
    service: FriendService = Depends(get_friend_service),
) -> ResultResponse:
    service.reject_friend(caller.id, friend_id)
    return ResultResponse(status="REMOVED")


@router.get("/user/friend", response_model=list[FriendResponse], summary="List friends")
def list_friends(
    page_number: int | None = None,
    page_size: int | None = None,
    caller: Caller = Depends(get_caller),
    service: FriendService = Depends(get_friend_service),
) -> list[FriendResponse]:
    return [_friend_response(v) for v in service.list_friends(caller.id, page_number, page_size)]


@router.get(
    "/user/friend/request", response_model=list[FriendResponse], summary="List pending requests"
)
def list_requests(
    page_number: int | None = None,
    page_size: int | None = None,
    caller: Caller = Depends(get_caller),
    service: FriendService = Depends(get_friend_service),
) -> list[FriendResponse]:
    return [_friend_response(v) for v in service.list_requests(caller.id, page_number, page_size)]


@router.get(
    "/user/friend/check/{user_id}",
    response_model=FriendCheckResponse,
    summary="Relationship with another user",
)
def check_friend(
    user_id: int,
    caller: Caller = Depends(get_caller),
    service: FriendService = Depends(get_friend_service),
) -> FriendCheckResponse:
    result = service.check_friend(caller.id, user_id)
    return FriendCheckResponse(
        is_friend=result.is_friend,
        exists=result.exists,
        friend_id=result.friend_id,
        status=result.status,
        other_id=result.other_id,
    )


@router.post(
    "/user/friend/block",
    response_model=ResultResponse,
    responses=_ERRORS,
    summary="Block a user",
)
def block_friend(
    request_data: FriendRequest,
    caller: Caller = Depends(get_caller),
    service: FriendService = Depends(get_friend_service),
) -> ResultResponse:
    """- **friend**: id of the user to block"""
    service.block_friend(caller.id, _required_friend(request_data))
    return ResultResponse(status="BLOCKED")


@router.delete(
    "/user/friend/block/{friend_id}",
    response_model=ResultResponse,
    responses=_ERRORS,
    summary="Remove a block",
)
def unblock_friend(
    friend_id: int,
    caller: Caller = Depends(get_caller),
    service: FriendService = Depends(get_friend_service),
) -> ResultResponse:
    service.unblock_friend(caller.id, friend_id)
    return ResultResponse(status="UNBLOCKED")


@router.get(
    "/user/friend/block",
    response_model=list[FriendResponse],
    summary="List users the caller blocked",
)
def list_blocked(
    page_number: int | None = None,
    page_size: int | None = None,
    caller: Caller = Depends(get_caller),
    service: FriendService = Depends(get_friend_service),
) -> list[FriendResponse]:
    return [_friend_response(v) for v in service.list_blocked(caller.id, page_number, page_size)]


@router.get(
    "/user/friend/suggest",
    response_model=list[UserSuggestionResponse],
    summary="Suggest users from contact details",
)
def suggest_friends(
    search: str | None = None,
    phone: list[str] | None = Query(None, description="Phone numbers from the address book"),
    page_number: int | None = None,
    page_size: int | None = None,
    caller: Caller = Depends(get_caller),
    service: FriendService = Depends(get_friend_service),
) -> list[UserSuggestionResponse]:
    """Matches name, email or phone against search, and/or phone against the list."""
    suggestions = service.suggest_by_contact(caller.id, search, phone, page_number, page_size)
    return [_suggestion_response(s) for s in suggestions]
