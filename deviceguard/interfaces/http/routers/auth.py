"""Account registration and login endpoints."""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from deviceguard.core.container import ApplicationContainer
from deviceguard.core.security import create_access_token, get_current_account
from deviceguard.interfaces.http.deps import get_account_service, get_container, get_db_session
from deviceguard.modules.accounts import Account as AccountDomain
from deviceguard.modules.accounts import AccountCreateInput, AccountService
from deviceguard.schemas import AccountCreate, AccountLoginResponse, AccountResponse, LoginRequest

router = APIRouter()


@router.post(
    "/register",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an account",
)
async def register(
    payload: AccountCreate,
    account_service: AccountService = Depends(get_account_service),
    db: AsyncSession = Depends(get_db_session),
):
    account = await account_service.create_account(
        AccountCreateInput(
            username=payload.username,
            password=payload.password,
            email=payload.email,
            phone_number=payload.phone_number,
        )
    )
    await db.commit()
    return account


@router.post("/login", response_model=AccountLoginResponse, summary="Exchange credentials for a bearer token")
async def login(
    payload: LoginRequest,
    account_service: AccountService = Depends(get_account_service),
    container: ApplicationContainer = Depends(get_container),
    db: AsyncSession = Depends(get_db_session),
):
    account = await account_service.authenticate(payload.username, payload.password)
    if not account:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect username or password")

    await account_service.set_last_login(account.id)
    await db.commit()

    access_token = create_access_token(container.settings, account.id, account.username, account.role)
    return AccountLoginResponse(
        access_token=access_token,
        account_id=account.id,
        username=account.username,
        role=account.role,
    )


@router.get("/me", response_model=AccountResponse, summary="Current account")
async def current_account(account: AccountDomain = Depends(get_current_account)):
    return account
