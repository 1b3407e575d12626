"""Wallet endpoints."""

from typing import Annotated, Literal

from fastapi import APIRouter, Path

from completion_billing.api.dependencies import CurrentCaller, DbSession
from completion_billing.api.schemas import ErrorResponse, WalletResponse
from completion_billing.errors import UnauthorizedError
from completion_billing.services import WalletService

router = APIRouter(prefix="/wallets", tags=["wallets"])


@router.get(
    "/{user_type}/{user_id}",
    response_model=WalletResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_wallet(
    db: DbSession,
    caller: CurrentCaller,
    user_type: Annotated[Literal["freelancer", "commissioner"], Path()],
    user_id: Annotated[int, Path(ge=1)],
) -> WalletResponse:
    """Get a user's own wallet."""
    if (caller.user_id, caller.user_type) != (user_id, user_type):
        raise UnauthorizedError(detail="Users can only read their own wallet")
    wallet = await WalletService(db).require(user_id, user_type)
    return WalletResponse.model_validate(wallet)
