from fastapi import APIRouter, HTTPException
from ..core.models import TokenRequest, TokenStatus
from ..core.tokens import token_store

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get(
    "/token",
    response_model=TokenStatus,
    summary="Check whether an API token is saved",
    description="The token itself is never returned.",
)
def get_token():
    return TokenStatus(configured=token_store.get() is not None)


@router.put(
    "/token",
    response_model=TokenStatus,
    summary="Save the web3.storage API token",
)
def save_token(body: TokenRequest):
    try:
        token_store.set(body.token)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return TokenStatus(configured=True)


@router.delete(
    "/token",
    response_model=TokenStatus,
    summary="Delete the saved API token",
)
def delete_token():
    token_store.clear()
    return TokenStatus(configured=False)
