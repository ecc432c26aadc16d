from fastapi import APIRouter, Depends

from skillswap.core.dependencies import get_current_user_id, get_reconciler

from .service import ConnectionReconciler
from .schemas import (
    AreFriendsResponseModel,
    ConnectionListResponseModel,
    ConnectionRequestModel,
    ConnectionRequestResponseModel,
    FriendsResponseModel,
    RespondToConnectionModel,
    RespondToConnectionResponseModel,
    WithdrawConnectionResponseModel,
)


router = APIRouter()


@router.post("/request", response_model=ConnectionRequestResponseModel, status_code=201)
async def send_connection_request(
    data: ConnectionRequestModel,
    user_id: str = Depends(get_current_user_id),
    reconciler: ConnectionReconciler = Depends(get_reconciler),
):
    """
    Send a connection request to another user.

    The request is stored under the canonical id of the user pair, so a
    request from either side of the pair resolves to the same record. A
    request the recipient previously declined is re-opened when its original
    sender sends it again.

    **Input**
    - `recipient_id`: The ID of the user to connect with.
    - `skill_name`: Optional skill the connection is about.
    - `message`: Optional note for the recipient.

    **Returns**
    - `request_id`: The canonical connection request id.

    **Errors**
    - `405`: Attempt to connect with yourself.
    - `409`: Request already pending, already connected, or declined by a
      request you did not originally send.
    - `401`: Invalid or expired token.
    - `503`: Database unavailable.
    """
    request_id = await reconciler.request_connection(
        user_id,
        data.recipient_id,
        skill_name=data.skill_name,
        message=data.message,
    )
    return {"message": "Connection request sent.", "request_id": request_id}


@router.post(
    "/{request_id}/respond",
    response_model=RespondToConnectionResponseModel,
    status_code=200,
)
async def respond_to_connection_request(
    request_id: str,
    data: RespondToConnectionModel,
    user_id: str = Depends(get_current_user_id),
    reconciler: ConnectionReconciler = Depends(get_reconciler),
):
    """
    Accept or reject a connection request sent to the authenticated user.

    Once accepted, both users become friends and a direct conversation is
    created for them. Friend, conversation and notification records are
    written after the status change and never block it.

    **Errors**
    - `403`: Only the recipient can respond.
    - `404`: No pending request with this id.
    """
    request = await reconciler.respond_to_connection(request_id, user_id, data.decision)
    return {"request": request.model_dump()}


@router.post(
    "/{request_id}/withdraw",
    response_model=WithdrawConnectionResponseModel,
    status_code=200,
)
async def withdraw_connection_request(
    request_id: str,
    user_id: str = Depends(get_current_user_id),
    reconciler: ConnectionReconciler = Depends(get_reconciler),
):
    """Withdraw a pending request (only the sender can)."""
    await reconciler.withdraw_connection(request_id, user_id)
    return {"request_withdrawn": True}


@router.get("", response_model=ConnectionListResponseModel, status_code=200)
async def list_connection_requests(
    user_id: str = Depends(get_current_user_id),
    reconciler: ConnectionReconciler = Depends(get_reconciler),
):
    """All requests the authenticated user sent or received, newest first."""
    requests = await reconciler.get_user_connection_requests(user_id)
    return {"requests": [r.model_dump() for r in requests]}


@router.get("/pending", response_model=ConnectionListResponseModel, status_code=200)
async def list_pending_requests(
    user_id: str = Depends(get_current_user_id),
    reconciler: ConnectionReconciler = Depends(get_reconciler),
):
    requests = await reconciler.get_pending_requests(user_id)
    return {"requests": [r.model_dump() for r in requests]}


@router.get("/friends", response_model=FriendsResponseModel, status_code=200)
async def list_friends(
    user_id: str = Depends(get_current_user_id),
    reconciler: ConnectionReconciler = Depends(get_reconciler),
):
    friends = await reconciler.get_user_friends(user_id)

    return {
        "friends": [
            {
                "friend_id": friend.friend_of(user_id),
                "connection_request_id": friend.connection_request_id,
                "created_at": friend.created_at,
            }
            for friend in friends
        ]
    }


@router.get(
    "/friends/{other_user_id}", response_model=AreFriendsResponseModel, status_code=200
)
async def check_friendship(
    other_user_id: str,
    user_id: str = Depends(get_current_user_id),
    reconciler: ConnectionReconciler = Depends(get_reconciler),
):
    return {"are_friends": await reconciler.are_friends(user_id, other_user_id)}
