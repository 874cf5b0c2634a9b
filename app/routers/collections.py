from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from services.collections import CollectionService, get_collection_service
from utils.auth import require_wallet

router = APIRouter()


class ExternalCollectionRequest(BaseModel):
    source: str = Field(..., min_length=1, max_length=32)
    id: str = Field(..., min_length=3, max_length=64)
    type: str = Field(default="erc721", max_length=16)


class PublishRequest(BaseModel):
    token_ids: List[str] = Field(default_factory=list)
    all_tokens: bool = Field(default=False, alias="all")


@router.post("/collections/external")
def create_external_collection(
    req: ExternalCollectionRequest,
    wallet: str = Depends(require_wallet),
    svc: CollectionService = Depends(get_collection_service),
):
    collection, created = svc.register_external_collection(wallet, req.source, req.id, req.type)
    return JSONResponse(
        status_code=201 if created else 200,
        content={"ok": True, "created": created, "collection": collection.to_doc()},
    )


@router.post("/collections/{collection_id}/publish")
def publish_collection(
    collection_id: int,
    req: PublishRequest,
    wallet: str = Depends(require_wallet),
    svc: CollectionService = Depends(get_collection_service),
):
    outcome = svc.publish_collection(collection_id, req.token_ids, req.all_tokens, account_id=wallet)
    return {"ok": True, "result": outcome.to_dict()}


@router.get("/collections/{collection_id}/tokens/{token_id}/permissions")
def token_permissions(
    collection_id: int,
    token_id: str,
    wallet: str = Depends(require_wallet),
    svc: CollectionService = Depends(get_collection_service),
):
    result = svc.token_permissions(wallet, collection_id, token_id)
    return {"collection_id": collection_id, "token_id": token_id, **result.to_dict()}


@router.post("/collections/{collection_id}/tokens/{token_id}/refresh")
def refresh_token(
    collection_id: int,
    token_id: str,
    wallet: str = Depends(require_wallet),
    svc: CollectionService = Depends(get_collection_service),
):
    token = svc.refresh_token_metadata(wallet, collection_id, token_id)
    return {"ok": True, "token": token.to_doc()}
