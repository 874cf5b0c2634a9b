from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from services.collections import CollectionService, get_collection_service
from utils.auth import require_wallet

router = APIRouter()


class ValidateTokenRequest(BaseModel):
    modules: List[str] = Field(default_factory=list)
    token_id: str = Field(..., min_length=1, max_length=128)
    metadata: Dict[str, Any] = Field(default_factory=dict)


@router.post("/tokens/validate")
def validate_token(
    req: ValidateTokenRequest,
    wallet: str = Depends(require_wallet),
    svc: CollectionService = Depends(get_collection_service),
):
    result = svc.validate_token(wallet, req.modules, req.token_id, req.metadata)
    return result.to_dict()
