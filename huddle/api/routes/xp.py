"""
huddle.api.routes.xp — XP snapshot, reward catalogue, client events, referrals
================================================================================
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from huddle.api.deps import AuthUser, get_current_user, get_engine, get_hub
from huddle.errors import ValidationError
from huddle.services import ledger_service
from huddle.services.realtime_service import RealtimeHub

router = APIRouter(prefix="/xp", tags=["xp"])

MAX_SIGNATURE_LENGTH = 120


class XpEventBody(BaseModel):
    type: str
    payload: dict[str, Any] = Field(default_factory=dict)


class ReferralClaim(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    referrer_id: str = Field(alias="referrerId")


@router.get("")
def xp_snapshot(
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
):
    return ledger_service.get_xp_snapshot(engine, user.id)


@router.get("/rewards")
def xp_rewards(user: AuthUser = Depends(get_current_user)):
    return ledger_service.get_reward_catalogue()


@router.post("/events")
def record_event(
    body: XpEventBody,
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
    hub: RealtimeHub = Depends(get_hub),
):
    """Client-reported rewards: ``team_share`` and ``match_screenshot``."""
    if body.type == "team_share":
        signature = body.payload.get("signature")
        if not isinstance(signature, str) or not signature or len(signature) > MAX_SIGNATURE_LENGTH:
            raise ValidationError("Invalid signature.", code="invalid_signature")
        xp = ledger_service.award_team_share(engine, user.id, signature, hub)
        return {"xp": xp.to_dict()}

    if body.type == "match_screenshot":
        raw = body.payload.get("matchId")
        try:
            match_id = int(raw) if not isinstance(raw, bool) else 0
        except (TypeError, ValueError):
            match_id = 0
        if match_id <= 0:
            raise ValidationError("Invalid match id.", code="invalid_match_id")
        xp = ledger_service.award_match_screenshot(engine, user.id, match_id, hub)
        return {"xp": xp.to_dict()}

    raise ValidationError("Unknown XP event.", code="unknown_event")


@router.post("/referrals/claim")
def claim_referral(
    body: ReferralClaim,
    user: AuthUser = Depends(get_current_user),
    engine=Depends(get_engine),
    hub: RealtimeHub = Depends(get_hub),
):
    try:
        referrer_id = int(body.referrer_id.strip())
    except ValueError:
        raise ValidationError("Invalid referrer id.", code="invalid_referrer") from None
    xp = ledger_service.claim_referral(engine, referrer_id, user.id, hub)
    return {"credited": xp.delta > 0}
