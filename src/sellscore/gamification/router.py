"""Gamification API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from sellscore.auth.dependencies import get_current_actor, require_admin
from sellscore.config import get_settings
from sellscore.dependencies import get_scoring_engine
from sellscore.gamification.engine import Actor, SaleEvent, ScoringEngine
from sellscore.gamification.schemas import (
    AdminAdjustRequest,
    AllBadgesResponse,
    AllLevelsResponse,
    AllTrophiesResponse,
    ApplyPointsRequest,
    BadgeEntry,
    BasePointsRequest,
    BestSellerRequest,
    ComplaintEventRequest,
    DailyGoalEntry,
    GoalUpdateRequest,
    LeaderboardEntry,
    LeaderboardResponse,
    LevelEntry,
    NoSalesPenaltyResponse,
    NotificationEntry,
    NotificationsResponse,
    PenaltyRequest,
    ReturnEventRequest,
    RulesetResponse,
    SaleEventRequest,
    SatisfactionEventRequest,
    SummaryResponse,
    TrophyEntry,
    UserGamificationResponse,
    UserRequest,
)

router = APIRouter(prefix="/api/v1/gamification", tags=["Gamification"])


def _aggregate(gam: object) -> UserGamificationResponse:
    return UserGamificationResponse.model_validate(gam)


def _summary(data: dict) -> SummaryResponse:
    nxt = data["next_level"]
    return SummaryResponse(
        **{
            **data,
            "current_level": LevelEntry.model_validate(data["current_level"]),
            "next_level": LevelEntry.model_validate(nxt) if nxt is not None else None,
            "daily_goals": [DailyGoalEntry.model_validate(g) for g in data["daily_goals"]],
        }
    )


# ── Public catalogue ──


@router.get("/levels", response_model=AllLevelsResponse)
async def list_levels(engine: ScoringEngine = Depends(get_scoring_engine)):
    ruleset = await engine.ruleset()
    return AllLevelsResponse(levels=[LevelEntry.model_validate(lvl) for lvl in ruleset.sorted_levels()])


@router.get("/badges", response_model=AllBadgesResponse)
async def list_badges(engine: ScoringEngine = Depends(get_scoring_engine)):
    ruleset = await engine.ruleset()
    return AllBadgesResponse(badges=[BadgeEntry.model_validate(b) for b in ruleset.badges if b.is_active])


@router.get("/trophies", response_model=AllTrophiesResponse)
async def list_trophies(engine: ScoringEngine = Depends(get_scoring_engine)):
    ruleset = await engine.ruleset()
    return AllTrophiesResponse(
        trophies=[
            TrophyEntry(
                name=t.name,
                description=t.description,
                category=t.category.value,
                icon_url=t.icon_url,
                points_reward=t.points_reward,
            )
            for t in ruleset.active_trophies()
        ]
    )


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(
    limit: int | None = Query(None, ge=1, le=100),
    engine: ScoringEngine = Depends(get_scoring_engine),
):
    entries = await engine.leaderboard(limit or get_settings().leaderboard_size)
    return LeaderboardResponse(entries=[LeaderboardEntry(**e) for e in entries])


# ── Authenticated reads ──


@router.get("/me", response_model=SummaryResponse)
async def my_summary(
    actor: Actor = Depends(get_current_actor),
    engine: ScoringEngine = Depends(get_scoring_engine),
):
    return _summary(await engine.get_summary(actor.user_id))


@router.get("/users/{user_id}", response_model=SummaryResponse)
async def user_summary(
    user_id: str,
    _actor: Actor = Depends(get_current_actor),
    engine: ScoringEngine = Depends(get_scoring_engine),
):
    return _summary(await engine.get_summary(user_id))


@router.get("/me/notifications", response_model=NotificationsResponse)
async def my_notifications(
    unread_only: bool = Query(False),
    limit: int | None = Query(None, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    engine: ScoringEngine = Depends(get_scoring_engine),
):
    items, total, unread = await engine.list_notifications(
        actor.user_id,
        unread_only=unread_only,
        limit=limit or get_settings().notifications_page_size,
        offset=offset,
    )
    return NotificationsResponse(
        notifications=[NotificationEntry.model_validate(n) for n in items],
        total=total,
        unread=unread,
    )


@router.post("/me/notifications/{notification_id}/read")
async def mark_notification_read(
    notification_id: int,
    actor: Actor = Depends(get_current_actor),
    engine: ScoringEngine = Depends(get_scoring_engine),
) -> dict[str, bool]:
    await engine.mark_notification_read(actor.user_id, notification_id)
    return {"success": True}


# ── Privileged mutations ──


@router.post("/points/apply", response_model=UserGamificationResponse)
async def apply_points(
    body: ApplyPointsRequest,
    _actor: Actor = Depends(require_admin),
    engine: ScoringEngine = Depends(get_scoring_engine),
):
    return _aggregate(await engine.apply_points(body.user_id, body.delta, body.reason))


@router.post("/points/award", response_model=UserGamificationResponse)
async def award_base_points(
    body: BasePointsRequest,
    _actor: Actor = Depends(require_admin),
    engine: ScoringEngine = Depends(get_scoring_engine),
):
    return _aggregate(await engine.award_base_points(body.user_id, body.kind))


@router.post("/points/admin-adjust", response_model=UserGamificationResponse)
async def admin_adjust(
    body: AdminAdjustRequest,
    actor: Actor = Depends(require_admin),
    engine: ScoringEngine = Depends(get_scoring_engine),
):
    gam = await engine.adjust_as_admin(actor, body.target_user_id, body.points, body.reason, body.kind)
    return _aggregate(gam)


@router.post("/penalties/no-sales", response_model=NoSalesPenaltyResponse)
async def no_sales_penalty(
    body: UserRequest,
    _actor: Actor = Depends(require_admin),
    engine: ScoringEngine = Depends(get_scoring_engine),
):
    gam = await engine.apply_no_sales_penalty(body.user_id)
    if gam is None:
        return NoSalesPenaltyResponse(applied=False)
    return NoSalesPenaltyResponse(applied=True, gamification=_aggregate(gam))


@router.post("/penalties/apply", response_model=UserGamificationResponse)
async def apply_penalty(
    body: PenaltyRequest,
    _actor: Actor = Depends(require_admin),
    engine: ScoringEngine = Depends(get_scoring_engine),
):
    return _aggregate(await engine.apply_penalty(body.user_id, body.violation))


@router.post("/goals/update", response_model=UserGamificationResponse)
async def update_goal(
    body: GoalUpdateRequest,
    _actor: Actor = Depends(require_admin),
    engine: ScoringEngine = Depends(get_scoring_engine),
):
    return _aggregate(await engine.update_daily_goal(body.user_id, body.goal_type, body.value))


@router.post("/streak/update-best-seller", response_model=UserGamificationResponse)
async def update_best_seller(
    body: BestSellerRequest,
    _actor: Actor = Depends(require_admin),
    engine: ScoringEngine = Depends(get_scoring_engine),
):
    return _aggregate(await engine.update_best_seller_status(body.user_id, body.month))


# ── Event sources ──


@router.post("/events/sale", response_model=UserGamificationResponse)
async def sale_completed(
    body: SaleEventRequest,
    _actor: Actor = Depends(require_admin),
    engine: ScoringEngine = Depends(get_scoring_engine),
):
    sale = SaleEvent(**body.model_dump(exclude={"user_id"}))
    return _aggregate(await engine.handle_sale_completed(body.user_id, sale))


@router.post("/events/satisfaction", response_model=UserGamificationResponse)
async def customer_satisfaction(
    body: SatisfactionEventRequest,
    _actor: Actor = Depends(require_admin),
    engine: ScoringEngine = Depends(get_scoring_engine),
):
    return _aggregate(await engine.handle_customer_satisfaction(body.user_id, body.score))


@router.post("/events/return", response_model=UserGamificationResponse)
async def product_return(
    body: ReturnEventRequest,
    _actor: Actor = Depends(require_admin),
    engine: ScoringEngine = Depends(get_scoring_engine),
):
    gam = await engine.handle_product_return(body.user_id, body.amount, body.product_count, body.reason)
    return _aggregate(gam)


@router.post("/events/complaint", response_model=UserGamificationResponse)
async def customer_complaint(
    body: ComplaintEventRequest,
    _actor: Actor = Depends(require_admin),
    engine: ScoringEngine = Depends(get_scoring_engine),
):
    gam = await engine.handle_customer_complaint(body.user_id, body.severity, body.description)
    return _aggregate(gam)


# ── Configuration ──


@router.get("/config", response_model=RulesetResponse)
async def get_config(
    _actor: Actor = Depends(require_admin),
    engine: ScoringEngine = Depends(get_scoring_engine),
):
    ruleset = await engine.ruleset()
    return RulesetResponse(version=ruleset.version, ruleset=ruleset.model_dump(mode="json"))


@router.put("/config", response_model=RulesetResponse)
async def put_config(
    body: dict,
    actor: Actor = Depends(require_admin),
    engine: ScoringEngine = Depends(get_scoring_engine),
):
    ruleset = await engine.save_ruleset(actor, body)
    return RulesetResponse(version=ruleset.version, ruleset=ruleset.model_dump(mode="json"))
