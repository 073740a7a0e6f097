"""
Pricing API routes.

Thin: request DTOs in, application service, presenter out. Coupon and
gateway problems are annotations on a successful quote; only tax
configuration errors and invariant violations turn into error responses.

Session routes keep a checkout's applied coupons in the ledger store
between requests; every other route is stateless.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from api.dependencies import get_checkout_service, get_presenter, get_pricing_service
from application.dtos.pricing import (
    CommitRequest,
    CommitResponse,
    CouponCheckRequest,
    QuoteRequest,
    SessionCouponRequest,
    SessionQuoteRequest,
)
from application.services.checkout_service import CheckoutService
from application.services.presenter import QuotePresenter
from application.services.pricing_service import PricingService
from core.i18n import t
from core.logging_config import get_logger
from core.response import success_response
from domain.pricing import GatewayType
from domain.pricing.exceptions import COUPON_REJECTIONS


router = APIRouter(prefix="/pricing", tags=["Pricing"])
logger = get_logger(__name__)


@router.post("/quote")
async def create_quote(
    body: QuoteRequest,
    service: PricingService = Depends(get_pricing_service),
    presenter: QuotePresenter = Depends(get_presenter),
):
    """Stateless quote. Pass `as_of` to get byte-identical quotes for identical carts."""
    quote = await service.quote(body)
    return success_response(data=presenter.present(quote).model_dump(), message=t("quote.ok"))


@router.post("/coupons/validate")
async def validate_coupon(
    body: CouponCheckRequest,
    service: PricingService = Depends(get_pricing_service),
    presenter: QuotePresenter = Depends(get_presenter),
):
    try:
        result = await service.check_coupon(body)
    except COUPON_REJECTIONS as exc:
        # A rejected coupon is an answer, not a failed request
        return success_response(data=presenter.coupon_check(body.coupon_code, error=exc).model_dump())
    return success_response(data=presenter.coupon_check(body.coupon_code, result=result).model_dump())


@router.get("/gateways")
async def list_gateways(
    amount: int = Query(..., ge=0, description="Grand total in minor units"),
    user_id: Optional[str] = Query(None),
    preferred_gateway: Optional[GatewayType] = Query(None),
    service: PricingService = Depends(get_pricing_service),
):
    ranked = await service.list_gateways(amount, user_id=user_id, preferred_gateway=preferred_gateway)
    return success_response(data=[entry.to_dict() for entry in ranked])


@router.post("/gateways/refresh")
async def refresh_gateways(service: PricingService = Depends(get_pricing_service)):
    catalog = await service.refresh_gateways()
    logger.info("gateway_catalog_refresh_requested", gateways=len(catalog.gateways))
    return success_response(
        data={"gateways": [g.type.value for g in catalog.gateways]},
        message=t("gateway.catalog_refreshed"),
    )


@router.post("/commit")
async def commit_checkout(
    body: CommitRequest,
    service: PricingService = Depends(get_pricing_service),
    checkout: CheckoutService = Depends(get_checkout_service),
):
    quote = await service.quote(body)
    outcomes = await checkout.commit_coupons(quote, body.order_id, user_id=body.user_id)
    data = CommitResponse(
        order_id=body.order_id,
        grand_total=quote.grand_total.amount,
        coupons=[outcome.to_dict() for outcome in outcomes],
    )
    return success_response(data=data.model_dump())


@router.post("/sessions/{session_id}/coupons")
async def apply_session_coupon(
    body: SessionCouponRequest,
    session_id: str = Path(..., min_length=1, max_length=128),
    service: PricingService = Depends(get_pricing_service),
    presenter: QuotePresenter = Depends(get_presenter),
):
    """Add a coupon to a checkout session; the session's coupons survive page reloads."""
    quote = await service.apply_session_coupon(session_id, body)
    return success_response(data=presenter.present(quote).model_dump(), message=t("quote.ok"))


@router.post("/sessions/{session_id}/quote")
async def quote_session(
    body: SessionQuoteRequest,
    session_id: str = Path(..., min_length=1, max_length=128),
    service: PricingService = Depends(get_pricing_service),
    presenter: QuotePresenter = Depends(get_presenter),
):
    quote = await service.quote_stored_session(session_id, body)
    return success_response(data=presenter.present(quote).model_dump(), message=t("quote.ok"))


@router.delete("/sessions/{session_id}/coupons/{coupon_code}")
async def remove_session_coupon(
    session_id: str = Path(..., min_length=1, max_length=128),
    coupon_code: str = Path(..., min_length=1, max_length=64),
    service: PricingService = Depends(get_pricing_service),
):
    remaining = await service.remove_session_coupon(session_id, coupon_code)
    return success_response(data={"session_id": session_id, "coupon_codes": list(remaining)})
