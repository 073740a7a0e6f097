"""
API依赖项 - 应用服务
服务在 lifespan 中构建并挂在 app.state 上，路由通过 Depends 获取
"""
from fastapi import HTTPException, Request, status

from application.services.checkout_service import CheckoutService
from application.services.presenter import QuotePresenter
from application.services.pricing_service import PricingService
from core.i18n import t


def _state(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=t("service.not_ready"),
        )
    return service


async def get_pricing_service(request: Request) -> PricingService:
    return _state(request, "pricing_service")


async def get_checkout_service(request: Request) -> CheckoutService:
    return _state(request, "checkout_service")


async def get_presenter() -> QuotePresenter:
    return QuotePresenter()
