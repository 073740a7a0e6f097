"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_swagger_ui_html
from redis.exceptions import RedisError
from starlette.responses import HTMLResponse

from api.middleware import LocaleMiddleware, LoggingMiddleware, RequestIDMiddleware
from api.routes import pricing as pricing_routes
from application.dtos.pricing import build_tax_rule_set
from application.services.checkout_service import CheckoutService
from application.services.gateway_catalog import GatewayCatalogProvider
from application.services.pricing_service import PricingService
from core.config import settings
from core.exceptions import register_exception_handlers
from core.i18n import t
from core.logging_config import configure_logging, get_logger
from core.response import success_response
from core.settings import PricingSettings, pricing_settings
from infrastructure.cache import (
    InMemoryLedgerStore,
    RedisLedgerStore,
    init_redis_cache,
    shutdown_redis_cache,
)
from infrastructure.external.checkout import get_checkout_ports


# 初始化日志：在入口处显式配置，避免模块导入时的副作用
configure_logging()
logger = get_logger(__name__)


async def build_services(app: FastAPI, config: PricingSettings) -> None:
    """Composition root: wire ports, caches and services onto app.state."""
    cache = None
    if settings.redis.url:
        try:
            cache = await init_redis_cache()
            logger.info("redis_cache_initialized")
        except (RedisError, RuntimeError) as exc:
            logger.error("redis_cache_init_failed", error=str(exc))

    ports = get_checkout_ports(config)
    provider = GatewayCatalogProvider(
        ports.gateways,
        ttl_seconds=config.gateway_catalog_ttl_seconds,
        currency=config.currency,
        shared_cache=cache,
    )
    ledger_store = (
        RedisLedgerStore(cache, ttl_seconds=config.ledger_ttl_seconds) if cache is not None
        else InMemoryLedgerStore()
    )
    # Invalid tax configuration fails startup rather than the first quote
    tax_rules = build_tax_rule_set(config.tax_rules, config.pricing_mode)

    app.state.checkout_ports = ports
    app.state.pricing_service = PricingService(
        registry=ports.registry,
        catalog_provider=provider,
        wallet=ports.wallet,
        tax_rules=tax_rules,
        currency=config.currency,
        validation_timeout=config.checkout.timeout_seconds,
        default_preferred_gateway=config.default_preferred_gateway,
        ledger_store=ledger_store,
        debounce_seconds=config.coupon_debounce_seconds,
    )
    app.state.checkout_service = CheckoutService(ports.registry)
    logger.info(
        "pricing_service_initialized",
        pricing_mode=tax_rules.pricing_mode.value,
        tax_rules=[r.name for r in tax_rules.enabled_rules],
        upstream=config.checkout.base_url or "in-process",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    await build_services(app, pricing_settings)
    yield
    # 关闭时的清理工作
    service = getattr(app.state, "pricing_service", None)
    if service is not None:
        await service.aclose()
    ports = getattr(app.state, "checkout_ports", None)
    if ports is not None:
        await ports.aclose()
    if settings.redis.url:
        await shutdown_redis_cache()
        logger.info("redis_cache_shutdown")
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="Checkout pricing: coupons, tax and payment gateway routing",
    docs_url=None,  # 使用自定义 Swagger UI 以支持国际化
    redoc_url="/redoc",
)

# 添加中间件（注意顺序：从下往上执行）
app.add_middleware(LocaleMiddleware)
app.add_middleware(LoggingMiddleware)
# Request ID 最外层，为后续中间件提供 request_id
app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(pricing_routes.router, prefix=settings.API_PREFIX)


@app.get("/", tags=["Root"])
async def root():
    """API根路径"""
    return success_response(
        data={
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/docs",
            "redoc": "/redoc",
        },
        message=t("welcome"),
    )


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """健康检查端点"""
    service = getattr(request.app.state, "pricing_service", None)
    catalog = service.catalog_provider.cached if service is not None else None
    return success_response(
        data={
            "status": "healthy",
            "gateway_catalog_loaded": catalog is not None,
            "gateway_catalog_stale": service.catalog_provider.is_stale() if service is not None else True,
        },
        message=t("health.ok"),
    )


def _map_locale_to_swagger_lang(locale: str) -> str:
    """将后端 locale 映射为 Swagger UI 支持的语言代码。"""
    tag = (locale or "en").replace("_", "-").lower()
    if tag in {"fa", "fa-ir"}:
        return "fa"
    return "en"


@app.get("/docs", include_in_schema=False)
async def custom_swagger_ui_html(request: Request) -> HTMLResponse:
    lang = _map_locale_to_swagger_lang(str(getattr(request.state, "locale", None) or "en"))
    base = get_swagger_ui_html(
        openapi_url=app.openapi_url,
        title=f"{settings.PROJECT_NAME} - API Docs",
        swagger_ui_parameters={
            "lang": lang,
            "displayRequestDuration": True,
        },
    )
    # 为 "Try it out" 请求附带语言信息
    injection = (
        "requestInterceptor: function(req){\n"
        "  req.headers = req.headers || {};\n"
        "  req.headers['X-Lang'] = '%s';\n"
        "  return req;\n"
        "},"
    ) % (lang,)
    content = base.body.decode("utf-8").replace("SwaggerUIBundle({", "SwaggerUIBundle({\n  " + injection, 1)
    # 返回新的 HTMLResponse，避免沿用旧的 Content-Length 头
    return HTMLResponse(content=content, status_code=base.status_code)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info",
    )
