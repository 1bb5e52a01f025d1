from __future__ import annotations

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from reflist.core.config import settings
from reflist.core.logging import setup_logging
import reflist.models  # noqa: F401  # force model registration

from reflist.api.deps.rate_limit import SlidingWindowRateLimiter
from reflist.api.v1.auth import router as auth_router
from reflist.api.v1.commissions import router as commissions_router
from reflist.api.v1.phone_verification import router as phone_verification_router
from reflist.api.v1.sales import router as sales_router
from reflist.repositories.protocols import UnitOfWorkFactory
from reflist.services.claim_handlers import ClaimHandlers, register_claim_handlers
from reflist.services.claim_service import ClaimService
from reflist.services.commission_splitter import CommissionSplitter
from reflist.services.notifications import NotificationBus
from reflist.services.verification import LocalTokenVerificationGateway, LoggingSmsSender, SmsSender


def _default_uow_factory() -> UnitOfWorkFactory:
    from reflist.db.session import AsyncSessionLocal
    from reflist.db.uow import SqlAlchemyUnitOfWork

    return SqlAlchemyUnitOfWork.factory(AsyncSessionLocal)


def create_application(
    uow_factory: Optional[UnitOfWorkFactory] = None,
    sms_sender: Optional[SmsSender] = None,
) -> FastAPI:
    setup_logging()

    app = FastAPI(title="Reflist Ledger API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            # Local development (Vite frontend)
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Services: built once per application, shared by every request
    uow_factory = uow_factory or _default_uow_factory()
    bus = NotificationBus()
    gateway = LocalTokenVerificationGateway(uow_factory, sms_sender or LoggingSmsSender())
    claim_service = ClaimService(uow_factory)

    app.state.uow_factory = uow_factory
    app.state.bus = bus
    app.state.verification_gateway = gateway
    app.state.claim_service = claim_service
    app.state.commission_splitter = CommissionSplitter(uow_factory)
    app.state.phone_rate_limiter = SlidingWindowRateLimiter(settings.PHONE_VERIFICATION_RATE_LIMIT, 60)

    register_claim_handlers(bus, ClaimHandlers(claim_service, gateway))

    @app.get("/")
    def root():
        return {"status": "ok", "service": "reflist"}

    # Routers
    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(phone_verification_router, prefix="/api/v1")
    app.include_router(commissions_router, prefix="/api/v1")
    app.include_router(sales_router, prefix="/api/v1")

    return app


app = create_application()
