# backend/reflist/api/deps/services.py
"""
Request-scoped access to the application's service objects.

create_application() builds them once and parks them on app.state.
"""

from __future__ import annotations

from fastapi import Request

from reflist.repositories.protocols import UnitOfWorkFactory
from reflist.services.claim_service import ClaimService
from reflist.services.commission_splitter import CommissionSplitter
from reflist.services.notifications import NotificationBus
from reflist.services.verification import LocalTokenVerificationGateway


def get_uow_factory(request: Request) -> UnitOfWorkFactory:
    return request.app.state.uow_factory


def get_bus(request: Request) -> NotificationBus:
    return request.app.state.bus


def get_verification_gateway(request: Request) -> LocalTokenVerificationGateway:
    return request.app.state.verification_gateway


def get_claim_service(request: Request) -> ClaimService:
    return request.app.state.claim_service


def get_splitter(request: Request) -> CommissionSplitter:
    return request.app.state.commission_splitter
