from __future__ import annotations

import base64
from typing import Any, Optional

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger
from pydantic import BaseModel, ConfigDict
from sqlalchemy.exc import InterfaceError, OperationalError

import redis.asyncio as redis
from redis.exceptions import RedisError

from .admission import ACTIONS, AdmissionController
from .auth import AdminSession, Payer, TokenService
from .config import Config
from .errors import (
    GatepassError, InvalidAction, InvalidRequest, NotFound, PaymentRejected,
    QrUnavailable, SessionNotFound, StorageUnavailable, TicketNotFound,
)
from .gateway import MockGateway, PaymentGateway, RazorpayGateway
from .infra import timings
from .infra.log import setup_logging
from .infra.sql import make_async_engine
from .issuer import IssuedTicket, TicketIssuer
from .model.orm import Base
from .model.paymentsession import new_store
from .model.tickets import TicketStore
from .payments import PaymentSessionManager
from .pricing import PricingTable, build_order
from .stats import StatsAggregator


# ----------------------------
# Request bodies
# ----------------------------
class CheckoutIn(BaseModel):
    # client-side totals are accepted on the wire and ignored
    model_config = ConfigDict(extra="ignore")

    tier: str
    # range and type checked by build_order
    quantity: Any = 1


class VerifyIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    signature: Optional[str] = None


class LoginIn(BaseModel):
    username: str
    password: str


class CheckinIn(BaseModel):
    ticket_id: str
    action: str


class ScanIn(BaseModel):
    payload: str
    action: Optional[str] = None


# ----------------------------
# Error handling
# ----------------------------
def _error(status: int, code: str, message: str) -> ORJSONResponse:
    return ORJSONResponse(
        status_code=status,
        content={"error": {"code": code, "message": message}},
    )


async def gatepass_error_handler(request: Request, exc: GatepassError):
    return _error(exc.status_code, exc.code.value, exc.message)


async def validation_error_handler(request: Request,
                                   exc: RequestValidationError):
    fields = [".".join(str(p) for p in e.get("loc", ())) for e in exc.errors()]
    err = InvalidRequest("Missing or invalid fields: " + ", ".join(fields))
    return _error(err.status_code, err.code.value, err.message)


async def storage_error_handler(request: Request, exc: Exception):
    logger.error("storage failure on {}: {}", request.url.path, exc)
    err = StorageUnavailable("Storage temporarily unavailable")
    return _error(err.status_code, err.code.value, err.message)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GatepassError, gatepass_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(OperationalError, storage_error_handler)
    app.add_exception_handler(InterfaceError, storage_error_handler)
    app.add_exception_handler(RedisError, storage_error_handler)


# ----------------------------
# Helpers
# ----------------------------
def make_gateway(config: Config) -> PaymentGateway:
    if config.gateway == "mock":
        return MockGateway(secret=config.mock_secret)
    return RazorpayGateway(
        key_id=config.razorpay_key_id,
        key_secret=config.razorpay_key_secret,
        api_base=config.razorpay_api_base,
    )


def issued_response(issued: IssuedTicket) -> dict:
    return {
        "ticket": issued.ticket.to_dict(),
        "credential": issued.payload,
        "qr_png_base64": (
            base64.b64encode(issued.qr_png).decode()
            if issued.qr_png is not None else None
        ),
        "created": issued.created,
    }


def create_app(config: Optional[Config] = None,
               gateway: Optional[PaymentGateway] = None) -> FastAPI:
    config = config or Config.from_env()
    setup_logging(config.log_level, config.log_file)

    engine, SessionAsync, gated = make_async_engine(config)
    pricing = PricingTable(config.ticket_tiers)
    tokens = TokenService(
        config.session_secret, config.admins,
        admin_ttl_seconds=config.admin_token_ttl_seconds,
        user_ttl_seconds=config.user_token_ttl_seconds,
    )
    gateway = gateway or make_gateway(config)
    tickets = TicketStore(SessionAsync, gated)
    credential_secret = config.signing_secret_for_credentials
    issuer = TicketIssuer(tickets, credential_secret)
    admission = AdmissionController(tickets, credential_secret)
    aggregator = StatsAggregator(tickets)

    app = FastAPI(
        title="Gatepass",
        default_response_class=ORJSONResponse,
    )
    app.state.config = config
    app.state.engine = engine
    app.state.redis = None
    app.state.gateway = gateway
    app.state.tokens = tokens
    register_exception_handlers(app)

    bearer = HTTPBearer(auto_error=False)

    # ---
    # startup / shutdown
    # ---
    @app.on_event("startup")
    async def _say_hello():
        logger.info(
            "Gatepass starting: gateway={} payment sessions={} tiers={}",
            config.gateway, config.paysession_backend,
            ", ".join(f"{t}={p}" for t, p in pricing.tiers()),
        )

    @app.on_event("startup")
    async def _db_init():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @app.on_event("startup")
    async def _redis_start():
        if config.paysession_backend == "redis":
            app.state.redis = redis.from_url(
                config.redis_url,
                decode_responses=True,
                max_connections=config.redis_max_conn,
                socket_timeout=2.0,
                socket_connect_timeout=2.0,
                retry_on_timeout=True,
            )

    @app.on_event("shutdown")
    async def _redis_stop():
        r = getattr(app.state, "redis", None)
        if r is not None:
            await r.aclose()
            app.state.redis = None

    @app.on_event("shutdown")
    async def _gateway_stop():
        await gateway.aclose()

    @app.on_event("shutdown")
    async def _db_stop():
        await engine.dispose()

    # ---
    # dependencies
    # ---
    def paymentsessions():
        return new_store(
            config.paysession_backend,
            Session=SessionAsync,
            gated=gated,
            r=app.state.redis,
            ttl_seconds=config.payment_session_ttl_seconds,
        )

    def session_manager(store=Depends(paymentsessions)):
        return PaymentSessionManager(gateway, store, config.currency)

    def current_payer(
        creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    ) -> Payer:
        return tokens.read_user_token(creds.credentials if creds else None)

    def require_admin(
        creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    ) -> AdminSession:
        return tokens.read_admin_token(creds.credentials if creds else None)

    # ----------------------------
    # Health & catalogue
    # ----------------------------
    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/api/tiers")
    async def list_tiers():
        return {
            "currency": config.currency,
            "max_quantity": config.max_quantity,
            "tiers": [
                {"tier": t, "unit_price": p} for t, p in pricing.tiers()
            ],
        }

    # ----------------------------
    # Checkout: price server-side, open a gateway order
    # ----------------------------
    @app.post("/api/checkout")
    async def create_checkout(
        body: CheckoutIn,
        payer: Payer = Depends(current_payer),
        manager: PaymentSessionManager = Depends(session_manager),
    ):
        order = build_order(
            pricing, body.tier, body.quantity, config.max_quantity
        )
        ps, client_key = await manager.create_session(order, payer)
        return {
            "gateway_order_id": ps.gateway_order_id,
            "amount": ps.amount,
            "currency": ps.currency,
            "client_key": client_key,
            "tier": order.tier,
            "quantity": order.quantity,
            "unit_price": order.unit_price,
        }

    # ----------------------------
    # Checkout callback: verify, then issue
    # ----------------------------
    @app.post("/api/payment/verify")
    async def verify_payment(
        body: VerifyIn,
        payer: Payer = Depends(current_payer),
        manager: PaymentSessionManager = Depends(session_manager),
    ):
        if not (body.gateway_order_id and body.gateway_payment_id
                and body.signature):
            logger.warning("payment callback with missing fields from {}",
                           payer.user_id)
            raise PaymentRejected("Missing fields")
        ps = await manager.verify(
            payer, body.gateway_order_id, body.gateway_payment_id,
            body.signature,
        )
        issued = await issuer.issue(ps, payer)
        return {"verified": True, **issued_response(issued)}

    # ----------------------------
    # Ticket holder views
    # ----------------------------
    @app.get("/api/tickets/me")
    async def my_ticket(payer: Payer = Depends(current_payer)):
        ticket = await tickets.latest_for_owner(payer.user_id)
        if ticket is None:
            raise TicketNotFound("")
        return issued_response(issuer.render(ticket))

    @app.get("/api/tickets/{ticket_id}/qr.png")
    async def my_ticket_qr(ticket_id: str,
                           payer: Payer = Depends(current_payer)):
        ticket = await tickets.get(ticket_id)
        if ticket is None or ticket.owner_id != payer.user_id:
            raise TicketNotFound(ticket_id)
        issued = issuer.render(ticket)
        if issued.qr_png is None:
            raise QrUnavailable()
        return Response(content=issued.qr_png, media_type="image/png")

    # ----------------------------
    # MockPay: stands in for the hosted checkout completing
    # ----------------------------
    @app.post("/mockpay/{gateway_order_id}/complete")
    async def mockpay_complete(
        gateway_order_id: str,
        payer: Payer = Depends(current_payer),
        store=Depends(paymentsessions),
    ):
        if not isinstance(gateway, MockGateway):
            raise NotFound("Mock gateway is disabled")
        ps = await store.get(gateway_order_id)
        if ps is None or ps.payer_id != payer.user_id:
            raise SessionNotFound(gateway_order_id)
        payment_id = gateway.new_payment_id()
        return {
            "gateway_order_id": gateway_order_id,
            "gateway_payment_id": payment_id,
            "signature": gateway.sign(gateway_order_id, payment_id),
        }

    # ----------------------------
    # Admin
    # ----------------------------
    @app.post("/api/admin/login")
    async def admin_login(body: LoginIn):
        token = tokens.login(body.username, body.password)
        logger.info("admin {} logged in", body.username.strip())
        return {"token": token, "admin_id": body.username.strip()}

    @app.post("/api/admin/checkin")
    async def admin_checkin(
        body: CheckinIn, admin: AdminSession = Depends(require_admin),
    ):
        ticket = await admission.apply(body.ticket_id, body.action, admin)
        verb = "checked in" if body.action == "check_in" else "checked out"
        return {
            "success": True,
            "message": f"Ticket {verb} successfully",
            "ticket": ticket.to_dict(),
        }

    @app.post("/api/admin/scan")
    async def admin_scan(
        body: ScanIn, admin: AdminSession = Depends(require_admin),
    ):
        return await _scan(body.payload, body.action, admin)

    @app.post("/api/admin/scan-image")
    async def admin_scan_image(
        image: UploadFile = File(...),
        action: Optional[str] = Form(None),
        admin: AdminSession = Depends(require_admin),
    ):
        payload = admission.decode_image(await image.read())
        return await _scan(payload, action, admin)

    async def _scan(payload: str, action: Optional[str],
                    admin: AdminSession) -> dict:
        if action is not None and action not in ACTIONS:
            raise InvalidAction(action)
        ticket = await admission.resolve(payload)
        if action is None:
            return {"success": True, "ticket": ticket.to_dict()}
        ticket = await admission.apply(ticket.id, action, admin)
        verb = "checked in" if action == "check_in" else "checked out"
        return {
            "success": True,
            "message": f"Ticket {verb} successfully",
            "ticket": ticket.to_dict(),
        }

    @app.get("/api/admin/ticket")
    async def admin_ticket(
        ticket_id: str, admin: AdminSession = Depends(require_admin),
    ):
        ticket = await admission.lookup(ticket_id)
        return {"success": True, "ticket": ticket.to_dict()}

    @app.get("/api/admin/stats")
    async def admin_stats(
        recent: int = 10, admin: AdminSession = Depends(require_admin),
    ):
        s = await aggregator.stats(recent_limit=max(0, min(recent, 100)))
        return {"success": True, "stats": s.to_dict()}

    @app.get("/api/admin/payment-sessions")
    async def admin_payment_sessions(
        limit: int = 100,
        admin: AdminSession = Depends(require_admin),
        store=Depends(paymentsessions),
    ):
        items = await store.recent(limit=limit)
        return {"items": [ps.to_dict() for ps in items], "limit": limit}

    @app.get("/api/admin/timings")
    async def admin_timings(admin: AdminSession = Depends(require_admin)):
        return {"items": timings.snapshot()}

    return app
