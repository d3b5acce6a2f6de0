from __future__ import annotations
from dataclasses import replace
from typing import Tuple

from loguru import logger

from .auth import Payer
from .errors import PaymentRejected, SessionNotFound
from .gateway import PaymentGateway, Verdict, verify_callback
from .helpers import new_id, now_ts
from .infra.timings import timeit
from .model.paymentsession import (
    CREATED, FAILED, VERIFIED, PaymentSession,
)
from .pricing import Order


class PaymentSessionManager:
    def __init__(self, gateway: PaymentGateway, store,
                 currency: str) -> None:
        self.gateway = gateway
        self.store = store
        self.currency = currency

    async def create_session(
            self, order: Order, payer: Payer
    ) -> Tuple[PaymentSession, str]:
        """Open a gateway order for `order.total_amount`.

        Returns the persisted session and the publishable client key.
        Nothing is stored when the gateway call fails.
        """
        async with timeit("gateway.create_order"):
            gw = await self.gateway.create_order(
                amount=order.total_amount,
                currency=self.currency,
                receipt=f"rcpt_{new_id()[:16]}",
            )
        ps = PaymentSession(
            gateway_order_id=gw.gateway_order_id,
            # the gateway echoes the amount; ours is the one we trust
            amount=order.total_amount,
            currency=self.currency,
            tier=order.tier,
            quantity=order.quantity,
            unit_price=order.unit_price,
            payer_id=payer.user_id,
            payer_email=payer.email,
            created_at=now_ts(),
        )
        async with timeit("paymentsession.save"):
            await self.store.save(ps)
        logger.info(
            "payment session {} created: {} x{} = {} {} for {}",
            ps.gateway_order_id, ps.tier, ps.quantity, ps.amount,
            ps.currency, payer.user_id,
        )
        return ps, self.gateway.client_key

    async def verify(
            self, payer: Payer, gateway_order_id: str,
            gateway_payment_id: str, signature: str,
    ) -> PaymentSession:
        async with timeit("paymentsession.get"):
            ps = await self.store.get(gateway_order_id)
        if ps is None or ps.payer_id != payer.user_id:
            raise SessionNotFound(gateway_order_id)
        if ps.status == FAILED:
            raise PaymentRejected("Payment session already failed")

        verdict = verify_callback(
            self.gateway.secret, gateway_order_id, gateway_payment_id,
            signature,
        )
        if verdict is Verdict.REJECTED:
            logger.warning(
                "payment callback rejected for session {} payment {!r}",
                gateway_order_id, gateway_payment_id,
            )
            if ps.status == CREATED:
                await self.store.finalize(gateway_order_id, FAILED)
            raise PaymentRejected("Invalid signature")

        if ps.status == CREATED:
            async with timeit("paymentsession.finalize"):
                moved = await self.store.finalize(
                    gateway_order_id, VERIFIED, gateway_payment_id
                )
            if not moved:
                # someone finalized concurrently; go by what is stored now
                ps = await self.store.get(gateway_order_id)
                if ps is None or ps.status != VERIFIED:
                    raise PaymentRejected("Payment session already failed")
            else:
                ps = replace(
                    ps, status=VERIFIED, finalized_at=now_ts(),
                    gateway_payment_id=gateway_payment_id,
                )
        # a verified session belongs to exactly one payment
        if ps.gateway_payment_id != gateway_payment_id:
            logger.warning(
                "session {} already verified for payment {}, got {}",
                gateway_order_id, ps.gateway_payment_id, gateway_payment_id,
            )
            raise PaymentRejected(
                "Payment session already verified for another payment"
            )
        return ps
