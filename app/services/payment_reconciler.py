"""
Payment Reconciler - Exactly-once credit top-ups from payment callbacks.

Idempotency is enforced twice:
1. Lookup by payment_reference before touching the ledger
2. Unique constraint on payments.payment_reference at commit

The ledger increment and the payment row share one transaction, so a failed
payment insert rolls the top-up back with it.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from app.config import settings
from app.db.models import AppSetting, Payment
from app.exceptions import (
    PaymentNotConfirmedError,
    PersistenceError,
    ProfileNotFoundError,
    UserNotFoundError,
    WriteVerificationError,
)
from app.models.domain import PaymentIntent, PaymentResult
from app.observability.metrics import metrics
from app.observability.tracing import trace_operation
from app.services.credit_ledger import CreditLedger

logger = get_logger(__name__)

PAID_STATUS = "paid"
PRICE_SETTING_KEY = "price_per_minute_eur"
_CENTS = Decimal("0.01")


class PaymentReconciler:
    """Applies confirmed payments to the credit ledger."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize reconciler with database session."""
        self.session = session
        self.ledger = CreditLedger(session)

    async def apply_payment(self, intent: PaymentIntent) -> PaymentResult:
        """
        Credit `package_minutes` to the user exactly once per reference.

        Raises:
            PaymentNotConfirmedError: Status is not 'paid'
            UserNotFoundError: No profile for user_id
            PersistenceError: Payment could not be stored (top-up rolled back)
        """
        if intent.status != PAID_STATUS:
            metrics.record_payment("rejected")
            raise PaymentNotConfirmedError(intent.status)

        with trace_operation(
            "payment_apply",
            user_id=intent.user_id,
            payment_reference=intent.payment_reference,
            package_minutes=intent.package_minutes,
        ):
            existing = await self._find_payment_by_reference(intent.payment_reference)
            if existing is not None:
                return self._already_processed(existing)

            price_per_minute = await self._resolve_price_per_minute(intent.price_per_minute)
            amount_eur = (intent.package_minutes * price_per_minute).quantize(
                _CENTS, rounding=ROUND_HALF_UP
            )

            try:
                balance = await self.ledger.top_up(
                    intent.user_id,
                    intent.package_minutes,
                    payment_reference=intent.payment_reference,
                )
            except ProfileNotFoundError as e:
                metrics.record_payment("unknown_user")
                raise UserNotFoundError(intent.user_id) from e

            payment = Payment(
                user_id=intent.user_id,
                package_minutes=intent.package_minutes,
                amount_eur=amount_eur,
                price_per_minute_eur=price_per_minute,
                payment_reference=intent.payment_reference,
            )
            self.session.add(payment)

            try:
                await self.session.flush()
                verified = await self.session.get(Payment, payment.id)
                if verified is None:
                    raise WriteVerificationError(f"Payment {payment.id} not found after insert")
                await self.session.commit()
            except IntegrityError as e:
                # Rollback undoes the top-up as well
                await self.session.rollback()
                replay = await self._find_payment_by_reference(intent.payment_reference)
                if replay is not None:
                    logger.info(
                        "payment_race_resolved",
                        payment_reference=intent.payment_reference,
                    )
                    return self._already_processed(replay)
                metrics.record_payment("failed")
                logger.error(
                    "payment_insert_failed",
                    payment_reference=intent.payment_reference,
                    error=str(e),
                )
                raise PersistenceError("Failed to record payment") from e
            except (SQLAlchemyError, WriteVerificationError) as e:
                await self.session.rollback()
                metrics.record_payment("failed")
                logger.error(
                    "payment_insert_failed",
                    payment_reference=intent.payment_reference,
                    error=str(e),
                )
                raise PersistenceError("Failed to record payment") from e

        metrics.record_payment("applied", intent.package_minutes)
        logger.info(
            "payment_applied",
            user_id=str(intent.user_id),
            payment_reference=intent.payment_reference,
            credits_added=intent.package_minutes,
            amount_eur=str(amount_eur),
            balance_after=balance,
        )

        return PaymentResult(
            user_id=intent.user_id,
            payment_reference=intent.payment_reference,
            credits_added=intent.package_minutes,
            amount_eur=amount_eur,
            already_processed=False,
        )

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _resolve_price_per_minute(self, explicit: Decimal | None) -> Decimal:
        """
        Effective price per minute.

        Order: explicit callback value, stored app setting, configured default.
        An explicit zero is treated as absent.
        """
        if explicit:
            return explicit

        stored = await self.session.get(AppSetting, PRICE_SETTING_KEY)
        if stored is not None:
            try:
                price = Decimal(str(stored.value))
            except InvalidOperation:
                logger.warning("invalid_price_setting", value=stored.value)
            else:
                if price > 0:
                    return price
                logger.warning("invalid_price_setting", value=stored.value)

        return settings.default_price_per_minute_eur

    async def _find_payment_by_reference(self, payment_reference: str) -> Payment | None:
        stmt = select(Payment).where(Payment.payment_reference == payment_reference)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    def _already_processed(self, payment: Payment) -> PaymentResult:
        metrics.record_payment("duplicate")
        logger.info(
            "payment_already_processed",
            payment_reference=payment.payment_reference,
            user_id=str(payment.user_id),
        )
        return PaymentResult(
            user_id=payment.user_id,
            payment_reference=payment.payment_reference,
            credits_added=0,
            amount_eur=payment.amount_eur,
            already_processed=True,
        )
