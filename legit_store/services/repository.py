from __future__ import annotations

from datetime import UTC, datetime
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from ..core.errors import StorageFailureError
from ..models import AdminModel, PaymentModel, PaymentStatus, UserModel


class PaymentRepository:
    """Thin data access layer around the SQLModel session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    # Users --------------------------------------------------------------
    def get_user(self, user_id: UUID) -> Optional[UserModel]:
        return self.session.get(UserModel, user_id)

    def get_balance(self, user_id: UUID) -> Optional[int]:
        stmt = select(UserModel.balance).where(UserModel.id == user_id)
        return self.session.exec(stmt).first()

    def get_admin_by_email(self, email: str) -> Optional[AdminModel]:
        stmt = select(AdminModel).where(AdminModel.email == email)
        return self.session.exec(stmt).first()

    # Payments -----------------------------------------------------------
    def find_payment(self, references: Iterable[str]) -> Optional[PaymentModel]:
        refs = [ref for ref in references if ref]
        if not refs:
            return None
        stmt = (
            select(PaymentModel)
            .where(
                or_(
                    col(PaymentModel.internal_reference).in_(refs),
                    col(PaymentModel.gateway_reference).in_(refs),
                )
            )
            .order_by(col(PaymentModel.credited).desc(), col(PaymentModel.created_at))
            .execution_options(populate_existing=True)
        )
        return self.session.exec(stmt).first()

    def add_payment(
        self,
        *,
        internal_reference: Optional[str],
        gateway_reference: Optional[str],
        amount_minor: int,
        currency: str,
        user_id: Optional[UUID] = None,
        user_local_id: Optional[str] = None,
        email: Optional[str] = None,
        status: PaymentStatus = PaymentStatus.PENDING,
    ) -> PaymentModel:
        payment = PaymentModel(
            internal_reference=internal_reference,
            gateway_reference=gateway_reference,
            amount_minor=amount_minor,
            currency=currency,
            user_id=user_id,
            user_local_id=user_local_id,
            email=email,
            status=status,
        )
        self.session.add(payment)
        self.session.flush()
        self.session.refresh(payment)
        return payment

    def add_or_get_payment(self, references: list[str], **fields) -> PaymentModel:
        """Insert a payment, or return the row a concurrent caller inserted first."""
        try:
            payment = self.add_payment(**fields)
            self.session.commit()
            return payment
        except IntegrityError:
            self.session.rollback()
            payment = self.find_payment(references)
            if payment is None:
                raise
            return payment

    def update_payment(self, payment: PaymentModel, **values) -> PaymentModel:
        """Update an uncredited payment. Credited rows are never rewritten here."""
        stmt = (
            update(PaymentModel)
            .where(PaymentModel.id == payment.id)
            .where(col(PaymentModel.credited).is_(False))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.session.execute(stmt)
        self.session.commit()
        self.session.refresh(payment)
        return payment

    def claim_and_credit(
        self,
        payment_id: UUID,
        *,
        user_id: UUID,
        amount_minor: int,
        gateway_reference: Optional[str],
    ) -> bool:
        """Flip ``credited`` and increment the wallet in one transaction.

        The conditional UPDATE is the serialisation point: of any number of
        concurrent callers only one sees a changed row. Returns False when the
        payment was already credited.
        """
        values: dict = {
            "credited": True,
            "status": PaymentStatus.COMPLETED,
            "user_id": user_id,
            "amount_minor": amount_minor,
            "credited_at": datetime.now(UTC),
        }
        if gateway_reference:
            values["gateway_reference"] = gateway_reference

        claim = (
            update(PaymentModel)
            .where(PaymentModel.id == payment_id)
            .where(col(PaymentModel.credited).is_(False))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            claimed = self.session.execute(claim).rowcount == 1
            if not claimed:
                self.session.rollback()
                return False

            increment = (
                update(UserModel)
                .where(UserModel.id == user_id)
                .values(balance=UserModel.balance + amount_minor)
                .execution_options(synchronize_session=False)
            )
            if self.session.execute(increment).rowcount != 1:
                raise StorageFailureError(f"User {user_id} disappeared before crediting")
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return True
