"""SQLAlchemy ORM models for funding instruments, transactions and installment plans"""

import uuid
from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class PaymentMethod(Base):
    """Funding instrument: credit card, debit card or bank account"""

    __tablename__ = "payment_methods"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    name = Column(Text, nullable=False)
    type = Column(Text, nullable=False)  # credit | debit | bank | cash
    credit_mode = Column(Boolean, nullable=False, default=False)
    statement_closing_day = Column(Integer, nullable=True)
    payment_due_day = Column(Integer, nullable=True)  # days after closing
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Category(Base):
    """Transaction category; system categories have no owner and are read-only"""

    __tablename__ = "categories"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=True, index=True)
    name = Column(Text, nullable=False)
    type = Column(Text, nullable=False, default="expense")
    icon = Column(Text, nullable=True)
    is_system = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Transaction(Base):
    """Ledger entry; may be linked to an installment plan or be an auto-generated settlement"""

    __tablename__ = "transactions"
    __table_args__ = (
        # One settlement per user, card and statement close
        UniqueConstraint(
            "user_id",
            "settlement_payment_method_id",
            "settlement_period_end",
            name="uq_transactions_settlement",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    readable_id = Column(Text, nullable=False, unique=True)
    amount_cents = Column(BigInteger, nullable=False)
    type = Column(Text, nullable=False, default="expense")
    description = Column(Text, nullable=False)
    date = Column(Date, nullable=False)
    category_id = Column(Uuid, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
    payment_method_id = Column(Uuid, ForeignKey("payment_methods.id", ondelete="SET NULL"), nullable=True)
    installment_plan_id = Column(Uuid, nullable=True, index=True)
    installment_payment_id = Column(Uuid, nullable=True)
    settlement_payment_method_id = Column(Uuid, nullable=True)
    settlement_period_end = Column(Date, nullable=True)
    meta = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class InstallmentPlan(Base):
    """Purchase financed over a fixed number of monthly payments"""

    __tablename__ = "installment_plans"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    payment_method_id = Column(Uuid, ForeignKey("payment_methods.id"), nullable=False)
    description = Column(Text, nullable=False)
    merchant = Column(Text, nullable=True)
    category_id = Column(Uuid, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
    total_amount_cents = Column(BigInteger, nullable=False)
    total_installments = Column(Integer, nullable=False)
    status = Column(Text, nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    payment_method = relationship("PaymentMethod")
    payments = relationship(
        "InstallmentPayment",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="InstallmentPayment.installment_number",
    )


class InstallmentPayment(Base):
    """Individual scheduled payment within a plan"""

    __tablename__ = "installment_payments"
    __table_args__ = (UniqueConstraint("plan_id", "installment_number", name="uq_installment_payments_number"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    plan_id = Column(Uuid, ForeignKey("installment_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    installment_number = Column(Integer, nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    due_date = Column(Date, nullable=False, index=True)
    status = Column(Text, nullable=False, default="pending")
    transaction_id = Column(Uuid, ForeignKey("transactions.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    plan = relationship("InstallmentPlan", back_populates="payments")
