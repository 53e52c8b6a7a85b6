# backend/agrisync/models/payment.py
from sqlalchemy import Column, DateTime, Float, Integer, String, UniqueConstraint
from .base import Base, SyncableMixin


class Payment(SyncableMixin, Base):
    __tablename__ = "payments"
    __table_args__ = (UniqueConstraint("organization_id", "offline_id", name="uq_payments_org_offline"),)

    id = Column(Integer, primary_key=True)
    invoice_id = Column(Integer, nullable=True)
    customer_id = Column(Integer, nullable=True)
    amount = Column(Float, nullable=False)
    payment_method = Column(String(20), nullable=False)  # cash|bank_transfer|mobile_payment|credit
    reference_number = Column(String(100), nullable=True)
    payment_date = Column(DateTime, nullable=False)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
