# backend/agrisync/models/expense.py
from sqlalchemy import Column, Date, Float, Integer, String, Text, UniqueConstraint
from .base import Base, SyncableMixin


class Expense(SyncableMixin, Base):
    __tablename__ = "expenses"
    __table_args__ = (UniqueConstraint("organization_id", "offline_id", name="uq_expenses_org_offline"),)

    id = Column(Integer, primary_key=True)
    job_id = Column(Integer, nullable=True)
    driver_id = Column(Integer, nullable=True)
    machine_id = Column(Integer, nullable=True)
    category = Column(String(16), nullable=False)  # fuel|spare_parts|maintenance|labor|other
    amount = Column(Float, nullable=False)
    description = Column(Text, default="")
    expense_date = Column(Date, nullable=False)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
