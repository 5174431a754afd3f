# app/models/sheet_row.py
from sqlalchemy import JSON, Column, Integer, String, UniqueConstraint

from app.db.base import Base


class SheetRow(Base):
    """Una riga di un foglio: celle come lista di stringhe (colonna A = indice 0)."""

    __tablename__ = "sheet_rows"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sheet_id = Column(String(128), nullable=False, index=True)
    tab = Column(String(128), nullable=False, default="")
    row_number = Column(Integer, nullable=False)  # 1-based come nei fogli
    values = Column(JSON, nullable=False, default=list)

    __table_args__ = (
        UniqueConstraint("sheet_id", "tab", "row_number", name="uq_sheet_rows_position"),
    )
