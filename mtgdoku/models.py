from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime


class Puzzle(SQLModel, table=True):
    date: str = Field(primary_key=True)  # YYYY-MM-DD
    row_criteria: str  # JSON list of {name, code}
    col_criteria: str
    degraded: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
