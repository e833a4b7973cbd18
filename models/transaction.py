"""Pydantic models for transactions, extraction results and dashboard data"""
from pydantic import BaseModel, Field, field_validator
from datetime import date as Date
from typing import List, Literal, Optional, Any

from utils.text_norm import parse_number

TransactionType = Literal['income', 'expense']


class TransactionDraft(BaseModel):
    """
    A transaction as submitted by a form or produced from an extraction,
    before the store has assigned it an id.
    """
    type: TransactionType
    amount: float = Field(..., gt=0, allow_inf_nan=False)
    category: str = Field(..., min_length=1)
    description: str = ""
    date: Date = Field(default_factory=Date.today)

    @field_validator('category', 'description', mode='before')
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class Transaction(TransactionDraft):
    """
    Represents a single stored income or expense transaction.
    """
    id: int


class ExtractionResult(BaseModel):
    """
    Canonical shape of one transaction extracted from free text.

    Models return the amount as a number or as a numeric string depending on
    the prompt, so it is coerced here: "50", "٥٠" and "$1,000" all become floats.
    """
    type: TransactionType
    amount: float = Field(..., gt=0, allow_inf_nan=False)
    category: str = Field(..., min_length=1)
    description: str = ""
    analysis: Optional[str] = None

    @field_validator('type', mode='before')
    @classmethod
    def _fold_type(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator('amount', mode='before')
    @classmethod
    def _coerce_amount(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("amount must be a number")
        if isinstance(value, str):
            parsed = parse_number(value)
            if parsed is None:
                raise ValueError(f"amount is not a single number: {value!r}")
            return parsed
        return value

    @field_validator('category', 'description', mode='before')
    @classmethod
    def _strip(cls, value: Any) -> Any:
        if value is None:
            return ""
        return value.strip() if isinstance(value, str) else value

    def to_draft(self, on_date: Optional[Date] = None) -> TransactionDraft:
        return TransactionDraft(
            type=self.type,
            amount=self.amount,
            category=self.category,
            description=self.description,
            date=on_date or Date.today(),
        )


class DashboardMetrics(BaseModel):
    income: float = 0.0
    expenses: float = 0.0
    balance: float = 0.0
    count: int = 0


class MonthlyTotal(BaseModel):
    month: str  # YYYY-MM
    income: float = 0.0
    expenses: float = 0.0


class CategoryTotal(BaseModel):
    name: str
    value: float


class DashboardOverview(BaseModel):
    revision: int
    metrics: DashboardMetrics
    monthly: List[MonthlyTotal]
    categories: List[CategoryTotal]
