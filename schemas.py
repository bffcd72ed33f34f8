import datetime as dt
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from models import TransactionType


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    color: str = Field(..., min_length=1, max_length=20)
    icon: str = Field(..., min_length=1, max_length=50)


class CategoryUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[TransactionType] = None
    color: Optional[str] = Field(default=None, min_length=1, max_length=20)
    icon: Optional[str] = Field(default=None, min_length=1, max_length=50)


class TransactionIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: TransactionType
    description: str = Field(..., min_length=1)
    category_id: int = Field(..., alias="categoryId")
    date: dt.date
    account: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., ge=0)
    paid: bool = False
    repeat_count: Optional[int] = Field(default=None, alias="repeatCount", ge=1)
    interval_days: Optional[Literal[1, 7, 30, 365]] = Field(
        default=None, alias="intervalDays"
    )


class TransactionUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    type: Optional[TransactionType] = None
    description: Optional[str] = Field(default=None, min_length=1)
    category_id: Optional[int] = Field(default=None, alias="categoryId")
    date: Optional[dt.date] = None
    account: Optional[str] = Field(default=None, min_length=1, max_length=100)
    amount: Optional[Decimal] = Field(default=None, ge=0)
    paid: Optional[bool] = None


class TransactionImportIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: TransactionType
    description: str = Field(..., min_length=1)
    date: dt.date
    amount: Decimal = Field(..., ge=0)


class TransactionFilters(BaseModel):
    type: Optional[TransactionType] = None
    date: Optional[dt.date] = None
    date_gte: Optional[dt.date] = None
    date_lte: Optional[dt.date] = None
    sort: Literal["asc", "desc"] = "asc"
    search: Optional[str] = None


class BudgetIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    category_id: int = Field(..., alias="categoryId")
    limit: Decimal = Field(..., ge=0)
    date: dt.date
    icon: Optional[str] = Field(default=None, max_length=50)
    color: Optional[str] = Field(default=None, max_length=20)


class BudgetUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    category_id: Optional[int] = Field(default=None, alias="categoryId")
    limit: Optional[Decimal] = Field(default=None, ge=0)
    date: Optional[dt.date] = None
    icon: Optional[str] = Field(default=None, max_length=50)
    color: Optional[str] = Field(default=None, max_length=20)


class GoalIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    category_id: int = Field(..., alias="categoryId")
    title: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, min_length=1)
    target_amount: Decimal = Field(default=Decimal("0"), alias="targetAmount", ge=0)
    current_amount: Decimal = Field(default=Decimal("0"), alias="currentAmount", ge=0)
    deadline: dt.date


class GoalUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    category_id: Optional[int] = Field(default=None, alias="categoryId")
    title: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, min_length=1)
    target_amount: Optional[Decimal] = Field(
        default=None, alias="targetAmount", ge=0
    )
    current_amount: Optional[Decimal] = Field(
        default=None, alias="currentAmount", ge=0
    )
    deadline: Optional[dt.date] = None


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str = Field(serialization_alias="userId")
    name: str
    type: TransactionType
    color: str
    icon: str


class TransactionOut(BaseModel):
    id: int
    user_id: str = Field(serialization_alias="userId")
    type: TransactionType
    description: str
    date: dt.date
    account: Optional[str]
    amount: float
    paid: bool
    category: Optional[CategoryOut]


class BudgetOut(BaseModel):
    id: int
    user_id: str = Field(serialization_alias="userId")
    category: CategoryOut
    icon: Optional[str]
    color: Optional[str]
    limit: float
    date: dt.date


class GoalOut(BaseModel):
    id: int
    user_id: str = Field(serialization_alias="userId")
    category: CategoryOut
    title: str
    description: Optional[str]
    target_amount: float = Field(serialization_alias="targetAmount")
    current_amount: float = Field(serialization_alias="currentAmount")
    deadline: dt.date
