import datetime as dt
from decimal import Decimal
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from models import BudgetPeriod, RecordKind, TodoPriority, TransactionType

MAX_AMOUNT = Decimal("1000000000")


class RecordIn(BaseModel):
    """Base for the field subsets the document store accepts per kind.

    Fields are stored under their camelCase alias, the layout browser
    clients already use. Unknown fields are dropped.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    def to_fields(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class TodoIn(RecordIn):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    priority: Optional[TodoPriority] = TodoPriority.medium
    due_date: Optional[Union[dt.date, dt.datetime]] = None
    completed: bool = False


class NoteIn(RecordIn):
    title: Optional[str] = Field(default=None, max_length=200)
    content: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=100)
    tags: list[str] = Field(default_factory=list)
    color: Optional[str] = Field(default=None, max_length=32)


class RecipeIn(RecordIn):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    ingredients: Optional[Union[list[str], str]] = None
    instructions: Optional[Union[list[str], str]] = None
    prep_time: Optional[Union[int, str]] = None
    cook_time: Optional[Union[int, str]] = None
    servings: Optional[Union[int, str]] = None
    category: Optional[str] = Field(default=None, max_length=100)
    tags: list[str] = Field(default_factory=list)
    image_url: Optional[str] = None


class TransactionIn(RecordIn):
    type: TransactionType
    amount: Decimal = Field(..., ge=0, le=MAX_AMOUNT)
    category: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=200)
    date: Union[dt.date, dt.datetime]
    account: Optional[str] = Field(default=None, max_length=100)

    @field_serializer("amount")
    def _amount_as_number(self, value: Decimal) -> float:
        return float(value)


class BudgetIn(RecordIn):
    category: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., gt=0, le=MAX_AMOUNT)
    period: BudgetPeriod = BudgetPeriod.monthly

    @field_serializer("amount")
    def _amount_as_number(self, value: Decimal) -> float:
        return float(value)


class HabitIn(RecordIn):
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = None
    frequency: Optional[str] = Field(default="daily", max_length=20)
    target: Optional[int] = Field(default=None, ge=0)
    unit: Optional[str] = Field(default=None, max_length=40)
    color: Optional[str] = Field(default=None, max_length=32)
    icon: Optional[str] = Field(default=None, max_length=40)
    completed_dates: list[str] = Field(default_factory=list)
    streak: int = Field(default=0, ge=0)
    best_streak: int = Field(default=0, ge=0)


SCHEMAS_BY_KIND: dict[RecordKind, type[RecordIn]] = {
    RecordKind.todos: TodoIn,
    RecordKind.notes: NoteIn,
    RecordKind.recipes: RecipeIn,
    RecordKind.transactions: TransactionIn,
    RecordKind.budgets: BudgetIn,
    RecordKind.habits: HabitIn,
}
