# tuition/services/optional_expense_service.py
#
# The six optional expense categories a student can opt into.
#
# Each category is the same class driven by a CategoryDef: its input
# fields with defaults, the formula for its total, what goes into the
# "quantity" column when it is saved, and the label stored with it.
# Changing a field recomputes that category only. Disabling keeps the
# values so re-enabling restores them; it only drops out of the grand
# total.

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Tuple

from tuition.core.exceptions import ValidationError
from tuition.schemas.fees import (
    OptionalCategory,
    OptionalCategoryInput,
    OptionalCategoryState,
    OptionalExpensesState,
)
from tuition.utils.money import money, parse_amount

MONEY, COUNT, TEXT = "money", "count", "text"


@dataclass(frozen=True)
class FieldDef:
    name: str
    kind: str
    default: Any


@dataclass(frozen=True)
class CategoryDef:
    category: OptionalCategory
    label: str                                   # expense_type stored in other_expenses
    fields: Tuple[FieldDef, ...]
    compute_total: Callable[[Mapping[str, Any]], Decimal]
    quantity: Callable[[Mapping[str, Any]], int]
    label_field: Optional[str] = None            # free-text field that overrides the label


def _uniform_total(v: Mapping[str, Any]) -> Decimal:
    return sum(
        (v[f"{item}_price"] * v[f"{item}_quantity"] for item in ("jacket", "pants", "tshirt")),
        Decimal("0"),
    )


CATEGORY_DEFS: Dict[OptionalCategory, CategoryDef] = {
    d.category: d for d in (
        CategoryDef(
            category=OptionalCategory.transportation,
            label="نقل مدرسي",
            fields=(FieldDef("monthly_price", MONEY, Decimal("500")),
                    FieldDef("months", COUNT, 1)),
            compute_total=lambda v: v["monthly_price"] * v["months"],
            quantity=lambda v: v["months"],
        ),
        CategoryDef(
            category=OptionalCategory.uniform,
            label="زي مدرسي",
            fields=(FieldDef("jacket_price", MONEY, Decimal("250")),
                    FieldDef("jacket_quantity", COUNT, 0),
                    FieldDef("pants_price", MONEY, Decimal("200")),
                    FieldDef("pants_quantity", COUNT, 0),
                    FieldDef("tshirt_price", MONEY, Decimal("150")),
                    FieldDef("tshirt_quantity", COUNT, 0)),
            compute_total=_uniform_total,
            quantity=lambda v: 1,
        ),
        CategoryDef(
            category=OptionalCategory.digital_platforms,
            label="منصات رقمية",
            fields=(FieldDef("price", MONEY, Decimal("150")),),
            compute_total=lambda v: v["price"],
            quantity=lambda v: 1,
        ),
        CategoryDef(
            category=OptionalCategory.trips,
            label="رحلات",
            fields=(FieldDef("activity_type", TEXT, ""),
                    FieldDef("price", MONEY, Decimal("500")),
                    FieldDef("quantity", COUNT, 1)),
            compute_total=lambda v: v["price"] * v["quantity"],
            quantity=lambda v: v["quantity"],
            label_field="activity_type",
        ),
        CategoryDef(
            category=OptionalCategory.events,
            label="فعاليات",
            fields=(FieldDef("event_type", TEXT, ""),
                    FieldDef("ticket_price", MONEY, Decimal("300")),
                    FieldDef("tickets", COUNT, 1)),
            compute_total=lambda v: v["ticket_price"] * v["tickets"],
            quantity=lambda v: v["tickets"],
            label_field="event_type",
        ),
        CategoryDef(
            category=OptionalCategory.books,
            label="كتب",
            fields=(FieldDef("price", MONEY, Decimal("200")),
                    FieldDef("quantity", COUNT, 1)),
            compute_total=lambda v: v["price"] * v["quantity"],
            quantity=lambda v: v["quantity"],
        ),
    )
}


def _coerce(category: OptionalCategory, field: FieldDef, value: Any) -> Any:
    if field.kind == TEXT:
        return "" if value is None else str(value).strip()
    label = f"{category.value}.{field.name}"
    number = parse_amount(value, label)
    if field.kind == COUNT:
        if number != number.to_integral_value():
            raise ValidationError(f"{label} must be a whole number, got {value!r}")
        return int(number)
    return number


class OptionalExpenseCategory:

    def __init__(self, definition: CategoryDef, enabled: bool = False):
        self.definition = definition
        self.enabled = enabled
        self._values: Dict[str, Any] = {f.name: f.default for f in definition.fields}
        self.total = Decimal("0")
        self._recompute()

    @property
    def category(self) -> OptionalCategory:
        return self.definition.category

    @property
    def values(self) -> Dict[str, Any]:
        return dict(self._values)

    @property
    def quantity(self) -> int:
        return int(self.definition.quantity(self._values))

    @property
    def label(self) -> str:
        if self.definition.label_field and self._values.get(self.definition.label_field):
            return self._values[self.definition.label_field]
        return self.definition.label

    def enable(self) -> None:
        self.enabled = True

    def disable(self) -> None:
        self.enabled = False

    def set(self, field: str, value: Any) -> Decimal:
        """Update one input field; returns the recomputed total."""
        self._values[field] = _coerce(self.category, self._field(field), value)
        return self._recompute()

    def update(self, fields: Mapping[str, Any]) -> Decimal:
        """All-or-nothing: one bad field leaves every value untouched."""
        coerced = {
            name: _coerce(self.category, self._field(name), value)
            for name, value in fields.items()
        }
        self._values.update(coerced)
        return self._recompute()

    def state(self) -> OptionalCategoryState:
        return OptionalCategoryState(
            category=self.category,
            label=self.label,
            enabled=self.enabled,
            fields=self.values,
            quantity=self.quantity,
            total=self.total,
        )

    def _field(self, name: str) -> FieldDef:
        for f in self.definition.fields:
            if f.name == name:
                return f
        raise ValidationError(f"Unknown field '{name}' for {self.category.value}")

    def _recompute(self) -> Decimal:
        self.total = money(self.definition.compute_total(self._values))
        return self.total


class OptionalExpenseAggregator:
    """Holds all six categories; knows nothing about tuition or discounts."""

    def __init__(self):
        self._categories: Dict[OptionalCategory, OptionalExpenseCategory] = {
            key: OptionalExpenseCategory(d) for key, d in CATEGORY_DEFS.items()
        }

    @classmethod
    def from_inputs(cls, inputs: Mapping[Any, OptionalCategoryInput]) -> "OptionalExpenseAggregator":
        aggregator = cls()
        for key, data in inputs.items():
            category = aggregator[key]
            category.update(data.fields)
            category.enabled = data.enabled
        return aggregator

    def __getitem__(self, key) -> OptionalExpenseCategory:
        try:
            return self._categories[OptionalCategory(key)]
        except ValueError:
            raise ValidationError(f"Unknown optional expense category '{key}'")

    def __iter__(self) -> Iterator[OptionalExpenseCategory]:
        return iter(self._categories.values())

    def enable(self, key) -> None:
        self[key].enable()

    def disable(self, key) -> None:
        self[key].disable()

    def toggle(self, key) -> bool:
        category = self[key]
        category.enabled = not category.enabled
        return category.enabled

    def set_field(self, key, field: str, value: Any) -> Decimal:
        return self[key].set(field, value)

    def enabled_categories(self) -> list[OptionalExpenseCategory]:
        return [c for c in self if c.enabled]

    @property
    def grand_total(self) -> Decimal:
        return money(sum((c.total for c in self.enabled_categories()), Decimal("0")))

    def snapshot(self) -> OptionalExpensesState:
        return OptionalExpensesState(
            categories=[c.state() for c in self],
            grand_total=self.grand_total,
        )
