"""Partial-update value types.

A patch field is either UNSET (absent from the request, leave the column
alone) or carries a value, which may legitimately be None (clear the
column). The two are never conflated.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, fields
from datetime import date
from typing import Any, TypeVar
from uuid import UUID


class _Unset:
    """Sentinel type for fields absent from a patch."""

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()

P = TypeVar("P", bound="Patch")


@dataclass(frozen=True)
class Patch:
    """Base class for entity patches."""

    @classmethod
    def from_mapping(cls: type[P], data: Mapping[str, Any]) -> P:
        """Build a patch from the keys actually present in data."""
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})

    def provided(self) -> dict[str, Any]:
        """Fields present in the patch, with their values."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }

    def has(self, name: str) -> bool:
        return getattr(self, name, UNSET) is not UNSET

    def is_empty(self) -> bool:
        return not self.provided()


@dataclass(frozen=True)
class PaymentPatch(Patch):
    amount: int = UNSET
    tax: int = UNSET
    withholding_tax: int = UNSET
    apply_withholding: bool = UNSET
    type: str = UNSET
    period: str | None = UNSET
    due_date: date | None = UNSET
    note: str | None = UNSET
    adjustment_reason: str | None = UNSET


@dataclass(frozen=True)
class ApprovalRulePatch(Patch):
    name: str = UNSET
    min_amount: int = UNSET
    max_amount: int | None = UNSET
    required_role: str = UNSET
    auto_approve: bool = UNSET
    sort_order: int = UNSET
    is_active: bool = UNSET


@dataclass(frozen=True)
class TaskPatch(Patch):
    title: str = UNSET
    description: str | None = UNSET
    assignee_id: UUID = UNSET
    priority: str = UNSET
    due_date: date = UNSET
    status: str = UNSET
