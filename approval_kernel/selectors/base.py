"""
Read-side base for kernel selectors.

Selectors borrow the caller's session, run SELECTs only, and hand back
frozen domain DTOs via each model's ``to_dto()``.  ORM instances never leave
a selector.
"""

from abc import ABC
from typing import Any, Generic, TypeVar

from sqlalchemy import Select
from sqlalchemy.orm import Session

from approval_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    def __init__(self, session: Session):
        self.session = session

    def _scalars(self, stmt: Select) -> list[ModelType]:
        # Reload rows other sessions may have moved past our identity map
        return list(
            self.session.execute(
                stmt.execution_options(populate_existing=True)
            ).scalars()
        )

    def _dtos(self, stmt: Select) -> list[Any]:
        return [model.to_dto() for model in self._scalars(stmt)]

    def _first_dto(self, stmt: Select) -> Any | None:
        models = self._scalars(stmt.limit(1))
        return models[0].to_dto() if models else None
