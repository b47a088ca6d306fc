from enum import Enum
from typing import Type

from sqlalchemy import Enum as SqlEnum
from sqlalchemy.orm import DeclarativeBase, declared_attr


class Base(DeclarativeBase):
    """Declarative base; models without an explicit ``__tablename__`` use their lowercased class name."""

    @declared_attr.directive
    def __tablename__(cls) -> str:  # noqa: N805
        return cls.__name__.lower()


def value_enum(enum_cls: Type[Enum], name: str) -> SqlEnum:
    """Enum column type persisting member values (``"pending"``) rather than names."""

    return SqlEnum(
        enum_cls,
        name=name,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
    )


# Registers every model on Base.metadata for Alembic autogenerate.
try:  # pragma: no cover - import side effects only
    import grc_api.models  # noqa: F401
except ImportError:  # pragma: no cover - partial installs during migrations
    pass
