from enum import Enum
from functools import cached_property
from os.path import abspath

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from adherence.persistence.istore import IStore


class ModeEnum(str, Enum):
    MEMORY = "memory"
    """Use memory store, data is lost on restart."""
    SQLITE = "sqlite"
    """Use SQLite store."""


class MemoryModel(BaseModel, frozen=True):
    @cached_property
    def instance(self) -> IStore:
        from adherence.persistence.memory import (
            MemoryStore,
        )

        return MemoryStore()


class SqliteModel(BaseModel, frozen=True):
    path: str = ".local/adherence.db"
    timeout_sec: float = Field(default=10, gt=0)
    """Time waiting for a database lock before failing."""

    def full_path(self) -> str:
        return abspath(self.path)

    @cached_property
    def instance(self) -> IStore:
        from adherence.persistence.sqlite import (
            SqliteStore,
        )

        return SqliteStore(self)


class DatabaseModel(BaseModel):
    # Mode first, validators of the other fields depend on it
    mode: ModeEnum = ModeEnum.MEMORY
    memory: MemoryModel | None = MemoryModel()  # Object is fully defined by default
    sqlite: SqliteModel | None = SqliteModel()  # Object is fully defined by default

    @field_validator("memory")
    @classmethod
    def _validate_memory(
        cls,
        memory: MemoryModel | None,
        info: ValidationInfo,
    ) -> MemoryModel | None:
        if not memory and info.data.get("mode", None) == ModeEnum.MEMORY:
            raise ValueError("Memory config required")
        return memory

    @field_validator("sqlite")
    @classmethod
    def _validate_sqlite(
        cls,
        sqlite: SqliteModel | None,
        info: ValidationInfo,
    ) -> SqliteModel | None:
        if not sqlite and info.data.get("mode", None) == ModeEnum.SQLITE:
            raise ValueError("SQLite config required")
        return sqlite

    @cached_property
    def instance(self) -> IStore:
        if self.mode == ModeEnum.MEMORY:
            assert self.memory
            return self.memory.instance

        assert self.sqlite
        return self.sqlite.instance
