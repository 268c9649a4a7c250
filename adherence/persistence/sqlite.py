import asyncio
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from uuid import UUID

from aiosqlite import Connection, connect as sqlite_connect
from opentelemetry.instrumentation.sqlite3 import SQLite3Instrumentor
from pydantic import ValidationError

from adherence.helpers.config_models.database import SqliteModel
from adherence.helpers.logging import logger
from adherence.models.medicine import LENIENT_CONTEXT, MedicineModel
from adherence.models.owner import OwnerModel
from adherence.models.readiness import ReadinessEnum
from adherence.models.reminder import ReminderEventModel, StatusEnum
from adherence.persistence.istore import IStore

# Instrument sqlite
SQLite3Instrumentor().instrument()


class SqliteStore(IStore):
    """
    SQLite store.

    Records are stored as JSON, with the fields used for filtering or atomic updates duplicated as columns. The columns are the source of truth for `remaining_doses` and `status`.
    """

    _config: SqliteModel
    _db_path: str
    _init_done: bool
    _init_lock: asyncio.Lock

    def __init__(self, config: SqliteModel):
        logger.info("Using SQLite database at %s", config.path)
        self._config = config
        self._db_path = self._config.full_path()
        self._init_done = False
        self._init_lock = asyncio.Lock()

        # Create folder if does not exist
        db_folder = os.path.dirname(self._db_path)
        if db_folder:
            os.makedirs(name=db_folder, exist_ok=True)

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the SQLite database.

        This checks if the database is reachable and can be queried.
        """
        try:
            async with self._use_db() as db:
                await db.execute("SELECT 1")
            return ReadinessEnum.OK
        except Exception:
            logger.exception("Unknown error while checking SQLite readiness")
        return ReadinessEnum.FAIL

    async def medicine_get(self, medicine_id: UUID) -> MedicineModel | None:
        async with self._use_db() as db:
            cursor = await db.execute(
                "SELECT data, remaining_doses FROM medicines WHERE id = ?",
                (str(medicine_id),),
            )
            row = await cursor.fetchone()
        return self._medicine_from_row(row) if row else None

    async def medicine_list_active(self) -> list[MedicineModel]:
        medicines: list[MedicineModel] = []
        async with self._use_db() as db:
            cursor = await db.execute(
                "SELECT data, remaining_doses FROM medicines WHERE active = 1"
            )
            rows = await cursor.fetchall()
        for row in rows:
            medicine = self._medicine_from_row(row)
            if medicine:
                medicines.append(medicine)
        return medicines

    async def medicine_set(self, medicine: MedicineModel) -> MedicineModel:
        async with self._use_db() as db:
            await db.execute(
                "INSERT OR REPLACE INTO medicines (id, owner_id, active, remaining_doses, data) VALUES (?, ?, ?, ?, ?)",
                (
                    str(medicine.medicine_id),  # id
                    str(medicine.owner_id),  # owner_id
                    int(medicine.active),  # active
                    medicine.remaining_doses,  # remaining_doses
                    medicine.model_dump_json(),  # data
                ),
            )
            await db.commit()
        return medicine

    async def medicine_consume(
        self,
        medicine_id: UUID,
        amount: float,
        at: datetime,
    ) -> MedicineModel | None:
        return await self._medicine_update_stock(
            at=at,
            field="last_consumed_at",
            medicine_id=medicine_id,
            delta=-amount,
        )

    async def medicine_refill(
        self,
        medicine_id: UUID,
        amount: float,
        at: datetime,
    ) -> MedicineModel | None:
        return await self._medicine_update_stock(
            at=at,
            field="last_refill_at",
            medicine_id=medicine_id,
            delta=amount,
        )

    async def _medicine_update_stock(
        self,
        at: datetime,
        delta: float,
        field: str,
        medicine_id: UUID,
    ) -> MedicineModel | None:
        """
        Apply a delta to the remaining doses, floored at zero, in a single statement.
        """
        async with self._use_db() as db:
            cursor = await db.execute(
                f"UPDATE medicines SET remaining_doses = MAX(0, remaining_doses + ?), data = JSON_SET(data, '$.{field}', ?) WHERE id = ?",
                (
                    delta,  # remaining_doses
                    _iso(at),  # data.field
                    str(medicine_id),  # id
                ),
            )
            await db.commit()
            if not cursor.rowcount:
                return None
        return await self.medicine_get(medicine_id)

    async def owner_get(self, owner_id: UUID) -> OwnerModel | None:
        async with self._use_db() as db:
            cursor = await db.execute(
                "SELECT data FROM owners WHERE id = ?",
                (str(owner_id),),
            )
            row = await cursor.fetchone()
        if not row:
            return None
        try:
            return OwnerModel.model_validate_json(row[0])
        except ValidationError as e:
            logger.warning("Parsing error for owner %s: %s", owner_id, e.errors())
        return None

    async def owner_set(self, owner: OwnerModel) -> OwnerModel:
        async with self._use_db() as db:
            await db.execute(
                "INSERT OR REPLACE INTO owners (id, data) VALUES (?, ?)",
                (
                    str(owner.owner_id),  # id
                    owner.model_dump_json(),  # data
                ),
            )
            await db.commit()
        return owner

    async def reminder_get(self, event_id: UUID) -> ReminderEventModel | None:
        async with self._use_db() as db:
            return await self._reminder_get(db, event_id)

    async def reminder_create_if_absent(
        self,
        event: ReminderEventModel,
    ) -> tuple[ReminderEventModel, bool]:
        async with self._use_db() as db:
            # Unique index on (medicine_id, scheduled_day, scheduled_time) makes the insert a no-op for duplicates
            cursor = await db.execute(
                "INSERT OR IGNORE INTO reminders (id, medicine_id, owner_id, scheduled_at, scheduled_day, scheduled_time, status, data) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    str(event.event_id),  # id
                    str(event.medicine_id),  # medicine_id
                    str(event.owner_id),  # owner_id
                    _iso(event.scheduled_at),  # scheduled_at
                    event.scheduled_day.isoformat(),  # scheduled_day
                    str(event.scheduled_time),  # scheduled_time
                    event.status.value,  # status
                    event.model_dump_json(),  # data
                ),
            )
            await db.commit()
            if cursor.rowcount:
                return event, True

            cursor = await db.execute(
                "SELECT data, status FROM reminders WHERE medicine_id = ? AND scheduled_day = ? AND scheduled_time = ?",
                (
                    str(event.medicine_id),  # medicine_id
                    event.scheduled_day.isoformat(),  # scheduled_day
                    str(event.scheduled_time),  # scheduled_time
                ),
            )
            row = await cursor.fetchone()
        existing = self._reminder_from_row(row) if row else None
        if not existing:
            raise RuntimeError(
                f"Reminder for medicine {event.medicine_id} on {event.scheduled_day} at {event.scheduled_time} is neither created nor readable"
            )
        return existing, False

    async def reminder_search_pending_older_than(
        self,
        cutoff: datetime,
    ) -> list[ReminderEventModel]:
        async with self._use_db() as db:
            cursor = await db.execute(
                "SELECT data, status FROM reminders WHERE status = ? AND scheduled_at < ? ORDER BY scheduled_at ASC",
                (
                    StatusEnum.PENDING.value,  # status
                    _iso(cutoff),  # scheduled_at
                ),
            )
            rows = await cursor.fetchall()
        return [event for row in rows if (event := self._reminder_from_row(row))]

    async def reminder_search_all(
        self,
        owner_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[ReminderEventModel]:
        where_clause = "WHERE owner_id = ?"
        params: list[str] = [str(owner_id)]
        if start:
            where_clause += " AND scheduled_at >= ?"
            params.append(_iso(start))
        if end:
            where_clause += " AND scheduled_at <= ?"
            params.append(_iso(end))
        async with self._use_db() as db:
            cursor = await db.execute(
                f"SELECT data, status FROM reminders {where_clause} ORDER BY scheduled_at DESC",
                params,
            )
            rows = await cursor.fetchall()
        return [event for row in rows if (event := self._reminder_from_row(row))]

    async def reminder_transition(
        self,
        event_id: UUID,
        from_status: StatusEnum,
        to_status: StatusEnum,
        at: datetime,
        note: str | None = None,
    ) -> ReminderEventModel | None:
        async with self._use_db() as db:
            event = await self._reminder_get(db, event_id)
            if not event or event.status != from_status:
                return None
            update: dict = {"status": to_status}
            field = self._status_field(to_status)
            if field:
                update[field] = at
            if note is not None:
                update["note"] = note
            event = event.model_copy(update=update)
            # Compare-and-set on the status column, a concurrent change makes it a no-op
            cursor = await db.execute(
                "UPDATE reminders SET status = ?, data = ? WHERE id = ? AND status = ?",
                (
                    to_status.value,  # status
                    event.model_dump_json(),  # data
                    str(event_id),  # id
                    from_status.value,  # status
                ),
            )
            await db.commit()
        return event if cursor.rowcount else None

    async def _reminder_get(
        self,
        db: Connection,
        event_id: UUID,
    ) -> ReminderEventModel | None:
        cursor = await db.execute(
            "SELECT data, status FROM reminders WHERE id = ?",
            (str(event_id),),
        )
        row = await cursor.fetchone()
        return self._reminder_from_row(row) if row else None

    @staticmethod
    def _medicine_from_row(row) -> MedicineModel | None:
        data, remaining_doses = row
        try:
            medicine = MedicineModel.model_validate_json(data, context=LENIENT_CONTEXT)
        except ValidationError as e:
            logger.warning("Parsing error for medicine: %s", e.errors())
            return None
        return medicine.model_copy(update={"remaining_doses": remaining_doses})

    @staticmethod
    def _reminder_from_row(row) -> ReminderEventModel | None:
        data, status = row
        try:
            event = ReminderEventModel.model_validate_json(data)
        except ValidationError as e:
            logger.warning("Parsing error for reminder: %s", e.errors())
            return None
        return event.model_copy(update={"status": StatusEnum(status)})

    async def _init_db(self, db: Connection):
        """
        Initialize the database.

        The unique index on reminders enforces one reminder per medicine, local day and configured time.

        See: https://sqlite.org/wal.html
        """
        logger.info("Init SQLite database")
        # Optimize performance for concurrent writes
        await db.execute("PRAGMA journal_mode=WAL")
        # Create tables
        await db.execute(
            "CREATE TABLE IF NOT EXISTS medicines (id VARCHAR(36) PRIMARY KEY, owner_id VARCHAR(36) NOT NULL, active INTEGER NOT NULL, remaining_doses REAL NOT NULL, data TEXT NOT NULL)"
        )
        await db.execute(
            "CREATE TABLE IF NOT EXISTS owners (id VARCHAR(36) PRIMARY KEY, data TEXT NOT NULL)"
        )
        await db.execute(
            "CREATE TABLE IF NOT EXISTS reminders (id VARCHAR(36) PRIMARY KEY, medicine_id VARCHAR(36) NOT NULL, owner_id VARCHAR(36) NOT NULL, scheduled_at TEXT NOT NULL, scheduled_day TEXT NOT NULL, scheduled_time TEXT NOT NULL, status TEXT NOT NULL, data TEXT NOT NULL)"
        )
        # Create indexes
        await db.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS reminders_medicine_id_scheduled_day_scheduled_time ON reminders (medicine_id, scheduled_day, scheduled_time)"
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS reminders_status_scheduled_at ON reminders (status, scheduled_at)"
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS reminders_owner_id_scheduled_at ON reminders (owner_id, scheduled_at)"
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS medicines_active ON medicines (active)"
        )

        # Write changes to disk
        await db.commit()

    @asynccontextmanager
    async def _use_db(self) -> AsyncGenerator[Connection, None]:
        """
        Generate the SQLite client and close it after use.
        """
        async with sqlite_connect(
            database=self._db_path,
            timeout=self._config.timeout_sec,
        ) as client:
            if not self._init_done:
                async with self._init_lock:
                    if not self._init_done:
                        await self._init_db(client)
                        self._init_done = True
            yield client


def _iso(value: datetime) -> str:
    """
    Serialize a datetime as a fixed-width UTC string, so that string comparison matches time comparison.
    """
    return value.astimezone(UTC).isoformat(timespec="microseconds")
