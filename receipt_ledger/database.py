"""
Receipt Ledger - Master Database

PURPOSE: Schema and loading of the immutable base master lists
SCOPE: SQLite schema setup, seeding, and startup loading into MasterData
DEPENDENCIES: aiosqlite, models.py
"""

import logging
from typing import Iterable, List, Tuple

import aiosqlite

from .models import DatasetKind, MasterData, MasterEntry
from .overlay import sort_entries

logger = logging.getLogger(__name__)

# kind -> (table, id column, name column)
_TABLES = {
    DatasetKind.CATEGORY: ('category_list', 'id', 'name'),
    DatasetKind.GROUP: ('group_list', 'id', 'name'),
    DatasetKind.USER: ('user_list', 'id', 'name'),
    DatasetKind.PAYMENT_TYPE: ('payment_type', 'pay_id', 'pay_kind'),
}


class MasterDataRepository:
    """Reads the base master lists that the overlay treats as immutable."""

    def __init__(self, db_file: str):
        self.db_file = db_file

    async def initialize_database(self) -> None:
        """Create the master tables if they do not exist yet."""
        async with aiosqlite.connect(self.db_file) as conn:
            for table, id_column, name_column in _TABLES.values():
                extra = ', type_id TEXT' if table == 'payment_type' else ''
                await conn.execute(f'''
                    CREATE TABLE IF NOT EXISTS {table} (
                        {id_column} INTEGER PRIMARY KEY,
                        {name_column} TEXT UNIQUE NOT NULL{extra}
                    )
                ''')
            await conn.execute('''
                CREATE TABLE IF NOT EXISTS type_list (
                    id TEXT PRIMARY KEY,
                    type_name TEXT NOT NULL
                )
            ''')
            await conn.commit()
        logger.info(f"Master database ready: {self.db_file}")

    async def insert_entries(self, kind: DatasetKind, entries: Iterable[MasterEntry]) -> int:
        """Seed a master table. Used by the sync process and by tests."""
        table, id_column, name_column = _TABLES[kind]
        count = 0
        async with aiosqlite.connect(self.db_file) as conn:
            for entry in entries:
                if kind == DatasetKind.PAYMENT_TYPE:
                    await conn.execute(
                        f'INSERT OR REPLACE INTO {table} ({id_column}, {name_column}, type_id) VALUES (?, ?, ?)',
                        (entry.id, entry.name, entry.type_id)
                    )
                else:
                    await conn.execute(
                        f'INSERT OR REPLACE INTO {table} ({id_column}, {name_column}) VALUES (?, ?)',
                        (entry.id, entry.name)
                    )
                count += 1
            await conn.commit()
        return count

    async def insert_type_list(self, rows: Iterable[Tuple[str, str]]) -> None:
        async with aiosqlite.connect(self.db_file) as conn:
            await conn.executemany('INSERT OR REPLACE INTO type_list (id, type_name) VALUES (?, ?)', list(rows))
            await conn.commit()

    async def load_master_data(self) -> MasterData:
        """Load every base list, sorted Japanese-first."""
        async with aiosqlite.connect(self.db_file) as conn:
            lists = {}
            for kind in DatasetKind:
                lists[kind] = tuple(sort_entries(await self._load_entries(conn, kind)))
                logger.info(f"-> Loaded {len(lists[kind])} {kind.value} entries")

            cursor = await conn.execute('SELECT id, type_name FROM type_list ORDER BY id')
            type_list = tuple((str(row[0]), str(row[1])) for row in await cursor.fetchall())

        return MasterData(
            categories=lists[DatasetKind.CATEGORY],
            groups=lists[DatasetKind.GROUP],
            users=lists[DatasetKind.USER],
            payment_types=lists[DatasetKind.PAYMENT_TYPE],
            type_list=type_list,
        )

    async def _load_entries(self, conn: aiosqlite.Connection, kind: DatasetKind) -> List[MasterEntry]:
        table, id_column, name_column = _TABLES[kind]
        if kind == DatasetKind.PAYMENT_TYPE:
            cursor = await conn.execute(f'SELECT {id_column}, {name_column}, type_id FROM {table}')
            return [
                MasterEntry(id=int(row[0]), name=str(row[1]).strip(), type_id=row[2])
                for row in await cursor.fetchall()
            ]
        cursor = await conn.execute(f'SELECT {id_column}, {name_column} FROM {table}')
        return [MasterEntry(id=int(row[0]), name=str(row[1]).strip()) for row in await cursor.fetchall()]
