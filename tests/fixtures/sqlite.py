import dbhelper
import pytest
from dbhelper.options import iterdict_data_loader

SCHEMA = [
    """
    CREATE TABLE t_user (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT,
        age INTEGER
    )
    """,
    """
    CREATE TABLE t_account (
        id INTEGER PRIMARY KEY,
        owner TEXT NOT NULL,
        balance INTEGER,
        version INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE t_membership (
        group_id INTEGER NOT NULL,
        user_id INTEGER NOT NULL,
        role TEXT,
        PRIMARY KEY (group_id, user_id)
    )
    """,
    """
    CREATE TABLE t_event (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        happened_on DATE,
        created_at DATETIME,
        active BOOLEAN,
        amount NUMERIC
    )
    """,
    'CREATE TABLE t_note (body TEXT)',
    """
    CREATE TABLE t_person (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT,
        age INTEGER
    )
    """,
]


def create_schema(db):
    for ddl in SCHEMA:
        db.cn.execute(ddl)


@pytest.fixture
def sqlite_db():
    """In-memory SQLite DBHelper with the test schema and no rows."""
    db = dbhelper.connect(drivername='sqlite', database=':memory:')
    create_schema(db)
    yield db
    db.close()


@pytest.fixture
def sqlite_iterdict_db():
    """Same as sqlite_db but row sets come back as lists of dicts."""
    db = dbhelper.connect({'drivername': 'sqlite', 'database': ':memory:'},
                          data_loader=iterdict_data_loader)
    create_schema(db)
    yield db
    db.close()


@pytest.fixture
def sqlite_file_db(tmp_path):
    """File-based SQLite DBHelper for tests that need a second connection."""
    path = str(tmp_path / 'dbhelper.db')
    db = dbhelper.connect(drivername='sqlite', database=path)
    create_schema(db)
    yield db, path
    db.close()
