"""
Entity declarations shared by unit and integration tests.

Usage:
    from tests.fixtures.entities import User

    def test_insert(sqlite_db):
        sqlite_db.insert(User(name='A'))
"""
import datetime
import decimal
from dataclasses import dataclass, field

from dbhelper import column, table


@table('t_user')
@dataclass
class User:
    id: int | None = column(key=True, auto_increment=True)
    name: str | None = column()
    age: int | None = column()


@table('t_account')
@dataclass
class Account:
    id: int | None = column(key=True)
    owner: str | None = column(nullable=False)
    balance: int | None = column()
    version: int | None = column(nullable=False)


@table('t_membership')
@dataclass
class Membership:
    group_id: int | None = column(key=True)
    user_id: int | None = column(key=True)
    role: str | None = column()


@table('t_event')
@dataclass
class Event:
    id: int | None = column(key=True, auto_increment=True)
    title: str | None = column(nullable=False)
    happened_on: datetime.date | None = column()
    created_at: datetime.datetime | None = column()
    active: bool | None = column()
    amount: decimal.Decimal | None = column()
    tags: list = field(default_factory=list)


@table('t_note')
@dataclass
class Note:
    body: str | None = column()


@table('t_person')
@dataclass
class Person:
    person_id: int | None = column('id', key=True, auto_increment=True)
    full_name: str | None = column('name')
    age: int | None = column()
