"""
Destination types used across the tests, modelled on the chinook sample database.
"""
import datetime
import decimal
import enum
from dataclasses import dataclass, field
from typing import ClassVar


@dataclass
class Customer:
    customer_id: int | None = None
    first_name: str | None = None
    last_name: str | None = None
    company: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    zip: str | None = None
    email: str | None = None
    support_rep_id: int | None = None
    full_name: str | None = None


@dataclass
class Invoice:
    invoice_id: int | None = None
    customer_id: int | None = None
    invoice_date: datetime.datetime | None = None
    billing_city: str | None = None
    total: decimal.Decimal | None = None
    customer: Customer | None = None


class MediaKind(enum.IntEnum):
    MPEG = 1
    PROTECTED_AAC = 2
    PROTECTED_MPEG4 = 3
    PURCHASED_AAC = 4
    AAC = 5


class Genre(enum.Enum):
    ROCK = 'Rock'
    JAZZ = 'Jazz'
    METAL = 'Metal'


@dataclass
class Track:
    track_id: int | None = None
    name: str | None = None
    media_type_id: MediaKind | None = None
    genre: Genre | None = None
    milliseconds: int | None = None
    unit_price: decimal.Decimal | None = None
    tags: list[str] = field(default_factory=list)


class Artist:
    """Plain class: annotated public attributes, no-argument constructor."""
    registry: ClassVar[dict] = {}

    artist_id: int
    name: str
    _secret: str

    def __init__(self):
        self.artist_id = 0
        self.name = ''
        self._secret = 'hidden'


class Album:
    """Plain class exposing a property with a setter."""
    album_id: int | None = None

    def __init__(self):
        self._title = None

    @property
    def title(self) -> str | None:
        return self._title

    @title.setter
    def title(self, value: str | None) -> None:
        self._title = value.strip() if value else value

    @property
    def display(self) -> str:
        return f'{self.album_id}: {self._title}'
