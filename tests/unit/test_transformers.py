import uuid

import pytest

from models.base import EntryCategory
from pipeline.transformers.assembler import (
    FALLBACK_DATE,
    RELEASE_ID_NAMESPACE,
    assemble,
    latest_date,
    latest_release,
    normalize_date_string,
    release_id,
)
from pipeline.transformers.money import format_price, parse_money_to_minor_units, to_minor_units
from schemas.assembled import AssembledRelease
from schemas.scraped import ScrapedEntity, ScrapedRecord, ScrapedRelease


def _record(external_id, **kwargs):
    values = {"external_id": external_id, "title": f"Item {external_id}", "category": "Prepainted"}
    values.update(kwargs)
    return ScrapedRecord(**values)


@pytest.mark.parametrize("raw, expected", [
    ("2006", "2006-01-01"),
    ("9/2010", "2010-09-01"),
    ("12/2019", "2019-12-01"),
    ("06/20/2020", "2020-06-20"),
    ("2021-03-05", "2021-03-05"),
    ("  2015 ", "2015-01-01"),
    ("someday", FALLBACK_DATE),
])
def test_normalize_date_string(raw, expected):
    assert normalize_date_string(raw) == expected


def test_release_id_is_deterministic():
    first = release_id(1001, "2020-06-20", "Standard", 14800.0, "JPY", "4580416940993")
    second = release_id(1001, "2020-06-20", "Standard", 14800, "JPY", "4580416940993")

    assert first == second
    assert first == str(uuid.uuid5(RELEASE_ID_NAMESPACE, "1001-2020-06-20-Standard-14800-JPY-4580416940993"))
    assert release_id(1001, "2020-06-20", "Standard", 14800.0, "JPY", "") != first


def test_latest_release_picks_greatest_date():
    releases = [
        AssembledRelease(id="a", item_external_id=1, date="2020-06-20", type="", price=0, price_currency="JPY", barcode=""),
        AssembledRelease(id="b", item_external_id=1, date="2021-01-01", type="", price=0, price_currency="JPY", barcode=""),
        AssembledRelease(id="c", item_external_id=1, date="2019-01-01", type="", price=0, price_currency="JPY", barcode=""),
    ]

    info = latest_release(releases)

    assert info.release_id == "b"
    assert info.date == "2021-01-01"


def test_latest_release_without_releases():
    info = latest_release([])
    assert info.release_id is None
    assert info.date is None


def test_latest_date_treats_none_as_oldest():
    assert latest_date([None, "2020-01-01", None]) == "2020-01-01"
    assert latest_date([None, None]) is None


def test_assemble_deduplicates_entities():
    shared_company = ScrapedEntity(external_id=300, name="Good Smile Company", role="Manufacturer")
    records = [
        _record(
            1,
            companies=[shared_company],
            characters=[ScrapedEntity(external_id=200, name="Miku", role="ignored")],
            releases=[ScrapedRelease(date="2020", type="Standard", price=12800, currency="JPY", barcode="111")],
        ),
        _record(
            2,
            companies=[shared_company],
            releases=[
                ScrapedRelease(date="2020", type="Standard", price=12800, currency="JPY", barcode="222"),
                ScrapedRelease(date="6/2022", type="Reissue", price=13800, currency="JPY", barcode="222"),
            ],
        ),
        _record(1, title="duplicate of 1"),
    ]

    assembled = assemble(records)

    assert [item.external_id for item in assembled.items] == [1, 2]
    assert assembled.items[0].title == "Item 1"
    assert sorted((e.external_id, e.category) for e in assembled.entries) == [
        (200, EntryCategory.CHARACTERS),
        (300, EntryCategory.COMPANIES),
    ]
    links = {(link.entry_external_id, link.item_external_id): link.role for link in assembled.entry_to_items}
    assert links == {(300, 1): "Manufacturer", (200, 1): "", (300, 2): "Manufacturer"}
    assert len(assembled.item_releases) == 3
    assert assembled.latest_release_by_external_id[2].date == "2022-06-01"
    assert assembled.latest_release_by_external_id[1].date == "2020-01-01"


def test_assemble_converts_release_price_to_minor_units():
    assembled = assemble([
        _record(5, releases=[ScrapedRelease(date="2020", price=59.99, currency="USD")]),
    ])
    assert assembled.item_releases[0].price == 5999
    assert assembled.item_releases[0].price_currency == "USD"


def test_assemble_skips_entries_without_id():
    assembled = assemble([_record(7, origins=[ScrapedEntity(external_id=0, name="Original")])])
    assert assembled.entries == []
    assert assembled.entry_to_items == []


def test_assemble_twice_yields_same_release_ids():
    records = [_record(9, releases=[ScrapedRelease(date="2019", type="Limited", price=9800, barcode="x-1")])]
    assert [r.id for r in assemble(records).item_releases] == [r.id for r in assemble(records).item_releases]


@pytest.mark.parametrize("amount, currency, expected", [
    (14800, "JPY", 14800),
    (12.5, "USD", 1250),
    (59.99, "EUR", 5999),
])
def test_to_minor_units(amount, currency, expected):
    assert to_minor_units(amount, currency) == expected


@pytest.mark.parametrize("text, expected", [
    ("1,234.50", 123450),
    ("$12", 1200),
    ("", 0),
    ("12.999", 1299),
])
def test_parse_money_to_minor_units(text, expected):
    assert parse_money_to_minor_units(text) == expected


def test_format_price():
    assert format_price(12800.0) == "12800"
    assert format_price(12.5) == "12.5"
