import pytest
import httpx
from bs4 import BeautifulSoup
from unittest.mock import MagicMock

from core.exceptions import FetchError, ImageRehostError, InvalidCategoryError
from pipeline.extractors.catalog_extractor import CatalogExtractor, parse_item_page
from pipeline.extractors.fields import extract_entities_with_roles, extractor_for
from pipeline.extractors.images import ImageRehoster

CATALOG_URL = "https://myfigurecollection.net"


def _rehoster(http_client, s3):
    return ImageRehoster(http_client, s3, bucket="figure-images", region="us-east-1", public_base_url="")


def test_parse_item_page_fields(make_item_page):
    html = make_item_page(
        1001,
        title="Saber 1/7 Dress Ver.",
        versions=["Dress Ver."],
        companies=[(300, "Good Smile Company", "Manufacturer"), (301, "Max Factory", "Distributor")],
    )

    record, image_src = parse_item_page(html, 1001)

    assert record.external_id == 1001
    assert record.title == "Saber 1/7 Dress Ver."
    assert record.category == "Prepainted"
    assert [(e.external_id, e.name) for e in record.origins] == [(100, "Vocaloid")]
    assert [(e.external_id, e.name) for e in record.characters] == [(200, "Hatsune Miku")]
    assert [(e.external_id, e.role) for e in record.companies] == [(300, "Manufacturer"), (301, "Distributor")]
    assert record.version == ["Dress Ver."]
    assert record.scale == "1/7"
    assert record.height == 250
    assert record.width == 0
    assert image_src == "/upload/items/1/1001-a1b2c3.jpg"


def test_parse_item_page_releases(make_item_page):
    html = make_item_page(
        1002,
        releases=[
            ("06/20/2020", "Standard", "14,800 JPY", "4580416940993"),
            ("2021", "Reissue", "16,000 JPY", "4580416941234"),
        ],
    )

    record, _ = parse_item_page(html, 1002)

    assert len(record.releases) == 2
    first, second = record.releases
    assert first.date == "06/20/2020"
    assert first.type == "Standard"
    assert first.price == 14800.0
    assert first.currency == "JPY"
    assert first.barcode == "4580416940993"
    assert second.date == "2021"
    assert second.type == "Reissue"
    assert second.price == 16000.0


def test_parse_item_page_rejects_unknown_category(make_item_page):
    with pytest.raises(InvalidCategoryError):
        parse_item_page(make_item_page(1003, category="Spaceships"), 1003)


def test_parse_item_page_rejects_missing_category():
    html = '<html><body><h1 class="title">No category</h1></body></html>'
    with pytest.raises(InvalidCategoryError):
        parse_item_page(html, 1004)


def test_role_marker_applies_to_preceding_entries():
    html = (
        '<div class="data-field"><div class="data-label">Artists</div><div class="data-value">'
        '<div class="item-entries">'
        '<a class="item-entry" href="/entry/1"><span switch="">A</span></a>'
        '<a class="item-entry" href="/entry/2"><span switch="">B</span></a>'
        '<small class="light"><em>Sculptor</em></small>'
        '<a class="item-entry" href="/entry/3"><span switch="">C</span></a>'
        '<small class="light"><em>Color</em></small>'
        "</div></div></div>"
    )
    field = BeautifulSoup(html, "html.parser").select_one(".data-field")

    entities = extract_entities_with_roles(field)

    assert [(e.external_id, e.role) for e in entities] == [(1, "Sculptor"), (2, "Sculptor"), (3, "Color")]


def test_entry_without_id_link_gets_zero_id():
    html = (
        '<div class="data-field"><div class="data-label">Origin</div><div class="data-value">'
        '<a class="item-entry" href="/search?q=x"><span switch="">Original</span></a>'
        "</div></div>"
    )
    field = BeautifulSoup(html, "html.parser").select_one(".data-field")

    result = extractor_for("Origin")(field)

    assert result["origins"][0].external_id == 0


def test_unknown_labels_have_no_extractor():
    assert extractor_for("Tags") is None
    assert extractor_for("Releases (4)") is not None
    assert extractor_for("Company") is not None


@pytest.mark.asyncio
async def test_fetch_and_parse_rehosts_image(catalog_site, http_client, fake_s3):
    catalog_site.add_item(2001)
    extractor = CatalogExtractor(http_client, _rehoster(http_client, fake_s3), base_url=CATALOG_URL)

    record = await extractor.fetch_and_parse(2001)

    assert record.image == "https://figure-images.s3.us-east-1.amazonaws.com/2001-a1b2c3.jpg"
    fake_s3.put_object.assert_called_once()
    kwargs = fake_s3.put_object.call_args.kwargs
    assert kwargs["Bucket"] == "figure-images"
    assert kwargs["Key"] == "2001-a1b2c3.jpg"
    assert kwargs["ContentType"] == "image/jpeg"

    page_request = next(r for r in catalog_site.requests if r.url.path == "/item/2001")
    assert page_request.headers["Accept-Encoding"] == "gzip, deflate"


@pytest.mark.asyncio
async def test_fetch_and_parse_http_error_is_fetch_error(catalog_site, http_client, fake_s3):
    extractor = CatalogExtractor(http_client, _rehoster(http_client, fake_s3), base_url=CATALOG_URL)

    with pytest.raises(FetchError) as exc_info:
        await extractor.fetch_and_parse(404404)

    assert exc_info.value.context["status_code"] == 404


@pytest.mark.asyncio
async def test_rehost_rejects_non_image_content():
    async def handler(request):
        return httpx.Response(200, text="<html></html>", headers={"content-type": "text/html"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        rehoster = _rehoster(client, MagicMock())
        with pytest.raises(ImageRehostError):
            await rehoster.rehost("https://static.example.com/upload/a.jpg")


@pytest.mark.asyncio
async def test_rehost_rejected_upload(http_client):
    s3 = MagicMock()
    s3.put_object.return_value = {"ResponseMetadata": {"HTTPStatusCode": 500}}
    rehoster = _rehoster(http_client, s3)

    with pytest.raises(ImageRehostError):
        await rehoster.rehost(f"{CATALOG_URL}/upload/items/1/9-x.jpg")


def test_public_url_prefers_configured_base():
    rehoster = ImageRehoster(MagicMock(), MagicMock(), bucket="b", region="r", public_base_url="https://cdn.example.com/")
    assert rehoster.public_url("1.jpg") == "https://cdn.example.com/1.jpg"
