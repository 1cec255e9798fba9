"""Tests for the retailer adapters and their page parsers."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from kbeauty_pipeline.core.enums import PipelineSource, Retailer
from kbeauty_pipeline.core.schema import RawProductData
from kbeauty_pipeline.ingestion.adapters import (
    ADAPTER_REGISTRY,
    OliveYoungAdapter,
    ScrapedDetail,
    ScrapedListing,
    SokoGlamAdapter,
    SourceAdapter,
    build_raw_record,
    get_adapter,
    get_adapter_info,
    list_adapters,
    merge_detail,
    register_adapter,
)
from kbeauty_pipeline.ingestion.adapters import amazon, olive_young, soko_glam, stylekorean, yesstyle
from kbeauty_pipeline.ingestion.fetcher import FetchError
from kbeauty_pipeline.ingestion.markup import absolute_url, parse_price

SOKO_GLAM_RESPONSE = {
    "resources": {
        "results": {
            "products": [
                {
                    "title": "COSRX Advanced Snail 96 Mucin Power Essence",
                    "vendor": "COSRX",
                    "price": "25.00",
                    "url": "/products/cosrx-advanced-snail-96-mucin-power-essence",
                    "available": True,
                    "image": "//sokoglam.com/cdn/shop/files/snail.jpg",
                },
                {
                    "title": "Free Sample Pouch",
                    "vendor": "COSRX",
                    "price": "0.00",
                    "url": "/products/free-sample",
                },
                {
                    "title": "Low pH Good Morning Gel Cleanser",
                    "price": "14.00",
                    "url": "/products/cosrx-low-ph-cleanser",
                    "available": False,
                },
            ]
        }
    }
}

YESSTYLE_HTML = """
<html><body>
<div class="grid">
  <div class="card">
    <a href="/en/cosrx-advanced-snail-96-mucin-power-essence-100ml/info.html/pid.1052493363">
      COSRX - Advanced Snail 96 Mucin Power Essence 100ml
    </a>
    <img src="https://d1flfk77wl2xk4.cloudfront.net/Assets/63/1.jpg">
    <span>US$ 17.40</span>
    <a href="/en/cosrx-advanced-snail-96-mucin-power-essence-100ml/info.html/pid.1052493363">view</a>
  </div>
  <div class="card">
    <a href="/en/free-gift-pouch/info.html/pid.1000000001">Free Gift Pouch</a>
    <img src="https://d1flfk77wl2xk4.cloudfront.net/Assets/63/2.jpg">
    <span>US$ 0.00</span>
  </div>
  <div class="card">
    <a href="/en/round-lab-1025-dokdo-toner-200ml/info.html/pid.1087654321">
      ROUND LAB - 1025 Dokdo Toner 200ml
    </a>
    <img src="https://d1flfk77wl2xk4.cloudfront.net/Assets/63/3.jpg">
    <span>US$ 12.00</span>
    <span>Sold Out</span>
  </div>
</div>
</body></html>
"""

AMAZON_HTML = """
<html><body>
<div data-component-type="s-search-result">
  <h2><a href="/COSRX-Snail-Essence/dp/B00PBX3L7K"><span>COSRX Snail Mucin 96% Power Repairing Essence 3.38 fl.oz</span></a></h2>
  <span class="a-price"><span class="a-price-whole">17.</span><span class="a-price-fraction">99</span></span>
  <img class="s-image" src="https://m.media-amazon.com/images/I/snail.jpg">
</div>
<div data-component-type="s-search-result">
  <span class="puis-label">Sponsored</span>
  <h2><a href="/Other-Essence/dp/B000000001"><span>Some Other Essence</span></a></h2>
  <span class="a-price"><span class="a-price-whole">9.</span><span class="a-price-fraction">99</span></span>
</div>
<div data-component-type="s-search-result">
  <h2><a href="/No-Price/dp/B000000002"><span>Unpriced Listing</span></a></h2>
</div>
</body></html>
"""

STYLEKOREAN_HTML = """
<html><body>
<a href="/shop/search_result.php?keyword=cosrx">Search again $ 1.00</a>
<ul>
  <li>
    <a href="/shop/cosrx-advanced-snail-96-mucin-power-essence-100ml/"><img src="/data/item/snail.jpg"></a>
    <div class="prd_name">COSRX Advanced Snail 96 Mucin Power Essence 100ml</div>
    <span class="brand">COSRX</span>
    <span class="price">$ 15.90</span>
  </li>
</ul>
</body></html>
"""

STYLEKOREAN_JSONLD_HTML = """
<html><head>
<script type="application/ld+json">
{"@context": "https://schema.org", "@type": "Product",
 "name": "Relief Sun: Rice + Probiotics SPF50+",
 "brand": {"@type": "Brand", "name": "Beauty of Joseon"},
 "url": "/shop/boj-relief-sun/",
 "image": ["https://img.stylekorean.com/relief-sun.jpg"],
 "offers": {"@type": "Offer", "price": "14.50", "availability": "https://schema.org/OutOfStock"}}
</script>
</head><body><div id="list">Loading...</div></body></html>
"""

OLIVE_YOUNG_LISTING_HTML = """
<html><body><ul>
<li class="prdt-unit">
  <input type="hidden" name="prdtNo" value="GA210001234">
  <input type="hidden" name="prdtName" value="COSRX Advanced Snail 96 Mucin Power Essence 100ml">
  <div class="unit-thumb"><img src="https://cdn-image.oliveyoung.com/snail.jpg"></div>
  <dl class="brand-info"><dt>COSRX</dt><dd>Advanced Snail</dd></dl>
  <div class="price-info"><strong class="point">US$ 18.90</strong></div>
  <div class="rating-info"><span>4.8</span></div>
</li>
<li class="prdt-unit">
  <input type="hidden" name="prdtNo" value="GA210005678">
  <input type="hidden" name="prdtName" value="Round Lab 1025 Dokdo Toner">
  <dl class="brand-info"><dt>ROUND LAB</dt></dl>
  <div class="rating-info"><span>9.9</span></div>
</li>
<li class="prdt-unit">
  <input type="hidden" name="prdtNo" value="">
  <input type="hidden" name="prdtName" value="Broken Card">
</li>
</ul></body></html>
"""

OLIVE_YOUNG_DETAIL_HTML = """
<html><head>
<title>COSRX Snail Essence | OLIVE YOUNG Global</title>
<meta property="og:title" content="COSRX Advanced Snail 96 Mucin Power Essence 100ml | OLIVE YOUNG Global">
<meta property="og:description" content="Lightweight essence with 96% snail secretion filtrate.">
<meta property="og:image" content="//cdn-image.oliveyoung.com/detail/snail.jpg">
</head><body>
<dl class="brand-info"><dt>COSRX</dt></dl>
<div class="price-info"><strong class="point">US$ 18.90</strong></div>
<div class="review"><span>4.7</span>
<span>1,234 reviews</span></div>
<table>
  <tr><th>Content volume or weight</th><td>100ml</td></tr>
  <tr><th>Ingredients</th><td>Snail Secretion Filtrate, Betaine, Butylene Glycol, 1,2-Hexanediol</td></tr>
</table>
</body></html>
"""


def _fetcher(**methods) -> MagicMock:
    fetcher = MagicMock()
    for name, value in methods.items():
        setattr(fetcher, name, value)
    return fetcher


class TestMarkupHelpers:
    """Tests for shared parsing helpers."""

    def test_parse_price(self) -> None:
        assert parse_price("US$ 25.00") == 25.0
        assert parse_price("$1,299.99") == 1299.99
        assert parse_price("0.00") is None
        assert parse_price("free") is None
        assert parse_price(None) is None

    def test_absolute_url(self) -> None:
        base = "https://sokoglam.com"
        assert absolute_url("/products/a", base) == "https://sokoglam.com/products/a"
        assert absolute_url("//cdn.example.com/a.jpg", base) == "https://cdn.example.com/a.jpg"
        assert absolute_url("https://other.com/a", base) == "https://other.com/a"
        assert absolute_url("", base) is None


class TestSokoGlam:
    """Tests for the Soko Glam search adapter."""

    def test_parse_search_response(self) -> None:
        results = soko_glam.parse_search_response(SOKO_GLAM_RESPONSE, fallback_brand="COSRX")

        assert len(results) == 2
        first = results[0]
        assert first.retailer == Retailer.SOKO_GLAM
        assert first.price_usd == 25.0
        assert first.url == "https://sokoglam.com/products/cosrx-advanced-snail-96-mucin-power-essence"
        assert first.image_url == "https://sokoglam.com/cdn/shop/files/snail.jpg"
        # Missing vendor falls back to the searched brand
        assert results[1].brand == "COSRX"
        assert results[1].in_stock is False

    def test_results_are_capped(self) -> None:
        product = SOKO_GLAM_RESPONSE["resources"]["results"]["products"][0]
        data = {"resources": {"results": {"products": [product] * 8}}}

        assert len(soko_glam.parse_search_response(data)) == soko_glam.MAX_RESULTS

    def test_unexpected_payload(self) -> None:
        assert soko_glam.parse_search_response([]) == []
        assert soko_glam.parse_search_response({"resources": {}}) == []

    @pytest.mark.asyncio
    async def test_search_product(self) -> None:
        fetch_json = AsyncMock(return_value=SOKO_GLAM_RESPONSE)
        adapter = SokoGlamAdapter(_fetcher(fetch_json=fetch_json))

        results = await adapter.search_product("COSRX", "Snail Essence")

        assert len(results) == 2
        url = fetch_json.call_args.args[0]
        assert url.startswith("https://sokoglam.com/search/suggest.json?")
        assert "q=COSRX+Snail+Essence" in url

    @pytest.mark.asyncio
    async def test_fetch_failure_returns_empty(self) -> None:
        fetch_json = AsyncMock(side_effect=FetchError("https://sokoglam.com", "HTTP 503", 503))
        adapter = SokoGlamAdapter(_fetcher(fetch_json=fetch_json))

        assert await adapter.search_product("COSRX", "Snail Essence") == []


class TestYesStyle:
    """Tests for the YesStyle search page parser."""

    def test_parse_search_page(self) -> None:
        results = yesstyle.parse_search_page(YESSTYLE_HTML)

        assert len(results) == 2
        snail = results[0]
        assert snail.product_name == "Cosrx Advanced Snail 96 Mucin Power Essence 100ml"
        assert snail.brand == "COSRX"
        assert snail.price_usd == 17.4
        assert snail.url.endswith("/info.html/pid.1052493363")
        assert snail.url.startswith("https://www.yesstyle.com/en/")
        assert snail.image_url.startswith("https://d1flfk77wl2xk4.cloudfront.net/")
        assert snail.in_stock is True

        toner = results[1]
        assert toner.brand == "ROUND LAB"
        assert toner.in_stock is False

    def test_name_from_slug(self) -> None:
        assert yesstyle.name_from_slug("/en/round-lab-dokdo-toner/info.html/pid.1") == "Round Lab Dokdo Toner"
        assert yesstyle.name_from_slug("/list.html") == ""

    @pytest.mark.asyncio
    async def test_search_renders_page(self) -> None:
        render = AsyncMock(return_value=YESSTYLE_HTML)
        adapter = yesstyle.YesStyleAdapter(_fetcher(render=render))

        results = await adapter.search_product("COSRX", "Snail Essence")

        assert len(results) == 2
        assert render.call_args.kwargs["wait_for"] == yesstyle.PRODUCT_LINK_SELECTOR


class TestAmazon:
    """Tests for the Amazon search page parser."""

    def test_parse_search_page(self) -> None:
        results = amazon.parse_search_page(AMAZON_HTML, fallback_brand="COSRX")

        assert len(results) == 1
        result = results[0]
        assert result.product_name.startswith("COSRX Snail Mucin 96%")
        assert result.price_usd == 17.99
        assert result.brand == "COSRX"
        assert result.url == "https://www.amazon.com/COSRX-Snail-Essence/dp/B00PBX3L7K"
        assert result.image_url == "https://m.media-amazon.com/images/I/snail.jpg"

    def test_captcha_page(self) -> None:
        html = "<html><body><form action='/errors/validateCaptcha'>captcha</form></body></html>"
        assert amazon.parse_search_page(html) == []


class TestStyleKorean:
    """Tests for the StyleKorean search page parser."""

    def test_product_links(self) -> None:
        results = stylekorean.parse_search_page(STYLEKOREAN_HTML)

        assert len(results) == 1
        result = results[0]
        assert result.product_name == "COSRX Advanced Snail 96 Mucin Power Essence 100ml"
        assert result.brand == "COSRX"
        assert result.price_usd == 15.9
        assert result.url == "https://www.stylekorean.com/shop/cosrx-advanced-snail-96-mucin-power-essence-100ml/"
        assert result.image_url == "https://www.stylekorean.com/data/item/snail.jpg"

    def test_jsonld_fallback(self) -> None:
        results = stylekorean.parse_search_page(STYLEKOREAN_JSONLD_HTML)

        assert len(results) == 1
        result = results[0]
        assert result.brand == "Beauty of Joseon"
        assert result.price_usd == 14.5
        assert result.url == "https://www.stylekorean.com/shop/boj-relief-sun/"
        assert result.image_url == "https://img.stylekorean.com/relief-sun.jpg"
        assert result.in_stock is False

    def test_empty_page(self) -> None:
        assert stylekorean.parse_search_page("<html><body>Loading...</body></html>") == []


class TestOliveYoung:
    """Tests for the Olive Young catalog adapter."""

    def test_parse_listing_page(self) -> None:
        listings = olive_young.parse_listing_page(OLIVE_YOUNG_LISTING_HTML)

        assert [l.source_id for l in listings] == ["GA210001234", "GA210005678"]
        first = listings[0]
        assert first.brand_en == "COSRX"
        assert first.price_usd == 18.9
        assert first.rating_avg == 4.8
        assert first.image_url == "https://cdn-image.oliveyoung.com/snail.jpg"
        assert first.source_url == "https://global.oliveyoung.com/product/detail?prdtNo=GA210001234"
        # Out-of-range rating is dropped
        assert listings[1].rating_avg is None
        assert listings[1].price_usd is None

    def test_parse_detail_page(self) -> None:
        detail = olive_young.parse_detail_page(OLIVE_YOUNG_DETAIL_HTML, "GA210001234", "Skincare")

        assert detail.name_en == "COSRX Advanced Snail 96 Mucin Power Essence 100ml"
        assert detail.brand_en == "COSRX"
        assert detail.category_raw == "Skincare"
        assert detail.price_usd == 18.9
        assert detail.volume_display == "100ml"
        assert detail.ingredients_raw.startswith("Snail Secretion Filtrate, Betaine")
        assert detail.description_raw.startswith("Lightweight essence")
        assert detail.image_url == "https://cdn-image.oliveyoung.com/detail/snail.jpg"
        assert detail.rating_avg == 4.7
        assert detail.review_count == 1234

    def test_detail_title_falls_back_to_jsonld(self) -> None:
        html = (
            '<html><head><script type="application/ld+json">'
            + json.dumps({"@type": "Product", "name": "Dokdo Toner"})
            + "</script></head><body></body></html>"
        )

        detail = olive_young.parse_detail_page(html, "GA1")

        assert detail.name_en == "Dokdo Toner"
        assert detail.ingredients_raw is None

    def test_detail_without_name(self) -> None:
        assert olive_young.parse_detail_page("<html><body></body></html>", "GA1") is None

    def test_ingredients_from_page_text(self) -> None:
        html = (
            "<html><head><title>Toner | OLIVE YOUNG Global</title></head><body>"
            "<p>Water, Butylene Glycol, Glycerin, Niacinamide, Panthenol, Allantoin</p>"
            "</body></html>"
        )

        detail = olive_young.parse_detail_page(html, "GA1")

        assert detail.name_en == "Toner"
        assert detail.ingredients_raw.startswith("Water, Butylene Glycol")

    def test_parse_more_counter(self) -> None:
        assert olive_young.parse_more_counter("MORE (3/12)") == (3, 12)
        assert olive_young.parse_more_counter("MORE") is None
        assert olive_young.parse_more_counter(None) is None

    def test_categories(self) -> None:
        categories = OliveYoungAdapter.categories()

        assert len(categories) == 6
        assert {c.catalog_category for c in categories} >= {"moisturizer", "sunscreen", "mask"}

    @pytest.mark.asyncio
    async def test_list_category_expands_listing(self) -> None:
        render = AsyncMock(return_value=OLIVE_YOUNG_LISTING_HTML)
        adapter = OliveYoungAdapter(_fetcher(render=render))

        listings = await adapter.list_category("1000000009", page=3)

        assert len(listings) == 2
        assert render.call_args.args[0].endswith("ctgrNo=1000000009")
        assert callable(render.call_args.kwargs["page_action"])

    @pytest.mark.asyncio
    async def test_expand_listing_stops_at_counter(self) -> None:
        button = MagicMock()
        button.text_content = AsyncMock(side_effect=["MORE (1/3)", "MORE (2/3)", "MORE (3/3)"])
        button.click = AsyncMock()
        page = MagicMock()
        page.query_selector = AsyncMock(return_value=button)
        page.wait_for_timeout = AsyncMock()

        await olive_young.expand_listing(max_clicks=10)(page)

        assert button.click.await_count == 2

    @pytest.mark.asyncio
    async def test_fetch_detail_failure(self) -> None:
        render = AsyncMock(side_effect=FetchError("https://global.oliveyoung.com", "Timeout"))
        adapter = OliveYoungAdapter(_fetcher(render=render))

        assert await adapter.fetch_detail("GA1") is None


class TestRawRecords:
    """Tests for merging listings and details into raw records."""

    def test_build_raw_record_prefers_detail(self) -> None:
        listing = ScrapedListing(
            source_id="GA1",
            source_url="https://global.oliveyoung.com/product/detail?prdtNo=GA1",
            name_en="Snail Essence",
            brand_en="COSRX",
            price_usd=18.9,
            rating_avg=4.8,
        )
        detail = ScrapedDetail(
            source_id="GA1",
            source_url=listing.source_url,
            name_en="COSRX Advanced Snail 96 Mucin Power Essence",
            price_usd=None,
            ingredients_raw="Snail Secretion Filtrate, Betaine",
            rating_avg=4.7,
        )

        raw = build_raw_record(PipelineSource.OLIVE_YOUNG, listing, detail, "Skincare")

        assert raw.name_en == "COSRX Advanced Snail 96 Mucin Power Essence"
        assert raw.brand_en == "COSRX"
        assert raw.price_usd == 18.9
        assert raw.rating_avg == 4.7
        assert raw.category_raw == "Skincare"
        assert raw.ingredients_raw == "Snail Secretion Filtrate, Betaine"

    def test_build_raw_record_without_detail(self) -> None:
        listing = ScrapedListing(source_id="GA1", source_url="https://x", name_en="Toner")

        raw = build_raw_record(PipelineSource.OLIVE_YOUNG, listing, None, "Toners")

        assert raw.ingredients_raw is None
        assert raw.description_raw == ""

    def test_merge_detail(self) -> None:
        raw = RawProductData(
            source=PipelineSource.OLIVE_YOUNG,
            source_url="https://x",
            source_id="GA1",
            name_en="Toner",
            brand_en="Round Lab",
            price_usd=15.0,
        )
        detail = ScrapedDetail(
            source_id="GA1",
            source_url="https://x",
            name_en="",
            ingredients_raw="Water, Glycerin",
            volume_display="200ml",
        )

        merged = merge_detail(raw, detail)

        assert merged.name_en == "Toner"
        assert merged.price_usd == 15.0
        assert merged.ingredients_raw == "Water, Glycerin"
        assert merged.volume_display == "200ml"


class TestAdapterRegistry:
    """Tests for the adapter registry functions."""

    def test_list_adapters(self) -> None:
        assert set(list_adapters()) >= {"olive_young", "soko_glam", "yesstyle", "amazon", "stylekorean"}

    def test_get_adapter(self) -> None:
        adapter = get_adapter("soko_glam", MagicMock(), {"delay_seconds": 1.0})

        assert isinstance(adapter, SokoGlamAdapter)
        assert adapter.config["delay_seconds"] == 1.0
        assert get_adapter("unknown", MagicMock()) is None

    def test_get_adapter_info(self) -> None:
        info = get_adapter_info("olive_young")

        assert info["catalog"] is True
        assert info["search"] is False
        assert get_adapter_info("unknown") is None

    def test_register_adapter(self) -> None:
        class CustomAdapter(SourceAdapter):
            ADAPTER_NAME = "custom"

        register_adapter("custom_test", CustomAdapter)
        try:
            assert "custom_test" in list_adapters()
        finally:
            ADAPTER_REGISTRY.pop("custom_test", None)

    def test_register_rejects_non_adapters(self) -> None:
        with pytest.raises(TypeError):
            register_adapter("bad", dict)
