"""Tests for detail page field extraction."""

from bs4 import BeautifulSoup

from oilscrape.config import SECTION_LABELS
from oilscrape.extractor import (
    DetailDocument,
    extract_description,
    extract_detail,
    extract_section,
    find_section_label,
    run_strategies,
)

URL = "https://www.doterra.com/TW/zh_TW/p/lavender-oil"


def soup_of(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


class TestLavenderPage:
    """Full extraction of a single oil page."""

    def test_identity_fields(self, lavender_html):
        """Name, English name, Latin name and image come from their own elements."""
        raw = extract_detail(lavender_html, URL)

        assert raw.url == URL
        assert raw.name == "薰衣草精油"
        assert raw.english_name == "Lavender"
        assert raw.scientific_name == "Lavandula angustifolia"
        assert raw.image_url == "https://media.doterra.com/tw/images/product/lavender-15ml.png"

    def test_left_column_values(self, lavender_html):
        """Short left-column sections are read from the adjacent element."""
        raw = extract_detail(lavender_html, URL)

        assert raw.extraction_method == "蒸氣蒸餾法"
        assert raw.plant_part == "花"
        assert raw.aroma_description == "花香、清新、草本"

    def test_list_section_after_decorative_element(self, lavender_html):
        """A list behind a decorative element is still found."""
        raw = extract_detail(lavender_html, URL)

        assert raw.main_benefits == ["舒緩偶發性皮膚不適", "促進安穩睡眠", "減輕緊張情緒"]
        assert raw.sources["main_benefits"] == "section"

    def test_paragraph_section_after_empty_container(self, lavender_html):
        """An empty container between label and paragraph is skipped."""
        raw = extract_detail(lavender_html, URL)

        assert raw.usage_instructions.startswith("擴香：在擴香儀中加入三至四滴。")
        assert "局部使用" in raw.usage_instructions

    def test_unstructured_section_uses_text_nodes(self, lavender_html):
        """Loose text under a label is collected line by line."""
        raw = extract_detail(lavender_html, URL)

        assert raw.cautions == "可能造成皮膚敏感。\n請置於孩童無法取得處。"

    def test_description_from_itemprop(self, lavender_html):
        """The itemprop description wins over the section walk."""
        raw = extract_detail(lavender_html, URL)

        assert raw.description == "薰衣草精油自古以來備受珍視，具有舒緩與平衡的特性。"
        assert raw.sources["description"] == "itemprop_description"

    def test_commercial_fields_are_raw(self, lavender_html):
        """Prices, points and code are returned unparsed."""
        raw = extract_detail(lavender_html, URL)

        assert raw.product_code == "30010001"
        assert raw.retail_price == "建議售價：NT$1,460"
        assert raw.member_price == "會員價：NT$1,095"
        assert raw.pv_points == "PV：36.5"
        assert raw.volume == "15ml"

    def test_missing_fields_stay_none(self, lavender_html):
        """Sections absent from the page are None with no source."""
        raw = extract_detail(lavender_html, URL)

        assert raw.product_introduction is None
        assert raw.main_ingredients is None
        assert "main_ingredients" not in raw.sources


class TestSectionWalking:
    """Label location and sibling walking across template variants."""

    def test_exact_label_beats_substring(self):
        """An exact heading is preferred to one that only contains the label."""
        soup = soup_of("<h2>產品功效說明</h2><p>A</p><h2>主要功效</h2><p>B</p>")

        label = find_section_label(soup, SECTION_LABELS["main_benefits"])

        assert label.get_text() == "主要功效"

    def test_usage_heading_is_not_a_description(self):
        """A "使用說明" heading does not match the generic description label."""
        soup = soup_of("<h2>使用說明</h2><p>每次使用一至兩滴。</p>")

        assert find_section_label(soup, SECTION_LABELS["description"]) is None

    def test_bare_generic_label_still_matches_exactly(self):
        """A heading that is exactly "說明" is still the description."""
        soup = soup_of("<h2>使用說明</h2><p>A</p><h3>說明：</h3><p>B</p>")

        content = extract_section(soup, SECTION_LABELS["description"])

        assert content.value == "B"

    def test_substring_label_with_colon(self):
        """A trailing colon does not stop a label from matching."""
        soup = soup_of("<h3>主要功效：</h3><ul><li>a</li></ul>")

        content = extract_section(soup, SECTION_LABELS["main_benefits"])

        assert content.items == ["a"]

    def test_label_wrapped_in_its_own_container(self):
        """Heading inside a title wrapper: walk the wrapper's siblings."""
        html = """
        <div class="section">
          <div class="section-title"><h3>使用方法</h3></div>
          <div class="section-body"><p>每次使用一至兩滴。</p></div>
        </div>
        """
        content = extract_section(soup_of(html), SECTION_LABELS["usage_instructions"])

        assert content.text == "每次使用一至兩滴。"

    def test_container_with_list_yields_items(self):
        """A wrapper holding only a list yields its items."""
        html = "<h2>主要功效</h2><div class='benefits'><ul><li>一</li><li>二</li></ul></div>"

        content = extract_section(soup_of(html), SECTION_LABELS["main_benefits"])

        assert content.items == ["一", "二"]

    def test_walk_stops_at_next_label(self):
        """Content belonging to the next section is not borrowed."""
        html = "<h2>主要功效</h2><h2>使用方法</h2><p>不是功效</p>"

        content = extract_section(soup_of(html), SECTION_LABELS["main_benefits"])

        assert content is None

    def test_left_column_only_looks_at_adjacent_elements(self):
        """The left column gives up after a couple of siblings."""
        html = """
        <div class="col-sm-4">
          <h4>萃取部位</h4>
          <img src="x.png"><span></span><span></span><span></span>
          <p>葉</p>
        </div>
        """
        content = extract_section(soup_of(html), SECTION_LABELS["plant_part"])

        assert content is None

    def test_right_column_skips_several_decorative_elements(self):
        """The right column skips dividers, images and spacers."""
        html = """
        <div class="col-sm-8">
          <h2>主要成分</h2>
          <hr><img src="divider.png"><div class="spacer"></div><br>
          <p>芳樟醇、乙酸芳樟酯</p>
        </div>
        """
        content = extract_section(soup_of(html), SECTION_LABELS["main_ingredients"])

        assert content.text == "芳樟醇、乙酸芳樟酯"

    def test_pseudo_heading_in_bold(self):
        """Bold text acts as a label when no heading matches."""
        html = "<div><strong>注意事項</strong><p>僅供外用。</p></div>"

        content = extract_section(soup_of(html), SECTION_LABELS["cautions"])

        assert content.text == "僅供外用。"

    def test_missing_label(self):
        """No label means no section."""
        assert extract_section(soup_of("<p>nothing</p>"), SECTION_LABELS["cautions"]) is None


class TestDescription:
    """Description lookup and its fallbacks."""

    def test_empty_itemprop_falls_back_to_next_sibling(self):
        """Collection template: empty itemprop element, text in its next sibling."""
        html = """
        <div class="product">
          <div itemprop="description"></div>
          <p>保衛系列以保衛複方精油為核心。</p>
        </div>
        """
        assert extract_description(soup_of(html)) == "保衛系列以保衛複方精油為核心。"

    def test_itemprop_meta_content(self):
        """A meta itemprop description is read from its content attribute."""
        html = '<meta itemprop="description" content="清新的柑橘香氣。">'

        assert extract_description(soup_of(html)) == "清新的柑橘香氣。"

    def test_description_section_when_no_itemprop(self):
        """Without itemprop the description section is used."""
        html = "<html><body><h2>產品說明</h2><p>這是產品說明。</p></body></html>"

        raw = extract_detail(html, URL)

        assert raw.description == "這是產品說明。"
        assert raw.sources["description"] == "section"

    def test_meta_description_fallback(self):
        """The meta description is used when the page has no section."""
        html = '<html><head><meta name="description" content="摘要文字"></head><body><h1>X</h1></body></html>'

        raw = extract_detail(html, URL)

        assert raw.description == "摘要文字"
        assert raw.sources["description"] == "meta_description"


class TestFallbacks:
    """Secondary strategies for identity and commercial fields."""

    def test_name_from_og_title(self):
        """The og:title minus the site suffix names the product."""
        html = '<html><head><meta property="og:title" content="野橘精油 | dōTERRA"></head><body></body></html>'

        raw = extract_detail(html, URL)

        assert raw.name == "野橘精油"
        assert raw.sources["name"] == "og_title"

    def test_name_from_url_slug(self):
        """With no title anywhere the slug names the product."""
        raw = extract_detail("<html><body><p>no title</p></body></html>", URL)

        assert raw.name == "Lavender Oil"
        assert raw.sources["name"] == "url_slug"

    def test_unlabeled_prices_ranked(self):
        """Unlabeled amounts are ranked into retail and member price."""
        html = "<html><body><h1>X</h1><span>NT$1,460</span><span>NT$1,095</span><span>NT$50</span></body></html>"

        raw = extract_detail(html, URL)

        assert raw.retail_price == "NT$1,460"
        assert raw.member_price == "NT$1,095"

    def test_eight_digit_code_fallback(self):
        """A bare eight-digit number is taken as the product code."""
        html = "<html><body><h1>X</h1><p>60200185</p></body></html>"

        raw = extract_detail(html, URL)

        assert raw.product_code == "60200185"

    def test_never_raises_on_empty_document(self):
        """An empty document still yields a named record."""
        raw = extract_detail("", URL)

        assert raw.name == "Lavender Oil"
        assert raw.description is None


class TestRunStrategies:
    """Ordered strategy evaluation."""

    def test_first_non_empty_wins(self):
        """Empty results fall through to the next strategy."""
        doc = DetailDocument("<html></html>")
        strategies = [
            ("empty", lambda d: ""),
            ("none", lambda d: None),
            ("value", lambda d: "found"),
            ("later", lambda d: "ignored"),
        ]

        assert run_strategies(doc, strategies) == ("found", "value")

    def test_failing_strategy_is_skipped(self):
        """A strategy that raises is treated as a miss."""
        doc = DetailDocument("<html></html>")
        strategies = [
            ("broken", lambda d: d.soup.find("missing").text),
            ("ok", lambda d: "fine"),
        ]

        assert run_strategies(doc, strategies) == ("fine", "ok")
