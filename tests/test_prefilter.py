from conftest import make_item
from processing.prefilter import BatchSeen, filter_items, passes_quality_filter, rejection_reason

LONG_SNIPPET = "Officials said the flooding had displaced thousands of residents across the valley."


def test_short_title_is_rejected():
    item = make_item(title="Short", snippet=LONG_SNIPPET)

    assert rejection_reason(item) == "title too short"
    assert not passes_quality_filter(item)


def test_pdf_link_is_rejected():
    item = make_item(link="https://gov.example.com/report-2024.pdf", snippet=LONG_SNIPPET)
    assert rejection_reason(item) == "non-article resource"


def test_pdf_link_with_query_is_rejected():
    item = make_item(link="https://gov.example.com/report.PDF?download=1", snippet=LONG_SNIPPET)
    assert rejection_reason(item) == "non-article resource"


def test_missing_description_passes():
    assert passes_quality_filter(make_item(snippet="", raw_content=""))


def test_short_description_is_rejected():
    item = make_item(snippet="Too brief to be useful.")
    assert rejection_reason(item) == "description too short"


def test_thresholds_are_configurable():
    item = make_item(title="Twelve chars", snippet="Brief.")

    assert not passes_quality_filter(item)
    assert passes_quality_filter(item, min_title_length=10, min_description_length=5)


def test_filter_items_keeps_feed_order():
    items = [
        make_item(title="First article with a long enough title", link="https://a.example.com/1"),
        make_item(title="Tiny", link="https://a.example.com/2"),
        make_item(title="Third article with a long enough title", link="https://a.example.com/3"),
        make_item(title="Fourth article pointing at a document", link="https://a.example.com/4.pdf"),
    ]

    kept, filtered_out = filter_items(items)

    assert [i.link for i in kept] == ["https://a.example.com/1", "https://a.example.com/3"]
    assert filtered_out == 2


def test_batch_seen_claims_once():
    seen = BatchSeen()

    assert seen.claim("https://a.example.com/1")
    assert not seen.claim("https://a.example.com/1")
    assert seen.claim("https://a.example.com/2")
