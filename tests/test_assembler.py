from datetime import datetime, timezone

from conftest import make_item
from core.entities import (
    ExtractedContent,
    ExtractionStrategy,
    QualityRating,
    ScoredImage,
    StructuredArticle,
)
from processing.assembler import assemble, make_excerpt, read_time, slugify

NOW = datetime(2024, 3, 1, 10, 0, 0, tzinfo=timezone.utc)


def _content(body: str, strategy=ExtractionStrategy.PRIMARY, **kwargs) -> ExtractedContent:
    return ExtractedContent(body_text=body, raw_images=[], strategy_used=strategy, success=True, **kwargs)


def test_slugify():
    assert slugify("Storm hits coast: 3 dead!", NOW) == "storm-hits-coast-3-dead-20240301-200000"
    assert slugify("!!", NOW) == "article-20240301-200000"
    base = slugify("word " * 40, NOW).rsplit("-", 2)[0]
    assert len(base) <= 50
    assert not base.endswith("-")


def test_excerpt_short_text_unchanged():
    assert make_excerpt("<p>Short   body.</p>") == "Short body."


def test_excerpt_prefers_sentence_boundary():
    text = ("A" * 240) + ". " + ("b " * 100)
    assert make_excerpt(text) == ("A" * 240) + "."


def test_excerpt_falls_back_to_word_boundary():
    text = "word " * 100
    excerpt = make_excerpt(text)

    assert excerpt.endswith("...")
    assert len(excerpt) <= 303
    assert "wor..." not in excerpt


def test_read_time():
    assert read_time("") == 1
    assert read_time("word " * 450) == 3


def test_assemble_from_fallback_content():
    item = make_item(
        link="https://news.google.com/rss/articles/abc",
        categories=("Science", " Space "),
    )
    content = _content(
        "First paragraph with <detail>.\n\nSecond paragraph.",
        strategy=ExtractionStrategy.RSS_CONTENT,
        final_url="https://publisher.example.org/story",
        published_at="2024-02-28T08:30:00Z",
        author="Jane Reporter",
    )
    featured = ScoredImage(url="https://cdn.example.com/a.jpg", alt="", width=None, height=None, score=22)

    article = assemble(
        item=item,
        category="Science",
        content=content,
        images=[featured],
        featured=featured,
        quality=QualityRating.POOR,
        now=NOW,
    )

    assert article.source_url == "https://news.google.com/rss/articles/abc"
    assert article.title == item.title
    assert article.content.startswith("<p>First paragraph with &lt;detail&gt;.</p><p>Second paragraph.</p>")
    assert "Read the full article" in article.content
    assert article.seo_title == item.title[:60]
    assert article.seo_description == article.excerpt[:160]
    assert article.tags == ["science", "space"]
    assert article.featured_image == "https://cdn.example.com/a.jpg"
    assert article.published_at == datetime(2024, 2, 28, 8, 30, tzinfo=timezone.utc)
    assert article.author == "Jane Reporter"
    assert article.rewritten is False
    assert article.slug.startswith("a-properly-long-article-title-about-science-20240301")


def test_assemble_primary_has_no_source_link():
    article = assemble(
        item=make_item(),
        category="Science",
        content=_content("Body text."),
        images=[],
        featured=None,
        quality=QualityRating.POOR,
        now=NOW,
    )

    assert article.content == "<p>Body text.</p>"
    assert article.featured_image is None


def test_assemble_with_rewrite():
    rewritten = StructuredArticle(
        title="Rewritten headline",
        excerpt="Rewritten excerpt.",
        content="<p>Rewritten body.</p>",
        slug="rewritten-headline",
        seo_title="SEO headline",
        seo_description="SEO description",
        tags=["physics"],
        location="Geneva",
    )

    article = assemble(
        item=make_item(),
        category="Science",
        content=_content("Original body."),
        images=[],
        featured=None,
        quality=QualityRating.FAIR,
        rewritten=rewritten,
        now=NOW,
    )

    assert article.title == "Rewritten headline"
    assert article.content == "<p>Rewritten body.</p>"
    assert article.slug == "rewritten-headline-20240301-200000"
    assert article.seo_title == "SEO headline"
    assert article.location == "Geneva"
    assert article.rewritten is True
    assert article.source_url == make_item().link

    record = article.to_record()
    assert record["strategy_used"] == "primary_extraction"
    assert record["quality"] == "fair"
