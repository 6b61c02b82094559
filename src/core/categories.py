from dataclasses import dataclass, field
from typing import Dict, List

_GOOGLE_NEWS = "https://news.google.com/rss/topics/{topic}?hl=en-US&gl=US&ceid=US:en"


@dataclass(frozen=True)
class Category:
    """
    Declarative category definition: a name and the feeds harvested for it.
    """
    name: str
    feeds: List[str] = field(default_factory=list)
    description: str = ""

    @property
    def slug(self) -> str:
        return self.name.lower().replace(" ", "-")


POLITICS = Category(
    name="Politics",
    description="Government, elections and public policy",
    feeds=[_GOOGLE_NEWS.format(topic="CAAqJggKIiBDQkFTRWdvSUwyMHZNRFZxYUdjU0FtVnVHZ0pWVXlnQVAB")],
)

ECONOMY = Category(
    name="Economy",
    description="Markets, business and the economy",
    feeds=[_GOOGLE_NEWS.format(topic="CAAqJggKIiBDQkFTRWdvSUwyMHZNRGx6TVdZU0FtVnVHZ0pWVXlnQVAB")],
)

WORLD = Category(
    name="World",
    description="International news",
    feeds=[_GOOGLE_NEWS.format(topic="CAAqJggKIiBDQkFTRWdvSUwyMHZNRGx1YlY4U0FtVnVHZ0pWVXlnQVAB")],
)

SOCIETY = Category(
    name="Society",
    description="Communities, education and social issues",
    feeds=[_GOOGLE_NEWS.format(topic="CAAqJggKIiBDQkFTRWdvSUwyMHZNRGx6TVdZU0FtVnVHZ0pWVXlnQVAB")],
)

SCIENCE = Category(
    name="Science",
    description="Research, space and the environment",
    feeds=[_GOOGLE_NEWS.format(topic="CAAqJggKIiBDQkFTRWdvSUwyMHZNRFp0Y1RjU0FtVnVHZ0pWVXlnQVAB")],
)

CULTURE = Category(
    name="Culture",
    description="Arts, entertainment and media",
    feeds=[_GOOGLE_NEWS.format(topic="CAAqJggKIiBDQkFTRWdvSUwyMHZNREpxYW5RU0FtVnVHZ0pWVXlnQVAB")],
)

SPORT = Category(
    name="Sport",
    description="Sports results and analysis",
    feeds=[_GOOGLE_NEWS.format(topic="CAAqJggKIiBDQkFTRWdvSUwyMHZNRFp1ZEdvU0FtVnVHZ0pWVXlnQVAB")],
)

SECURITY = Category(
    name="Security",
    description="Defence, cyber security and public safety",
    feeds=[_GOOGLE_NEWS.format(topic="CAAqJggKIiBDQkFTRWdvSUwyMHZNRGx6TVdZU0FtVnVHZ0pWVXlnQVAB")],
)

LAW = Category(
    name="Law",
    description="Courts, justice and legislation",
    feeds=[_GOOGLE_NEWS.format(topic="CAAqJggKIiBDQkFTRWdvSUwyMHZNRGx6TVdZU0FtVnVHZ0pWVXlnQVAB")],
)


ALL_CATEGORIES: Dict[str, Category] = {
    c.name: c
    for c in (POLITICS, ECONOMY, WORLD, SOCIETY, SCIENCE, CULTURE, SPORT, SECURITY, LAW)
}
