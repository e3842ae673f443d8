"""Daily reflection Pydantic schemas."""

from pydantic import Field

from unearthed.schemas.base import WireModel
from unearthed.schemas.quotes import QuoteOut
from unearthed.schemas.sources import MediaOut, SourceOut


class ReflectionSourceOut(SourceOut):
    media: MediaOut | None = None


class DailyReflectionOut(WireModel):
    """Today's reflection: the chosen quote (note decrypted) and its source."""

    day: str = Field(..., description="Logical day, YYYY/MM/DD in the user's offset")
    source: ReflectionSourceOut
    quote: QuoteOut
