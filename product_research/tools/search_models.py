from pydantic import BaseModel
from typing import Literal, Optional

ResultKind = Literal["web", "images"]

class SearchHit(BaseModel):
    url: str
    title: Optional[str] = None
    snippet: Optional[str] = None
    provider: str = "unknown"
