"""Extraction schemas: JSON schemas sent to the Extract capability and the
pydantic models that validate what comes back."""

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator


PACKAGING_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "length_mm": {"type": ["number", "null"], "description": "Package length in millimetres"},
        "width_mm": {"type": ["number", "null"], "description": "Package width in millimetres"},
        "height_mm": {"type": ["number", "null"], "description": "Package height in millimetres"},
        "weight_g": {"type": ["number", "null"], "description": "Package gross weight in grams"},
    },
}

COMPATIBILITY_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "printers": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Printer models the consumable is compatible with",
        },
        "excluded": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Models explicitly listed as NOT compatible",
        },
    },
    "required": ["printers"],
}

RELATED_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "items": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "relation": {"type": "string", "description": "analog, drum, set, higher_yield, ..."},
                    "url": {"type": ["string", "null"]},
                },
                "required": ["name"],
            },
        },
    },
    "required": ["items"],
}

FAQ_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "items": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {"question": {"type": "string"}, "answer": {"type": "string"}},
                "required": ["question", "answer"],
            },
        },
    },
    "required": ["items"],
}

IMAGES_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "images": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "url": {"type": "string"},
                    "width": {"type": "integer"},
                    "height": {"type": "integer"},
                    "white_bg_score": {"type": "number", "minimum": 0, "maximum": 1},
                    "is_packaging": {"type": "boolean"},
                    "has_watermark": {"type": "boolean"},
                    "has_oem_logo": {"type": "boolean"},
                },
                "required": ["url"],
            },
        },
    },
    "required": ["images"],
}


class PackagingPayload(BaseModel):
    length_mm: Optional[float] = Field(None, validation_alias=AliasChoices("length_mm", "depth_mm"))
    width_mm: Optional[float] = None
    height_mm: Optional[float] = None
    weight_g: Optional[float] = Field(None, validation_alias=AliasChoices("weight_g", "package_weight_g"))

    @field_validator("length_mm", "width_mm", "height_mm", "weight_g")
    @classmethod
    def _positive_or_none(cls, v):
        # Zero/negative values mean "not reported"
        if v is None or v <= 0:
            return None
        return v

    def has_any_field(self) -> bool:
        return any(v is not None for v in (self.length_mm, self.width_mm, self.height_mm, self.weight_g))


class CompatibilityPayload(BaseModel):
    printers: List[str] = Field(default_factory=list)
    excluded: List[str] = Field(default_factory=list)

    @field_validator("printers", "excluded", mode="before")
    @classmethod
    def _flatten_models(cls, v):
        """Accept plain strings or {model|canonicalName} objects."""
        if v is None:
            return []
        out = []
        for item in v:
            if isinstance(item, dict):
                item = item.get("canonicalName") or item.get("model") or item.get("name")
            if isinstance(item, str) and item.strip():
                out.append(" ".join(item.split()))
        return out


class RelatedPayloadItem(BaseModel):
    name: str
    relation: str = "related"
    url: Optional[str] = None


class RelatedPayload(BaseModel):
    items: List[RelatedPayloadItem] = Field(default_factory=list)

    @field_validator("items", mode="before")
    @classmethod
    def _strings_to_items(cls, v):
        if v is None:
            return []
        return [{"name": i} if isinstance(i, str) else i for i in v]


class FaqPayloadItem(BaseModel):
    question: str
    answer: str


class FaqPayload(BaseModel):
    items: List[FaqPayloadItem] = Field(default_factory=list)


class ImagePayloadItem(BaseModel):
    url: str
    width: int = 0
    height: int = 0
    white_bg_score: float = Field(0.0, ge=0, le=1)
    is_packaging: bool = False
    has_watermark: bool = False
    has_oem_logo: bool = False


class ImagesPayload(BaseModel):
    images: List[ImagePayloadItem] = Field(default_factory=list)
