from .base import (
    ExtractProvider,
    IdentityParser,
    ScrapeProvider,
    ScrapeResult,
    SearchProvider,
    make_identity_parser,
    seed_identity,
)

__all__ = [
    "ExtractProvider",
    "IdentityParser",
    "ScrapeProvider",
    "ScrapeResult",
    "SearchProvider",
    "make_identity_parser",
    "seed_identity",
]
