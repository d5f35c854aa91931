from matchbook.services.resolver import PlaceResolver

_resolver: PlaceResolver | None = None


def get_resolver() -> PlaceResolver:
    """Shared resolver for request handlers. Tests override this dependency."""
    global _resolver
    if _resolver is None:
        _resolver = PlaceResolver()
    return _resolver


async def close_resolver():
    global _resolver
    if _resolver is not None:
        await _resolver.aclose()
        _resolver = None
