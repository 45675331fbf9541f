"""Asset query and filter engine for the dashboard listing.

Everything here is pure: the functions take a snapshot of asset records and the
filter criteria and never touch storage, the database or the network.
Records may be plain mappings (decoded JSON) or attribute objects (ORM rows,
pydantic models). A record missing a field that an active predicate needs is
excluded from the result instead of raising.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Iterable, Mapping, Optional, Sequence

from pydantic import BaseModel, Field, field_validator

# Fallback keys for a client-supplied timestamp when uploaded_at is absent
_UPLOAD_DATE_KEYS = ("uploaded_at", "upload_date", "uploadDate")

_END_OF_DAY = time(23, 59, 59, 999000)


class FilterSpec(BaseModel):
    """Conjunction of the dashboard's search and filter predicates."""

    term: str = Field("", description="Free-text search over name and tags")
    tags: list[str] = Field(default_factory=list, description="Tags an asset must all carry")
    types: list[str] = Field(default_factory=list, description="Types an asset may have")
    start_date: Optional[date] = Field(None, description="Inclusive first upload day")
    end_date: Optional[date] = Field(None, description="Inclusive last upload day")

    @field_validator("term", mode="before")
    @classmethod
    def default_term(cls, v: Optional[str]) -> str:
        """Treat a missing term as an empty one."""
        return "" if v is None else v

    @field_validator("tags", "types", mode="before")
    @classmethod
    def default_list(cls, v):
        """Treat missing selections as empty."""
        return [] if v is None else v

    @property
    def is_active(self) -> bool:
        """Whether any predicate besides the search term is set."""
        return bool(self.tags or self.types or self.start_date or self.end_date)

    @property
    def active_count(self) -> int:
        """Number of active filters, counting the date range once."""
        has_range = 1 if (self.start_date or self.end_date) else 0
        return len(self.tags) + len(self.types) + has_range


@dataclass(frozen=True)
class Facets:
    """Selectable filter vocabularies derived from the unfiltered collection."""

    tags: list[str] = field(default_factory=list)
    types: list[str] = field(default_factory=list)


def get_field(asset: Any, name: str) -> Any:
    """Read a field from a mapping or an attribute object, None when absent."""
    if isinstance(asset, Mapping):
        return asset.get(name)
    return getattr(asset, name, None)


def _get_tags(asset: Any) -> list[str]:
    tags = get_field(asset, "tags")
    if not tags or isinstance(tags, str):
        return []
    try:
        return [tag for tag in tags if isinstance(tag, str)]
    except TypeError:
        return []


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Coerce a stored timestamp to an aware datetime.

    Naive values are read as local time. Unparseable values yield None.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        try:
            return parsed.astimezone()
        except (OverflowError, OSError, ValueError):
            return None
    return parsed


def get_upload_time(asset: Any) -> Optional[datetime]:
    """Return the asset's upload instant, falling back to a client timestamp."""
    for key in _UPLOAD_DATE_KEYS:
        parsed = parse_timestamp(get_field(asset, key))
        if parsed is not None:
            return parsed
    return None


def start_of_day(day: date) -> datetime:
    """Local midnight at the start of the given day."""
    return datetime.combine(day, time.min).astimezone()


def end_of_day(day: date) -> datetime:
    """Last local millisecond of the given day."""
    return datetime.combine(day, _END_OF_DAY).astimezone()


def matches_term(asset: Any, term: str) -> bool:
    """Case-insensitive substring match against the name or any tag."""
    needle = term.strip().lower()
    if not needle:
        return True

    name = get_field(asset, "name")
    if isinstance(name, str) and needle in name.lower():
        return True
    return any(needle in tag.lower() for tag in _get_tags(asset))


def matches_tags(asset: Any, required: Sequence[str]) -> bool:
    """Check that the asset carries every required tag."""
    if not required:
        return True
    return set(required).issubset(_get_tags(asset))


def matches_types(asset: Any, types: Sequence[str]) -> bool:
    """Check that the asset's type is one of the selected types."""
    if not types:
        return True
    asset_type = get_field(asset, "type")
    return asset_type is not None and asset_type in types


def matches_date_range(asset: Any, start_date: Optional[date], end_date: Optional[date]) -> bool:
    """Check that the upload instant lies within the inclusive day range."""
    if start_date is None and end_date is None:
        return True

    uploaded_at = get_upload_time(asset)
    if uploaded_at is None:
        return False
    if start_date is not None and uploaded_at < start_of_day(start_date):
        return False
    if end_date is not None and uploaded_at > end_of_day(end_date):
        return False
    return True


def matches(asset: Any, spec: FilterSpec) -> bool:
    """Evaluate every filter predicate for one asset."""
    return (
        matches_term(asset, spec.term)
        and matches_tags(asset, spec.tags)
        and matches_types(asset, spec.types)
        and matches_date_range(asset, spec.start_date, spec.end_date)
    )


def filter_assets(assets: Iterable[Any], spec: Optional[FilterSpec] = None) -> list[Any]:
    """Return the assets that satisfy the filter, in their original order.

    Args:
        assets: Snapshot of asset records, newest first as listed by the API
        spec: Active filters; None matches everything

    Returns:
        list: The matching records themselves, never copies
    """
    if spec is None:
        return list(assets)
    return [asset for asset in assets if matches(asset, spec)]


def derive_facets(assets: Iterable[Any]) -> Facets:
    """Collect the sorted tag and type vocabularies of the full collection."""
    tags: set[str] = set()
    types: set[str] = set()
    for asset in assets:
        tags.update(_get_tags(asset))
        asset_type = get_field(asset, "type")
        if isinstance(asset_type, str) and asset_type:
            types.add(asset_type)
    return Facets(tags=sorted(tags), types=sorted(types))
