"""
Administrable content entities.

Each ``EntityType`` has its own typed pydantic record.  Records are stored
as camelCase JSON in ``content_entities.fields`` (the shape the app's
content files use) and validated on every write, so an entity can never
hold fields its type does not define.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from context_composer.errors import InvalidContentError


class EntityType(str, Enum):
    COMPOSER = "composer"
    TERM = "term"
    PERIOD = "period"
    FORM = "form"
    CONCERT_HALL = "concert_hall"
    WEEKLY_ALBUM = "weekly_album"
    MONTHLY_SPOTLIGHT = "monthly_spotlight"


ListenerLevel = Literal["beginner", "intermediate", "advanced"]


class _Record(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


class ContentFields(_Record):
    """Base for the per-type field records."""

    name_field: ClassVar[str] = "name"

    @property
    def display_name(self) -> str:
        return str(getattr(self, self.name_field))

    def to_content(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Nested records
# ---------------------------------------------------------------------------


class KeyWork(_Record):
    title: str
    type: str = ""
    year: str = ""


class TermMedia(_Record):
    label: str
    url: str
    type: Literal["youtube", "spotify", "audio"]


class FormWork(_Record):
    composer: str
    work: str
    why: str = ""


class KeyMoment(_Record):
    time: str
    description: str


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------


class ComposerFields(ContentFields):
    name: str = Field(min_length=1)
    years: str = ""
    period: str = ""
    nationality: str = ""
    portrait: str = ""
    short_bio: str = ""
    full_bio: str = ""
    key_works: tuple[KeyWork, ...] = ()
    fun_fact: str = ""
    listen_first: str = ""
    spotify_uri: str = ""
    youtube_search: str = ""


class TermFields(ContentFields):
    name_field: ClassVar[str] = "term"

    term: str = Field(min_length=1)
    category: str = ""
    short_definition: Optional[str] = None
    long_definition: Optional[str] = None
    definition: Optional[str] = None
    example: Optional[str] = None
    media: tuple[TermMedia, ...] = ()


class PeriodFields(ContentFields):
    name: str = Field(min_length=1)
    years: str = ""
    description: str = ""
    key_characteristics: tuple[str, ...] = ()
    composers: tuple[str, ...] = ()
    color: str = ""


class FormFields(ContentFields):
    name: str = Field(min_length=1)
    category: str = ""
    period: str = ""
    description: str = ""
    structure: tuple[dict[str, Union[str, int, float]], ...] = ()
    key_works: tuple[FormWork, ...] = ()
    listen_for: tuple[str, ...] = ()


class ConcertHallFields(ContentFields):
    name: str = Field(min_length=1)
    city: str = ""
    description: str = ""
    signature_sound: Optional[str] = None
    map_url: Optional[str] = None
    listener_level: Optional[ListenerLevel] = None


class WeeklyAlbumFields(ContentFields):
    name_field: ClassVar[str] = "title"

    week: int = Field(ge=1, le=53)
    title: str = Field(min_length=1)
    artist: str = ""
    year: Optional[int] = None
    description: str = ""
    why_listen: str = ""
    spotify_uri: str = ""
    apple_music_url: str = ""
    key_moments: tuple[KeyMoment, ...] = ()
    listener_level: Optional[ListenerLevel] = None


class MonthlySpotlightFields(ContentFields):
    name_field: ClassVar[str] = "title"

    month: int = Field(ge=1, le=12)
    type: str = ""
    title: str = Field(min_length=1)
    subtitle: str = ""
    description: str = ""
    featured_works: tuple[str, ...] = ()
    challenge: str = ""


ENTITY_MODELS: dict[EntityType, type[ContentFields]] = {
    EntityType.COMPOSER: ComposerFields,
    EntityType.TERM: TermFields,
    EntityType.PERIOD: PeriodFields,
    EntityType.FORM: FormFields,
    EntityType.CONCERT_HALL: ConcertHallFields,
    EntityType.WEEKLY_ALBUM: WeeklyAlbumFields,
    EntityType.MONTHLY_SPOTLIGHT: MonthlySpotlightFields,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def coerce_entity_type(value: EntityType | str) -> EntityType:
    try:
        return EntityType(value)
    except ValueError:
        raise InvalidContentError(f"Unknown entity type: {value!r}") from None


def _describe(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
        for err in exc.errors()
    )


def validate_fields(entity_type: EntityType | str, data: Mapping[str, Any]) -> ContentFields:
    """Validate a full field set for ``entity_type``."""
    model = ENTITY_MODELS[coerce_entity_type(entity_type)]
    try:
        return model.model_validate(dict(data))
    except ValidationError as exc:
        raise InvalidContentError(f"Invalid {model.__name__}: {_describe(exc)}") from exc


def apply_patch(
    entity_type: EntityType | str,
    current: Mapping[str, Any],
    patch: Mapping[str, Any],
) -> ContentFields:
    """Merge ``patch`` (snake_case or camelCase keys) over ``current`` and validate."""
    model = ENTITY_MODELS[coerce_entity_type(entity_type)]
    aliases = {name: info.alias or name for name, info in model.model_fields.items()}
    known = set(aliases.values())

    merged = dict(current)
    unknown = []
    for key, value in patch.items():
        alias = aliases.get(key, key)
        if alias not in known:
            unknown.append(key)
            continue
        merged[alias] = value
    if unknown:
        raise InvalidContentError(
            f"Unknown {coerce_entity_type(entity_type).value} fields: {', '.join(sorted(unknown))}"
        )
    return validate_fields(entity_type, merged)


def entity_name(entity_type: EntityType | str, content: Mapping[str, Any]) -> str | None:
    """Display name recorded in audit entries (``name``, ``term`` or ``title``)."""
    model = ENTITY_MODELS[coerce_entity_type(entity_type)]
    value = content.get(model.name_field)
    return str(value) if value else None


def diff_fields(old: Mapping[str, Any], new: Mapping[str, Any]) -> dict[str, dict[str, Any]]:
    """``{field: {"old": ..., "new": ...}}`` for every field that differs."""
    changes: dict[str, dict[str, Any]] = {}
    for key in sorted(set(old) | set(new)):
        before, after = old.get(key), new.get(key)
        if before != after:
            changes[key] = {"old": before, "new": after}
    return changes
