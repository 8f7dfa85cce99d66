"""The subject being researched."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from donorlens.domain.disambiguation import PersonContext

if TYPE_CHECKING:
    from collections.abc import Mapping

_SUBJECT_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "donorlens:subject")


def derive_subject_id(name: str, *, city: str | None = None, state: str | None = None) -> str:
    """Stable id for a person so repeated runs resume the same checkpoints."""

    key = "|".join(part.strip().lower() for part in (name, city or "", state or ""))
    return str(uuid.uuid5(_SUBJECT_NAMESPACE, key))


@dataclass(slots=True, frozen=True, kw_only=True)
class SubjectContext:
    subject_id: str
    name: str
    city: str | None = None
    state: str | None = None
    employer: str | None = None
    title: str | None = None
    extras: Mapping[str, str] = field(default_factory=dict[str, str])

    def __post_init__(self) -> None:
        if not self.subject_id.strip():
            raise ValueError("Subject id must not be blank")
        if not self.name.strip():
            raise ValueError("Subject name must not be blank")

    def as_person(self) -> PersonContext:
        return PersonContext(
            name=self.name,
            city=self.city,
            state=self.state,
            employer=self.employer,
            title=self.title,
        )

    def to_payload(self) -> dict[str, str]:
        payload = {
            "subject_id": self.subject_id,
            "name": self.name,
            "city": self.city,
            "state": self.state,
            "employer": self.employer,
            "title": self.title,
        }
        cleaned = {key: value for key, value in payload.items() if value}
        cleaned.update(self.extras)
        return cleaned
