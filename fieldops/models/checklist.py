"""
Structured checklist type for tasks.

A task's checklist is persisted as an ordered JSON list so existing clients
keep addressing items by position:

    [{"texto": "...", "concluido": false, "descricao": null,
      "subitens": [{"texto": "...", "concluido": false, "descricao": null, "uid": "..."}],
      "uid": "..."}]

In memory it is a list of ``ChecklistItem`` dataclasses. The ``uid`` key is
internal: it lets item deliveries follow an item when the list is reordered.
Payloads without ``uid`` are matched positionally (see ``assign_uids``).

Schema versions:
    1  legacy free-form JSON (loose booleans, bare strings, no uids)
    2  current shape above
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field

from fieldops.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

CHECKLIST_SCHEMA_VERSION = 2

TEXT_MAX_LENGTH = 500
DESCRIPTION_MAX_LENGTH = 2000

_TRUTHY = (True, 1, "1", "true")


def _new_uid() -> str:
    return uuid.uuid4().hex[:16]


def coerce_done(value) -> bool:
    """Normalise the many ways clients have sent ``concluido``."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        value = value.strip().lower()
    return value in _TRUTHY


def _clean_text(raw, where: str, errors: dict) -> str:
    if not isinstance(raw, str) or not raw.strip():
        errors[f"{where}.texto"] = "texto is required"
        return ""
    text = raw.strip()
    if len(text) > TEXT_MAX_LENGTH:
        errors[f"{where}.texto"] = f"texto must be ≤ {TEXT_MAX_LENGTH} characters"
    return text


def _clean_description(raw, where: str, errors: dict) -> str | None:
    if raw is None:
        return None
    if not isinstance(raw, str):
        errors[f"{where}.descricao"] = "descricao must be a string"
        return None
    if len(raw) > DESCRIPTION_MAX_LENGTH:
        errors[f"{where}.descricao"] = f"descricao must be ≤ {DESCRIPTION_MAX_LENGTH} characters"
    return raw.strip() or None


def _clean_uid(raw) -> str | None:
    if isinstance(raw, str) and raw.strip():
        return raw.strip()[:64]
    return None


def _stored_text(raw) -> str:
    return raw.strip() if isinstance(raw, str) else ""


def _stored_description(raw) -> str | None:
    if not isinstance(raw, str):
        return None
    return raw.strip() or None


@dataclass
class ChecklistSubItem:
    """Second-level objective. Sub-items never nest further."""

    texto: str
    concluido: bool = False
    descricao: str | None = None
    uid: str | None = None

    @classmethod
    def from_payload(cls, raw, where: str, errors: dict) -> "ChecklistSubItem":
        if isinstance(raw, str):
            raw = {"texto": raw}
        if not isinstance(raw, dict):
            errors[where] = "sub-item must be an object"
            return cls(texto="")
        return cls(
            texto=_clean_text(raw.get("texto"), where, errors),
            concluido=coerce_done(raw.get("concluido")),
            descricao=_clean_description(raw.get("descricao"), where, errors),
            uid=_clean_uid(raw.get("uid")),
        )

    @classmethod
    def from_stored(cls, raw) -> "ChecklistSubItem":
        if isinstance(raw, str):
            return cls(texto=raw.strip())
        if not isinstance(raw, dict):
            return cls(texto="")
        return cls(
            texto=_stored_text(raw.get("texto")),
            concluido=coerce_done(raw.get("concluido")),
            descricao=_stored_description(raw.get("descricao")),
            uid=_clean_uid(raw.get("uid")),
        )

    def to_dict(self) -> dict:
        return {
            "texto": self.texto,
            "concluido": self.concluido,
            "descricao": self.descricao,
            "uid": self.uid,
        }


@dataclass
class ChecklistItem:
    """Top-level deliverable objective of a task, addressed by position."""

    texto: str
    concluido: bool = False
    descricao: str | None = None
    subitens: list[ChecklistSubItem] = field(default_factory=list)
    uid: str | None = None

    @classmethod
    def from_payload(cls, raw, where: str, errors: dict) -> "ChecklistItem":
        if isinstance(raw, str):
            raw = {"texto": raw}
        if not isinstance(raw, dict):
            errors[where] = "item must be an object"
            return cls(texto="")

        raw_subs = raw.get("subitens") or []
        if not isinstance(raw_subs, list):
            errors[f"{where}.subitens"] = "subitens must be an array"
            raw_subs = []

        return cls(
            texto=_clean_text(raw.get("texto"), where, errors),
            concluido=coerce_done(raw.get("concluido")),
            descricao=_clean_description(raw.get("descricao"), where, errors),
            subitens=[
                ChecklistSubItem.from_payload(s, f"{where}.subitens[{j}]", errors)
                for j, s in enumerate(raw_subs)
            ],
            uid=_clean_uid(raw.get("uid")),
        )

    @classmethod
    def from_stored(cls, raw) -> "ChecklistItem":
        """Lenient load of a persisted entry; never raises."""
        if isinstance(raw, str):
            return cls(texto=raw.strip())
        if not isinstance(raw, dict):
            return cls(texto="")
        raw_subs = raw.get("subitens")
        return cls(
            texto=_stored_text(raw.get("texto")),
            concluido=coerce_done(raw.get("concluido")),
            descricao=_stored_description(raw.get("descricao")),
            subitens=[
                ChecklistSubItem.from_stored(s)
                for s in (raw_subs if isinstance(raw_subs, list) else [])
            ],
            uid=_clean_uid(raw.get("uid")),
        )

    def to_dict(self) -> dict:
        return {
            "texto": self.texto,
            "concluido": self.concluido,
            "descricao": self.descricao,
            "subitens": [s.to_dict() for s in self.subitens],
            "uid": self.uid,
        }


# ── Parsing / serialisation ──────────────────────────────────────────────────


def parse_checklist(raw) -> list[ChecklistItem]:
    """Validate an API payload into checklist items.

    ``None`` means "no checklist". Any shape problem raises ValidationError
    with per-field details keyed like ``checklist[2].subitens[0].texto``.
    Items keep whatever ``uid`` the payload carried (possibly None).
    """
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("checklist must be an array", details={"checklist": "expected array"})

    errors: dict = {}
    items = [ChecklistItem.from_payload(r, f"checklist[{i}]", errors) for i, r in enumerate(raw)]
    if errors:
        raise ValidationError("Malformed checklist payload", details=errors)
    return items


def dump_checklist(items: list[ChecklistItem]) -> list[dict] | None:
    """Serialise to the persisted JSON shape (None for an empty checklist)."""
    if not items:
        return None
    return [item.to_dict() for item in items]


def migrate_checklist(raw, version: int | None) -> list[ChecklistItem]:
    """Load a stored checklist of any known schema version as current items.

    Version 1 rows may hold bare strings, loose booleans, blank or overlong
    texts and no uids. Stored rows are never rejected: shapes are normalised
    without the payload limits and missing uids are minted. The caller
    persists the result with ``CHECKLIST_SCHEMA_VERSION`` on its next write.
    """
    version = version or 1
    if version > CHECKLIST_SCHEMA_VERSION:
        raise ValidationError(
            f"Unsupported checklist schema version {version}",
            details={"checklist_version": version},
        )
    if not raw:
        return []

    if not isinstance(raw, list):
        logger.warning("Ignoring stored checklist of type %s", type(raw).__name__)
        return []

    items = [ChecklistItem.from_stored(r) for r in raw]
    for item in items:
        item.uid = item.uid or _new_uid()
        for sub in item.subitens:
            sub.uid = sub.uid or _new_uid()
    return items


def assign_uids(new_items: list[ChecklistItem], old_items: list[ChecklistItem]) -> None:
    """Give every incoming item and sub-item a stable uid, in place.

    An explicit uid is kept. A missing uid inherits the uid of the old item at
    the same position (index-based clients keep their bindings) unless that
    uid was explicitly claimed elsewhere in the new list; otherwise a fresh
    uid is minted. Sub-items follow the same rule within their parent.
    """
    _assign(new_items, old_items)
    old_by_uid = {o.uid: o for o in old_items if o.uid}
    for item in new_items:
        previous = old_by_uid.get(item.uid)
        _assign(item.subitens, previous.subitens if previous else [])


def _assign(new, old) -> None:
    claimed = {n.uid for n in new if n.uid}
    seen: set[str] = set()
    for position, entry in enumerate(new):
        if entry.uid and entry.uid not in seen:
            seen.add(entry.uid)
            continue
        candidate = old[position].uid if position < len(old) else None
        if not candidate or candidate in claimed or candidate in seen:
            candidate = _new_uid()
        entry.uid = candidate
        seen.add(candidate)


def is_checklist_complete(items: list[ChecklistItem]) -> bool:
    """Non-empty and every top-level item concluded."""
    return bool(items) and all(item.concluido for item in items)
