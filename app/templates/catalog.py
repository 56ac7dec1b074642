"""Load the studio template and ad wireframe catalog."""

from __future__ import annotations

import base64
import binascii
import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from app.errors import ConfigurationError, StudioError, TemplateNotFound
from app.models import ImageAsset
from app.schemas import TemplateSpec, TemplateSummary
from app.services.image_input import decode_data_url, preprocess

_TEMPLATES_DIR = Path(__file__).resolve().parent
CATALOG_PATH = _TEMPLATES_DIR / "catalog.json"

Kind = Literal["template", "wireframe"]

_SECTIONS: dict[str, Kind] = {"templates": "template", "wireframes": "wireframe"}


@lru_cache()
def load_catalog() -> dict[Kind, dict[str, TemplateSpec]]:
    """Parse catalog.json into ``{kind: {id: TemplateSpec}}`` keeping file order."""

    with CATALOG_PATH.open("r", encoding="utf-8") as handle:
        payload: dict[str, Any] = json.load(handle)

    catalog: dict[Kind, dict[str, TemplateSpec]] = {}
    for section, kind in _SECTIONS.items():
        entries: dict[str, TemplateSpec] = {}
        for raw in payload.get(section, []):
            spec = TemplateSpec.model_validate({**raw, "kind": kind})
            entries[spec.id] = spec
        catalog[kind] = entries
    return catalog


def list_entries(kind: Kind) -> list[TemplateSummary]:
    return [
        TemplateSummary(id=spec.id, name=spec.name, description=spec.description)
        for spec in load_catalog()[kind].values()
    ]


def get_entry(kind: Kind, entry_id: str | None) -> TemplateSpec:
    key = (entry_id or "").strip()
    spec = load_catalog()[kind].get(key)
    if spec is None:
        raise TemplateNotFound(
            f"Unknown {kind} id: {key or '<empty>'}.",
            detail={"kind": kind, "id": key or None},
        )
    return spec


def get_template(template_id: str | None) -> TemplateSpec:
    return get_entry("template", template_id)


def _read_asset(path: Path) -> ImageAsset:
    if path.suffix.lower() != ".b64":
        return preprocess(ImageAsset(data=path.read_bytes(), mime_type="image/png", filename=path.name))

    name = path.name[: -len(".b64")]

    # .b64 资源可以是纯 base64，也可以是完整 data URL
    text = path.read_text(encoding="utf-8").strip()
    if text.startswith("data:"):
        return preprocess(decode_data_url(text, filename=name))
    data = base64.b64decode(text, validate=True)
    return preprocess(ImageAsset(data=data, mime_type="image/png", filename=name))


def load_asset(spec: TemplateSpec) -> ImageAsset:
    """Read the reference image bundled with a catalog entry.

    The declared type is only a starting point; ``preprocess`` replaces it with
    the format the bytes actually decode as.
    """

    path = _TEMPLATES_DIR / spec.asset
    try:
        return _read_asset(path)
    except (OSError, binascii.Error, StudioError) as exc:
        raise ConfigurationError(
            f"Reference image for {spec.kind} '{spec.id}' is unavailable.",
            detail={"path": str(path)},
        ) from exc


__all__ = [
    "CATALOG_PATH",
    "get_entry",
    "get_template",
    "list_entries",
    "load_asset",
    "load_catalog",
]
