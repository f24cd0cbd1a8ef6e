"""Overlay template catalog backed by an image directory."""

import re
from dataclasses import dataclass
from pathlib import Path

OVERLAY_EXTENSIONS = (".png", ".jpg", ".jpeg")
OVERLAY_PREFIX = "frame-"


@dataclass(frozen=True)
class OverlayTemplate:
    id: str
    name: str
    filename: str
    asset_location: Path

    @property
    def asset_ref(self) -> str:
        return f"/api/overlays/{self.filename}"

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "assetRef": self.asset_ref}


def format_overlay_name(overlay_id: str) -> str:
    """'frame-royal-gold' -> 'Royal Gold'."""
    name = re.sub(r"^frame-", "", overlay_id).replace("-", " ")
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), name)


class OverlayCatalog:
    """Read-only view over the overlay directory."""

    def __init__(self, overlays_dir: str | Path) -> None:
        self.overlays_dir = Path(overlays_dir)

    def list_overlays(self) -> list[OverlayTemplate]:
        if not self.overlays_dir.is_dir():
            return []
        overlays = []
        for path in sorted(self.overlays_dir.iterdir()):
            if path.is_file() and path.suffix.lower() in OVERLAY_EXTENSIONS:
                overlays.append(
                    OverlayTemplate(
                        id=path.stem,
                        name=format_overlay_name(path.stem),
                        filename=path.name,
                        asset_location=path,
                    )
                )
        return overlays

    def get(self, overlay_id: str) -> OverlayTemplate | None:
        """Resolve an id, also accepting the id without its 'frame-' prefix."""
        if not overlay_id or "/" in overlay_id or "\\" in overlay_id:
            return None
        for candidate in (overlay_id, f"{OVERLAY_PREFIX}{overlay_id}"):
            for ext in OVERLAY_EXTENSIONS:
                path = self.overlays_dir / f"{candidate}{ext}"
                if path.is_file():
                    return OverlayTemplate(
                        id=candidate,
                        name=format_overlay_name(candidate),
                        filename=path.name,
                        asset_location=path,
                    )
        return None

    def asset_path(self, filename: str) -> Path | None:
        """Path of an overlay image by filename, refusing anything outside the directory."""
        if Path(filename).name != filename or Path(filename).suffix.lower() not in OVERLAY_EXTENSIONS:
            return None
        path = self.overlays_dir / filename
        return path if path.is_file() else None
