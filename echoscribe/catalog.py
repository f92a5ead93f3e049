"""
echoscribe.catalog - Static registry of whisper.cpp model variants.

Each entry carries the source URL and the SHA-256 digest every download
is verified against.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict

from echoscribe.exceptions import UnknownModelError

DEFAULT_MODEL = "base"
DIARIZATION_MODEL = "small.en-tdrz"
DIARIZATION_LANGUAGE = "en"


def model_filename(model_id: str) -> str:
    """Local artifact filename for a model id."""
    return f"ggml-{model_id}.bin"


class ModelCatalogEntry(BaseModel):
    """A downloadable recognition model."""

    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    size_mb: int
    url: str
    sha256: str

    @property
    def filename(self) -> str:
        return model_filename(self.id)

    def local_path(self, models_dir: Path) -> Path:
        return models_dir / self.filename


MODEL_CATALOG: tuple[ModelCatalogEntry, ...] = (
    ModelCatalogEntry(
        id="tiny",
        label="Tiny (fastest, lowest accuracy)",
        size_mb=75,
        url="https://huggingface.co/ggerganov/whisper.cpp/resolve/main/ggml-tiny.bin",
        sha256="be07e048e1e599ad46341c8d2a135645097a538221678b7acdd1b1919c6e1b21",
    ),
    ModelCatalogEntry(
        id="base",
        label="Base (recommended on MacBook Air)",
        size_mb=142,
        url="https://huggingface.co/ggerganov/whisper.cpp/resolve/main/ggml-base.bin",
        sha256="60ed5bc3dd14eea856493d334349b405782ddcaf0028d4b5df4088345fba2efe",
    ),
    ModelCatalogEntry(
        id="small",
        label="Small (higher quality)",
        size_mb=466,
        url="https://huggingface.co/ggerganov/whisper.cpp/resolve/main/ggml-small.bin",
        sha256="1be3a9b2063867b937e64e2ec7483364a79917e157fa98c5d94b5c1fffea987b",
    ),
    ModelCatalogEntry(
        id="medium",
        label="Medium (best quality, slower)",
        size_mb=1500,
        url="https://huggingface.co/ggerganov/whisper.cpp/resolve/main/ggml-medium.bin",
        sha256="6c14d5adee5f86394037b4e4e8b59f1673b6cee10e3cf0b11bbdbee79c156208",
    ),
    ModelCatalogEntry(
        id="small.en-tdrz",
        label="Small.en + tdrz (experimental 2-speaker, English)",
        size_mb=466,
        url="https://huggingface.co/akashmjn/tinydiarize-whisper.cpp/resolve/main/ggml-small.en-tdrz.bin",
        sha256="ceac3ec06d1d98ef71aec665283564631055fd6129b79d8e1be4f9cc33cc54b4",
    ),
)


def model_ids() -> list[str]:
    return [entry.id for entry in MODEL_CATALOG]


def find_model(model_id: str) -> ModelCatalogEntry | None:
    """Look up a catalog entry by id."""
    for entry in MODEL_CATALOG:
        if entry.id == model_id:
            return entry
    return None


def validate_model(model_id: str) -> ModelCatalogEntry:
    """Return the catalog entry for model_id.

    Raises:
        UnknownModelError: If the id is not in the catalog
    """
    entry = find_model(model_id)
    if entry is None:
        raise UnknownModelError(model_id, model_ids())
    return entry
