"""Artifact storage for reconciliation runs.

Each recompute run that is saved gets its own directory::

    <base>/<run_id>/result.json        full ReconciliationResult
    <base>/<run_id>/anomalies.json     anomaly export rows
    <base>/<run_id>/statements/<slug>.json

Every write returns a DataReference carrying the SHA-256 of the bytes
written; reads verify it so a hand-edited report is caught before it is
trusted.
"""

import hashlib
import json
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Type, TypeVar

from pydantic import BaseModel

from core.observability.logging import get_logger
from models.refs import DataReference


logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

RESULT_FILE = "result.json"
ANOMALIES_FILE = "anomalies.json"
STATEMENTS_DIR = "statements"


def _sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _to_jsonable(obj: Any) -> Any:
    # Records dump with their camelCase aliases so saved files match the input shape
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json", by_alias=True)
    if isinstance(obj, (list, tuple)):
        return [_to_jsonable(item) for item in obj]
    return obj


def run_directory(base: Path, run_id: str) -> Path:
    return base / run_id


def statement_path(base: Path, run_id: str, profile_key: str) -> Path:
    """File for one profile's statement; the key is slugged for the filesystem."""
    slug = re.sub(r"[^a-z0-9]+", "-", profile_key.lower()).strip("-") or "profile"
    return run_directory(base, run_id) / STATEMENTS_DIR / f"{slug}.json"


def put_json(obj: Any, path: Path, ensure_parent: bool = True) -> DataReference:
    """Write a model, or a list/dict of models and plain values, as JSON.

    Args:
        obj: Pydantic model or JSON-compatible data (Decimals and dates are
            stringified)
        path: Destination file
        ensure_parent: Create missing parent directories

    Returns:
        DataReference for reading it back with get_json / get_model
    """
    if ensure_parent:
        path.parent.mkdir(parents=True, exist_ok=True)

    payload = json.dumps(_to_jsonable(obj), indent=2, default=str, ensure_ascii=False)
    data = payload.encode("utf-8")
    path.write_bytes(data)

    logger.debug(f"Wrote {len(data)} bytes to {path}")
    return DataReference(
        storage_uri=str(path.absolute()),
        content_hash=_sha256(data),
        content_type="application/json",
        size_bytes=len(data),
        stored_at=datetime.utcnow(),
    )


def get_json(ref: DataReference, validate_hash: bool = True) -> Any:
    """Read an artifact back as plain JSON data.

    Raises:
        FileNotFoundError: If the file is gone
        ValueError: If the content no longer matches the stored hash
    """
    path = Path(ref.storage_uri)
    if not path.exists():
        raise FileNotFoundError(f"Artifact not found: {ref.storage_uri}")

    data = path.read_bytes()
    if validate_hash:
        actual = _sha256(data)
        if actual != ref.content_hash:
            raise ValueError(
                f"Hash mismatch for {ref.storage_uri}: "
                f"expected {ref.content_hash}, got {actual}"
            )

    return json.loads(data.decode("utf-8"))


def get_model(ref: DataReference, model: Type[ModelT], validate_hash: bool = True) -> ModelT:
    """Read an artifact back into a model, e.g. ``get_model(ref, Statement)``."""
    return model.model_validate(get_json(ref, validate_hash))


def artifact_exists(ref: DataReference) -> bool:
    return Path(ref.storage_uri).exists()
