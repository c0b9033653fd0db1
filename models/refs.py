"""Data reference models for artifact storage and retrieval."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional
from pydantic import BaseModel, Field


class DataReference(BaseModel):
    """Reference to a stored artifact with metadata for retrieval and verification.

    Attributes:
        storage_uri: Absolute file path to the artifact
        content_hash: SHA256 hash of the content for integrity verification
        content_type: MIME type (e.g., "application/json")
        size_bytes: Size of the artifact in bytes
        stored_at: Timestamp when the artifact was stored
    """
    storage_uri: str = Field(..., description="Absolute file path to the artifact")
    content_hash: str = Field(..., description="SHA256 hash of content")
    content_type: str = Field(default="application/json", description="MIME type")
    size_bytes: int = Field(..., description="Size in bytes")
    stored_at: datetime = Field(default_factory=datetime.utcnow, description="Storage timestamp")


class ReconciliationRunRefs(BaseModel):
    """References to every artifact saved for one recompute run.

    Attributes:
        run_id: Identifier of the recompute pass
        strategy: Resolution strategy used ("strict" or "fuzzy")
        summaries_ref: Reference to the full ReconciliationResult JSON
        anomalies_ref: Reference to the anomaly export, if one was saved
        statement_refs: Profile key -> statement JSON reference
        metadata: Counts and timings for the run
    """
    run_id: str = Field(..., description="Recompute run identifier")
    strategy: str = Field(..., description="Resolution strategy")
    summaries_ref: Optional[DataReference] = Field(None, description="Result artifact reference")
    anomalies_ref: Optional[DataReference] = Field(None, description="Anomaly export reference")
    statement_refs: Dict[str, DataReference] = Field(default_factory=dict, description="Statement references by profile")
    metadata: dict = Field(default_factory=dict, description="Run metadata")
