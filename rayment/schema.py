"""
Job, quote and batch schema for the pay-then-render flow.

Contract: client submits a file → hub returns 402 + Quote → client pays →
client confirms payment → hub queues and renders → client polls, then fetches
the result. Wire names follow the hub (camelCase aliases); Python code uses the
snake_case field names.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class JobStatus(str, Enum):
    SUBMITTED = "submitted"
    PAYMENT_PENDING = "payment_pending"
    PAID = "paid"
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @classmethod
    def from_wire(cls, value: Any) -> "JobStatus":
        """Map a hub status string (e.g. 'pending_payment', 'rendering') onto JobStatus."""
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        text = _WIRE_STATUS_ALIASES.get(text, text)
        return cls(text)


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})

_WIRE_STATUS_ALIASES = {
    "pending_payment": "payment_pending",
    "rendering": "running",
}


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------


class Tariff(_WireModel):
    """A provider's per-unit pricing table. Read-only for the client."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    price_per_unit_work: float = Field(..., ge=0, alias="pricePerFrame", description="Price per frame")
    price_per_unit_time: float = Field(..., ge=0, alias="pricePerSecond", description="Price per second of render time")
    price_per_unit_size: float = Field(..., ge=0, alias="pricePerGb", description="Price per GiB of scene file")
    minimum_price: float = Field(0.0, ge=0, alias="minimumPrice")
    currency: str = Field("ETH", description="Sepolia ETH; the hub may send its own label")


class JobCharacteristics(BaseModel):
    """What the job costs to run: computed once per job."""

    model_config = ConfigDict(frozen=True)

    size_bytes: int = Field(..., ge=0)
    work_units: int = Field(1, ge=0, description="Frames to render")
    estimated_time_seconds: float = Field(..., ge=0, description="Caller-supplied render time estimate")

    @classmethod
    def for_file(
        cls,
        path: os.PathLike,
        settings: Optional["RenderSettings"] = None,
        estimated_time_seconds: float = 60.0,
    ) -> "JobCharacteristics":
        """Size from the file on disk, work units from the requested frame range."""
        work_units = settings.frame_count if settings is not None else 1
        return cls(
            size_bytes=Path(path).stat().st_size,
            work_units=work_units,
            estimated_time_seconds=estimated_time_seconds,
        )


class PriceBreakdown(_WireModel):
    """Fee components are unrounded; only total is rounded (6 places)."""

    base_price: float = Field(..., ge=0, alias="basePrice")
    size_fee: float = Field(..., ge=0, alias="fileSizeFee")
    work_fee: float = Field(..., ge=0, alias="frameFee")
    time_fee: float = Field(..., ge=0, alias="estimatedRenderFee")
    platform_fee: float = Field(..., ge=0, alias="platformFee")
    total: float = Field(..., ge=0)


# ---------------------------------------------------------------------------
# Render settings and hub views
# ---------------------------------------------------------------------------


class Resolution(BaseModel):
    width: int = Field(1920, gt=0)
    height: int = Field(1080, gt=0)


class FrameRange(BaseModel):
    start: int = Field(..., ge=0)
    end: int = Field(..., ge=0)

    @field_validator("end")
    @classmethod
    def _end_after_start(cls, end: int, info) -> int:
        start = info.data.get("start")
        if start is not None and end < start:
            raise ValueError(f"frame range end ({end}) is before start ({start})")
        return end


class RenderSettings(BaseModel):
    resolution: Resolution = Field(default_factory=Resolution)
    frames: Optional[FrameRange] = None
    engine: Optional[str] = Field(None, description="'cycles' or 'eevee'")
    samples: Optional[int] = Field(None, gt=0)
    output_format: str = Field("PNG", alias="outputFormat", description="PNG, JPEG or EXR")

    model_config = ConfigDict(populate_by_name=True)

    @property
    def frame_count(self) -> int:
        if self.frames is None:
            return 1
        return self.frames.end - self.frames.start + 1

    @property
    def file_extension(self) -> str:
        fmt = self.output_format.lower()
        return ".jpg" if fmt == "jpeg" else f".{fmt}"

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class GpuSpec(_WireModel):
    name: str
    vram: float = Field(..., description="VRAM in GB")
    cuda_cores: Optional[int] = Field(None, alias="cudaCores")
    tensor_cores: Optional[int] = Field(None, alias="tensorCores")


class ProviderSpec(_WireModel):
    gpus: List[GpuSpec] = Field(default_factory=list)
    gpu_count: int = Field(0, alias="gpuCount")
    total_vram: float = Field(0, alias="totalVram")
    max_file_size: float = Field(0, alias="maxFileSize", description="MB")
    supported_formats: List[str] = Field(default_factory=list, alias="supportedFormats")
    blender_version: Optional[str] = Field(None, alias="blenderVersion")
    render_engines: List[str] = Field(default_factory=list, alias="renderEngines")


class Provider(_WireModel):
    id: str
    name: str
    wallet: str
    endpoint: Optional[str] = None
    spec: Optional[ProviderSpec] = None
    pricing: Tariff
    status: str = "offline"
    rating: float = 0.0
    completed_jobs: int = Field(0, alias="completedJobs")


class HubStats(_WireModel):
    total_providers: int = Field(0, alias="totalProviders")
    online_providers: int = Field(0, alias="onlineProviders")
    total_jobs: int = Field(0, alias="totalJobs")
    completed_jobs: int = Field(0, alias="completedJobs")
    total_volume: float = Field(0.0, alias="totalVolumeSOL")
    avg_render_time: float = Field(0.0, alias="avgRenderTime")


# ---------------------------------------------------------------------------
# Job lifecycle
# ---------------------------------------------------------------------------


class Quote(_WireModel):
    """402 response: the price of one job, who to pay, and until when."""

    job_id: str = Field(..., alias="jobId")
    price: float = Field(..., ge=0)
    pay_to: str = Field(..., alias="payTo", description="Provider payment address")
    expires_at: float = Field(..., alias="expiresAt", description="Unix timestamp (seconds)")
    memo: str = Field("", description="Payment memo / job reference")
    breakdown: Optional[PriceBreakdown] = None

    @field_validator("expires_at")
    @classmethod
    def _seconds(cls, value: float) -> float:
        # The hub sends JavaScript millisecond timestamps.
        if value > 1e11:
            return value / 1000.0
        return value

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class StatusReport(_WireModel):
    """One poll of the hub's job view."""

    status: JobStatus
    error: Optional[str] = None
    result_ref: Optional[str] = Field(None, alias="resultUrl")
    render_time: Optional[float] = Field(None, alias="renderTime")

    @field_validator("status", mode="before")
    @classmethod
    def _wire_status(cls, value: Any) -> JobStatus:
        return JobStatus.from_wire(value)


class JobRecord(BaseModel):
    """State of one job. Written only by the lifecycle that owns it."""

    id: Optional[str] = Field(None, description="Assigned by the hub on submission")
    input_ref: str
    status: Optional[JobStatus] = None
    price: Optional[float] = None
    payment_ref: Optional[str] = None
    created_at: Optional[float] = None
    paid_at: Optional[float] = Field(None, description="Set when the hub accepted the payment")
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    render_time: Optional[float] = None
    result_ref: Optional[str] = None
    result: Optional[bytes] = Field(None, repr=False)
    error_message: Optional[str] = None


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------


class FileStatus(BaseModel):
    """Snapshot of one batch entry. status None means not started yet."""

    input_ref: str
    status: Optional[JobStatus] = None
    job_id: Optional[str] = None
    cost: Optional[float] = Field(None, description="Set once the job reached 'paid'")
    error: Optional[str] = None
    render_time: Optional[float] = None
    result_ref: Optional[str] = None

    @classmethod
    def from_record(cls, record: JobRecord) -> "FileStatus":
        paid = record.paid_at is not None
        return cls(
            input_ref=record.input_ref,
            status=record.status,
            job_id=record.id,
            cost=record.price if paid else None,
            error=record.error_message,
            render_time=record.render_time,
            result_ref=record.result_ref,
        )


class BatchProgress(BaseModel):
    total: int
    completed: int
    failed: int
    in_progress: int
    total_cost: float
    elapsed_time: float


class BatchFileResult(BaseModel):
    input_ref: str
    status: Optional[JobStatus] = None
    job_id: Optional[str] = None
    cost: Optional[float] = None
    render_time: Optional[float] = None
    result_ref: Optional[str] = None
    error: Optional[str] = None


class BatchStats(BaseModel):
    total: int
    completed: int
    failed: int
    avg_render_time: float
    avg_cost: float


class BatchResult(BaseModel):
    successful: List[BatchFileResult] = Field(default_factory=list)
    failed: List[BatchFileResult] = Field(default_factory=list)
    total_cost: float = 0.0
    total_time: float = 0.0
    stats: BatchStats
