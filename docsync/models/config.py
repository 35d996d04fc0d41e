"""Configuration models for the sync system."""

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfluenceConfig(BaseModel):
    """Configuration for the Confluence source."""

    base_url: HttpUrl = Field(default=..., description="Confluence instance URL")
    auth_token: str = Field(default=..., description="API authentication token")
    space_key: str = Field(default=..., description="Space key to sync")
    cloud: bool = Field(default=True, description="True for Cloud, False for Server/Data Center")
    page_size: int = Field(default=100, ge=1, le=500, description="Records per listing request")
    cql_timezone: str = Field(
        default="UTC", description="Timezone of the API user's profile, in which CQL reads dates"
    )

    @field_validator("cql_timezone")
    @classmethod
    def validate_cql_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v


class ProcessingConfig(BaseModel):
    """Configuration for content rendering and chunking."""

    chunk_size: int = Field(
        default=1000, ge=500, le=2000, description="Target chunk size in characters"
    )
    chunk_overlap: int = Field(
        default=200, ge=0, le=500, description="Overlap between chunks in characters"
    )
    embedding_model: str = Field(
        default="all-MiniLM-L6-v2", description="Sentence transformer model name"
    )


class VectorStoreConfig(BaseModel):
    """Configuration for the vector store holding rendered content."""

    collection_name: str = Field(default="docsync", description="Collection/index name")
    persist_directory: str = Field(default="./chroma_db", description="Persistence directory")


class StateConfig(BaseModel):
    """Locations of local sync state."""

    link_index_path: str = Field(
        default="./state/link_index.json", description="File backing the link index"
    )
    progress_directory: str = Field(
        default="./state/progress", description="Directory for per-task progress files"
    )
    lease_path: str = Field(default="./state/sync.lease", description="Lease file path")


class SyncSettings(BaseModel):
    """Tunables for a sync pass."""

    refilter_threshold: int = Field(
        default=50, ge=0, description="Re-filter client side above this many changed records"
    )
    bulk_mode_enabled: bool = Field(default=True, description="Allow the bulk execution path")
    bulk_threshold: int = Field(
        default=10, ge=1, description="Minimum record count for the bulk path"
    )
    memory_reclaim_interval: int = Field(
        default=10, ge=1, description="Run a collection cycle every N records"
    )
    progress_interval: int = Field(
        default=10, ge=1, description="Publish progress every N records"
    )
    deletion_batch_size: int = Field(
        default=1000, ge=1, description="Links scanned per reconciliation batch"
    )
    deletion_grace_hours: float = Field(
        default=24.0, ge=0.0, description="Recently synced links are exempt from deletion"
    )
    retry_backoff_seconds: float = Field(
        default=1.0, ge=0.0, description="Wait before retrying a failed listing"
    )
    timestamp_tolerance_seconds: int = Field(
        default=0, ge=0, description="Allowed clock skew when comparing edit times"
    )
    compare_hashes: bool = Field(
        default=True, description="Require matching hashes in addition to edit times to skip"
    )
    memory_budget_mb: int | None = Field(
        default=None, ge=1, description="Memory budget; detected from the host when unset"
    )
    lease_ttl_seconds: int = Field(default=1800, ge=1, description="Lease expiry")
    lease_wait_seconds: float = Field(
        default=60.0, ge=0.0, description="How long a trigger waits for a running pass"
    )
    schedule_interval_seconds: int = Field(
        default=3600, ge=60, description="Interval between scheduled passes"
    )


class WebhookConfig(BaseModel):
    """Defaults for passes started by webhook events."""

    incremental: bool = Field(default=True, description="Run webhook passes incrementally")
    check_deletions: bool = Field(
        default=True, description="Reconcile deletions on database-level events"
    )


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        description="If True, output JSON logs. If False, use console format.",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional path to log file. If None, logs only to stdout.",
    )


class AppConfig(BaseSettings):
    """Main application configuration.

    This class uses pydantic-settings to load configuration from environment
    variables with the APP_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    confluence: ConfluenceConfig
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
    vector_store: VectorStoreConfig = Field(default_factory=VectorStoreConfig)
    state: StateConfig = Field(default_factory=StateConfig)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
