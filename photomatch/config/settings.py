from pydantic_settings import BaseSettings, SettingsConfigDict

MIB = 1024 * 1024


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "localhost"
    db_port: int = 5432
    db_database: str = "photomatch"
    db_username: str = "photomatch"
    db_password: str = "secret"

    storage_backend: str = "s3"
    s3_bucket_name: str = ""
    aws_region: str = "us-east-1"
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    local_storage_root: str = "./storage"

    face_backend: str = "rekognition"
    face_collection_prefix: str = "event-"

    media_normalizer: str = "pillow"
    max_file_size_bytes: int = 200 * MIB
    max_image_dimension: int = 2048
    jpeg_quality: int = 80

    disallowed_name_patterns: list[str] = ["selfie", "self"]

    upload_concurrency: int = 5
    upload_chunk_size: int = 20
    transfer_max_attempts: int = 5
    transfer_initial_delay_seconds: float = 2.0
    transfer_max_delay_seconds: float = 30.0
    retry_jitter_seconds: float = 1.0
    transfer_base_timeout_seconds: float = 60.0
    transfer_timeout_per_mib_seconds: float = 1.0
    max_in_flight_bytes: int = 256 * MIB
    memory_high_water_ratio: float = 0.8
    memory_pause_seconds: float = 1.0

    index_batch_size: int = 10
    index_batch_pause_seconds: float = 1.0
    index_max_retries: int = 3
    index_initial_delay_seconds: float = 1.0
    index_max_delay_seconds: float = 30.0
    index_probe_threshold: float = 95.0
    index_max_faces: int = 100
    existence_poll_attempts: int = 3
    existence_poll_interval_seconds: float = 0.5

    search_max_faces: int = 50
    search_min_similarity: float = 80.0
