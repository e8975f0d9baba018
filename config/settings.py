"""Service settings for the grounding service.

Values are read from environment variables by ``Settings.from_env()``.
"""

import os
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field

DEFAULT_UNIPROT_URL = (
    "https://ftp.uniprot.org/pub/databases/uniprot/current_release/"
    "knowledgebase/complete/uniprot_sprot.xml.gz"
)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Settings(BaseModel):
    """Ingestion, download and logging settings."""
    input_path: Path = Field(default=Path("input"), description="Directory for downloaded source files")
    uniprot_url: str = Field(default=DEFAULT_UNIPROT_URL, description="UniProt XML dump URL")
    uniprot_file_name: str = Field(default="uniprot.xml.gz", description="Local name of the UniProt dump")

    batch_size: int = Field(default=100, ge=1, description="Records per store insert")
    max_pending_batches: int = Field(default=0, ge=0, description="Undelivered batches before parsing pauses; 0 is unbounded")
    xml_chunk_size: int = Field(default=64 * 1024, ge=1, description="Bytes fed to the XML parser per step")

    supported_organisms: Optional[List[str]] = Field(default=None, description="Organism allow-list override")

    download_timeout: int = Field(default=3600, ge=1, description="Download timeout in seconds")
    download_max_retries: int = Field(default=3, ge=0, description="Download retry attempts")

    max_search_size: int = Field(default=100, ge=1, description="Upper bound for search result size")

    log_level: str = Field(default="INFO", description="Log level")
    log_json: bool = Field(default=False, description="Emit JSON logs on the console")
    log_file: Optional[str] = Field(default=None, description="Optional JSON log file")

    @classmethod
    def from_env(cls) -> 'Settings':
        """Create settings from environment variables."""
        organisms = os.getenv('SUPPORTED_ORGANISMS')

        return cls(
            input_path=Path(os.getenv('INPUT_PATH', 'input')),
            uniprot_url=os.getenv('UNIPROT_URL', DEFAULT_UNIPROT_URL),
            uniprot_file_name=os.getenv('UNIPROT_FILE_NAME', 'uniprot.xml.gz'),
            batch_size=int(os.getenv('INGEST_BATCH_SIZE', '100')),
            max_pending_batches=int(os.getenv('INGEST_MAX_PENDING_BATCHES', '0')),
            xml_chunk_size=int(os.getenv('XML_CHUNK_SIZE', str(64 * 1024))),
            supported_organisms=[o.strip() for o in organisms.split(',') if o.strip()] if organisms else None,
            download_timeout=int(os.getenv('DOWNLOAD_TIMEOUT', '3600')),
            download_max_retries=int(os.getenv('DOWNLOAD_MAX_RETRIES', '3')),
            max_search_size=int(os.getenv('MAX_SEARCH_SIZE', '100')),
            log_level=os.getenv('LOG_LEVEL', 'INFO'),
            log_json=_env_bool('LOG_JSON', False),
            log_file=os.getenv('LOG_FILE')
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Process-wide settings, read from the environment on first use."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings(settings: Optional[Settings] = None) -> None:
    """Replace (or forget) the cached settings."""
    global _settings
    _settings = settings
