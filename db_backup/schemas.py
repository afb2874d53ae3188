from pydantic import BaseModel, ConfigDict, Field
from typing import List, Literal, Optional

Engine = Literal["mongodb", "postgresql", "mysql", "sqlite"]
StorageKind = Literal["local", "s3", "gcs", "azure"]
BackupType = Literal["full", "incremental", "differential"]


class DatabaseConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    engine: Engine = "mongodb"
    host: Optional[str] = None
    port: Optional[int] = None
    username: Optional[str] = None
    password: Optional[str] = Field(default=None, repr=False)
    database: str
    connection_string: Optional[str] = Field(default=None, repr=False)


class StorageCredentials(BaseModel):
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = Field(default=None, repr=False)
    region: Optional[str] = None
    endpoint_url: Optional[str] = None
    connection_string: Optional[str] = Field(default=None, repr=False)


class StorageConfig(BaseModel):
    kind: StorageKind = "local"
    credentials: Optional[StorageCredentials] = None
    bucket: Optional[str] = None
    container: Optional[str] = None
    # Key prefix applied by BackupService: <base_path>/<timestamp>/<filename>
    base_path: str = ""
    # Directory local keys resolve against
    root: Optional[str] = None


class BackupOptions(BaseModel):
    type: BackupType = "full"
    compress: bool = True
    destination: str
    exclude_tables: Optional[List[str]] = None
    # Run timestamp chosen by the caller; the engine reads its own clock when unset
    timestamp: Optional[str] = None


class RestoreOptions(BaseModel):
    selected_tables: Optional[List[str]] = None
    overwrite: bool = False


class NotificationPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["success", "failure"]
    type: str
    duration: Optional[float] = None
    remote_path: Optional[str] = None
    error: Optional[str] = None


class CommandResult(BaseModel):
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0
