from typing import Dict, Optional, Type

from ..runner import CommandRunner
from ..schemas import DatabaseConfig
from .base import DatabaseConnection
from .mongodb import MongoDBConnection
from .postgres import PostgresConnection

ENGINES: Dict[str, Type[DatabaseConnection]] = {
    "mongodb": MongoDBConnection,
    "postgresql": PostgresConnection,
}


def get_database_connection(config: DatabaseConfig, runner: Optional[CommandRunner] = None) -> DatabaseConnection:
    try:
        connection_cls = ENGINES[config.engine]
    except KeyError:
        raise ValueError(f"Unsupported database engine: {config.engine}") from None
    return connection_cls(config, runner=runner)


__all__ = [
    "DatabaseConnection",
    "MongoDBConnection",
    "PostgresConnection",
    "ENGINES",
    "get_database_connection",
]
