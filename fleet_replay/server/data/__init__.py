from .data_source import (
    DataSource,
    DataFetchError,
    StaticDataSource,
    JsonFileDataSource,
    HttpDataSource,
    create_data_source_from_config,
)

__all__ = [
    "DataSource",
    "DataFetchError",
    "StaticDataSource",
    "JsonFileDataSource",
    "HttpDataSource",
    "create_data_source_from_config",
]
