from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class JSONOptions(BaseModel):
    """Formatting options used when emitting JSON bodies"""

    model_config = ConfigDict(frozen=True)

    indent: str = "\t"
    multiline: bool = True
    canonicalize_raw_ints: bool = False
    none_collections_as_null: bool = False


class Settings(BaseSettings):
    """Application configuration loaded from environment variables

    Built once at startup and passed into the decoder, writers and handler
    adapters. Frozen so that no component can reconfigure it mid-flight.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
    )

    # Application
    ENVIRONMENT: str = "development"
    API_TITLE: str = "rpclens"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Content negotiation
    # Incorrect Content-Type is always rejected (JSON sent as text/plain
    # bypasses CORS preflight), but the header itself can be made optional.
    ALLOW_BLANK_CONTENT_TYPE: bool = False
    ALLOW_UTF8_CHARSET: bool = False

    # JSON output
    JSON_INDENT: str = "\t"
    JSON_MULTILINE: bool = True
    JSON_CANONICALIZE_RAW_INTS: bool = False
    JSON_NONE_COLLECTIONS_AS_NULL: bool = False

    @property
    def json_options(self) -> JSONOptions:
        return JSONOptions(
            indent=self.JSON_INDENT,
            multiline=self.JSON_MULTILINE,
            canonicalize_raw_ints=self.JSON_CANONICALIZE_RAW_INTS,
            none_collections_as_null=self.JSON_NONE_COLLECTIONS_AS_NULL,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
