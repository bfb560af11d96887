from collections.abc import Mapping

from loguru import logger
from starlette.applications import Starlette
from starlette.routing import Route

from .config import Settings
from .handler import AcceptLanguageHandler
from .logging_config import configure_logging
from .table import BuildError, TranslationTable


def load_table(settings: Settings) -> TranslationTable:
    """Builds the table from the configured file, or the built-in greetings."""
    try:
        if settings.translations_file is None:
            return TranslationTable.builtin()
        return TranslationTable.from_path(settings.translations_file)
    except BuildError as exc:
        logger.error(
            "Cannot build translation table from {}: {}",
            settings.translations_file or "built-in source",
            exc,
        )
        raise


def create_app(
    settings: Settings | None = None,
    table: TranslationTable | None = None,
    locations: Mapping[str, TranslationTable | None] | None = None,
) -> Starlette:
    """
    Returns a Starlette application serving negotiated greetings.

    The table is built here, before any request, so a bad translations
    file raises BuildError instead of starting the app. `locations` mounts
    extra paths with their own table; a `None` table inherits the app's.
    """
    if settings is None:
        settings = Settings()

    if settings.configure_logging:
        configure_logging(settings.environment, settings.log_level)

    if table is None:
        table = load_table(settings)

    tables = {settings.path: table}
    for path, location_table in (locations or {}).items():
        tables[path] = table if location_table is None else location_table

    routes = [
        Route(
            path,
            AcceptLanguageHandler(location_table, settings.fallback_text),
            methods=["GET", "HEAD"],
        )
        for path, location_table in tables.items()
    ]
    return Starlette(routes=routes)
