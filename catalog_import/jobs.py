"""
Queued import job using Celery.

The import itself is synchronous; this module only defers it to a worker
and reports the outcome through the log.
"""

from typing import Any, Dict, Optional

from celery import Celery
from celery.result import AsyncResult
from loguru import logger

from .config import ImportSettings, load_settings
from .database import create_db_engine
from .errors import CatalogImportError
from .importer import ProductImporter


celery_app = Celery("catalog_import", broker="memory://")

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_always_eager=True,
)


def configure_queue(settings: ImportSettings) -> Celery:
    """Point the Celery app at the configured broker."""
    celery_app.conf.update(
        broker_url=settings.broker_url,
        task_always_eager=settings.queue_eager,
    )
    return celery_app


@celery_app.task(name="catalog_import.import_products")
def import_products_task(
    csv_path: str,
    database_url: Optional[str] = None,
    chunk_size: Optional[int] = None,
) -> Dict[str, Any]:
    """Run one catalog import and log its statistics."""
    settings = load_settings(overrides={'database_url': database_url, 'chunk_size': chunk_size})
    logger.info(f"Starting queued import from {csv_path}")

    engine = create_db_engine(settings.database_url)
    try:
        importer = ProductImporter(
            engine,
            chunk_size=settings.chunk_size,
            spool_max_size=settings.spool_max_size,
            max_reported_rejections=settings.max_reported_rejections,
        )
        stats = importer.import_products(csv_path)
    except CatalogImportError as e:
        logger.error(f"Error in queued import: {e}")
        raise
    finally:
        engine.dispose()

    logger.info("Queued import completed.")
    logger.info(f"Products imported: {stats.products_imported}")
    logger.info(f"Variants imported: {stats.variants_imported}")
    logger.warning(f"Corrupted rows: {stats.corrupted_rows}")
    return stats.to_dict()


def dispatch_import(csv_path: str, settings: ImportSettings) -> AsyncResult:
    """Queue an import of ``csv_path`` with the given settings."""
    configure_queue(settings)
    return import_products_task.delay(csv_path, settings.database_url, settings.chunk_size)
