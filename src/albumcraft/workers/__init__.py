"""Background workers draining the album job queue."""

from .materializer import AlbumMaterializer, MaterializedAlbum
from .queue_worker import AlbumQueueWorker
from .worker_pool import WorkerPool

__all__ = ["AlbumMaterializer", "AlbumQueueWorker", "MaterializedAlbum", "WorkerPool"]
