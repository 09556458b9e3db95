"""AlbumCraft batch album service.

Admins and users submit batches of albums with their photos; the batch is
either created inline or queued as prioritized jobs that a pool of workers
turns into albums, photo rows and stored objects while clients follow the
progress over server-sent events.
"""

__version__ = "0.1.0"
