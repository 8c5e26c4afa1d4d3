"""Path validation and the local filesystem File Store."""

from pagevault.docstore.store.local import FileStore
from pagevault.docstore.store.paths import PathValidator, SafePath
