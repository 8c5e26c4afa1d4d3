"""Git-backed revision history."""

from pagevault.docstore.history.engine import HistoryEngine
from pagevault.docstore.history.git import GitBackend, GitCommandError
