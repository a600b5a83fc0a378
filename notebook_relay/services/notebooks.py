"""Read-only notebook directory (``library.json``)."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from loguru import logger

from notebook_relay.core.exceptions import NotFoundError
from notebook_relay.utils.atomic_io import read_json


@dataclass(frozen=True)
class NotebookEntry:
    """One knowledge base the operator has registered."""

    id: str
    url: str
    name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NotebookEntry":
        """Create NotebookEntry from dictionary."""
        missing = [f for f in ("id", "url") if not data.get(f)]
        if missing:
            raise ValueError(f"NotebookEntry.from_dict: missing required fields: {missing}")
        return cls(id=str(data["id"]), url=str(data["url"]), name=data.get("name"))


class NotebookDirectory:
    """Resolves notebook ids to chat URLs."""

    def __init__(self, library_path: Union[str, Path]):
        """
        Initialize notebook directory.

        Args:
            library_path: Path to library.json
        """
        self.library_path = Path(library_path)
        self._notebooks: Dict[str, NotebookEntry] = {}
        self._active_id: Optional[str] = None

    def load(self) -> int:
        """
        (Re)load library.json; a missing file yields an empty directory.

        Returns:
            Number of notebooks loaded
        """
        data = read_json(self.library_path, default={})
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed notebook library {self.library_path}")
            data = {}

        notebooks: Dict[str, NotebookEntry] = {}
        for raw in data.get("notebooks", []):
            try:
                entry = NotebookEntry.from_dict(raw)
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping invalid notebook entry: {e}")
                continue
            notebooks[entry.id] = entry

        self._notebooks = notebooks
        self._active_id = data.get("active_notebook_id")
        logger.debug(f"Loaded {len(notebooks)} notebooks from {self.library_path}")
        return len(notebooks)

    def list_notebooks(self) -> List[NotebookEntry]:
        return list(self._notebooks.values())

    def get(self, notebook_id: str) -> Optional[NotebookEntry]:
        return self._notebooks.get(notebook_id)

    def get_active(self) -> Optional[NotebookEntry]:
        """The notebook marked active, if any."""
        if not self._active_id:
            return None
        return self._notebooks.get(self._active_id)

    def resolve_url(
        self,
        notebook_id: Optional[str] = None,
        notebook_url: Optional[str] = None,
        default_url: Optional[str] = None,
    ) -> str:
        """
        Pick the chat URL for a request.

        Order: explicit URL, notebook id, active notebook, ``default_url``.

        Raises:
            NotFoundError: If an unknown id is given or nothing resolves
        """
        if notebook_url:
            return notebook_url

        if notebook_id:
            entry = self.get(notebook_id)
            if entry is None:
                raise NotFoundError(
                    f"Notebook not found: {notebook_id}", resource="notebook", identifier=notebook_id
                )
            return entry.url

        active = self.get_active()
        if active is not None:
            return active.url

        if default_url:
            return default_url

        raise NotFoundError(
            "No notebook specified and no active or default notebook configured",
            resource="notebook",
        )
