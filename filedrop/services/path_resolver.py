"""Human readable folder paths."""
from typing import List, Optional

from .folder_store import FolderStore

ROOT_LABEL = "All files"


class FolderPathResolver:
    """Thin view over FolderStore path lookups."""

    def __init__(self, folders: FolderStore):
        self._folders = folders

    def resolve(self, folder_id: Optional[str]) -> str:
        return self._folders.get_folder_path(folder_id)

    def segments(self, folder_id: Optional[str]) -> List[str]:
        return self._folders.get_path_segments(folder_id)

    def describe(self, folder_id: Optional[str]) -> str:
        """Path of a folder, or the root label for None and unknown ids."""
        return self.resolve(folder_id) or ROOT_LABEL
