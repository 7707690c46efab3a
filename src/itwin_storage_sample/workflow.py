"""The Storage API quick-start sequence run by the console application."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path

from .models import File, FileCreate, FileUpdate, Folder, FolderCreate, FolderUpdate
from .storage_manager import StorageManager

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WorkflowReport:
    root_folder: Folder
    folder: Folder
    file: File
    downloaded_to: Path
    recycle_bin_folders: int
    recycle_bin_files: int


async def run_storage_workflow(manager: StorageManager, download_dir: str | Path) -> WorkflowReport:
    """List, create, download, update, delete and restore one folder and one file.

    Created items are left for :meth:`StorageManager.cleanup` to remove.
    """
    top_level = await manager.get_top_level_items()
    if top_level.links is None or top_level.links.folder is None:
        raise ValueError("Top-level listing did not include a root folder link")
    root_folder = await manager.get_instance_from_link(top_level.links.folder, Folder, "folder")

    folder = await manager.create_folder(
        FolderCreate(display_name=f"Test Folder - {uuid.uuid4()}"), root_folder.id
    )
    file = await manager.create_file(
        FileCreate(display_name=f"Test File - {uuid.uuid4()}.txt"),
        root_folder.id,
        b"test content",
    )

    downloaded_to = await manager.download_file(
        file.id, Path(download_dir) / (file.display_name or file.id)
    )
    await manager.get_folder_items(root_folder.id)

    await manager.update_folder(
        FolderUpdate(
            display_name=f"Test Folder update - {uuid.uuid4()}",
            description="Updated description",
        ),
        folder.id,
    )
    await manager.update_file(
        FileUpdate(
            display_name=f"Test file update - {uuid.uuid4()}.txt",
            description="Updated description",
        ),
        file.id,
    )
    await manager.update_file_content(file.id, b"test content update")

    await manager.delete_folder(folder.id)
    await manager.delete_file(file.id)
    recycle_bin = await manager.get_recycle_bin_items()

    await manager.restore_folder(folder.id)
    await manager.restore_file(file.id)
    logger.info("[run_storage_workflow] completed; folder:%s file:%s", folder.id, file.id)

    return WorkflowReport(
        root_folder=root_folder,
        folder=folder,
        file=file,
        downloaded_to=downloaded_to,
        recycle_bin_folders=len(recycle_bin.folders),
        recycle_bin_files=len(recycle_bin.files),
    )
