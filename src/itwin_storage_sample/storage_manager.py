"""Storage workflow orchestration on top of :class:`EndpointClient`."""

from __future__ import annotations

import logging
from pathlib import Path
from types import TracebackType
from typing import IO, Any, NoReturn, TypeVar

from .endpoint_client import ClientConfig, EndpointClient
from .envelopes import LinksT, ListResult
from .errors import StorageRequestError
from .models import (
    ApiModel,
    File,
    FileCreate,
    FileUpdate,
    FileUploadLinks,
    Folder,
    FolderCreate,
    FolderUpdate,
    Link,
    PaginationLinks,
    TopLevelItemsLinks,
)
from .settings import Settings

logger = logging.getLogger(__name__)

ItemT = TypeVar("ItemT", bound=ApiModel)


def _pagination_params(skip: int | None, top: int | None) -> dict[str, Any]:
    params: dict[str, Any] = {}
    if skip is not None:
        params["$skip"] = skip
    if top is not None:
        params["$top"] = top
    return params


def _raise_unexpected(result: Any, method: str, url: str) -> NoReturn:
    error = result.error
    raise StorageRequestError(
        status_code=result.status,
        method=method,
        url=url,
        code=error.code if error else None,
        message=error.message if error else result.content,
    )


class StorageManager:
    """Runs Storage API operations and remembers what it created.

    Every operation raises :class:`StorageRequestError` when the API answers
    with anything but the documented success status. Folders, files and
    local downloads created through the manager are removed by
    :meth:`cleanup`, which runs automatically when the manager is used as
    an async context manager.
    """

    def __init__(
        self,
        client: EndpointClient,
        project_id: str,
        *,
        owns_client: bool = False,
    ) -> None:
        self._client = client
        self._project_id = project_id
        self._owns_client = owns_client
        self._folders: list[Folder] = []
        self._files: list[File] = []
        self._downloaded_paths: list[Path] = []

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        token: str | None = None,
        project_id: str | None = None,
    ) -> StorageManager:
        project_id = project_id or settings.itwin_project_id
        if not project_id:
            raise ValueError("A project id is required")
        client = EndpointClient(ClientConfig.from_settings(settings, token=token))
        return cls(client, project_id, owns_client=True)

    async def __aenter__(self) -> StorageManager:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            await self.cleanup()
        finally:
            if self._owns_client:
                await self._client.aclose()

    # Listing

    async def get_top_level_items(
        self, skip: int | None = None, top: int | None = None
    ) -> ListResult[TopLevelItemsLinks]:
        """List the project's top-level files and folders, including the root folder link."""
        params = {"projectId": self._project_id, **_pagination_params(skip, top)}
        result = await self._client.get_list("/storage", TopLevelItemsLinks, params=params)
        if result.status != 200:
            _raise_unexpected(result, "GET", "/storage")
        self._log_listing("get_top_level_items", result)
        return result

    async def get_folder_items(
        self, folder_id: str, skip: int | None = None, top: int | None = None
    ) -> ListResult[PaginationLinks]:
        path = f"/storage/folders/{folder_id}/list"
        result = await self._client.get_list(
            path, PaginationLinks, params=_pagination_params(skip, top)
        )
        if result.status != 200:
            _raise_unexpected(result, "GET", path)
        self._log_listing("get_folder_items", result)
        return result

    async def get_recycle_bin_items(
        self, skip: int | None = None, top: int | None = None
    ) -> ListResult[PaginationLinks]:
        params = {"projectId": self._project_id, **_pagination_params(skip, top)}
        result = await self._client.get_list("/storage/recycleBin", PaginationLinks, params=params)
        if result.status != 200:
            _raise_unexpected(result, "GET", "/storage/recycleBin")
        self._log_listing("get_recycle_bin_items", result)
        return result

    async def get_instances_from_link(
        self, link: Link, links_model: type[LinksT]
    ) -> ListResult[LinksT]:
        """Follow a listing link such as ``next`` or ``prev``."""
        result = await self._client.get_list(link.href, links_model)
        if result.status != 200:
            _raise_unexpected(result, "GET", link.href)
        self._log_listing("get_instances_from_link", result)
        return result

    async def get_instance_from_link(self, link: Link, model: type[ItemT], field: str) -> ItemT:
        """Follow an entity link, e.g. ``get_instance_from_link(link, Folder, "folder")``."""
        result = await self._client.get_single(link.href, model, field=field)
        if result.status != 200 or result.instance is None:
            _raise_unexpected(result, "GET", link.href)
        logger.info("[get_instance_from_link] retrieved %s; href:%s", field, link.href)
        return result.instance

    # Folders

    async def create_folder(self, folder: FolderCreate, parent_folder_id: str) -> Folder:
        path = f"/storage/folders/{parent_folder_id}/folders"
        result = await self._client.post(path, Folder, folder)
        if result.status != 201 or result.instance is None:
            _raise_unexpected(result, "POST", path)
        created = result.instance
        self._folders.append(created)
        logger.info("[create_folder] created; id:%s name:%s", created.id, created.display_name)
        return created

    async def update_folder(self, folder: FolderUpdate, folder_id: str) -> Folder:
        path = f"/storage/folders/{folder_id}"
        result = await self._client.patch(path, folder, Folder)
        if result.status != 200 or result.instance is None:
            _raise_unexpected(result, "PATCH", path)
        logger.info("[update_folder] updated; id:%s name:%s", folder_id, result.instance.display_name)
        return result.instance

    async def delete_folder(self, folder_id: str) -> None:
        await self._delete(f"/storage/folders/{folder_id}")
        logger.info("[delete_folder] moved to recycle bin; id:%s", folder_id)

    async def delete_folder_from_recycle_bin(self, folder_id: str) -> None:
        await self._delete(f"/storage/recycleBin/folders/{folder_id}")
        logger.info("[delete_folder_from_recycle_bin] purged; id:%s", folder_id)

    async def restore_folder(self, folder_id: str) -> None:
        await self._restore(f"/storage/recycleBin/folders/{folder_id}/restore")
        logger.info("[restore_folder] restored; id:%s", folder_id)

    # Files

    async def create_file(
        self, file: FileCreate, parent_folder_id: str, content: bytes | IO[bytes]
    ) -> File:
        """Create a file: register its metadata, upload the content, then confirm."""
        path = f"/storage/folders/{parent_folder_id}/files"
        links = await self._upload_links(path, file)
        created = await self._upload_and_complete(links, content)
        self._files.append(created)
        logger.info("[create_file] created; id:%s name:%s", created.id, created.display_name)
        return created

    async def update_file_content(self, file_id: str, content: bytes | IO[bytes]) -> File:
        links = await self._upload_links(f"/storage/files/{file_id}/updateContent")
        updated = await self._upload_and_complete(links, content)
        logger.info("[update_file_content] content replaced; id:%s", file_id)
        return updated

    async def update_file(self, file: FileUpdate, file_id: str) -> File:
        path = f"/storage/files/{file_id}"
        result = await self._client.patch(path, file, File)
        if result.status != 200 or result.instance is None:
            _raise_unexpected(result, "PATCH", path)
        logger.info("[update_file] updated; id:%s name:%s", file_id, result.instance.display_name)
        return result.instance

    async def download_file(self, file_id: str, destination: str | Path) -> Path:
        path = f"/storage/files/{file_id}/download"
        destination = Path(destination)
        result = await self._client.download(path, destination)
        if result.status != 200:
            _raise_unexpected(result, "GET", path)
        if destination not in self._downloaded_paths:
            self._downloaded_paths.append(destination)
        logger.info("[download_file] downloaded; id:%s destination:%s", file_id, destination)
        return destination

    async def delete_file(self, file_id: str) -> None:
        await self._delete(f"/storage/files/{file_id}")
        logger.info("[delete_file] moved to recycle bin; id:%s", file_id)

    async def delete_file_from_recycle_bin(self, file_id: str) -> None:
        await self._delete(f"/storage/recycleBin/files/{file_id}")
        logger.info("[delete_file_from_recycle_bin] purged; id:%s", file_id)

    async def restore_file(self, file_id: str) -> None:
        await self._restore(f"/storage/recycleBin/files/{file_id}/restore")
        logger.info("[restore_file] restored; id:%s", file_id)

    # Teardown

    async def cleanup(self) -> list[Exception]:
        """Remove everything created through this manager.

        Failures do not stop the cleanup; they are logged and returned.
        """
        errors: list[Exception] = []
        for folder in self._folders:
            try:
                await self.delete_folder(folder.id)
                await self.delete_folder_from_recycle_bin(folder.id)
            except Exception as exc:  # noqa: BLE001
                logger.warning("[cleanup] folder not removed; id:%s error:%s", folder.id, exc)
                errors.append(exc)
        for file in self._files:
            try:
                await self.delete_file(file.id)
                await self.delete_file_from_recycle_bin(file.id)
            except Exception as exc:  # noqa: BLE001
                logger.warning("[cleanup] file not removed; id:%s error:%s", file.id, exc)
                errors.append(exc)
        for local_path in self._downloaded_paths:
            try:
                if local_path.exists():
                    local_path.unlink()
                    logger.info("[cleanup] local file removed; path:%s", local_path)
            except OSError as exc:
                logger.warning("[cleanup] local file not removed; path:%s error:%s", local_path, exc)
                errors.append(exc)

        self._folders.clear()
        self._files.clear()
        self._downloaded_paths.clear()
        return errors

    # Internals

    async def _delete(self, path: str) -> None:
        result = await self._client.delete(path)
        if result.status != 204:
            _raise_unexpected(result, "DELETE", path)

    async def _restore(self, path: str) -> None:
        result = await self._client.post_action(path)
        if result.status != 204:
            _raise_unexpected(result, "POST", path)

    async def _upload_links(self, path: str, body: ApiModel | None = None) -> FileUploadLinks:
        result = await self._client.post(path, FileUploadLinks, body)
        if result.status != 202 or result.instance is None:
            _raise_unexpected(result, "POST", path)
        return result.instance

    async def _upload_and_complete(self, links: FileUploadLinks, content: bytes | IO[bytes]) -> File:
        upload = await self._client.upload(links.upload_url.href, content)
        if upload.status != 201:
            # Pre-signed URLs carry credentials, keep them out of the error.
            _raise_unexpected(upload, "PUT", links.upload_url.href.split("?", 1)[0])

        complete_url = links.complete_url.href
        result = await self._client.post(complete_url, File)
        if result.status != 200 or result.instance is None:
            _raise_unexpected(result, "POST", complete_url)
        return result.instance

    @staticmethod
    def _log_listing(operation: str, result: ListResult[Any]) -> None:
        logger.info(
            "[%s] retrieved; folders:%s files:%s",
            operation,
            len(result.folders),
            len(result.files),
        )
