"""Export and import of minion workspaces as ``.tar.gz`` archives.

An archive holds a single top-level directory named after the minion,
mirroring ``minions/<name>/``. Export can add ``container.log`` and an
``inbox/`` copy of the mailbox into that directory.
"""

from datetime import UTC, datetime
import io
from pathlib import Path, PurePosixPath
import shutil
import tarfile
import tempfile

from pydantic import ValidationError
import structlog

from minion_hive.errors import AdapterError, AlreadyExistsError, ArchiveFormatError, NotFoundError
from minion_hive.formatting import human_size
from minion_hive.mailbox import Mailbox
from minion_hive.metadata import META_FILE, MetadataStore, validate_name
from minion_hive.models import ExportResult, ImportResult, MinionMeta
from minion_hive.runtime import SandboxRuntime

logger = structlog.get_logger()

CONTAINER_LOG = "container.log"
INBOX_DIR = "inbox"


def _add_text(tar: tarfile.TarFile, arcname: str, text: str) -> None:
    data = text.encode("utf-8")
    info = tarfile.TarInfo(arcname)
    info.size = len(data)
    info.mtime = int(datetime.now(UTC).timestamp())
    info.mode = 0o644
    tar.addfile(info, io.BytesIO(data))


def _check_members(tar: tarfile.TarFile) -> str:
    """Return the single top-level directory, rejecting unsafe members."""
    roots = set()
    for member in tar.getmembers():
        path = PurePosixPath(member.name)
        if path.is_absolute() or ".." in path.parts:
            raise ArchiveFormatError(f"Invalid archive: unsafe member path '{member.name}'")
        if member.issym() or member.islnk():
            raise ArchiveFormatError(f"Invalid archive: link member '{member.name}'")
        parts = [part for part in path.parts if part != "."]
        if parts:
            roots.add(parts[0])

    if len(roots) != 1:
        raise ArchiveFormatError("Invalid archive: expected single minion directory")
    return roots.pop()


def _read_meta(workspace: Path) -> MinionMeta | None:
    path = workspace / META_FILE
    if not path.is_file():
        return None
    try:
        return MinionMeta.model_validate_json(path.read_text(encoding="utf-8"))
    except ValidationError as e:
        raise ArchiveFormatError(f"Invalid archive: unreadable {META_FILE}: {e}") from e


class WorkspaceArchiver:
    """Moves minion workspaces in and out of tarballs."""

    def __init__(self, minions: MetadataStore, mailbox: Mailbox, runtime: SandboxRuntime):
        self.minions = minions
        self.mailbox = mailbox
        self.runtime = runtime

    async def export_minion(
        self,
        name: str,
        output: Path | None = None,
        include_logs: bool = False,
        include_inbox: bool = False,
    ) -> ExportResult:
        meta = self.minions.load(name)
        if output is None:
            stamp = datetime.now(UTC).strftime("%Y-%m-%dT%H-%M-%S")
            output = Path.cwd() / f"{name}-{stamp}.tar.gz"
        output = Path(output)

        logs = None
        if include_logs and meta.container_id:
            try:
                logs = await self.runtime.logs(meta.container_id)
            except AdapterError as e:
                # container may be gone already
                logger.info("export_logs_skipped", minion=name, error=str(e))

        output.parent.mkdir(parents=True, exist_ok=True)
        with tarfile.open(output, "w:gz") as tar:
            tar.add(self.minions.workspace_path(name), arcname=name)
            if logs is not None:
                _add_text(tar, f"{name}/{CONTAINER_LOG}", logs)
            if include_inbox:
                for message in self.mailbox.inbox(name):
                    _add_text(
                        tar,
                        f"{name}/{INBOX_DIR}/{message.id}.json",
                        message.model_dump_json(by_alias=True, indent=2),
                    )

        size = output.stat().st_size
        logger.info("minion_exported", minion=name, path=str(output), size=size)
        return ExportResult(name=name, path=str(output), size=size, size_human=human_size(size))

    def import_minion(
        self,
        archive: Path,
        name: str | None = None,
        overwrite: bool = False,
    ) -> ImportResult:
        archive = Path(archive)
        if not archive.is_file():
            raise NotFoundError(f"Archive not found: {archive}")

        try:
            tar = tarfile.open(archive, "r:*")
        except tarfile.TarError as e:
            raise ArchiveFormatError(f"Invalid archive '{archive}': {e}") from e

        with tar, tempfile.TemporaryDirectory(prefix=".import-") as tmp:
            original = _check_members(tar)
            target = name or original
            validate_name(target)
            if self.minions.exists(target) and not overwrite:
                raise AlreadyExistsError(
                    f"Minion '{target}' already exists. Use --overwrite to replace.",
                    name=target,
                )

            try:
                tar.extractall(tmp, filter="data")
            except tarfile.TarError as e:
                raise ArchiveFormatError(f"Invalid archive '{archive}': {e}") from e
            extracted = Path(tmp) / original
            meta = _read_meta(extracted)

            # replace only once the archive proved usable
            if self.minions.exists(target):
                self.minions.remove(target)
            destination = self.minions.workspace_path(target)
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(extracted), str(destination))

        # extraction drops group/other write bits the sandbox user relies on
        self.minions.create_workspace(target)
        if meta is not None:
            self._stamp(meta, target, original)
        logger.info("minion_imported", minion=target, original_name=original, archive=str(archive))
        return ImportResult(name=target, path=str(destination))

    def _stamp(self, meta: MinionMeta, name: str, original: str) -> None:
        meta.imported_at = datetime.now(UTC)
        if name != original:
            meta.original_name = original
            meta.name = name
        self.minions.save(meta)
