"""
Import orchestrator.

Walks a source tree depth first: every directory becomes a category
(resolved before descending), every accepted file is uploaded through the
content store and then registered. A failure on one file is logged and
recorded, and the walk moves on.

Three entry points:
    import_tree(root)            generic resources filed under categories
    import_animations(directory) flat directory of animations tagged by
                                 gender inferred from the file name
    import_avatars(root)         avatar parts laid out as
                                 {gender}/{part type}/{file}.glb

Files whose names normalize to the same storage key never overwrite each
other: the work on one key runs under a per-key lock, and a key already
registered to another source file fails the newcomer with
StorageKeyConflict.

Example usage:
    >>> orchestrator = ImportOrchestrator(store, Session, config)
    >>> summary = orchestrator.import_tree("../myroom-system/public/models")
    >>> summary.created, summary.failed
    (42, 0)
"""

import contextvars
import os
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, wait
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from sqlalchemy.orm import sessionmaker

from asset_import.categories.resolver import CategoryResolver, CategoryRow, KeyedLocks
from asset_import.db.models import (
    Avatar,
    AvatarCategory,
    AvatarCategoryType,
    Gender,
    PartType,
    Resource,
)
from asset_import.errors import ObjectExists, SourceUnavailable, StorageKeyConflict
from asset_import.importer import classify
from asset_import.importer.classify import EntryKind
from asset_import.importer.summary import ImportSummary, ItemOutcome
from asset_import.registrar.registrar import (
    AnimationDescriptor,
    AvatarDescriptor,
    Descriptor,
    ResourceDescriptor,
    ResourceRegistrar,
    SourceRef,
    resolve_operator,
)
from asset_import.storage.gateway import ContentStore, PutOptions, PutResult, guess_content_type
from asset_import.utils.config import ImportConfig
from asset_import.utils.logging import get_logger, set_correlation_id
from asset_import.utils.metrics import ImportMetrics, get_metrics

logger = get_logger(__name__)

GLB_CONTENT_TYPE = "model/gltf-binary"

ITEM_KINDS = {"resources": "resource", "animations": "animation", "avatars": "avatar"}

FileTask = Callable[[Path], ItemOutcome]


class _Run:
    """State of one import run, shared by the walking thread and workers."""

    def __init__(
        self,
        summary: ImportSummary,
        admin_id: str,
        root: Path,
        extensions: List[str],
        deadline: Optional[float],
        executor: Optional[ThreadPoolExecutor],
    ) -> None:
        self.summary = summary
        self.admin_id = admin_id
        self.root = root
        self.extensions = extensions
        self.deadline = deadline
        self.executor = executor
        self.item_kind = ITEM_KINDS[summary.kind]


class ImportOrchestrator:
    """
    Drives category resolution, upload and registration for a source tree.

    Args:
        store: Content store gateway
        session_factory: sessionmaker for the relational store
        config: ImportConfig (environment defaults if None)
        resolver: CategoryResolver for the item tree (built from
            session_factory if None)
        registrar: ResourceRegistrar (built from session_factory if None)
        metrics: Metrics sink (global instance if None)
        avatar_resolver: CategoryResolver over AvatarCategory (built from
            session_factory if None)
    """

    def __init__(
        self,
        store: ContentStore,
        session_factory: sessionmaker,
        config: Optional[ImportConfig] = None,
        resolver: Optional[CategoryResolver] = None,
        registrar: Optional[ResourceRegistrar] = None,
        metrics: Optional[ImportMetrics] = None,
        avatar_resolver: Optional[CategoryResolver] = None,
    ) -> None:
        self.store = store
        self.session_factory = session_factory
        self.config = config or ImportConfig(storage_backend="memory")
        self.metrics = metrics if metrics is not None else get_metrics()
        self.resolver = resolver or CategoryResolver(session_factory, metrics=self.metrics)
        self.avatar_resolver = avatar_resolver or CategoryResolver(
            session_factory, metrics=self.metrics, model=AvatarCategory
        )
        self.registrar = registrar or ResourceRegistrar(session_factory)
        self._key_locks = KeyedLocks()
        self._stop = threading.Event()

    def request_stop(self) -> None:
        """Stop starting new files; uploads already in flight finish."""
        if not self._stop.is_set():
            logger.warning("Stop requested: draining in-flight uploads")
        self._stop.set()

    def import_tree(
        self, root: Union[str, Path], admin_id: Optional[str] = None
    ) -> ImportSummary:
        """
        Import every accepted file under `root`, mirroring directories as
        categories.

        Files directly under `root` have no category and are skipped.

        Raises:
            SourceUnavailable: `root` is missing or unreadable
            OperatorNotFound: No operator could be resolved
        """
        root_path = self._check_source(root)
        admin = self._resolve_operator(admin_id)
        summary = self._start_summary("resources", root_path, admin)

        counts_before = (self.resolver.counts.created, self.resolver.counts.existing)
        with self._executor() as executor:
            run = _Run(
                summary,
                admin,
                root_path,
                self.config.resource_extensions,
                self._deadline(),
                executor,
            )
            self._walk(run, root_path, None, 0)

        summary.categories_created = self.resolver.counts.created - counts_before[0]
        summary.categories_existing = self.resolver.counts.existing - counts_before[1]
        return self._finish(summary)

    def import_animations(
        self, directory: Union[str, Path], admin_id: Optional[str] = None
    ) -> ImportSummary:
        """
        Import the animation files of a flat directory.

        Sub-directories are not traversed.

        Raises:
            SourceUnavailable: `directory` is missing or unreadable
            OperatorNotFound: No operator could be resolved
        """
        dir_path = self._check_source(directory)
        admin = self._resolve_operator(admin_id)
        summary = self._start_summary("animations", dir_path, admin)

        files = [
            path
            for path in self._list(dir_path)
            if classify.classify_entry(path, self.config.animation_extensions)
            is EntryKind.ASSET
        ]
        logger.info(f"Found {len(files)} animation file(s) in {dir_path}")

        with self._executor() as executor:
            run = _Run(
                summary,
                admin,
                dir_path,
                self.config.animation_extensions,
                self._deadline(),
                executor,
            )
            self._run_files(run, files, lambda path: self._import_animation(run, path))

        return self._finish(summary)

    def import_avatars(
        self, root: Union[str, Path], admin_id: Optional[str] = None
    ) -> ImportSummary:
        """
        Import an avatar parts tree laid out as {gender}/{part type}/{file}.

        Level-0 directories must be named male, female or unisex; the part
        type of each level-1 directory is inferred from its name. A
        directory that fits neither rule is recorded as a failure and
        nothing below it is imported. Files outside a part directory and
        anything nested deeper are skipped with a warning.

        Raises:
            SourceUnavailable: `root` is missing or unreadable
            OperatorNotFound: No operator could be resolved
        """
        root_path = self._check_source(root)
        admin = self._resolve_operator(admin_id)
        summary = self._start_summary("avatars", root_path, admin)

        resolver = self.avatar_resolver
        counts_before = (resolver.counts.created, resolver.counts.existing)
        with self._executor() as executor:
            run = _Run(
                summary,
                admin,
                root_path,
                self.config.avatar_extensions,
                self._deadline(),
                executor,
            )
            files, gender_dirs = self._scan(run, root_path)
            self._skip_files(run, files, "not inside a gender/part directory")

            for gender_dir in gender_dirs:
                if self._stop_before(run, gender_dir):
                    continue
                try:
                    gender = classify.parse_gender(gender_dir.name)
                    gender_category = resolver.ensure(
                        gender_dir.name,
                        None,
                        0,
                        gender_dir.name,
                        category_type=AvatarCategoryType.GENDER,
                    )
                except Exception as e:
                    self._directory_failed(run, gender_dir, e)
                    continue
                self._walk_avatar_gender(run, gender_dir, gender, gender_category)

        summary.categories_created = resolver.counts.created - counts_before[0]
        summary.categories_existing = resolver.counts.existing - counts_before[1]
        return self._finish(summary)

    # ------------------------------------------------------------------
    # Walk
    # ------------------------------------------------------------------

    def _walk(
        self,
        run: _Run,
        directory: Path,
        parent: Optional[CategoryRow],
        level: int,
    ) -> None:
        files, subdirectories = self._scan(run, directory)

        if parent is None:
            self._skip_files(run, files, "no category")
        else:
            self._run_files(
                run,
                files,
                lambda path, category=parent: self._import_resource(run, path, category),
            )

        for subdirectory in subdirectories:
            if self._stop_before(run, subdirectory):
                continue

            category_path = subdirectory.relative_to(run.root).as_posix()
            try:
                category = self.resolver.ensure(
                    subdirectory.name,
                    parent.id if parent is not None else None,
                    level,
                    category_path,
                )
            except Exception as e:
                self._directory_failed(run, subdirectory, e)
                continue

            self._walk(run, subdirectory, category, level + 1)

    def _walk_avatar_gender(
        self,
        run: _Run,
        gender_dir: Path,
        gender: Gender,
        gender_category: AvatarCategory,
    ) -> None:
        files, part_dirs = self._scan(run, gender_dir)
        self._skip_files(run, files, "not inside a part directory")

        for part_dir in part_dirs:
            if self._stop_before(run, part_dir):
                continue

            category_path = f"{gender_dir.name}/{part_dir.name}"
            try:
                part_type = classify.infer_part_type(part_dir.name)
                part_category = self.avatar_resolver.ensure(
                    part_dir.name,
                    gender_category.id,
                    1,
                    category_path,
                    category_type=AvatarCategoryType.PART_TYPE,
                )
            except Exception as e:
                self._directory_failed(run, part_dir, e)
                continue

            part_files, nested = self._scan(run, part_dir)
            for directory in nested:
                logger.warning(f"Not descending into nested avatar directory: {directory}")
                self._skip_subtree(run, directory)

            self._run_files(
                run,
                part_files,
                lambda path, category=part_category, part_type=part_type: (
                    self._import_avatar(run, path, category, gender, part_type)
                ),
            )

    def _scan(self, run: _Run, directory: Path) -> Tuple[List[Path], List[Path]]:
        """Split a directory into accepted files and sub-directories, sorted by name."""
        files: List[Path] = []
        subdirectories: List[Path] = []
        try:
            entries = self._list(directory)
        except OSError as e:
            logger.error(f"Cannot read directory {directory}: {e}")
            run.summary.record_failure(str(directory), e)
            return files, subdirectories

        for entry in entries:
            kind = classify.classify_entry(entry, run.extensions)
            if kind is EntryKind.DIRECTORY:
                subdirectories.append(entry)
            elif kind is EntryKind.ASSET:
                files.append(entry)
            else:
                logger.debug(f"Ignoring unsupported entry: {entry}")
        return files, subdirectories

    def _skip_files(self, run: _Run, files: List[Path], reason: str) -> None:
        for path in files:
            logger.warning(f"Skipping {path}: {reason}")
            run.summary.record(ItemOutcome.SKIPPED)
            self.metrics.record_item(run.item_kind, ItemOutcome.SKIPPED.value)

    def _stop_before(self, run: _Run, directory: Path) -> bool:
        """True (with the subtree counted as skipped) when the run is stopping."""
        if not self._should_stop(run):
            return False
        logger.warning(f"Not descending into {directory}: run is stopping")
        self._skip_subtree(run, directory)
        return True

    def _directory_failed(self, run: _Run, directory: Path, error: Exception) -> None:
        logger.error(
            f"Failed to resolve category for {directory}: {error}",
            extra={"path": str(directory), "error_type": type(error).__name__},
            exc_info=True,
        )
        run.summary.record_failure(str(directory), error)

    def _skip_subtree(self, run: _Run, directory: Path) -> None:
        """Count accepted files below `directory` as skipped, without side effects."""
        try:
            entries = self._list(directory)
        except OSError as e:
            logger.warning(f"Cannot read directory {directory}: {e}")
            return

        for entry in entries:
            kind = classify.classify_entry(entry, run.extensions)
            if kind is EntryKind.DIRECTORY:
                self._skip_subtree(run, entry)
            elif kind is EntryKind.ASSET:
                run.summary.record(ItemOutcome.SKIPPED)
                self.metrics.record_item(run.item_kind, ItemOutcome.SKIPPED.value)

    def _run_files(self, run: _Run, files: List[Path], task: FileTask) -> None:
        """Run `task` for each file, in parallel when a pool is configured."""
        if run.executor is None:
            for path in files:
                self._guarded(run, path, task)
            return

        # Each task runs in a copy of the walking thread's context (run id)
        futures = [
            run.executor.submit(contextvars.copy_context().run, self._guarded, run, path, task)
            for path in files
        ]
        wait(futures)

    def _guarded(self, run: _Run, path: Path, task: FileTask) -> None:
        if self._should_stop(run):
            logger.info(f"Skipping {path}: run is stopping")
            run.summary.record(ItemOutcome.SKIPPED)
            self.metrics.record_item(run.item_kind, ItemOutcome.SKIPPED.value)
            return

        try:
            outcome = task(path)
        except Exception as e:
            logger.error(
                f"Failed to import {path}: {type(e).__name__}: {e}",
                extra={"path": str(path), "error_type": type(e).__name__},
                exc_info=True,
            )
            run.summary.record_failure(str(path), e)
            self.metrics.record_item(run.item_kind, ItemOutcome.FAILED.value)
            return

        run.summary.record(outcome)
        self.metrics.record_item(run.item_kind, outcome.value)

    # ------------------------------------------------------------------
    # Per-file work
    # ------------------------------------------------------------------

    def _import_resource(self, run: _Run, path: Path, category: CategoryRow) -> ItemOutcome:
        data = path.read_bytes()
        digest = classify.checksum(data)
        mime_type = guess_content_type(path.name)
        key = classify.resource_storage_key(self.config.key_prefix, category.path, path.name)
        relative_path = path.relative_to(run.root).as_posix()

        with self._key_locks.hold(key):
            self.registrar.check_key(
                Resource, key, SourceRef(path.name, category.id, relative_path)
            )
            put_result = self.store.put(
                data,
                path.name,
                run.admin_id,
                PutOptions(
                    content_type=mime_type,
                    metadata={
                        "category": category.id,
                        "uploadedBy": "admin",
                        "adminId": run.admin_id,
                        "checksum": digest,
                    },
                    specific_key=key,
                ),
            )
            run.summary.record_upload(put_result.size, put_result.reused)

            descriptor = ResourceDescriptor(
                name=classify.stem(path.name),
                file_name=path.name,
                put_result=put_result,
                mime_type=mime_type,
                checksum=digest,
                category_id=category.id,
                admin_id=run.admin_id,
                resource_id=classify.resource_slug(category.path, path.name),
                owner_project_id=self.config.owner_project_id,
                relative_path=relative_path,
            )
            return self._register(run, path, descriptor)

    def _import_avatar(
        self,
        run: _Run,
        path: Path,
        category: AvatarCategory,
        gender: Gender,
        part_type: PartType,
    ) -> ItemOutcome:
        data = path.read_bytes()
        digest = classify.checksum(data)
        key = classify.avatar_storage_key(self.config.avatar_prefix, category.path, path.name)
        relative_path = path.relative_to(run.root).as_posix()

        with self._key_locks.hold(key):
            self.registrar.check_key(
                Avatar, key, SourceRef(path.name, category.id, relative_path)
            )
            put_result = self.store.put(
                data,
                path.name,
                run.admin_id,
                PutOptions(
                    content_type=GLB_CONTENT_TYPE,
                    metadata={
                        "category": classify.AVATAR_ASSET_CLASS,
                        "gender": gender.value,
                        "partType": part_type.value,
                        "checksum": digest,
                    },
                    specific_key=key,
                ),
            )
            run.summary.record_upload(put_result.size, put_result.reused)

            descriptor = AvatarDescriptor(
                name=classify.stem(path.name),
                file_name=path.name,
                put_result=put_result,
                mime_type=GLB_CONTENT_TYPE,
                checksum=digest,
                category_id=category.id,
                admin_id=run.admin_id,
                resource_id=classify.resource_slug(category.path, path.name),
                gender=gender,
                part_type=part_type,
                relative_path=relative_path,
            )
            return self._register(run, path, descriptor)

    def _import_animation(self, run: _Run, path: Path) -> ItemOutcome:
        data = path.read_bytes()
        digest = classify.checksum(data)
        gender = classify.infer_gender(path.name)
        key = classify.animation_storage_key(self.config.animation_prefix, gender, path.name)

        try:
            put_result = self.store.put(
                data,
                path.name,
                "system",
                PutOptions(
                    content_type=GLB_CONTENT_TYPE,
                    metadata={"category": classify.ANIMATION_ASSET_CLASS, "checksum": digest},
                    specific_key=key,
                    ignore_if_exists=False,
                ),
            )
        except ObjectExists as e:
            logger.info(f"Animation object already stored, registering existing: {e.key}")
            put_result = PutResult(
                url=e.url or self.store.url_for(e.key),
                key=e.key,
                size=e.size or len(data),
                reused=True,
            )
        run.summary.record_upload(put_result.size, put_result.reused)

        descriptor = AnimationDescriptor(
            name=classify.stem(path.name),
            file_name=path.name,
            put_result=put_result,
            mime_type=GLB_CONTENT_TYPE,
            checksum=digest,
            admin_id=run.admin_id,
            resource_id=classify.animation_resource_id(path.name),
            gender=gender,
            description=f"Animation file for {gender.value.lower()} avatars",
        )
        return self._register(run, path, descriptor)

    def _register(
        self,
        run: _Run,
        path: Path,
        descriptor: Descriptor,
    ) -> ItemOutcome:
        try:
            registration = self.registrar.register(descriptor)
        except StorageKeyConflict:
            # The object belongs to the record that holds the key
            raise
        except Exception:
            run.summary.record_orphan(str(path), descriptor.put_result.key)
            raise

        if registration.created:
            return ItemOutcome.CREATED
        return ItemOutcome.EXISTING

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    def _check_source(self, source: Union[str, Path]) -> Path:
        path = Path(source).expanduser()
        if not path.exists():
            raise SourceUnavailable(f"Source directory does not exist: {path}")
        if not path.is_dir():
            raise SourceUnavailable(f"Source is not a directory: {path}")
        try:
            with os.scandir(path):
                pass
        except OSError as e:
            raise SourceUnavailable(f"Source directory is not readable: {path}: {e}") from e
        return path.resolve()

    def _resolve_operator(self, admin_id: Optional[str]) -> str:
        with self.session_factory() as session:
            admin = resolve_operator(session, admin_id)
            logger.info(f"Importing as admin {admin.email} ({admin.id})")
            return admin.id

    def _start_summary(self, kind: str, source: Path, admin_id: str) -> ImportSummary:
        self._stop.clear()
        run_id = f"import-{uuid.uuid4().hex[:12]}"
        set_correlation_id(run_id)
        logger.info(f"Starting {kind} import from {source} (run {run_id})")
        return ImportSummary(kind=kind, source=str(source), run_id=run_id, admin_id=admin_id)

    def _finish(self, summary: ImportSummary) -> ImportSummary:
        summary.stopped_early = self._stop.is_set()
        summary.finish()
        summary.log()
        self.metrics.record_run(
            summary.kind, "stopped" if summary.stopped_early else "completed"
        )
        return summary

    def _deadline(self) -> Optional[float]:
        if self.config.run_timeout_seconds is None:
            return None
        return time.monotonic() + self.config.run_timeout_seconds

    def _should_stop(self, run: _Run) -> bool:
        if self._stop.is_set():
            return True
        if run.deadline is not None and time.monotonic() >= run.deadline:
            logger.warning("Run deadline reached: no new files will be started")
            self._stop.set()
            return True
        return False

    def _executor(self) -> "_OptionalExecutor":
        return _OptionalExecutor(self.config.max_workers)

    @staticmethod
    def _list(directory: Path) -> List[Path]:
        return sorted(directory.iterdir(), key=lambda p: p.name)


class _OptionalExecutor:
    """Context manager yielding a thread pool, or None for sequential runs."""

    def __init__(self, max_workers: int) -> None:
        self.max_workers = max_workers
        self._pool: Optional[ThreadPoolExecutor] = None

    def __enter__(self) -> Optional[ThreadPoolExecutor]:
        if self.max_workers > 1:
            self._pool = ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="asset-import"
            )
        return self._pool

    def __exit__(self, *exc_info: object) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=True)
