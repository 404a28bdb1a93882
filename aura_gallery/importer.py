"""
importer.py
Description: Bulk import of generated images from an output directory.
    Each candidate file is classified against the owner's existing records as
    new, duplicate (same name and origin timestamp, skipped) or collision
    (same name, different file, renamed). Files are copied, moved or
    referenced in place, run through the embedded metadata pipeline and
    recorded. A review variant pages through the same classification with
    small previews before anything is committed.
Author: Eric Hiss (GitHub: EricRollei)
Contact: [eric@historic.camera, eric@rollei.us]
Version: 1.0.0
Date: [March 2025]
License: Dual License (Non-Commercial and Commercial Use)
Copyright (c) 2025 Eric Hiss. All rights reserved.

Dual License:
1. Non-Commercial Use: This software is licensed under the terms of the
   Creative Commons Attribution-NonCommercial 4.0 International License.
   To view a copy of this license, visit http://creativecommons.org/licenses/by-nc/4.0/

2. Commercial Use: For commercial use, a separate license is required.
   Please contact Eric Hiss at [eric@historic.camera, eric@rollei.us] for licensing options.

THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR IMPLIED,
INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY, FITNESS FOR A
PARTICULAR PURPOSE AND NONINFRINGEMENT.

Dependencies:
This code depends on several third-party libraries, each with its own license:
- tqdm: MIT / MPL 2.0
- Pillow: HPND License (through utils.preview)

"""
# aura_gallery/importer.py
import math
import os
import shutil
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, Any, List, Optional, Iterable, Callable, Tuple

from tqdm import tqdm

from .handlers.base import BaseHandler
from .handlers.db import DatabaseHandler
from .handlers.embedded import EmbeddedMetadataHandler
from .models.records import ImageRecord, ImportSummary
from .utils.error_handling import ErrorRecovery, FilesystemFailure
from .utils.format_detect import FormatHandler
from .utils.preview import DEFAULT_PREVIEW_SIZE, create_preview_data_uri

MODE_COPY = 'copy'
MODE_MOVE = 'move'
MODE_REFERENCE = 'reference'
IMPORT_MODES = (MODE_COPY, MODE_MOVE, MODE_REFERENCE)

STATUS_NEW = 'new'
STATUS_DUPLICATE = 'duplicate'
STATUS_COLLISION = 'collision'


def origin_timestamp(stat_result: os.stat_result) -> float:
    """
    Origin time of a file in epoch milliseconds

    Birth time where the platform exposes it, modification time otherwise.
    The value is stored verbatim and only ever compared for equality.
    """
    birthtime = getattr(stat_result, 'st_birthtime', None)
    if birthtime is not None:
        return birthtime * 1000.0
    return stat_result.st_mtime * 1000.0


def epoch_ms() -> int:
    return int(time.time() * 1000)


class ImportReconciler(BaseHandler):
    """Imports directories of generated images into an owner's gallery"""

    def __init__(self, db: DatabaseHandler, metadata_handler: Optional[EmbeddedMetadataHandler] = None,
                 storage_root: Optional[str] = None, preview_size: int = DEFAULT_PREVIEW_SIZE,
                 review_workers: Optional[int] = None, show_progress: bool = False,
                 clock: Callable[[], int] = epoch_ms, debug: bool = False):
        """
        Initialize the import reconciler

        Args:
            db: Database handler holding the owner's records
            metadata_handler: Embedded metadata reader (created if not given)
            storage_root: Root of per-user storage folders
                (default: 'user_images' in current directory)
            preview_size: Bound of review previews in pixels
            review_workers: Thread count for review previews (executor default if None)
            show_progress: Whether to draw a tqdm progress bar during imports
            clock: Source of epoch milliseconds for collision renames
            debug: Whether to enable debug logging
        """
        super().__init__(debug)
        self.db = db
        self.metadata_handler = metadata_handler or EmbeddedMetadataHandler(debug=debug)
        self.storage_root = storage_root or os.path.join(os.getcwd(), 'user_images')
        self.preview_size = preview_size
        self.review_workers = review_workers
        self.show_progress = show_progress
        self.clock = clock

    def owner_folder(self, owner_id: int) -> str:
        """Storage folder for an owner, named after the username"""
        user = self.db.get_user(owner_id)
        name = user['username'] if user else str(owner_id)
        return os.path.join(self.storage_root, name)

    def list_candidates(self, source_dir: str) -> List[str]:
        """
        Sorted importable filenames in a directory

        Raises:
            FilesystemFailure: If the directory cannot be read
        """
        try:
            return FormatHandler.list_candidates(source_dir)
        except OSError as e:
            self.log(f"Cannot read source directory {source_dir}", level="ERROR", error=e)
            raise FilesystemFailure(f"Cannot read source directory: {source_dir}", path=source_dir) from e

    def scan_directory(self, source_dir: str, owner_id: int) -> Dict[str, Any]:
        """
        Summarize a directory before import

        Returns:
            dict: total candidates, the owner's existing record count, filenames
        """
        files = self.list_candidates(source_dir)
        return {
            'total': len(files),
            'existing': self.db.count_images(owner_id),
            'files': files
        }

    def classify(self, owner_id: int, filename: str, file_created_at: float) -> Tuple[str, Optional[int]]:
        """
        Classify a source file against the owner's records

        Returns:
            tuple: (status, id of the matching record or None)
        """
        exact = self.db.find_exact_match(owner_id, filename, file_created_at)
        if exact is not None:
            return STATUS_DUPLICATE, exact

        existing = self.db.find_by_filename(owner_id, filename)
        if existing is not None:
            return STATUS_COLLISION, existing

        return STATUS_NEW, None

    def collision_name(self, owner_id: int, filename: str, folder: Optional[str] = None) -> str:
        """
        New name of the form <stem>_<epoch ms><ext>

        The name is unique among the owner's records and, when a destination
        folder is given, among the files in it.
        """
        stem, ext = os.path.splitext(filename)
        stamp = self.clock()
        while True:
            candidate = f"{stem}_{stamp}{ext}"
            taken = self.db.find_by_filename(owner_id, candidate) is not None
            if not taken and folder is not None:
                taken = os.path.exists(os.path.join(folder, candidate))
            if not taken:
                return candidate
            stamp += 1

    def import_directory(self, source_dir: str, owner_id: int, mode: str = MODE_COPY,
                         selected: Optional[Iterable[str]] = None,
                         not_selected: Optional[Iterable[str]] = None) -> ImportSummary:
        """
        Import every candidate file of a directory

        Per-file failures are recorded in the summary and never stop the
        batch. Re-running an interrupted import skips what already landed.

        Args:
            source_dir: Directory to import from (not recursive)
            owner_id: Owner of the new records
            mode: 'copy', 'move' or 'reference'
            selected: Filenames to import, all candidates if None
            not_selected: Filenames to delete from the source afterwards,
                honored only for copy and move

        Returns:
            ImportSummary: Counts and per-file details

        Raises:
            ValueError: If mode is unknown
            FilesystemFailure: If the source directory cannot be read or the
                storage folder cannot be created
        """
        if mode not in IMPORT_MODES:
            raise ValueError(f"Unknown import mode: {mode}")

        return self._locked('import_directory', self._run_import,
                            source_dir, owner_id, mode, selected, not_selected)

    def _run_import(self, source_dir: str, owner_id: int, mode: str,
                    selected: Optional[Iterable[str]],
                    not_selected: Optional[Iterable[str]]) -> ImportSummary:
        if selected is not None:
            selected = list(selected)

        candidates = self.list_candidates(source_dir)
        if selected is not None:
            wanted = set(selected)
            to_import = [name for name in candidates if name in wanted]
        else:
            to_import = candidates

        folder = None
        if mode != MODE_REFERENCE:
            folder = self.owner_folder(owner_id)
            try:
                os.makedirs(folder, exist_ok=True)
            except OSError as e:
                raise FilesystemFailure(f"Cannot create storage folder: {folder}", path=folder) from e

        summary = ImportSummary()
        self.log(f"Importing {len(to_import)} of {len(candidates)} files from {source_dir} ({mode})",
                 level="INFO")

        for filename in tqdm(to_import, desc="Importing", unit="file", disable=not self.show_progress):
            try:
                self._import_file(source_dir, filename, owner_id, mode, folder, summary)
            except Exception as e:
                self.log(f"Error importing {filename}", level="ERROR", error=e)
                summary.add_error(ErrorRecovery.import_error_detail(filename, e))

        if not_selected and mode != MODE_REFERENCE:
            summary.removed = self._remove_unselected(source_dir, candidates, not_selected, selected)

        self.log(f"Import finished: {summary.imported} imported, {summary.skipped} skipped, "
                 f"{summary.errors} errors, {summary.removed} removed", level="INFO")
        return summary

    def _import_file(self, source_dir: str, filename: str, owner_id: int, mode: str,
                     folder: Optional[str], summary: ImportSummary) -> None:
        source = os.path.join(source_dir, filename)
        file_created_at = origin_timestamp(os.stat(source))

        status, _ = self.classify(owner_id, filename, file_created_at)
        if status == STATUS_DUPLICATE:
            summary.add_skipped(filename, 'Already imported (same file)')
            return

        final_name = filename
        if status == STATUS_COLLISION or (folder is not None and os.path.exists(os.path.join(folder, filename))):
            final_name = self.collision_name(owner_id, filename, folder)
            self.log(f"Name collision for {filename}, importing as {final_name}", level="DEBUG")

        extra = {}
        if mode == MODE_REFERENCE:
            final_path = source
        else:
            final_path = os.path.join(folder, final_name)
            try:
                shutil.copy2(source, final_path)
            except OSError as e:
                raise FilesystemFailure(f"Copy failed: {e}", path=source) from e

            if mode == MODE_MOVE:
                try:
                    os.remove(source)
                except OSError as e:
                    # The copy is in place, the import stands
                    self.log(f"Could not remove source {source} after move", level="WARNING", error=e)
                    extra['source_removed'] = False

        metadata = self.metadata_handler.read_metadata(final_path)

        self.db.insert_image(ImageRecord(
            id=None,
            owner_id=owner_id,
            filepath=final_path,
            filename=final_name,
            workflow_json=metadata.workflow_json,
            prompt_text=metadata.prompt,
            node_info=metadata.node_info,
            file_created_at=file_created_at,
            original_filename=filename if final_name != filename else None
        ))

        summary.add_imported(final_name, filename, metadata.has_metadata, **extra)

    def _remove_unselected(self, source_dir: str, candidates: List[str], not_selected: Iterable[str],
                           selected: Optional[Iterable[str]]) -> int:
        """Delete source files explicitly marked not selected, returns the count removed"""
        keep = set(selected) if selected is not None else set()
        scanned = set(candidates)
        removed = 0

        for filename in dict.fromkeys(not_selected):
            if filename not in scanned or filename in keep:
                continue
            path = os.path.join(source_dir, filename)
            try:
                os.remove(path)
                removed += 1
            except OSError as e:
                self.log(f"Could not remove unselected file {path}", level="WARNING", error=e)

        return removed

    def review_directory(self, source_dir: str, owner_id: int, page: int = 1,
                         page_size: int = 50) -> Dict[str, Any]:
        """
        Classify one page of candidates and attach previews

        Args:
            source_dir: Directory to review
            owner_id: Owner whose records are compared
            page: 1-based page number
            page_size: Candidates per page

        Returns:
            dict: items with status, proposed name and preview, plus totals
                and pagination info

        Raises:
            FilesystemFailure: If the directory cannot be read
        """
        page = max(1, int(page))
        page_size = max(1, int(page_size))

        candidates = self.list_candidates(source_dir)
        start = (page - 1) * page_size
        page_names = candidates[start:start + page_size]

        items = [self._review_item(source_dir, filename, owner_id) for filename in page_names]
        self._attach_previews(source_dir, items)

        counts = {STATUS_NEW: 0, STATUS_DUPLICATE: 0, STATUS_COLLISION: 0}
        for item in items:
            if item['status'] in counts:
                counts[item['status']] += 1

        return {
            'total': len(candidates),
            'page': page,
            'page_size': page_size,
            'total_pages': math.ceil(len(candidates) / page_size),
            'counts': counts,
            'items': items
        }

    def _review_item(self, source_dir: str, filename: str, owner_id: int) -> Dict[str, Any]:
        item = {
            'filename': filename,
            'status': None,
            'proposed_name': filename,
            'size': None,
            'file_created_at': None,
            'preview': None
        }
        try:
            stat_result = os.stat(os.path.join(source_dir, filename))
            item['size'] = stat_result.st_size
            item['file_created_at'] = origin_timestamp(stat_result)

            status, existing_id = self.classify(owner_id, filename, item['file_created_at'])
            item['status'] = status
            if status == STATUS_DUPLICATE:
                item['existing_id'] = existing_id
            elif status == STATUS_COLLISION:
                item['proposed_name'] = self.collision_name(owner_id, filename)
        except OSError as e:
            self.log(f"Cannot stat {filename}", level="WARNING", error=e)
            item['status'] = 'error'
            item['error'] = str(e)
        return item

    def _attach_previews(self, source_dir: str, items: List[Dict[str, Any]]) -> None:
        """Render previews concurrently, a failed preview only affects its own item"""
        pending = [item for item in items if item['status'] != 'error']
        if not pending:
            return

        with ThreadPoolExecutor(max_workers=self.review_workers) as executor:
            future_to_item = {
                executor.submit(create_preview_data_uri,
                                os.path.join(source_dir, item['filename']),
                                self.preview_size): item
                for item in pending
            }
            for future in as_completed(future_to_item):
                item = future_to_item[future]
                try:
                    item['preview'] = future.result()
                except Exception as e:
                    self.log(f"Preview failed for {item['filename']}", level="WARNING", error=e)
                    item['preview_error'] = str(e)
