"""
service.py
Description: Unified interface for gallery operations
    This service coordinates the database, metadata, import and analytics
    handlers and enforces image ownership for every mutation.
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

"""
# aura_gallery/service.py
import datetime
import os
import shutil
from typing import Dict, Any, List, Optional, Iterable, Callable

from .analytics import AnalyticsAggregator
from .handlers.db import DatabaseHandler
from .handlers.embedded import EmbeddedMetadataHandler
from .importer import ImportReconciler, origin_timestamp
from .models.records import CorpusSnapshot, ImageRecord, ImportSummary
from .models.metadata import GenerationParameters
from .utils.error_handling import (
    ErrorRecovery, FilesystemFailure, GalleryError, NotAuthorizedError, NotFoundError
)
from .utils.format_detect import FormatHandler
from .utils.preview import DEFAULT_PREVIEW_SIZE
from .utils.tag_matcher import ANALYSIS_PROMPT, parse_classifier_response, tag_category

# (image bytes, prompt) -> free-form description
Classifier = Callable[[bytes, str], str]


class GalleryService:
    """
    Unified interface for gallery operations

    Handlers are created on first use. Every method that touches a single
    image checks that the requesting user may see it, and mutations
    additionally require ownership.
    """

    def __init__(self, debug: bool = False, db_path: Optional[str] = None,
                 storage_root: Optional[str] = None, preview_size: int = DEFAULT_PREVIEW_SIZE,
                 review_workers: Optional[int] = None, classifier: Optional[Classifier] = None):
        """
        Initialize the gallery service

        Args:
            debug: Whether to enable debug logging
            db_path: SQLite database file (default: 'aura-gallery.db' in current directory)
            storage_root: Root of per-user image folders (default: 'user_images' in current directory)
            preview_size: Bound of import review previews in pixels
            review_workers: Thread count for review previews
            classifier: Vision model callable used for tag suggestions
        """
        self.debug = debug
        self.db_path = db_path
        self.storage_root = storage_root or os.path.join(os.getcwd(), 'user_images')
        self.preview_size = preview_size
        self.review_workers = review_workers
        self.classifier = classifier

        # Initialize handlers on demand
        self._db_handler = None
        self._embedded_handler = None
        self._importer = None
        self._analytics = None

    # Users

    def create_user(self, username: str) -> int:
        return self._get_db_handler().create_user(username)

    def get_user(self, user_id: int) -> Optional[Dict[str, Any]]:
        return self._get_db_handler().get_user(user_id)

    # Ingestion

    def upload_image(self, owner_id: int, source_path: str, filename: Optional[str] = None) -> Dict[str, Any]:
        """
        Store a single uploaded file in the owner's folder and record it

        Args:
            owner_id: Owner of the new record
            source_path: Path of the uploaded file
            filename: Name to store it under (default: basename of source_path)

        Returns:
            dict: success flag, image_id, stored filename and has_metadata

        Raises:
            ValueError: If the file type is not accepted
            FilesystemFailure: If the file cannot be stored
        """
        filename = filename or os.path.basename(source_path)
        if not FormatHandler.is_importable(filename):
            raise ValueError(f"Unsupported file type: {filename}")

        db = self._get_db_handler()
        importer = self._get_importer()
        folder = importer.owner_folder(owner_id)

        try:
            file_created_at = origin_timestamp(os.stat(source_path))
            os.makedirs(folder, exist_ok=True)
            final_name = filename
            if db.find_by_filename(owner_id, filename) is not None or os.path.exists(os.path.join(folder, filename)):
                final_name = importer.collision_name(owner_id, filename, folder)
            final_path = os.path.join(folder, final_name)
            shutil.copy2(source_path, final_path)
        except OSError as e:
            self._log(f"Upload of {filename} failed: {str(e)}", level="ERROR")
            raise FilesystemFailure(f"Upload failed: {e}", path=source_path) from e

        metadata = self._get_embedded_handler().read_metadata(final_path)
        image_id = db.insert_image(ImageRecord(
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

        return {
            'success': True,
            'image_id': image_id,
            'filename': final_name,
            'has_metadata': metadata.has_metadata
        }

    def scan_directory(self, owner_id: int, source_dir: str) -> Dict[str, Any]:
        return self._get_importer().scan_directory(source_dir, owner_id)

    def import_directory(self, owner_id: int, source_dir: str, mode: str = 'copy',
                         selected: Optional[Iterable[str]] = None,
                         not_selected: Optional[Iterable[str]] = None) -> ImportSummary:
        return self._get_importer().import_directory(
            source_dir, owner_id, mode, selected=selected, not_selected=not_selected
        )

    def review_directory(self, owner_id: int, source_dir: str, page: int = 1,
                         page_size: int = 50) -> Dict[str, Any]:
        return self._get_importer().review_directory(source_dir, owner_id, page, page_size)

    # Browsing

    def list_images(self, user_id: int, **filters) -> List[Dict[str, Any]]:
        """Owner's images matching the gallery filters, newest first"""
        records = self._get_db_handler().query_images(user_id, filters)
        return [record.to_dict() for record in records]

    def get_image(self, user_id: int, image_id: int) -> Dict[str, Any]:
        """
        Image details as seen by a user

        Raises:
            NotFoundError: If the image does not exist or is neither owned by
                nor shared with the user
        """
        db = self._get_db_handler()
        record = self._require_visible(user_id, image_id)

        details = record.to_dict()
        details['workflow'] = record.workflow
        details['tags'] = db.get_image_tags(user_id, image_id)
        details['is_favorite'] = db.is_favorite(user_id, image_id)
        details['is_owner'] = record.owner_id == user_id
        return details

    def filter_options(self, user_id: int) -> Dict[str, List[str]]:
        """Distinct checkpoints and samplers across the user's images"""
        checkpoints = set()
        samplers = set()
        for raw in self._get_db_handler().node_info_values(user_id):
            params = GenerationParameters.from_json(raw)
            if params is None:
                continue
            if isinstance(params.checkpoint, str) and params.checkpoint:
                checkpoints.add(params.checkpoint)
            if isinstance(params.sampler, str) and params.sampler:
                samplers.add(params.sampler)

        return {
            'checkpoints': sorted(checkpoints),
            'samplers': sorted(samplers)
        }

    def get_analytics(self, user_id: int, now: Optional[datetime.datetime] = None) -> Dict[str, Any]:
        snapshot = CorpusSnapshot(
            owner_id=user_id,
            records=self._get_db_handler().load_corpus(user_id),
            now=now
        )
        return self._get_analytics().compute(snapshot)

    # Tags

    def list_tags(self, user_id: int) -> List[Dict[str, Any]]:
        return self._get_db_handler().list_tags(user_id)

    def add_tag(self, user_id: int, image_id: int, tag_name: str, category: Optional[str] = None) -> None:
        tag_name = (tag_name or '').strip()
        if not tag_name:
            raise ValueError("Tag name is required")
        self._require_owner(user_id, image_id)
        self._get_db_handler().add_tag(user_id, image_id, tag_name, category)

    def remove_tag(self, user_id: int, image_id: int, tag_name: str) -> None:
        self._require_owner(user_id, image_id)
        self._get_db_handler().remove_tag(user_id, image_id, tag_name)

    def rename_tag(self, user_id: int, old_name: str, new_name: str) -> int:
        """
        Rename a tag across all of the user's images

        Returns:
            int: Number of tag rows renamed

        Raises:
            ValueError: If a name is missing or new_name is already in use
        """
        old_name = (old_name or '').strip()
        new_name = (new_name or '').strip()
        if not old_name or not new_name:
            raise ValueError("Old name and new name are required")

        db = self._get_db_handler()
        if old_name != new_name and db.tag_exists(user_id, new_name):
            raise ValueError("A tag with that name already exists")

        return db.rename_tag(user_id, old_name, new_name)

    def delete_tag(self, user_id: int, tag_name: str) -> int:
        """Remove a tag from all of the user's images, returns rows deleted"""
        return self._get_db_handler().delete_tag(user_id, tag_name)

    # Favorites

    def toggle_favorite(self, user_id: int, image_id: int) -> bool:
        """Flip the favorite state, returns the new state"""
        self._require_visible(user_id, image_id)
        db = self._get_db_handler()
        favorited = not db.is_favorite(user_id, image_id)
        db.set_favorite(user_id, image_id, favorited)
        return favorited

    # Sharing

    def share_image(self, owner_id: int, image_id: int, target_user_id: int) -> None:
        """
        Grant read access on an image to another user

        Raises:
            NotFoundError: If the image or target user does not exist
            NotAuthorizedError: If owner_id does not own the image
            ValueError: If the target is the owner
        """
        self._require_owner(owner_id, image_id)
        if target_user_id == owner_id:
            raise ValueError("Cannot share with yourself")

        db = self._get_db_handler()
        if db.get_user(target_user_id) is None:
            raise NotFoundError(f"User {target_user_id} not found")
        db.add_share(image_id, owner_id, target_user_id)

    def unshare_image(self, owner_id: int, image_id: int, target_user_id: int) -> None:
        self._require_owner(owner_id, image_id)
        self._get_db_handler().remove_share(image_id, target_user_id)

    def shared_with(self, owner_id: int, image_id: int) -> List[Dict[str, Any]]:
        self._require_owner(owner_id, image_id)
        return self._get_db_handler().get_shared_with(image_id)

    def shared_images(self, user_id: int) -> List[Dict[str, Any]]:
        return self._get_db_handler().get_shared_images(user_id)

    # Deletion

    def delete_image(self, owner_id: int, image_id: int) -> None:
        """
        Delete an image file and its record

        Tags, favorites and shares go with the record. A backing file that is
        already gone does not block removing the record.

        Raises:
            FilesystemFailure: If the file exists but cannot be deleted
        """
        record = self._require_owner(owner_id, image_id)
        try:
            os.remove(record.filepath)
        except FileNotFoundError:
            self._log(f"File for image {image_id} already missing: {record.filepath}", level="WARNING")
        except OSError as e:
            raise FilesystemFailure(f"Cannot delete file: {e}", path=record.filepath) from e

        self._get_db_handler().delete_image(image_id)

    # AI tagging

    def suggest_tags(self, user_id: int, image_id: int) -> Dict[str, Any]:
        """
        Ask the classifier about an image and match its answer to tags

        Raises:
            NotFoundError: If the user does not own the image
            GalleryError: If no classifier is configured
        """
        if self.classifier is None:
            raise GalleryError("No classifier configured")

        record = self._get_db_handler().get_image(image_id)
        if record is None or record.owner_id != user_id:
            raise NotFoundError(f"Image {image_id} not found")

        with open(record.filepath, 'rb') as f:
            image_bytes = f.read()

        suggested = parse_classifier_response(self.classifier(image_bytes, ANALYSIS_PROMPT))
        self._log(f"Suggested tags for {record.filename}: {', '.join(suggested)}", level="DEBUG")

        return {
            'image_id': image_id,
            'filename': record.filename,
            'filepath': record.filepath,
            'suggested_tags': suggested
        }

    def batch_suggest_tags(self, user_id: int, image_ids: Iterable[int]) -> Dict[str, Any]:
        """Suggest tags for several images, failures are reported per image"""
        image_ids = list(image_ids)
        results = []
        succeeded = 0

        for image_id in image_ids:
            try:
                entry = self.suggest_tags(user_id, image_id)
            except Exception as e:
                self._log(f"Tag suggestion failed for image {image_id}: {str(e)}", level="WARNING")
                results.append(ErrorRecovery.batch_error_detail(image_id, e))
                continue
            entry['success'] = True
            results.append(entry)
            succeeded += 1

        return {
            'results': results,
            'summary': {
                'total': len(image_ids),
                'succeeded': succeeded,
                'failed': len(image_ids) - succeeded
            }
        }

    def apply_tags(self, user_id: int, image_id: int, tags: Iterable[str]) -> List[str]:
        """
        Attach suggested tags to an owned image

        Returns:
            list: Tags applied, already present ones included
        """
        self._require_owner(user_id, image_id)
        db = self._get_db_handler()

        applied = []
        for tag in tags:
            tag = (tag or '').strip()
            if not tag:
                continue
            db.add_tag(user_id, image_id, tag, tag_category(tag))
            applied.append(tag)
        return applied

    def batch_apply_tags(self, user_id: int, applications: Iterable[Dict[str, Any]]) -> int:
        """Apply tags to several images, images the user does not own are skipped"""
        applied = 0
        for application in applications:
            try:
                self.apply_tags(user_id, application['image_id'], application.get('tags') or [])
            except (NotFoundError, NotAuthorizedError) as e:
                self._log(f"Skipping image {application.get('image_id')}: {str(e)}", level="DEBUG")
                continue
            applied += 1
        return applied

    # Ownership

    def _require_visible(self, user_id: int, image_id: int) -> ImageRecord:
        db = self._get_db_handler()
        record = db.get_image(image_id)
        if record is None:
            raise NotFoundError(f"Image {image_id} not found")
        if record.owner_id != user_id and not db.is_shared_with(image_id, user_id):
            raise NotFoundError(f"Image {image_id} not found")
        return record

    def _require_owner(self, user_id: int, image_id: int) -> ImageRecord:
        record = self._get_db_handler().get_image(image_id)
        if record is None:
            raise NotFoundError(f"Image {image_id} not found")
        if record.owner_id != user_id:
            raise NotAuthorizedError(f"User {user_id} does not own image {image_id}")
        return record

    # Handlers

    def _get_db_handler(self) -> DatabaseHandler:
        """Get database handler (lazy initialization)"""
        if self._db_handler is None:
            self._db_handler = DatabaseHandler(debug=self.debug, db_path=self.db_path)
        return self._db_handler

    def _get_embedded_handler(self) -> EmbeddedMetadataHandler:
        """Get embedded metadata handler (lazy initialization)"""
        if self._embedded_handler is None:
            self._embedded_handler = EmbeddedMetadataHandler(debug=self.debug)
        return self._embedded_handler

    def _get_importer(self) -> ImportReconciler:
        """Get import reconciler (lazy initialization)"""
        if self._importer is None:
            self._importer = ImportReconciler(
                self._get_db_handler(),
                metadata_handler=self._get_embedded_handler(),
                storage_root=self.storage_root,
                preview_size=self.preview_size,
                review_workers=self.review_workers,
                debug=self.debug
            )
        return self._importer

    def _get_analytics(self) -> AnalyticsAggregator:
        if self._analytics is None:
            self._analytics = AnalyticsAggregator(debug=self.debug)
        return self._analytics

    def cleanup(self):
        """Clean up resources used by handlers"""
        handlers = [
            self._embedded_handler,
            self._importer,
            self._analytics,
            self._db_handler
        ]

        for handler in handlers:
            if handler is not None:
                handler.cleanup()

    def _log(self, message: str, level: str = "INFO"):
        """Log a message with timestamp"""
        if level == "DEBUG" and not self.debug:
            return

        timestamp = datetime.datetime.now().isoformat()
        print(f"[{timestamp}] GalleryService [{level}] {message}")

    def __enter__(self):
        """Context manager entry"""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - ensure cleanup"""
        self.cleanup()
