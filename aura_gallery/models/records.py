"""
records.py
Description: Persisted gallery records and batch operation summaries.
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
- python-dateutil: Apache 2.0 / BSD 3-Clause

"""
# aura_gallery/models/records.py
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
import datetime
import json

from dateutil import parser as date_parser

from .metadata import GenerationParameters

# Matches GROUP_CONCAT(tag_name, char(31)) in the image queries
TAG_SEPARATOR = '\x1f'


def parse_timestamp(value: Any) -> Optional[datetime.datetime]:
    """
    Parse a stored timestamp into a datetime

    SQLite hands back CURRENT_TIMESTAMP columns as text, while callers may
    already pass datetimes. Unparseable values become None.
    """
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        return value
    try:
        return date_parser.parse(str(value))
    except (ValueError, OverflowError):
        return None


@dataclass
class ImageRecord:
    """One physical image file owned by exactly one user"""
    id: Optional[int]
    owner_id: int
    filepath: str
    filename: str
    workflow_json: Optional[str] = None
    prompt_text: Optional[str] = None
    node_info: Optional[GenerationParameters] = None
    created_at: Optional[datetime.datetime] = None
    file_created_at: Optional[float] = None
    original_filename: Optional[str] = None
    is_favorite: bool = False
    tags: List[str] = field(default_factory=list)

    @classmethod
    def from_row(cls, row) -> 'ImageRecord':
        """
        Build a record from a sqlite3.Row of the images table

        Optional joined columns 'is_favorite' and 'tags' (joined on TAG_SEPARATOR)
        are picked up when present.
        """
        keys = row.keys()
        tags = []
        if 'tags' in keys and row['tags']:
            tags = [t for t in row['tags'].split(TAG_SEPARATOR) if t]

        return cls(
            id=row['id'],
            owner_id=row['owner_id'],
            filepath=row['filepath'],
            filename=row['filename'],
            workflow_json=row['workflow_json'],
            prompt_text=row['prompt_text'],
            node_info=GenerationParameters.from_json(row['node_info']),
            created_at=parse_timestamp(row['created_at']),
            file_created_at=row['file_created_at'],
            original_filename=row['original_filename'] if 'original_filename' in keys else None,
            is_favorite=bool(row['is_favorite']) if 'is_favorite' in keys else False,
            tags=tags
        )

    @property
    def workflow(self) -> Any:
        """Decoded workflow tree for display"""
        if not self.workflow_json:
            return None
        try:
            return json.loads(self.workflow_json)
        except ValueError:
            return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'owner_id': self.owner_id,
            'filepath': self.filepath,
            'filename': self.filename,
            'workflow_json': self.workflow_json,
            'prompt_text': self.prompt_text,
            'node_info': self.node_info.to_dict() if self.node_info else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'file_created_at': self.file_created_at,
            'original_filename': self.original_filename,
            'is_favorite': self.is_favorite,
            'tags': list(self.tags)
        }


@dataclass
class ImportSummary:
    """Per-batch import outcome"""
    imported: int = 0
    skipped: int = 0
    errors: int = 0
    removed: int = 0
    details: List[Dict[str, Any]] = field(default_factory=list)

    def add_imported(self, filename: str, original_name: str, has_metadata: bool,
                     **extra) -> None:
        self.imported += 1
        detail = {
            'filename': filename,
            'original_name': original_name,
            'status': 'imported',
            'has_metadata': has_metadata,
            'renamed': filename != original_name
        }
        detail.update(extra)
        self.details.append(detail)

    def add_skipped(self, filename: str, reason: str) -> None:
        self.skipped += 1
        self.details.append({
            'filename': filename,
            'status': 'skipped',
            'reason': reason
        })

    def add_error(self, detail: Dict[str, Any]) -> None:
        self.errors += 1
        self.details.append(detail)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'imported': self.imported,
            'skipped': self.skipped,
            'errors': self.errors,
            'removed': self.removed,
            'details': list(self.details)
        }


@dataclass
class CorpusSnapshot:
    """All of one user's records, read once for an analytics pass"""
    owner_id: int
    records: List[ImageRecord] = field(default_factory=list)
    now: Optional[datetime.datetime] = None
