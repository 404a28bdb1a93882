"""
db.py
Description: SQLite storage for gallery images, users, tags, favorites and shares.
    Provides the point lookups used for import de-duplication, the bulk corpus
    read used by analytics, and the owner-scoped tag, favorite and share
    bookkeeping.
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
# aura_gallery/handlers/db.py
import os
import sqlite3
from typing import Dict, Any, List, Optional, Tuple

from dateutil import parser as date_parser

from ..handlers.base import BaseHandler
from ..models.records import ImageRecord

IMAGE_COLUMNS = ('id, owner_id, filepath, filename, original_filename, workflow_json, '
                 'prompt_text, node_info, created_at, file_created_at')


class DatabaseHandler(BaseHandler):
    """Handler for database storage of gallery records"""

    def __init__(self, debug: bool = False, db_path: Optional[str] = None):
        """
        Initialize the database handler

        Args:
            debug: Whether to enable debug logging
            db_path: Path to the database file (default: 'aura-gallery.db' in current directory)
        """
        super().__init__(debug)

        # Set database path
        self.db_path = db_path or os.path.join(os.getcwd(), 'aura-gallery.db')
        self.conn = None

        # Initialize database
        self._initialize_db()

    def _initialize_db(self) -> None:
        """Initialize database and create tables if they don't exist"""
        try:
            # Review thumbnails run on worker threads, queries stay behind the handler lock
            self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self.conn.execute('PRAGMA foreign_keys = ON')

            self._create_tables()
            self._migrate()

            self.log(f"Database initialized at {self.db_path}", level="INFO")
        except sqlite3.Error as e:
            self.log(f"Database initialization failed: {str(e)}", level="ERROR", error=e)
            self.conn = None
            raise

    def _create_tables(self) -> None:
        """Create database tables for gallery storage"""
        self.conn.executescript('''
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            username TEXT UNIQUE NOT NULL,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS images (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            owner_id INTEGER NOT NULL,
            filepath TEXT NOT NULL,
            filename TEXT NOT NULL,
            original_filename TEXT,
            workflow_json TEXT,
            prompt_text TEXT,
            node_info TEXT,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            file_created_at REAL,
            FOREIGN KEY (owner_id) REFERENCES users(id)
        );

        CREATE TABLE IF NOT EXISTS shared_images (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            image_id INTEGER NOT NULL,
            shared_with_user_id INTEGER NOT NULL,
            shared_by_user_id INTEGER NOT NULL,
            shared_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (image_id) REFERENCES images(id) ON DELETE CASCADE,
            FOREIGN KEY (shared_with_user_id) REFERENCES users(id),
            FOREIGN KEY (shared_by_user_id) REFERENCES users(id),
            UNIQUE(image_id, shared_with_user_id)
        );

        CREATE TABLE IF NOT EXISTS tags (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            image_id INTEGER NOT NULL,
            tag_name TEXT NOT NULL,
            category TEXT,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (user_id) REFERENCES users(id),
            FOREIGN KEY (image_id) REFERENCES images(id) ON DELETE CASCADE,
            UNIQUE(user_id, image_id, tag_name)
        );

        CREATE TABLE IF NOT EXISTS favorites (
            user_id INTEGER NOT NULL,
            image_id INTEGER NOT NULL,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (user_id, image_id),
            FOREIGN KEY (user_id) REFERENCES users(id),
            FOREIGN KEY (image_id) REFERENCES images(id) ON DELETE CASCADE
        );

        CREATE INDEX IF NOT EXISTS idx_images_owner ON images(owner_id);
        CREATE INDEX IF NOT EXISTS idx_images_owner_filename ON images(owner_id, filename);
        CREATE INDEX IF NOT EXISTS idx_tags_user_image ON tags(user_id, image_id);
        CREATE INDEX IF NOT EXISTS idx_shared_images_user ON shared_images(shared_with_user_id);
        ''')
        self.conn.commit()

    def _migrate(self) -> None:
        """Add columns introduced after the first schema version"""
        columns = {row['name'] for row in self.conn.execute('PRAGMA table_info(images)')}
        for column, column_type in (('node_info', 'TEXT'), ('original_filename', 'TEXT')):
            if column not in columns:
                self.log(f"Adding images.{column} column", level="INFO")
                self.conn.execute(f'ALTER TABLE images ADD COLUMN {column} {column_type}')
        self.conn.commit()

    def _execute(self, sql: str, params: Tuple = ()) -> sqlite3.Cursor:
        """Run a write statement and commit"""
        with self._lock:
            cursor = self.conn.execute(sql, params)
            self.conn.commit()
            return cursor

    def _fetchone(self, sql: str, params: Tuple = ()) -> Optional[sqlite3.Row]:
        with self._lock:
            return self.conn.execute(sql, params).fetchone()

    def _fetchall(self, sql: str, params: Tuple = ()) -> List[sqlite3.Row]:
        with self._lock:
            return self.conn.execute(sql, params).fetchall()

    # Users

    def create_user(self, username: str) -> int:
        """Create a user and return its id"""
        cursor = self._execute('INSERT INTO users (username) VALUES (?)', (username,))
        return cursor.lastrowid

    def get_user(self, user_id: int) -> Optional[Dict[str, Any]]:
        row = self._fetchone('SELECT id, username, created_at FROM users WHERE id = ?', (user_id,))
        return dict(row) if row else None

    # Images

    def find_exact_match(self, owner_id: int, filename: str, file_created_at: float) -> Optional[int]:
        """
        Look up an already imported copy of the same file

        A record renamed on collision still matches on the name it was
        imported under.

        Args:
            owner_id: Owner of the records
            filename: Source filename
            file_created_at: Origin timestamp of the source file

        Returns:
            int: Matching image id, or None
        """
        row = self._fetchone(
            '''SELECT id FROM images
               WHERE owner_id = ? AND file_created_at = ?
                 AND (filename = ? OR original_filename = ?)''',
            (owner_id, file_created_at, filename, filename)
        )
        return row['id'] if row else None

    def find_by_filename(self, owner_id: int, filename: str) -> Optional[int]:
        """Look up any record of the owner with this filename"""
        row = self._fetchone(
            'SELECT id FROM images WHERE filename = ? AND owner_id = ?',
            (filename, owner_id)
        )
        return row['id'] if row else None

    def insert_image(self, record: ImageRecord) -> int:
        """
        Insert a new image record

        Args:
            record: Record to insert, its id is ignored

        Returns:
            int: New image id
        """
        node_info = record.node_info.to_json() if record.node_info is not None else None

        if record.created_at is not None:
            cursor = self._execute(
                '''INSERT INTO images (owner_id, filepath, filename, original_filename, workflow_json,
                                       prompt_text, node_info, file_created_at, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)''',
                (record.owner_id, record.filepath, record.filename, record.original_filename,
                 record.workflow_json, record.prompt_text, node_info, record.file_created_at,
                 record.created_at.strftime('%Y-%m-%d %H:%M:%S'))
            )
        else:
            cursor = self._execute(
                '''INSERT INTO images (owner_id, filepath, filename, original_filename, workflow_json,
                                       prompt_text, node_info, file_created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)''',
                (record.owner_id, record.filepath, record.filename, record.original_filename,
                 record.workflow_json, record.prompt_text, node_info, record.file_created_at)
            )

        self.log(f"Inserted image {record.filename} for owner {record.owner_id}", level="DEBUG")
        return cursor.lastrowid

    def get_image(self, image_id: int) -> Optional[ImageRecord]:
        row = self._fetchone(f'SELECT {IMAGE_COLUMNS} FROM images WHERE id = ?', (image_id,))
        return ImageRecord.from_row(row) if row else None

    def count_images(self, owner_id: int) -> int:
        row = self._fetchone('SELECT COUNT(*) AS count FROM images WHERE owner_id = ?', (owner_id,))
        return row['count']

    def delete_image(self, image_id: int) -> None:
        """Delete an image row, tags, favorites and shares cascade"""
        self._execute('DELETE FROM images WHERE id = ?', (image_id,))

    def load_corpus(self, owner_id: int) -> List[ImageRecord]:
        """
        Read every image of an owner with the owner's favorites and tags

        Args:
            owner_id: Owner of the corpus

        Returns:
            list: Records in insertion order
        """
        rows = self._fetchall(
            f'''SELECT {', '.join('i.' + c.strip() for c in IMAGE_COLUMNS.split(','))},
                       EXISTS(SELECT 1 FROM favorites f
                              WHERE f.image_id = i.id AND f.user_id = ?) AS is_favorite,
                       (SELECT GROUP_CONCAT(t.tag_name, char(31)) FROM tags t
                        WHERE t.image_id = i.id AND t.user_id = ?) AS tags
                FROM images i
                WHERE i.owner_id = ?
                ORDER BY i.id''',
            (owner_id, owner_id, owner_id)
        )
        return [ImageRecord.from_row(row) for row in rows]

    def query_images(self, owner_id: int, filters: Optional[Dict[str, Any]] = None) -> List[ImageRecord]:
        """
        List an owner's images matching gallery filters

        Args:
            owner_id: Owner of the images
            filters: Optional keys: search, tags (list, all required), no_tags,
                checkpoint, sampler, min_steps, max_steps, min_cfg, max_cfg,
                orientation ('portrait', 'landscape', 'square'), date_from,
                date_to, limit, offset

        Returns:
            list: Matching records, newest first
        """
        filters = filters or {}
        sql = f'''
            SELECT {', '.join('i.' + c.strip() for c in IMAGE_COLUMNS.split(','))},
                   EXISTS(SELECT 1 FROM favorites f WHERE f.image_id = i.id AND f.user_id = ?) AS is_favorite,
                   (SELECT GROUP_CONCAT(t.tag_name, char(31)) FROM tags t
                    WHERE t.image_id = i.id AND t.user_id = ?) AS tags
            FROM images i
            WHERE i.owner_id = ?
        '''
        params: List[Any] = [owner_id, owner_id, owner_id]

        if filters.get('search'):
            sql += ' AND (i.prompt_text LIKE ? OR i.filename LIKE ?)'
            pattern = f"%{filters['search']}%"
            params.extend([pattern, pattern])

        if filters.get('no_tags'):
            sql += ' AND i.id NOT IN (SELECT DISTINCT image_id FROM tags WHERE user_id = ?)'
            params.append(owner_id)
        elif filters.get('tags'):
            tag_list = filters['tags']
            if isinstance(tag_list, str):
                tag_list = tag_list.split(',')
            tag_list = [t.strip() for t in tag_list if t and t.strip()]
            if tag_list:
                placeholders = ','.join('?' for _ in tag_list)
                sql += f'''
                    AND i.id IN (
                        SELECT image_id FROM tags
                        WHERE user_id = ? AND tag_name IN ({placeholders})
                        GROUP BY image_id
                        HAVING COUNT(DISTINCT tag_name) = ?
                    )'''
                params.append(owner_id)
                params.extend(tag_list)
                params.append(len(set(tag_list)))

        if filters.get('checkpoint'):
            sql += " AND json_extract(i.node_info, '$.checkpoint') = ?"
            params.append(filters['checkpoint'])

        if filters.get('sampler'):
            sql += " AND json_extract(i.node_info, '$.sampler') = ?"
            params.append(filters['sampler'])

        range_filters = (
            ('min_steps', "CAST(json_extract(i.node_info, '$.steps') AS INTEGER) >= ?", int),
            ('max_steps', "CAST(json_extract(i.node_info, '$.steps') AS INTEGER) <= ?", int),
            ('min_cfg', "CAST(json_extract(i.node_info, '$.cfg') AS REAL) >= ?", float),
            ('max_cfg', "CAST(json_extract(i.node_info, '$.cfg') AS REAL) <= ?", float),
        )
        for key, clause, cast in range_filters:
            if filters.get(key) is not None:
                sql += f' AND {clause}'
                params.append(cast(filters[key]))

        width = "CAST(json_extract(i.node_info, '$.dimensions.width') AS INTEGER)"
        height = "CAST(json_extract(i.node_info, '$.dimensions.height') AS INTEGER)"
        orientation = filters.get('orientation')
        if orientation == 'portrait':
            sql += f' AND {height} > {width}'
        elif orientation == 'landscape':
            sql += f' AND {width} > {height}'
        elif orientation == 'square':
            sql += f' AND {width} = {height}'

        # file_created_at is epoch milliseconds
        if filters.get('date_from'):
            sql += " AND date(i.file_created_at / 1000, 'unixepoch') >= ?"
            params.append(self._normalize_date(filters['date_from']))

        if filters.get('date_to'):
            sql += " AND date(i.file_created_at / 1000, 'unixepoch') <= ?"
            params.append(self._normalize_date(filters['date_to']))

        sql += ' ORDER BY i.created_at DESC, i.id DESC LIMIT ? OFFSET ?'
        params.append(int(filters.get('limit', 10000)))
        params.append(int(filters.get('offset', 0)))

        return [ImageRecord.from_row(row) for row in self._fetchall(sql, tuple(params))]

    @staticmethod
    def _normalize_date(value: Any) -> str:
        """Accept dates in any dateutil format, compare as YYYY-MM-DD"""
        return date_parser.parse(str(value)).strftime('%Y-%m-%d')

    def node_info_values(self, owner_id: int) -> List[Optional[str]]:
        """Raw node_info JSON of every image of an owner"""
        rows = self._fetchall(
            'SELECT node_info FROM images WHERE owner_id = ? AND node_info IS NOT NULL',
            (owner_id,)
        )
        return [row['node_info'] for row in rows]

    # Tags

    def add_tag(self, user_id: int, image_id: int, tag_name: str, category: Optional[str] = None) -> None:
        self._execute(
            'INSERT OR IGNORE INTO tags (user_id, image_id, tag_name, category) VALUES (?, ?, ?, ?)',
            (user_id, image_id, tag_name, category)
        )

    def remove_tag(self, user_id: int, image_id: int, tag_name: str) -> None:
        self._execute(
            'DELETE FROM tags WHERE user_id = ? AND image_id = ? AND tag_name = ?',
            (user_id, image_id, tag_name)
        )

    def get_image_tags(self, user_id: int, image_id: int) -> List[Dict[str, Any]]:
        rows = self._fetchall(
            'SELECT tag_name, category FROM tags WHERE image_id = ? AND user_id = ? ORDER BY id',
            (image_id, user_id)
        )
        return [dict(row) for row in rows]

    def list_tags(self, user_id: int) -> List[Dict[str, Any]]:
        """All tags of a user with usage counts, most used first"""
        rows = self._fetchall(
            '''SELECT tag_name, category, COUNT(*) AS usage_count
               FROM tags
               WHERE user_id = ?
               GROUP BY tag_name, category
               ORDER BY usage_count DESC, tag_name ASC''',
            (user_id,)
        )
        return [dict(row) for row in rows]

    def tag_exists(self, user_id: int, tag_name: str) -> bool:
        row = self._fetchone(
            'SELECT 1 FROM tags WHERE user_id = ? AND tag_name = ? LIMIT 1',
            (user_id, tag_name)
        )
        return row is not None

    def rename_tag(self, user_id: int, old_name: str, new_name: str) -> int:
        cursor = self._execute(
            'UPDATE tags SET tag_name = ? WHERE user_id = ? AND tag_name = ?',
            (new_name, user_id, old_name)
        )
        return cursor.rowcount

    def delete_tag(self, user_id: int, tag_name: str) -> int:
        cursor = self._execute(
            'DELETE FROM tags WHERE user_id = ? AND tag_name = ?',
            (user_id, tag_name)
        )
        return cursor.rowcount

    # Favorites

    def is_favorite(self, user_id: int, image_id: int) -> bool:
        row = self._fetchone(
            'SELECT 1 FROM favorites WHERE user_id = ? AND image_id = ?',
            (user_id, image_id)
        )
        return row is not None

    def set_favorite(self, user_id: int, image_id: int, favorite: bool) -> None:
        if favorite:
            self._execute(
                'INSERT OR IGNORE INTO favorites (user_id, image_id) VALUES (?, ?)',
                (user_id, image_id)
            )
        else:
            self._execute(
                'DELETE FROM favorites WHERE user_id = ? AND image_id = ?',
                (user_id, image_id)
            )

    # Shares

    def add_share(self, image_id: int, shared_by: int, shared_with: int) -> None:
        self._execute(
            '''INSERT OR IGNORE INTO shared_images (image_id, shared_with_user_id, shared_by_user_id)
               VALUES (?, ?, ?)''',
            (image_id, shared_with, shared_by)
        )

    def remove_share(self, image_id: int, shared_with: int) -> None:
        self._execute(
            'DELETE FROM shared_images WHERE image_id = ? AND shared_with_user_id = ?',
            (image_id, shared_with)
        )

    def is_shared_with(self, image_id: int, user_id: int) -> bool:
        row = self._fetchone(
            'SELECT 1 FROM shared_images WHERE image_id = ? AND shared_with_user_id = ?',
            (image_id, user_id)
        )
        return row is not None

    def get_shared_with(self, image_id: int) -> List[Dict[str, Any]]:
        """Users an image is shared with"""
        rows = self._fetchall(
            '''SELECT u.id, u.username, si.shared_at
               FROM shared_images si
               JOIN users u ON si.shared_with_user_id = u.id
               WHERE si.image_id = ?
               ORDER BY si.id''',
            (image_id,)
        )
        return [dict(row) for row in rows]

    def get_shared_images(self, user_id: int) -> List[Dict[str, Any]]:
        """Images other users shared with this user, most recent first"""
        rows = self._fetchall(
            f'''SELECT {', '.join('i.' + c.strip() for c in IMAGE_COLUMNS.split(','))},
                       u.username AS owner_username, si.shared_at
                FROM shared_images si
                JOIN images i ON si.image_id = i.id
                JOIN users u ON i.owner_id = u.id
                WHERE si.shared_with_user_id = ?
                ORDER BY si.shared_at DESC, si.id DESC''',
            (user_id,)
        )
        results = []
        for row in rows:
            entry = ImageRecord.from_row(row).to_dict()
            entry['owner_username'] = row['owner_username']
            entry['shared_at'] = row['shared_at']
            results.append(entry)
        return results

    def cleanup(self) -> None:
        """Close the database connection"""
        if self.conn is not None:
            self.conn.close()
            self.conn = None
