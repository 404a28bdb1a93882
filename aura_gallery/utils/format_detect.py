"""
format_detect.py
Description: Detects which files the gallery can ingest and how to treat them.
    This module identifies candidate image files during directory scans and
    tells the metadata pipeline whether a file can carry PNG text chunks.
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
# aura_gallery/utils/format_detect.py
import os
from typing import List


class FormatHandler:
    """Format detection for gallery image files"""

    # Formats accepted by upload and import
    IMPORTABLE: List[str] = ['.png', '.jpg', '.jpeg']

    # Formats that can carry keyed text chunks
    CHUNKED: List[str] = ['.png']

    @classmethod
    def is_importable(cls, filepath: str) -> bool:
        """
        Check if a file is a candidate for upload or import

        Args:
            filepath: Path or filename

        Returns:
            bool: True if the extension is accepted (case-insensitive)
        """
        ext = os.path.splitext(filepath)[1].lower()
        return ext in cls.IMPORTABLE

    @classmethod
    def has_text_chunks(cls, filepath: str) -> bool:
        """Check if the format can carry PNG text chunks"""
        ext = os.path.splitext(filepath)[1].lower()
        return ext in cls.CHUNKED

    @classmethod
    def list_candidates(cls, directory: str) -> List[str]:
        """
        List importable files directly inside a directory

        Args:
            directory: Directory to scan (not recursive)

        Returns:
            list: Sorted filenames

        Raises:
            OSError: If the directory cannot be read
        """
        names = []
        with os.scandir(directory) as entries:
            for entry in entries:
                if entry.is_file() and cls.is_importable(entry.name):
                    names.append(entry.name)
        return sorted(names)
