"""
error_handling.py
Description: Error taxonomy and recovery strategies for gallery metadata operations.
    Per-item failures are turned into recoverable results so that batch
    operations (imports, AI tagging) never abort on a single bad file.
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
# aura_gallery/utils/error_handling.py
from typing import Dict, Any, Optional


class GalleryError(Exception):
    """Base class for all gallery errors"""


class MalformedContainer(GalleryError):
    """Chunk framing does not match the expected PNG container layout"""


class MetadataDecodeError(GalleryError):
    """A keyed text chunk held a value that is not valid JSON"""

    def __init__(self, key: str, message: str):
        super().__init__(f"Failed to decode '{key}' chunk: {message}")
        self.key = key


class FilesystemFailure(GalleryError):
    """Read, copy, move or delete failure on the filesystem"""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class NotFoundError(GalleryError):
    """Record does not exist or is not visible to the requesting user"""


class NotAuthorizedError(GalleryError):
    """Requesting user does not own the record"""


class ErrorRecovery:
    """Strategies for recovering from per-item metadata and import errors"""

    @staticmethod
    def recover_read_error(handler, context: Dict[str, Any]):
        """
        Recover from a metadata read error by treating the file as metadata-less

        Args:
            handler: The handler that encountered the error
            context: Error context including filepath, error_type, error

        Returns:
            ExtractionResult: Empty result with has_metadata False
        """
        from ..models.metadata import ExtractionResult

        filepath = context.get('filepath', '<buffer>')
        error_type = context.get('error_type')

        if handler is not None:
            if error_type == 'MalformedContainer':
                # Not a PNG or a damaged one, both are routine for JPEG imports
                handler.log(f"No readable chunks in {filepath}: {context.get('error')}", level="DEBUG")
            else:
                handler.log(f"Metadata read failed for {filepath}", level="WARNING",
                            error=context.get('exception'))

        return ExtractionResult.empty()

    @staticmethod
    def import_error_detail(filename: str, error: Exception) -> Dict[str, Any]:
        """
        Build the per-file result entry for a failed import

        Args:
            filename: Source filename that failed
            error: The exception raised while importing it

        Returns:
            dict: Detail entry with status 'error'
        """
        return {
            'filename': filename,
            'status': 'error',
            'error': str(error),
            'error_type': type(error).__name__
        }

    @staticmethod
    def batch_error_detail(image_id: int, error: Exception) -> Dict[str, Any]:
        """Per-image entry for a failed batch AI tagging call"""
        return {
            'image_id': image_id,
            'success': False,
            'error': str(error)
        }
