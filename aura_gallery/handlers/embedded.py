"""
embedded.py
Description: Reads generation metadata embedded in PNG text chunks.
    ComfyUI writes two keyed text chunks: "workflow" (the editor graph, kept
    verbatim for display) and "prompt" (the executed node graph, which is
    interpreted into prompt text and generation parameters).
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
# aura_gallery/handlers/embedded.py
import json
from typing import Any, Optional

from .base import BaseHandler
from ..models.metadata import ExtractionResult
from ..utils.error_handling import ErrorRecovery, MalformedContainer, MetadataDecodeError
from ..utils.format_detect import FormatHandler
from ..utils.png_chunks import read_chunks, iter_text_chunks
from ..utils.workflow_parser import WorkflowParser

WORKFLOW_KEY = 'workflow'
PROMPT_KEY = 'prompt'


class EmbeddedMetadataHandler(BaseHandler):
    """Handler for metadata embedded in image files"""

    def __init__(self, debug: bool = False, workflow_parser: Optional[WorkflowParser] = None):
        """
        Initialize the embedded metadata handler

        Args:
            debug: Whether to enable debug logging
            workflow_parser: Parser for prompt graphs (created if not given)
        """
        super().__init__(debug)
        self.workflow_parser = workflow_parser or WorkflowParser(debug=debug)

    def read_metadata(self, filepath: str) -> ExtractionResult:
        """
        Read embedded generation metadata from a file

        Formats without text chunks, unreadable files and damaged PNG
        containers yield a metadata-less result instead of raising.

        Args:
            filepath: Path to the image file

        Returns:
            ExtractionResult: Extracted metadata
        """
        if not FormatHandler.has_text_chunks(filepath):
            self.log(f"{filepath}: format has no text chunks", level="DEBUG")
            return ExtractionResult.empty()

        try:
            with open(filepath, 'rb') as f:
                buffer = f.read()
        except OSError as e:
            return ErrorRecovery.recover_read_error(self, {
                'filepath': filepath,
                'error_type': type(e).__name__,
                'error': str(e),
                'exception': e
            })

        return self.extract_from_bytes(buffer, source=filepath)

    def extract_from_bytes(self, buffer: bytes, source: str = '<buffer>') -> ExtractionResult:
        """
        Extract metadata from a fully buffered image

        Args:
            buffer: Raw file contents
            source: Label used in log messages

        Returns:
            ExtractionResult: Extracted metadata
        """
        try:
            # Materialize so framing errors surface here, not mid-scan
            chunks = list(read_chunks(buffer))
        except MalformedContainer as e:
            return ErrorRecovery.recover_read_error(self, {
                'filepath': source,
                'error_type': 'MalformedContainer',
                'error': str(e),
                'exception': e
            })

        result = ExtractionResult()
        workflow_found = False
        prompt_found = False

        for key, value in iter_text_chunks(chunks):
            if key not in (WORKFLOW_KEY, PROMPT_KEY):
                continue

            try:
                decoded = self._decode_json(key, value)
            except MetadataDecodeError as e:
                self.log(f"{source}: {e}", level="WARNING")
                result.errors.append(str(e))
                continue

            if key == WORKFLOW_KEY:
                result.workflow = decoded
                workflow_found = True
            else:
                if not isinstance(decoded, dict):
                    error = MetadataDecodeError(key, "prompt graph is not a JSON object")
                    self.log(f"{source}: {error}", level="WARNING")
                    result.errors.append(str(error))
                    continue
                result.prompt, result.node_info = self.workflow_parser.parse(decoded)
                prompt_found = True

        result.has_metadata = workflow_found or prompt_found

        if self.debug:
            self.log(f"{source}: has_metadata={result.has_metadata} "
                     f"workflow={workflow_found} prompt={prompt_found}", level="DEBUG")

        return result

    @staticmethod
    def _decode_json(key: str, value: str) -> Any:
        try:
            return json.loads(value)
        except ValueError as e:
            raise MetadataDecodeError(key, str(e)) from e
